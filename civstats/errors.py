"""Fatal run errors raised by the collector orchestrator."""

from __future__ import annotations


class CollectorError(Exception):
    """Base class for failures that abort a collection run without saving."""


class ConfigurationError(CollectorError):
    """Required settings are missing."""


class UpstreamUnavailableError(CollectorError):
    """The Civitai image listing could not be fetched."""


class DocumentLoadError(CollectorError):
    """The stored document could not be loaded or is corrupt."""


class IntegrityGateError(CollectorError):
    """The merged document failed the pre-write integrity check."""

    def __init__(self, reason: str, *, expected: int | None = None, actual: int | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.expected = expected
        self.actual = actual


class DocumentSaveError(CollectorError):
    """The merged document could not be written back to the store."""
