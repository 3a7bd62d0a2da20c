"""Redaction of credentials and document bodies in `extra=` log payloads."""

from __future__ import annotations

import re
from typing import Any, Optional

REDACTED = "***REDACTED***"

# Key fragments whose values are never logged.
CREDENTIAL_KEYS = frozenset({"authorization", "token", "api_key", "apikey", "secret", "password"})
# Key fragments holding whole documents; only their size is logged.
BODY_KEYS = frozenset({"body", "content", "payload", "raw"})

# Civitai also takes its API key as a `token` query parameter.
_CREDENTIAL_IN_TEXT = re.compile(
    r"(?i)(bearer\s+|token\s*[=:]\s*|api[_-]?key\s*[=:]\s*)[^\s,;&]+"
)
_GITHUB_TOKEN = re.compile(r"\b(gh[pousr]_|github_pat_)[A-Za-z0-9_]+")


def _matches(key: Optional[str], fragments: frozenset[str]) -> bool:
    if not key:
        return False
    lowered = key.lower()
    return any(fragment in lowered for fragment in fragments)


def _scrub_text(text: str) -> str:
    text = _CREDENTIAL_IN_TEXT.sub(lambda match: match.group(1) + REDACTED, text)
    return _GITHUB_TOKEN.sub(REDACTED, text)


def sanitize_for_log(value: Any, *, key: Optional[str] = None) -> Any:
    """Copy `value` with credentials removed and document bodies summarised."""

    if _matches(key, CREDENTIAL_KEYS):
        return REDACTED
    if isinstance(value, str):
        if _matches(key, BODY_KEYS):
            return f"<{len(value)} chars>" if value.strip() else ""
        return _scrub_text(value)
    if isinstance(value, dict):
        return {str(name): sanitize_for_log(item, key=str(name)) for name, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [sanitize_for_log(item, key=key) for item in value]
    return value


def sanitize_log_extra(**kwargs: Any) -> dict[str, Any]:
    return {name: sanitize_for_log(value, key=name) for name, value in kwargs.items()}
