"""
Scheduler entrypoints for the stats collector

The hourly trigger (cron, GitHub Actions or EventBridge) calls either
`lambda_handler` or the `civstats-collect` console script. Runs must not
overlap; the scheduler is responsible for that.
"""

import asyncio
import logging
import sys
from typing import Any, Dict, Optional

from civstats.errors import CollectorError
from civstats.orchestrator import CollectorOrchestrator

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def run_once(orchestrator: Optional[CollectorOrchestrator] = None) -> Dict[str, Any]:
    """Run one collection and wrap the outcome in a status payload."""
    job_orchestrator = orchestrator or CollectorOrchestrator()
    try:
        result = asyncio.run(job_orchestrator.run_collection())
        logger.info(f"Collection completed: {result}")
        return {"statusCode": 200, "result": result}
    except CollectorError as e:
        logger.error(f"Collection aborted: {e}")
        return {"statusCode": 500, "error": str(e), "error_type": type(e).__name__}
    except Exception as e:
        logger.error(f"Collection failed: {e}", exc_info=True)
        return {"statusCode": 500, "error": str(e), "error_type": type(e).__name__}


def lambda_handler(event: Optional[Dict[str, Any]], context: Any) -> Dict[str, Any]:
    """
    AWS Lambda entrypoint.

    Args:
        event: Event payload from EventBridge Scheduler (ignored)
        context: Lambda context object

    Returns:
        Dictionary with statusCode and either result or error
    """
    _configure_logging()
    logger.info("Lambda invoked for stats collection")
    return run_once()


def main(orchestrator: Optional[CollectorOrchestrator] = None) -> int:
    """Console entrypoint; the exit code is non-zero on any failure."""
    _configure_logging()
    outcome = run_once(orchestrator)
    return 0 if outcome["statusCode"] == 200 else 1


if __name__ == "__main__":
    sys.exit(main())
