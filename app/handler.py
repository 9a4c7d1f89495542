"""
Scheduler entrypoint for the attendance roll-up

Event-driven handler (EventBridge Scheduler / cron) that recomputes the
roll-up and refreshes the cached snapshot. No HTTP server involved.
"""

import asyncio
import logging
from typing import Dict, Any, Optional

from app.jobs.attendance_refresh import run_attendance_refresh
from app.runtime import build_orchestrator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def lambda_handler(event: Optional[Dict[str, Any]], context: Any, orchestrator: Any = None) -> Dict[str, Any]:
    """
    Run one attendance refresh.

    Expected event payloads:
    - {"action": "refresh"}
    - {"action": "refresh", "run_at": "2024-01-05T06:00:00+00:00"}

    Default action is "refresh".

    Returns:
        Dictionary with statusCode, action, and result or error
    """
    action = (event or {}).get("action", "refresh")
    logger.info(f"Handler invoked with action: {action}")

    if action != "refresh":
        error_msg = f"Unknown action: {action}"
        logger.error(error_msg)
        return {"statusCode": 400, "action": action, "error": error_msg}

    result = asyncio.run(
        run_attendance_refresh(
            orchestrator=orchestrator or build_orchestrator(),
            run_at=(event or {}).get("run_at"),
        )
    )
    if not result.get("success"):
        logger.error(f"Attendance refresh failed: {result.get('error')}")
        return {"statusCode": 500, "action": action, "error": result.get("error")}

    logger.info(f"Attendance refresh completed: {result.get('stats')}")
    return {"statusCode": 200, "action": action, "result": result}


# Allow local runs via `python -m app.handler`
if __name__ == "__main__":
    print(lambda_handler({"action": "refresh"}, None))
