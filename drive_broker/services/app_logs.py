"""
App Logs - the platform-visible log of the broker.

Operational logging goes through the module loggers (drive_broker.*).
AppLogs is the separate sink for events an administrator of the platform
should see: failed connections, disconnections forced by Google, and so on.

Log Format:
==========
Each entry is one JSON object:
- event ("app_log")
- level
- message
- user_id and function_id when known
- data (optional)
- timestamp
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Configure the app log sink
logger = logging.getLogger("drive_broker.app_logs")
logger.setLevel(logging.INFO)

# Create console handler if not exists
if not logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.INFO)
    formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s [%(name)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


class AppLogs:
    """
    Structured sink for platform-visible log entries.

    Usage:
        app_logs.info("Connection established as Jane Doe.", user_id="5f2b...")
        app_logs.error("Error renewing the token", data={"status": 400})
    """

    def __init__(self):
        self._logger = logger

    def info(
        self,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        function_id: Optional[str] = None,
    ) -> None:
        self._log(logging.INFO, message, data, user_id, function_id)

    def error(
        self,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        function_id: Optional[str] = None,
    ) -> None:
        self._log(logging.ERROR, message, data, user_id, function_id)

    def _log(self, level, message, data, user_id, function_id) -> None:
        log_data = {
            "event": "app_log",
            "level": logging.getLevelName(level).lower(),
            "message": message,
            "user_id": user_id,
            "function_id": function_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if data:
            log_data["data"] = data

        self._logger.log(level, json.dumps(log_data, default=str))


# Singleton instance
app_logs = AppLogs()
