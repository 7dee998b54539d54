"""
Logging utilities for the Smart Calendar scheduling engine
"""
import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict, Optional

from config.settings import Config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
QUIET_LOGGERS = ('urllib3', 'googleapiclient', 'httpx', 'openai', 'werkzeug')


class SmartCalendarLogger:
    """Logging setup shared by the API server and the CLI"""

    @staticmethod
    def setup_logging(log_level: Optional[str] = None, log_file: Optional[str] = None):
        """Configure the root logger; defaults come from LOG_LEVEL / LOG_FILE"""
        level_name = (log_level or Config.LOG_LEVEL).upper()
        level = getattr(logging, level_name, None)
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level_name}")

        formatter = logging.Formatter(LOG_FORMAT)
        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        root_logger.handlers.clear()

        handlers = [logging.StreamHandler(sys.stdout)]
        log_file = log_file or Config.LOG_FILE
        if log_file:
            handlers.append(logging.FileHandler(log_file))
        for handler in handlers:
            handler.setFormatter(formatter)
            root_logger.addHandler(handler)

        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

        return root_logger

    @staticmethod
    def log_request_response(request_id: str, operation: str, request_data: Dict[str, Any],
                             response_data: Dict[str, Any], processing_time: float):
        """One JSON line per API call: what was asked, what came back"""
        logger = logging.getLogger(__name__)
        intent = request_data.get("parsedIntent") or {}

        log_entry = {
            "timestamp": datetime.now().isoformat(),
            "request_id": request_id,
            "operation": operation,
            "processing_time_seconds": round(processing_time, 3),
            "request_summary": {
                "title": intent.get("title"),
                "attendees_count": len(intent.get("attendees") or []),
                "workspace_id": request_data.get("workspaceId"),
                "auto_resolve": bool(request_data.get("autoResolveConflicts")),
            },
            "response_summary": {
                "success": response_data.get("success"),
                "suggestions": len(response_data.get("suggestions") or []),
                "event_id": response_data.get("eventId"),
                "moved_events": len(response_data.get("movedEvents") or []),
            },
        }

        logger.info(f"Request processed: {json.dumps(log_entry)}")
