"""
Structured Logger - Enhanced logging with JSON output for better observability
"""
import json
import logging
from typing import Dict, Any, Optional

import config
from utils.timezone import get_local_time

SERVICE_NAME = "ride-schedule-sync"
REDACTED_HEADERS = {'authorization', 'cookie', 'set-cookie'}


def redact_headers(headers: Optional[Dict[str, str]]) -> Dict[str, str]:
    """Return a copy of headers with credentials masked"""
    if not headers:
        return {}
    return {
        key: ('[REDACTED]' if key.lower() in REDACTED_HEADERS else value)
        for key, value in headers.items()
    }


class StructuredLogger:
    """Provides structured logging in JSON format for better parsing and analysis"""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.name = name

    def _base_entry(self, event_type: str) -> Dict[str, Any]:
        return {
            "timestamp": get_local_time().isoformat(),
            "timezone": config.TIMEZONE,
            "event_type": event_type,
            "service": SERVICE_NAME,
            "logger": self.name,
        }

    def log_queue_event(self, event_type: str, details: Dict[str, Any]):
        """Log a retry-queue lifecycle event with structured data"""
        log_entry = self._base_entry(event_type)
        log_entry.update(details)

        # Choose log level based on event type
        if "expired" in event_type or "error" in event_type:
            self.logger.error(json.dumps(log_entry, default=str))
        elif "rescheduled" in event_type or "skipped" in event_type:
            self.logger.warning(json.dumps(log_entry, default=str))
        else:
            self.logger.info(json.dumps(log_entry, default=str))

    def log_api_call(self, method: str, endpoint: str, status_code: Optional[int] = None,
                     duration_ms: Optional[float] = None, error: Optional[str] = None):
        """Log API call details"""
        log_entry = self._base_entry("api_call")
        log_entry["method"] = method.upper()
        log_entry["endpoint"] = endpoint

        if status_code is not None:
            log_entry["status_code"] = status_code
        if duration_ms is not None:
            log_entry["duration_ms"] = round(duration_ms, 1)
        if error:
            log_entry["error"] = error

        if error or (status_code and status_code >= 400):
            self.logger.error(json.dumps(log_entry))
        else:
            self.logger.info(json.dumps(log_entry))

    def log_command(self, command: str, blocked: int, warned: int, clean: int,
                    applied: int = 0, failed: int = 0, aborted: bool = False):
        """Log the outcome of a gate-then-act command"""
        log_entry = self._base_entry("command")
        log_entry.update({
            "command": command,
            "blocked": blocked,
            "warned": warned,
            "clean": clean,
            "applied": applied,
            "failed": failed,
            "aborted": aborted,
        })

        if failed:
            self.logger.warning(json.dumps(log_entry))
        else:
            self.logger.info(json.dumps(log_entry))


class JsonFormatter(logging.Formatter):
    """Custom formatter that outputs JSON"""

    def format(self, record):
        # If the message is already JSON, return it as-is
        try:
            json.loads(record.getMessage())
            return record.getMessage()
        except (json.JSONDecodeError, TypeError):
            log_entry = {
                "timestamp": get_local_time().isoformat(),
                "timezone": config.TIMEZONE,
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage()
            }

            if record.exc_info:
                log_entry["exception"] = self.formatException(record.exc_info)

            return json.dumps(log_entry)


def configure_logging(level: Optional[str] = None, structured: Optional[bool] = None):
    """Configure the root logger from config settings"""
    level = level or config.LOG_LEVEL
    structured = config.STRUCTURED_LOGGING if structured is None else structured

    root = logging.getLogger()
    root.setLevel(level)

    if structured:
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        root.handlers = [handler]
    else:
        logging.basicConfig(level=level)
