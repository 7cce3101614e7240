"""
Structured logging configuration using structlog.

Provides:
- JSON-formatted logs for production
- Colored console logs for development
- Sensitive value censoring (tokens, api keys, raw audio)
- Performance timing helper
"""

import logging
import os
import sys
import time
from typing import Any, Dict, Optional

import structlog
from structlog.types import EventDict, Processor

SENSITIVE_KEYS = ("password", "token", "secret", "api_key", "authorization", "audio_base64")


def add_app_context(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application context to log entries"""
    event_dict["app"] = os.getenv("APP_NAME", "Sesli Komut API")
    event_dict["env"] = os.getenv("ENV", "dev")
    return event_dict


def add_severity(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add severity level for structured logging"""
    if method_name == "warn":
        method_name = "warning"
    event_dict["severity"] = method_name.upper()
    return event_dict


def censor_sensitive_data(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Censor sensitive data in logs"""

    def _censor_dict(d: Dict[str, Any]) -> Dict[str, Any]:
        result = {}
        for key, value in d.items():
            key_lower = key.lower()
            if any(sensitive in key_lower for sensitive in SENSITIVE_KEYS):
                result[key] = "***CENSORED***"
            elif isinstance(value, dict):
                result[key] = _censor_dict(value)
            elif isinstance(value, list):
                result[key] = [_censor_dict(item) if isinstance(item, dict) else item for item in value]
            else:
                result[key] = value
        return result

    return _censor_dict(event_dict)


def setup_logging(log_level: Optional[str] = None, json_logs: Optional[bool] = None) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Whether to output JSON logs (True for production)
    """
    if log_level is None:
        log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    if json_logs is None:
        json_logs = os.getenv("ENV", "dev") == "prod"

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("databases").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    shared_processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_severity,
        add_app_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        censor_sensitive_data,
    ]

    if json_logs:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


class LogPerformance:
    """Context manager for logging how long a blocking section took"""

    def __init__(self, logger: structlog.stdlib.BoundLogger, operation: str, **context: Any):
        self.logger = logger
        self.operation = operation
        self.context = context
        self.start_time: Optional[float] = None
        self.duration_ms: int = 0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = int((time.perf_counter() - self.start_time) * 1000)
        if exc_type:
            self.logger.warning(
                f"{self.operation} failed",
                duration_ms=self.duration_ms,
                error=str(exc_val),
                **self.context,
            )
        else:
            self.logger.debug(
                f"{self.operation} completed",
                duration_ms=self.duration_ms,
                **self.context,
            )
        return False
