import logging
import logging.config
import os
import sys
import uuid
from datetime import datetime
from typing import Optional

import structlog

# Processors applied to both structlog and plain stdlib records
SHARED_PROCESSORS = [
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
]


def configure_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """
    Configure structured JSON logging for the application.

    The pure engines log through stdlib `logging.getLogger`, services and
    routes through structlog; both end up in the same JSON handlers.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional rotating log file path. If None, logs to stdout only.
    """
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *SHARED_PROCESSORS,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "stream": sys.stdout,
        }
    }
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "json",
            "filename": log_file,
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
        }

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processor": structlog.processors.JSONRenderer(),
                "foreign_pre_chain": SHARED_PROCESSORS,
            }
        },
        "handlers": handlers,
        "root": {
            "level": log_level,
            "handlers": list(handlers),
        },
    })

    logger = structlog.get_logger("app")
    logger.info("Logging configured", level=log_level, file=log_file)
    return logger


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class PlanOperationContext:
    """
    Logs the start, completion or failure of a template capture/import.

    Every event carries the operation type, a short correlation id and the
    extra context passed in (project_id, template_id, ...).
    """

    def __init__(self, operation_type: str, operation_id: Optional[str] = None, **context):
        self.operation_id = operation_id or uuid.uuid4().hex[:8]
        self.logger = get_logger("app.planning").bind(
            operation_type=operation_type,
            operation_id=self.operation_id,
            **context
        )
        self.start_time = None

    def __enter__(self):
        self.start_time = datetime.utcnow()
        self.logger.info("Plan operation started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = (datetime.utcnow() - self.start_time).total_seconds()
        if exc_type is None:
            self.logger.info("Plan operation completed", duration_seconds=duration)
        else:
            self.logger.error(
                "Plan operation failed",
                duration_seconds=duration,
                error_type=exc_type.__name__,
                error_message=str(exc_val),
            )
        return False
