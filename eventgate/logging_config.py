"""
Centralized Logging Configuration for the Event Gate

Provides structured logging with:
- JSON format for production
- Colored console output for development
- Log levels based on environment
"""

import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
import json


# ============================================================================
# Configuration
# ============================================================================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("LOG_FORMAT", "console")  # 'console' or 'json'
LOG_FILE = os.getenv("LOG_FILE")  # Optional file path


# ============================================================================
# Custom Formatters
# ============================================================================

class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output"""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime('%Y-%m-%d %H:%M:%S')

        if record.levelname in ['ERROR', 'CRITICAL']:
            prefix = f"{color}[{record.levelname}]{self.RESET}"
        else:
            prefix = f"{color}[{record.name}]{self.RESET}"

        message = f"{timestamp} {prefix} {record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


class JSONFormatter(logging.Formatter):
    """JSON formatter for production/log aggregation"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Structured fields passed as extra={"extra_fields": {...}}
        if hasattr(record, "extra_fields"):
            log_entry.update(record.extra_fields)

        return json.dumps(log_entry, default=str)


# ============================================================================
# Logger Setup
# ============================================================================

def setup_logging(level: str = None, fmt: str = None, log_file: str = None):
    """Configure the root logger with appropriate handlers"""

    level = (level or LOG_LEVEL).upper()
    fmt = fmt or LOG_FORMAT
    log_file = log_file or LOG_FILE

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level, logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level, logging.INFO))

    if fmt == "json":
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(ColoredFormatter())

    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    Usage:
        from eventgate.logging_config import get_logger
        logger = get_logger(__name__)

        logger.info("[GATE] Admitted occurrence")
        logger.error("[STORE] Redis unreachable", exc_info=True)
    """
    return logging.getLogger(name)


def log_fields(**kwargs):
    """Build the ``extra`` mapping consumed by JSONFormatter"""
    return {"extra_fields": kwargs} if kwargs else None
