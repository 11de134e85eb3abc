"""Logging configuration using dictConfig.

Development gets a readable console line; production emits one JSON
object per record through python-json-logger.
"""
import logging
import logging.config
import sys
from typing import Dict, Any, Optional

from .settings import get_settings

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "sqlalchemy.engine")


def _format_string(service_name: Optional[str], structured: bool) -> str:
    source = f"{service_name} %(name)s" if service_name else "%(name)s"
    if structured:
        return f"%(asctime)s %(levelname)s {source} %(message)s"
    if service_name:
        return f"%(asctime)s [{service_name}] [%(levelname)s] %(name)s: %(message)s"
    return "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def get_logging_config(service_name: str = None, level: str = None) -> Dict[str, Any]:
    """Get logging configuration dictionary."""
    settings = get_settings()
    level = (level or settings.log_level).upper()
    structured = settings.environment == "production"

    formatter = {
        "format": _format_string(service_name, structured),
        "datefmt": "%Y-%m-%d %H:%M:%S",
    }
    if structured:
        formatter["class"] = "pythonjsonlogger.jsonlogger.JsonFormatter"

    loggers = {
        "trendscout": {"level": level, "handlers": ["console"], "propagate": False},
        "uvicorn": {"level": "INFO", "handlers": ["console"], "propagate": False},
    }
    for name in QUIET_LOGGERS:
        loggers[name] = {"level": "WARNING", "handlers": ["console"], "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": formatter},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "default",
                "stream": sys.stdout
            }
        },
        "loggers": loggers,
        "root": {"level": level, "handlers": ["console"]},
    }


def setup_logging(service_name: str = None, level: str = None) -> None:
    """Configure logging; ``level`` overrides LOG_LEVEL."""
    logging.config.dictConfig(get_logging_config(service_name, level))


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)
