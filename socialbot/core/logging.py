"""
Logging setup for SocialBot.

Production writes one JSON object per line (``extra`` fields such as
``provider`` and ``duration_ms`` become JSON keys); other environments use a
readable console format. Graph API tokens travel in query strings and
provider keys in ``Authorization`` headers, so every handler redacts them.
"""
import logging
import logging.config
import re
import sys
from typing import Any, Dict, Optional

from .settings import get_settings

settings = get_settings()

REDACTED = "***"

_SECRET_PATTERNS = [
    re.compile(r"(access_token=)[^&\s\"']+"),
    re.compile(r"(Bearer\s+)[A-Za-z0-9._\-]+"),
]

# Third-party loggers and the level they are capped at
_LIBRARY_LEVELS = {
    "uvicorn": "INFO",
    "uvicorn.access": "WARNING",
    "sqlalchemy.engine": "WARNING",
    "httpx": "WARNING",
}


def redact_secrets(text: str) -> str:
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(rf"\g<1>{REDACTED}", text)
    return text


class SecretRedactionFilter(logging.Filter):
    """Masks access tokens and bearer keys in the rendered message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact_secrets(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


def get_logging_config(service_name: Optional[str] = None) -> Dict[str, Any]:
    """Build the dictConfig for the given service (e.g. ``api``)."""
    prefix = f"[{service_name}] " if service_name else ""
    use_json = settings.environment == "production"

    json_format = "%(asctime)s %(levelname)s %(name)s %(message)s"
    if service_name:
        json_format = f"%(asctime)s %(levelname)s {service_name} %(name)s %(message)s"

    loggers = {
        "socialbot": {"level": settings.log_level, "handlers": ["console"], "propagate": False},
    }
    for name, level in _LIBRARY_LEVELS.items():
        loggers[name] = {"level": level, "handlers": ["console"], "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "redact": {"()": SecretRedactionFilter},
        },
        "formatters": {
            "json": {
                "class": "pythonjsonlogger.jsonlogger.JsonFormatter",
                "format": json_format,
                "datefmt": "%Y-%m-%dT%H:%M:%S%z",
            },
            "console": {
                "format": f"%(asctime)s {prefix}[%(levelname)s] %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": settings.log_level,
                "formatter": "json" if use_json else "console",
                "filters": ["redact"],
                "stream": sys.stdout,
            },
        },
        "loggers": loggers,
        "root": {"level": settings.log_level, "handlers": ["console"]},
    }


def setup_logging(service_name: Optional[str] = None) -> None:
    logging.config.dictConfig(get_logging_config(service_name))


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)
