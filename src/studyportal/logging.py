"""Logging setup shared by the app and uvicorn."""

import logging.config
from typing import Any

from studyportal.config import settings

DEV_FORMAT = "%(levelname)-8s %(name)s [%(request_id)s] %(message)s"
PROD_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(request_id)s] %(message)s"

# Third-party loggers that only matter when something is wrong
QUIET_LOGGERS = ("httpx", "httpcore", "watchfiles", "aiosmtplib")


def build_log_config(include_uvicorn: bool = False) -> dict[str, Any]:
    """Build a ``logging.config.dictConfig`` mapping for the current environment.

    Every app record carries the request ID of the request that produced it
    (``-`` outside a request).
    """
    dev = settings.is_development
    config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_context": {"()": "studyportal.api.middleware.RequestContextFilter"},
        },
        "formatters": {
            "app": {"format": DEV_FORMAT if dev else PROD_FORMAT},
        },
        "handlers": {
            "app": {
                "class": "logging.StreamHandler",
                "formatter": "app",
                "filters": ["request_context"],
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
        "root": {"handlers": ["app"], "level": settings.log_level},
    }

    if include_uvicorn:
        access_fmt = (
            '%(levelprefix)s "%(request_line)s" %(status_code)s'
            if dev
            else '%(asctime)s %(levelprefix)s %(client_addr)s "%(request_line)s" %(status_code)s'
        )
        config["formatters"]["access"] = {
            "()": "uvicorn.logging.AccessFormatter",
            "fmt": access_fmt,
        }
        config["handlers"]["access"] = {
            "class": "logging.StreamHandler",
            "formatter": "access",
            "stream": "ext://sys.stdout",
        }
        config["loggers"]["uvicorn.access"] = {
            "handlers": ["access"],
            "level": "INFO",
            "propagate": False,
        }
        # Server lifecycle messages go through the app handler
        config["loggers"]["uvicorn.error"] = {"level": "INFO"}

    return config


def get_uvicorn_log_config() -> dict[str, Any]:
    return build_log_config(include_uvicorn=True)


def setup_logging() -> None:
    """Configure application logging."""
    logging.config.dictConfig(build_log_config())
