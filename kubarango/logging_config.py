"""
Logging configuration for the operator process and its uvicorn server.

Kubelet probes are dropped from the access log and the HTTP libraries used
against arangod and the Kubernetes API are held at WARNING.
"""

import logging
import logging.config
from typing import Any, Dict

# Probe endpoints polled by the kubelet
PROBE_PATHS = ("/health", "/ready")

# Libraries that log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "kubernetes_asyncio")


class ProbeFilter(logging.Filter):
    """Filter to suppress probe requests in the uvicorn access log."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name == "uvicorn.access":
            message = record.getMessage()
            if "GET" in message and any(f"{path} " in message for path in PROBE_PATHS):
                return False
        return True


def get_logging_config(level: str = "INFO") -> Dict[str, Any]:
    """Build the dictConfig for the given operator log level."""
    level = level.upper()
    loggers: Dict[str, Any] = {
        "uvicorn": {"handlers": ["default"], "level": "INFO", "propagate": False},
        "uvicorn.error": {"handlers": ["default"], "level": "INFO", "propagate": False},
        "uvicorn.access": {"handlers": ["access"], "level": "INFO", "propagate": False},
        "kubarango": {"handlers": ["default"], "level": level, "propagate": False},
    }
    for name in QUIET_LOGGERS:
        loggers[name] = {"handlers": ["default"], "level": "WARNING", "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "probe_filter": {
                "()": ProbeFilter
            }
        },
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            },
            "access": {
                "format": "%(message)s"
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout"
            },
            "access": {
                "class": "logging.StreamHandler",
                "formatter": "access",
                "stream": "ext://sys.stdout",
                "filters": ["probe_filter"]
            }
        },
        "loggers": loggers,
        "root": {
            "level": "INFO",
            "handlers": ["default"]
        }
    }
