"""
credbroker.observability.logging

Structured logging configuration for the operator and the sidecar.

Responsibilities:
- Configure `structlog` for JSON logs.
- Keep chatty client libraries (httpx, urllib3, kubernetes) at WARNING.
- Provide a small wrapper for obtaining bound loggers.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

_NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "kubernetes", "uvicorn.access")


def configure_logging(*, service_name: str, level: str) -> None:
    """
    Structured JSON logs, one object per line on stdout.
    """

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _add_service_name(service_name),
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _add_service_name(service_name: str):
    # Operator and sidecar logs usually land in the same index; "service" tells them apart.
    def processor(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict

    return processor


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


# --- Module Notes -----------------------------------------------------------
# The sidecar binds request metadata via contextvars in `observability.middleware`;
# the operator binds namespace/name/key on each log call instead.
