# src/nav_common/logging_utils.py
import functools
import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Callable, Optional

from pythonjsonlogger import jsonlogger

from . import config

NO_CORRELATION_ID = "<not-set>"

# Correlation ID of the analytics call currently running.
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default=NO_CORRELATION_ID)


class CorrelationIdFilter(logging.Filter):
    """Stamps records with the running call's correlation ID and the service identity."""

    def filter(self, record):
        record.correlation_id = correlation_id_var.get()
        record.service = config.SERVICE_NAME
        record.environment = config.ENVIRONMENT
        return True


def setup_logging(level: Optional[str] = None):
    """
    Routes every logger through one JSON handler on stdout. Hosts call this
    once at startup; calling it again replaces the handler instead of adding
    a second one.
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level or config.LOG_LEVEL)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s %(service)s %(environment)s %(correlation_id)s",
            rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"},
        )
    )
    handler.addFilter(CorrelationIdFilter())
    root_logger.addHandler(handler)


def generate_correlation_id(prefix: str) -> str:
    """Returns a new correlation ID such as 'SIM:5f0c...'."""
    return f"{prefix}:{uuid.uuid4()}"


def with_correlation_id(prefix: str) -> Callable:
    """
    Runs an async call under a fresh correlation ID unless the caller already
    set one, so every log line of one simulation or scan can be joined up.
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            if correlation_id_var.get() != NO_CORRELATION_ID:
                return await func(*args, **kwargs)
            token = correlation_id_var.set(generate_correlation_id(prefix))
            try:
                return await func(*args, **kwargs)
            finally:
                correlation_id_var.reset(token)
        return wrapper
    return decorator
