# app/utils/my_logging.py
"""
Logging setup with a per-request correlation id.

The correlation middleware calls set_correlation_id() for each request, and
every record written through the root handler carries it as %(correlation_id)s.
"""
import logging
import sys
from contextvars import ContextVar

from app.config.settings import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] %(message)s"

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="-")

QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "uvicorn.access")


def set_correlation_id(correlation_id: str) -> None:
    _correlation_id.set(correlation_id)


class CorrelationIdFilter(logging.Filter):
    """Stamps the current correlation id onto each record"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = _correlation_id.get()
        return True


def setup_logging(verbose=True):
    """Configure the root handler once; repeated calls only adjust levels"""
    settings = get_settings()
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO) if verbose else logging.WARNING

    root = logging.getLogger()
    if not any(isinstance(f, CorrelationIdFilter) for h in root.handlers for f in h.filters):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.addFilter(CorrelationIdFilter())
        root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    if settings.SQL_ECHO:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)
