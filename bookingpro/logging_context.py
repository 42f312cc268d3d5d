"""Session-id logging context for tracing a visitor across lead and sync paths.

Provides a session-aware logger that attaches the browser session id to
every log message, so a single visitor's autosaves, termination signal,
reconciliation decision and webhook sync can be followed in the log.

Usage:
    from bookingpro.logging_context import get_session_logger, session_scope

    logger = get_session_logger(__name__)
    with session_scope("session_1759059329233_n2p48pyw"):
        logger.info("Lead captured")  # record.session_id is set
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

_session_id: ContextVar[str] = ContextVar("session_id", default="NO_SESSION")


def set_session_id(session_id: str) -> None:
    """Set the correlation session id for the current context."""
    _session_id.set(session_id)


def get_session_id() -> str:
    """Retrieve the current correlation session id."""
    return _session_id.get()


@contextmanager
def session_scope(session_id: str) -> Iterator[None]:
    """Bind ``session_id`` for the duration of the block, then restore."""
    token = _session_id.set(session_id)
    try:
        yield
    finally:
        _session_id.reset(token)


class SessionIdFilter(logging.Filter):
    """Injects session_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = _session_id.get()  # type: ignore[attr-defined]
        return True


def get_session_logger(name: str) -> logging.Logger:
    """Return a logger with the SessionIdFilter attached.

    The filter adds ``session_id`` to each record so formatters can
    include ``%(session_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, SessionIdFilter) for f in logger.filters):
        logger.addFilter(SessionIdFilter())
    return logger
