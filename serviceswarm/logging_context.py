"""Per-call correlation IDs for log records.

Every webhook turn binds the telephony call identifier (Twilio ``CallSid``)
for the duration of its processing, so interleaved turns from concurrent
calls can be told apart in the logs.

Usage:
    from serviceswarm.logging_context import bind_call_id, get_call_logger

    logger = get_call_logger(__name__)
    with bind_call_id("CA1234"):
        logger.info("Processing turn")  # record.call_id == "CA1234"
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

_call_id: ContextVar[str] = ContextVar("call_id", default="NO_CALL_ID")


def get_call_id() -> str:
    """Retrieve the current correlation ID."""
    return _call_id.get()


@contextmanager
def bind_call_id(call_id: str) -> Iterator[None]:
    """Bind ``call_id`` for the enclosed block and restore the previous one after."""
    token = _call_id.set(call_id)
    try:
        yield
    finally:
        _call_id.reset(token)


class CallIdFilter(logging.Filter):
    """Injects call_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.call_id = get_call_id()  # type: ignore[attr-defined]
        return True


def add_call_id_filter(target: logging.Filterer) -> None:
    """Attach one CallIdFilter to a logger or handler, if it has none yet."""
    if not any(isinstance(f, CallIdFilter) for f in target.filters):
        target.addFilter(CallIdFilter())


def get_call_logger(name: str) -> logging.Logger:
    """Return a logger with the CallIdFilter attached.

    The filter adds ``call_id`` to each record so formatters can
    include ``%(call_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    add_call_id_filter(logger)
    return logger
