"""
Flow id tagging for log records.

Every controller call runs inside ``flow_context(flow_id)``. Records logged
while the context is open carry ``record.flow_id``, and ``FLOW_LOG_FORMAT``
renders it, so one customer's booking can be followed from barber
selection to the stored appointment. Outside a flow the id is ``-``.

Usage:
    from booking_engine.logging_context import flow_context, get_flow_logger

    logger = get_flow_logger(__name__)
    with flow_context("FLOW-abc123"):
        logger.info("Slot confirmed")  # ... INFO [FLOW-abc123]: Slot confirmed
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token

NO_FLOW = "-"

FLOW_LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s [%(flow_id)s]: %(message)s"

_flow_id: ContextVar[str] = ContextVar("booking_flow_id", default=NO_FLOW)


def set_flow_id(flow_id: str) -> Token:
    """Bind ``flow_id`` to the current context; pass the token to ``reset_flow_id``."""
    return _flow_id.set(flow_id)


def reset_flow_id(token: Token) -> None:
    _flow_id.reset(token)


def get_flow_id() -> str:
    return _flow_id.get()


@contextmanager
def flow_context(flow_id: str) -> Iterator[str]:
    """Tag everything logged inside the block with ``flow_id``."""
    token = set_flow_id(flow_id)
    try:
        yield flow_id
    finally:
        reset_flow_id(token)


class FlowIdFilter(logging.Filter):
    """Adds ``flow_id`` to records that do not already carry one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "flow_id", None):
            record.flow_id = _flow_id.get()  # type: ignore[attr-defined]
        return True


def install_flow_filter(handler: logging.Handler) -> None:
    """Attach the filter to a handler so records from any logger can use ``%(flow_id)s``."""
    if not any(isinstance(f, FlowIdFilter) for f in handler.filters):
        handler.addFilter(FlowIdFilter())


def get_flow_logger(name: str) -> logging.Logger:
    """Return a logger whose records always carry ``flow_id``."""
    logger = logging.getLogger(name)
    if not any(isinstance(f, FlowIdFilter) for f in logger.filters):
        logger.addFilter(FlowIdFilter())
    return logger
