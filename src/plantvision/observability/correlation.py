"""Correlation ids for tracing one inbound message through the service.

An id is bound per HTTP request (taken from ``X-Correlation-ID`` or
generated) and handed explicitly to work that leaves the request: the
webhook background task and the pipeline's worker threads. Entries drained
by the admission queue run outside any request and get a fresh id.
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

CORRELATION_ID_HEADER = "X-Correlation-ID"

# Longer caller-supplied values are replaced, not truncated
MAX_INCOMING_LENGTH = 128

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    return _correlation_id.get()


def incoming_correlation_id(header_value: str | None) -> str:
    """Reuse a caller-supplied id when it is short and printable, else generate one."""
    if (
        header_value
        and len(header_value) <= MAX_INCOMING_LENGTH
        and header_value.isprintable()
    ):
        return header_value
    return str(uuid.uuid4())


@contextmanager
def correlation_scope(cid: str | None = None) -> Iterator[str]:
    """Bind ``cid`` (a fresh id when empty) for the duration of the block.

    Example:
        with correlation_scope(get_correlation_id() or None):
            pipeline.process(event)
    """
    cid = cid or str(uuid.uuid4())
    token = _correlation_id.set(cid)
    try:
        yield cid
    finally:
        _correlation_id.reset(token)
