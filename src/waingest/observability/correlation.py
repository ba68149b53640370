"""Correlation ids tie one delivery's logs together across ingress and worker.

The id arrives in X-Correlation-ID (set by the provider proxy or by the
tasks backend when it calls the worker) or is generated per request, and
is carried in a context variable so JsonFormatter can stamp every record.
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

CORRELATION_ID_HEADER = "X-Correlation-ID"

# Copied into the threadpool by run_in_threadpool, so blocking code logs it too
_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def generate_correlation_id() -> str:
    return uuid.uuid4().hex


def get_correlation_id() -> str:
    """Current correlation id, or "" outside any scope."""
    return _correlation_id.get()


@contextmanager
def correlation_scope(cid: str | None = None) -> Iterator[str]:
    """Bind `cid` (a fresh id when empty) for the duration of the block.

    The previous value is restored on exit, also when the block raises.

    Example:
        with correlation_scope(request.headers.get(CORRELATION_ID_HEADER)) as cid:
            ...
    """
    cid = cid or generate_correlation_id()
    token = _correlation_id.set(cid)
    try:
        yield cid
    finally:
        _correlation_id.reset(token)
