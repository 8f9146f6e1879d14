"""Per-job logging context for the worker.

The worker processes one event at a time, but several coroutines in
the call chain (controller, repository, launcher) all log about that
event.  Rather than thread user_id/challenge_id through every call just
for logging, the worker binds them once in a ContextVar and a logging
filter copies them onto every record.

Same idea as request_id_var in the request context middleware: a
ContextVar is per-task state, so two events handled concurrently in the
same process never see each other's identifiers.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

_JOB_FIELDS = ("request_id", "job_id", "user_id", "challenge_id", "level_id")

job_context_var: ContextVar[dict[str, Any]] = ContextVar("job_context", default={})


@contextmanager
def bind_job_context(**fields: Any) -> Iterator[None]:
    """Add fields to the job context for the duration of the block.

    None values are skipped, so an inner bind never hides an outer one.
    """
    merged = {
        **job_context_var.get(),
        **{k: v for k, v in fields.items() if v is not None},
    }
    token = job_context_var.set(merged)
    try:
        yield
    finally:
        job_context_var.reset(token)


class JobContextFilter(logging.Filter):
    """Inject the bound job context into every LogRecord.

    Installed on the handler (not a logger) so records propagated from
    any module's logger pass through it.  Fields passed explicitly via
    ``extra=`` win over the bound context.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = job_context_var.get()
        for key in _JOB_FIELDS:
            if getattr(record, key, None) is None and key in ctx:
                setattr(record, key, ctx[key])
        return True


def set_job_field(key: str, value: Any) -> None:
    """Add one field to the current job context.

    Only meaningful inside bind_job_context(), which restores the outer
    context on exit.
    """
    job_context_var.set({**job_context_var.get(), key: value})
