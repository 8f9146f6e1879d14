from __future__ import annotations

import logging

from progression.core.context import (
    JobContextFilter,
    bind_job_context,
    job_context_var,
    set_job_field,
)


def _record() -> logging.LogRecord:
    return logging.LogRecord("t", logging.INFO, "t.py", 1, "m", (), None)


def test_bind_restores_outer_context_on_exit() -> None:
    with bind_job_context(job_id="outer"):
        with bind_job_context(user_id=1):
            assert job_context_var.get() == {"job_id": "outer", "user_id": 1}
        assert job_context_var.get() == {"job_id": "outer"}
    assert job_context_var.get() == {}


def test_none_values_do_not_hide_outer_fields() -> None:
    with bind_job_context(job_id="task-1"):
        with bind_job_context(job_id=None, user_id=3):
            assert job_context_var.get()["job_id"] == "task-1"


def test_set_job_field_is_undone_by_enclosing_bind() -> None:
    with bind_job_context(job_id="j"):
        set_job_field("level_id", 10)
        assert job_context_var.get()["level_id"] == 10
    assert "level_id" not in job_context_var.get()


def test_filter_copies_context_onto_record() -> None:
    record = _record()
    with bind_job_context(job_id="j", level_id=10):
        assert JobContextFilter().filter(record) is True
    assert record.job_id == "j"  # type: ignore[attr-defined]
    assert record.level_id == 10  # type: ignore[attr-defined]


def test_explicit_extra_wins_over_context() -> None:
    record = _record()
    record.user_id = 99  # type: ignore[attr-defined]
    with bind_job_context(user_id=1):
        JobContextFilter().filter(record)
    assert record.user_id == 99  # type: ignore[attr-defined]
