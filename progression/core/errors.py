"""Failure taxonomy for the progression pipeline.

Every failure the controller can surface carries a short ``kind`` string.
The worker uses it to label metrics, to tag log lines, and to annotate
dead-lettered events so an operator can tell a bad payload from a broken
reference or a flaky database without reading a stack trace.

  malformed_event         the event is missing fields or has bad types;
                          rejected before any repository access
  unresolvable_reference  the challenge has no module/level, or the level
                          has no criteria (data-integrity problem)
  repository_io           the database or Redis call itself failed
  stale_write             another writer updated the level record first
  lock_timeout            the per-(user, level) lock was never acquired
"""

from __future__ import annotations


class ProgressionError(Exception):
    kind = "progression_error"


class MalformedEventError(ProgressionError, ValueError):
    kind = "malformed_event"


class UnresolvableReferenceError(ProgressionError):
    kind = "unresolvable_reference"


class RepositoryError(ProgressionError):
    kind = "repository_io"


class StaleWriteError(RepositoryError):
    kind = "stale_write"


class LockTimeoutError(ProgressionError):
    kind = "lock_timeout"
