"""
exceptions.py — taskpool Error Hierarchy

All taskpool-specific exceptions live here. The scheduler treats a failing
task body as an expected outcome, so these are raised for misuse of the
pool and attached to failure records, never thrown out of a scheduling pass.

Import from here, not from individual modules:
    from taskpool.exceptions import InvalidTaskError, SubmitError

Hierarchy:
    TaskPoolError
    ├── TaskError
    │   ├── TaskBodyError
    │   └── InvalidTaskError
    └── SubmitError

ConfigError lives in taskpool.config.settings next to the validators that
raise it.
"""

from __future__ import annotations

from typing import Optional


# ─────────────────────────────────────────────────────────────────────────────
# Root
# ─────────────────────────────────────────────────────────────────────────────

class TaskPoolError(Exception):
    """Base class for all taskpool exceptions."""


# ─────────────────────────────────────────────────────────────────────────────
# Task layer
# ─────────────────────────────────────────────────────────────────────────────

class TaskError(TaskPoolError):
    """Base for errors tied to a single task."""

    def __init__(self, message: str, seq: Optional[int] = None) -> None:
        self.seq = seq
        super().__init__(message if seq is None else f"Task {seq}: {message}")


class TaskBodyError(TaskError):
    """A task body did not return an awaitable."""


class InvalidTaskError(TaskError):
    """Something other than a Task was handed to add_task()."""


# ─────────────────────────────────────────────────────────────────────────────
# Submit layer
# ─────────────────────────────────────────────────────────────────────────────

class SubmitError(TaskPoolError):
    """A chunk hand-off failed after every permitted attempt."""

    def __init__(self, size: int, attempts: int, original_error: Optional[BaseException] = None) -> None:
        self.size = size
        self.attempts = attempts
        self.original_error = original_error
        super().__init__(
            f"Submitting a chunk of {size} result(s) failed after {attempts} attempt(s)"
            + (f": {type(original_error).__name__}: {original_error}" if original_error else "")
        )


__all__ = [
    "TaskPoolError",
    "TaskError",
    "TaskBodyError",
    "InvalidTaskError",
    "SubmitError",
]
