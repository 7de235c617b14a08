"""
tests/unit/test_exceptions.py — Error Hierarchy Tests
"""

from taskpool.exceptions import (
    InvalidTaskError,
    SubmitError,
    TaskBodyError,
    TaskError,
    TaskPoolError,
)


class TestHierarchy:
    def test_task_errors_share_root(self):
        assert issubclass(TaskBodyError, TaskError)
        assert issubclass(InvalidTaskError, TaskError)
        assert issubclass(SubmitError, TaskPoolError)

    def test_seq_prefixes_message(self):
        err = TaskBodyError("body returned int", seq=5)
        assert err.seq == 5
        assert str(err) == "Task 5: body returned int"

    def test_without_seq(self):
        assert str(InvalidTaskError("not a Task")) == "not a Task"


class TestSubmitError:
    def test_carries_original_error(self):
        cause = ConnectionError("refused")
        err = SubmitError(size=4, attempts=3, original_error=cause)
        assert err.original_error is cause
        assert "4 result(s)" in str(err)
        assert "3 attempt(s)" in str(err)
        assert "ConnectionError: refused" in str(err)
