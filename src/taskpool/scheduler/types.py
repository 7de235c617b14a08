"""
scheduler/types.py — Task Pool Data Model

Value types shared by the pool and its callers:

    Task            args + async body + optional cleanup
    SequencedTask   a Task stamped with its seq at acceptance
    RunningHandle   a SequencedTask in flight, with its CancellationToken
    Success/Failure the outcome of one body
    ResultRecord    {seq, result, status} as delivered to callbacks
    PoolStatus      snapshot returned by TaskPool.get_status()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

T = TypeVar("T")

TaskBody = Callable[..., Awaitable[Any]]
CleanupFn = Callable[..., Any]
ResultCallback = Callable[..., Any]
SubmitFn = Callable[[list["ResultRecord"]], Any]


# ─────────────────────────────────────────────────────────────────────────────
# Task
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Task:
    """
    One unit of asynchronous work.

    body        Called as body(*args); must return an awaitable.
    args        Positional arguments for body and on_delete.
    on_delete   Called as on_delete(*args) when the task is removed with
                TaskPool.delete_task(). Its return value is ignored.
    """
    body: TaskBody
    args: tuple = ()
    on_delete: Optional[CleanupFn] = None

    def __post_init__(self) -> None:
        if not isinstance(self.args, tuple):
            object.__setattr__(self, "args", tuple(self.args))


@dataclass(frozen=True)
class SequencedTask:
    seq: int
    task: Task

    @property
    def args(self) -> tuple:
        return self.task.args

    @property
    def body(self) -> TaskBody:
        return self.task.body

    def cleanup(self) -> None:
        """Run the task's on_delete callback, if any, with its own args."""
        if self.task.on_delete is not None:
            self.task.on_delete(*self.task.args)


# ─────────────────────────────────────────────────────────────────────────────
# Cancellation
# ─────────────────────────────────────────────────────────────────────────────

class CancellationToken:
    """
    Cooperative cancellation flag for one running task.

    Cancelling never interrupts the body; the pool checks the token before
    committing anything the body's settlement would change.
    """

    __slots__ = ("_cancelled",)

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled})"


@dataclass
class RunningHandle:
    entry: SequencedTask
    token: CancellationToken = field(default_factory=CancellationToken)

    @property
    def seq(self) -> int:
        return self.entry.seq

    @property
    def deleted(self) -> bool:
        return self.token.cancelled


# ─────────────────────────────────────────────────────────────────────────────
# Outcomes and results
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Success(Generic[T]):
    value: T


@dataclass(frozen=True)
class Failure:
    error: BaseException


Outcome = Union[Success[T], Failure]


class ResultStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class ResultRecord:
    seq: int
    result: Any
    status: ResultStatus

    @classmethod
    def from_outcome(cls, seq: int, outcome: Outcome) -> "ResultRecord":
        if isinstance(outcome, Success):
            return cls(seq=seq, result=outcome.value, status=ResultStatus.SUCCESS)
        return cls(seq=seq, result=outcome.error, status=ResultStatus.ERROR)

    @property
    def ok(self) -> bool:
        return self.status is ResultStatus.SUCCESS

    def to_dict(self) -> dict:
        return {"seq": self.seq, "result": self.result, "status": self.status.value}


@dataclass(frozen=True)
class PoolStatus:
    total: int
    running: int
    waiting: int
    finished: int
    results: list[ResultRecord]
    paused: bool

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "running": self.running,
            "waiting": self.waiting,
            "finished": self.finished,
            "results": [r.to_dict() for r in self.results],
            "paused": self.paused,
        }
