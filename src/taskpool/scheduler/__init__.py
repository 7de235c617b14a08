"""
scheduler/ — Task Pool

    from taskpool.scheduler import TaskPool, Task
"""

from taskpool.scheduler.pool import TaskPool
from taskpool.scheduler.types import (
    CancellationToken,
    Failure,
    PoolStatus,
    ResultRecord,
    ResultStatus,
    RunningHandle,
    SequencedTask,
    Success,
    Task,
)

__all__ = [
    "TaskPool",
    "Task",
    "SequencedTask",
    "RunningHandle",
    "CancellationToken",
    "Success",
    "Failure",
    "ResultRecord",
    "ResultStatus",
    "PoolStatus",
]
