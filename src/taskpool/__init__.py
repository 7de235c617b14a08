"""
taskpool — bounded-concurrency task scheduling for asyncio.

    from taskpool import Task, TaskPool
"""

from taskpool.scheduler.pool import TaskPool
from taskpool.scheduler.types import PoolStatus, ResultRecord, ResultStatus, Task

__version__ = "0.1.0"

__all__ = ["Task", "TaskPool", "PoolStatus", "ResultRecord", "ResultStatus", "__version__"]
