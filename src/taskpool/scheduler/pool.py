"""
scheduler/pool.py — TaskPool

Bounded-concurrency scheduler for asyncio work units. Tasks are accepted in
FIFO order, started while fewer than `concurrency` are running, and their
outcomes are recorded as ResultRecords and reported through callbacks.

Design
------
* Pure asyncio, single event loop. All pool state is mutated on the loop
  thread, so nothing here takes a lock; only task bodies run concurrently.
* One scheduling pass at a time. Every event that can change what should run
  (add, delete, resume, settlement) requests a pass with loop.call_soon();
  requests made while one is already pending coalesce into it.
* Cooperative deletion. Deleting a running task cancels its
  CancellationToken and frees its slot at once; the body itself keeps going
  and its eventual settlement is ignored.
* Task failure is an outcome, not an exception. A failing body produces an
  error record, is logged, and dispatch continues.
* Drain (nothing waiting, nothing running) delivers the whole result pool
  to on_result when not in immediate mode, and hands the chunk accumulated
  since the last drain to submit when auto_submit is on.

Usage::

    pool = TaskPool(
        [Task(add, (1, 1)), Task(add, (2, 2))],
        on_result=print,
        concurrency=2,
        maintain_order=True,
    )
    await pool.wait_drained()
"""

from __future__ import annotations

import asyncio
import inspect
import uuid
from collections import deque
from typing import Iterable, Optional, Union

from taskpool.config.settings import SubmitFailurePolicy
from taskpool.exceptions import InvalidTaskError, SubmitError, TaskBodyError
from taskpool.observability.logger import get_logger
from taskpool.scheduler.types import (
    Failure,
    Outcome,
    PoolStatus,
    ResultCallback,
    ResultRecord,
    RunningHandle,
    SequencedTask,
    SubmitFn,
    Success,
    Task,
)

log = get_logger(__name__)


class TaskPool:
    """
    Runs Tasks with at most `concurrency` bodies tracked as running.

    Lifecycle::

        pool = TaskPool(tasks, concurrency=4)   # first pass runs on the next loop tick
        pool.add_task(Task(fetch, ("a",)))      # starts automatically (auto_schedule)
        pool.pause(); pool.resume()
        await pool.wait_drained()

    Introspection::

        pool.get_status()       # PoolStatus snapshot
        pool.get_all_tasks()    # tuple of SequencedTask still known to the pool
    """

    def __init__(
        self,
        tasks: Optional[Iterable[Task]] = None,
        *,
        on_result: Optional[ResultCallback] = None,
        concurrency: int = 3,
        maintain_order: bool = False,
        immediately: bool = False,
        auto_submit: bool = False,
        submit: Optional[SubmitFn] = None,
        auto_schedule: bool = True,
        submit_failure_policy: SubmitFailurePolicy = SubmitFailurePolicy.DISCARD,
        submit_max_attempts: int = 3,
        name: Optional[str] = None,
    ) -> None:
        self.name = name or f"pool_{uuid.uuid4().hex[:8]}"
        self._log = log.bind(pool=self.name)

        self._on_result = on_result
        self._concurrency = concurrency
        self._maintain_order = maintain_order
        self._immediately = immediately
        self._auto_submit = auto_submit
        self._submit = submit
        self._auto_schedule = auto_schedule
        self._submit_failure_policy = SubmitFailurePolicy(submit_failure_policy)
        self._submit_max_attempts = max(1, submit_max_attempts)

        self._next_seq = 0
        self._generation = 0
        self._all_tasks: dict[int, SequencedTask] = {}
        self._rest_pool: deque[SequencedTask] = deque()
        self._running_pool: dict[int, RunningHandle] = {}
        self._result_pool: list[ResultRecord] = []
        self._chunk_result_pool: list[ResultRecord] = []

        self._active = False
        self._paused = False
        self._pass_pending = False

        # Strong references: the loop only keeps weak ones to running tasks.
        self._inflight: set[asyncio.Task] = set()
        self._pending_submits: set[asyncio.Task] = set()
        self._drain_waiters: list[asyncio.Future] = []

        self._accept(list(tasks or []))

        self._log.info(
            "pool.init",
            tasks=len(self._rest_pool),
            concurrency=concurrency,
            maintain_order=maintain_order,
            immediately=immediately,
            auto_submit=auto_submit,
        )
        self.start()

    # ── Factory ───────────────────────────────────────────────────────────────

    @classmethod
    def from_settings(
        cls,
        settings,
        tasks: Optional[Iterable[Task]] = None,
        *,
        on_result: Optional[ResultCallback] = None,
        submit: Optional[SubmitFn] = None,
        name: Optional[str] = None,
    ) -> "TaskPool":
        cfg = settings.pool
        return cls(
            tasks,
            on_result=on_result,
            concurrency=cfg.concurrency,
            maintain_order=cfg.maintain_order,
            immediately=cfg.immediately,
            auto_submit=cfg.auto_submit,
            submit=submit,
            auto_schedule=cfg.auto_schedule,
            submit_failure_policy=cfg.submit_failure_policy,
            submit_max_attempts=cfg.submit_max_attempts,
            name=name,
        )

    # ── Configuration ─────────────────────────────────────────────────────────

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def maintain_order(self) -> bool:
        return self._maintain_order

    @property
    def immediately(self) -> bool:
        return self._immediately

    @property
    def auto_schedule(self) -> bool:
        return self._auto_schedule

    def set_concurrency(self, concurrency: int) -> None:
        """Change the limit. Applies from the next pass; running work is never preempted."""
        self._log.info("pool.concurrency_changed", old=self._concurrency, new=concurrency)
        self._concurrency = concurrency

    def set_immediately(self, immediately: bool) -> None:
        self._immediately = immediately

    def set_auto_schedule(self, auto_schedule: bool) -> None:
        self._auto_schedule = auto_schedule

    # ── Public API ────────────────────────────────────────────────────────────

    def add_task(self, task: Union[Task, Iterable[Task]]) -> list[int]:
        """
        Accept one Task or an iterable of Tasks and return their seqs.

        Raises InvalidTaskError (before accepting anything) if an item is not
        a Task. An empty iterable is a no-op.
        """
        items = [task] if isinstance(task, Task) else list(task)
        if not items:
            return []
        seqs = self._accept(items)
        self._log.info("pool.tasks_added", seqs=seqs, waiting=len(self._rest_pool))
        if self._auto_schedule:
            self.start()
        return seqs

    def delete_task(self, seq: int) -> bool:
        """
        Remove a task wherever it is. Returns True if the seq was known.

        The task's on_delete callback runs synchronously with its own args;
        an exception from it propagates to the caller. A pass is requested
        either way, so a freed running slot is backfilled.
        """
        try:
            handle = self._running_pool.pop(seq, None)
            if handle is not None:
                handle.token.cancel()
                self._all_tasks.pop(seq, None)
                self._log.info("pool.task_deleted", seq=seq, state="running")
                handle.entry.cleanup()
                return True

            waiting = next((e for e in self._rest_pool if e.seq == seq), None)
            if waiting is not None:
                self._rest_pool.remove(waiting)
                self._all_tasks.pop(seq, None)
                self._log.info("pool.task_deleted", seq=seq, state="waiting")
                waiting.cleanup()
                return True

            finished = self._all_tasks.pop(seq, None)
            if finished is not None:
                self._result_pool = [r for r in self._result_pool if r.seq != seq]
                self._chunk_result_pool = [r for r in self._chunk_result_pool if r.seq != seq]
                self._log.info("pool.task_deleted", seq=seq, state="finished")
                finished.cleanup()
                return True

            self._log.debug("pool.delete_unknown", seq=seq)
            return False
        finally:
            self._request_pass()

    def start(self) -> None:
        """Mark the pool active and request a pass. No-op while a pass is pending."""
        if self._pass_pending:
            return
        self._active = True
        self._request_pass()

    def stop(self, cleanup: bool = False) -> None:
        """
        Discard every waiting and running task. Recorded results are kept.

        Running bodies are not interrupted; their tokens are cancelled so
        their settlements are ignored. With cleanup=True each discarded
        task's on_delete runs, as delete_task() would do.
        """
        running = list(self._running_pool.values())
        waiting = list(self._rest_pool)
        for handle in running:
            handle.token.cancel()
        self._running_pool.clear()
        self._rest_pool.clear()
        for entry in waiting + [h.entry for h in running]:
            self._all_tasks.pop(entry.seq, None)

        self._active = False
        self._paused = False
        self._log.info(
            "pool.stopped",
            discarded_waiting=len(waiting),
            discarded_running=len(running),
            cleanup=cleanup,
        )
        self._resolve_drain_waiters()

        if cleanup:
            for entry in waiting + [h.entry for h in running]:
                entry.cleanup()

    def reset(self) -> None:
        """Forget everything, including the seq counter."""
        for handle in self._running_pool.values():
            handle.token.cancel()
        self._next_seq = 0
        self._generation += 1
        self._all_tasks.clear()
        self._rest_pool.clear()
        self._running_pool.clear()
        self._result_pool = []
        self._chunk_result_pool = []
        self._active = False
        self._paused = False
        self._log.info("pool.reset")
        self._resolve_drain_waiters()

    def pause(self) -> None:
        """Stop starting new tasks. Running tasks finish and are recorded."""
        self._paused = True
        self._log.info("pool.paused", running=len(self._running_pool), waiting=len(self._rest_pool))

    def resume(self) -> None:
        if not self._paused:
            return
        self._paused = False
        self._log.info("pool.resumed", waiting=len(self._rest_pool))
        self.start()

    def is_paused(self) -> bool:
        return self._paused

    def get_status(self) -> PoolStatus:
        return PoolStatus(
            total=len(self._all_tasks),
            running=len(self._running_pool),
            waiting=len(self._rest_pool),
            finished=len(self._result_pool),
            results=list(self._result_pool),
            paused=self._paused,
        )

    def get_all_tasks(self) -> tuple[SequencedTask, ...]:
        return tuple(self._all_tasks.values())

    async def wait_drained(self) -> None:
        """
        Wait until nothing is waiting or running, then for any chunk hand-off
        that drain started. While paused with waiting tasks this only returns
        after resume() (or stop()/reset()).
        """
        if not self._is_drained():
            waiter = asyncio.get_running_loop().create_future()
            self._drain_waiters.append(waiter)
            await waiter
        if self._pending_submits:
            await asyncio.gather(*list(self._pending_submits))

    # ── Scheduling pass ───────────────────────────────────────────────────────

    def _request_pass(self) -> None:
        if self._pass_pending:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet: tasks stay waiting until start() runs inside one.
            self._log.debug("pool.pass_deferred", waiting=len(self._rest_pool))
            return
        self._pass_pending = True
        loop.call_soon(self._run_pass)

    def _run_pass(self) -> None:
        self._pass_pending = False
        if not self._paused:
            while self._rest_pool and len(self._running_pool) < self._concurrency:
                self._launch(self._rest_pool.popleft())
        elif self._rest_pool:
            self._log.debug("pool.pass_paused", waiting=len(self._rest_pool))
        self._check_drain()

    def _launch(self, entry: SequencedTask) -> None:
        handle = RunningHandle(entry)
        self._running_pool[entry.seq] = handle
        self._active = True
        self._log.debug("pool.task_start", seq=entry.seq, running=len(self._running_pool))
        runner = asyncio.get_running_loop().create_task(
            self._execute(handle),
            name=f"taskpool:{self.name}:run:{entry.seq}",
        )
        self._inflight.add(runner)
        runner.add_done_callback(self._inflight.discard)

    async def _execute(self, handle: RunningHandle) -> None:
        """Await one body and settle it. Never raises except on cancellation."""
        try:
            awaitable = handle.entry.body(*handle.entry.args)
            if not inspect.isawaitable(awaitable):
                raise TaskBodyError(
                    f"body returned {type(awaitable).__name__}, not an awaitable",
                    seq=handle.seq,
                )
            outcome: Outcome = Success(await awaitable)
        except asyncio.CancelledError as e:
            # A cancel aimed at this runner propagates; one raised by the body
            # itself (e.g. awaiting a cancelled future) is a failure.
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                self._log.info("pool.task_cancelled", seq=handle.seq)
                raise
            outcome = Failure(e)
        except Exception as e:
            outcome = Failure(e)
        self._settle(handle, outcome)

    def _settle(self, handle: RunningHandle, outcome: Outcome) -> None:
        if handle.token.cancelled:
            self._log.debug("pool.settled_after_delete", seq=handle.seq)
            return

        record = ResultRecord.from_outcome(handle.seq, outcome)
        self._result_pool.append(record)
        self._chunk_result_pool.append(record)
        self._running_pool.pop(handle.seq, None)

        if isinstance(outcome, Failure):
            self._log.error(
                "pool.task_error",
                seq=handle.seq,
                error=f"{type(outcome.error).__name__}: {outcome.error}",
            )
        else:
            self._log.debug("pool.task_complete", seq=handle.seq)

        if self._immediately and self._on_result is not None:
            if isinstance(outcome, Failure):
                self._notify(self._ordered(self._result_pool), None, handle.seq, outcome.error)
            else:
                self._notify(self._ordered(self._result_pool), outcome.value, handle.seq)

        self._request_pass()

    # ── Drain ─────────────────────────────────────────────────────────────────

    def _is_drained(self) -> bool:
        return not (self._rest_pool or self._running_pool or self._pass_pending)

    def _check_drain(self) -> None:
        if self._rest_pool or self._running_pool:
            return

        if self._active:
            self._active = False
            self._log.info("pool.drained", finished=len(self._result_pool))
            if not self._immediately and self._on_result is not None and self._result_pool:
                self._notify(self._ordered(self._result_pool))
            if self._auto_submit and self._submit is not None and self._chunk_result_pool:
                self._flush_chunk()

        self._resolve_drain_waiters()

    def _resolve_drain_waiters(self) -> None:
        waiters, self._drain_waiters = self._drain_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    def _ordered(self, records: list[ResultRecord]) -> list[ResultRecord]:
        if self._maintain_order:
            return sorted(records, key=lambda r: r.seq)
        return list(records)

    def _notify(self, results, current=None, seq=None, error=None) -> None:
        try:
            if error is not None:
                self._on_result(results, current, seq, error)
            elif seq is not None:
                self._on_result(results, current, seq)
            else:
                self._on_result(results)
        except Exception as e:
            self._log.error(
                "pool.callback_error",
                seq=seq,
                error=f"{type(e).__name__}: {e}",
                exc_info=True,
            )

    # ── Chunk hand-off ────────────────────────────────────────────────────────

    def _flush_chunk(self) -> None:
        chunk = self._ordered(self._chunk_result_pool)
        self._chunk_result_pool = []
        self._log.info("pool.submit_start", size=len(chunk), policy=self._submit_failure_policy.value)
        flush = asyncio.get_running_loop().create_task(
            self._submit_chunk(chunk, self._generation),
            name=f"taskpool:{self.name}:submit",
        )
        self._pending_submits.add(flush)
        flush.add_done_callback(self._pending_submits.discard)

    async def _submit_chunk(self, chunk: list[ResultRecord], generation: int) -> None:
        attempts = (
            self._submit_max_attempts
            if self._submit_failure_policy is SubmitFailurePolicy.RETRY
            else 1
        )
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            try:
                outcome = self._submit(chunk)
                if inspect.isawaitable(outcome):
                    await outcome
                self._log.info("pool.submit_complete", size=len(chunk), attempt=attempt)
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = e
                self._log.warning(
                    "pool.submit_failed",
                    size=len(chunk),
                    attempt=attempt,
                    error=f"{type(e).__name__}: {e}",
                )

        err = SubmitError(len(chunk), attempts, last_error)
        if (
            self._submit_failure_policy is SubmitFailurePolicy.RETAIN
            and generation == self._generation
        ):
            kept = [r for r in chunk if r.seq in self._all_tasks]
            self._chunk_result_pool[:0] = kept
            self._log.warning("pool.chunk_retained", size=len(kept), error=str(err))
        else:
            self._log.error("pool.chunk_discarded", size=len(chunk), error=str(err))

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _accept(self, tasks: list[Task]) -> list[int]:
        for item in tasks:
            if not isinstance(item, Task):
                raise InvalidTaskError(f"expected Task, got {type(item).__name__}")
        seqs: list[int] = []
        for item in tasks:
            entry = SequencedTask(seq=self._next_seq, task=item)
            self._next_seq += 1
            self._rest_pool.append(entry)
            self._all_tasks[entry.seq] = entry
            seqs.append(entry.seq)
        return seqs
