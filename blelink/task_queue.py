"""Serialized FIFO of asynchronous write tasks."""

import asyncio
import inspect
import itertools
from collections import deque
from enum import Enum
from typing import Any, Callable, Deque, Optional

from blelink.constants import logger
from blelink.errors import BLEErrorHandler


class TaskState(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    REMOVED = "removed"


class WriteTask:
    """One queued unit of work.

    `fn` may be a coroutine function or a plain callable; its result resolves
    `future`. Delays are in seconds.
    """

    def __init__(
        self,
        fn: Callable[..., Any],
        args: tuple,
        tag: int,
        future: "asyncio.Future[Any]",
        pre_delay: float = 0.0,
        post_delay: float = 0.0,
        callback: Optional[Callable[[], None]] = None,
    ):
        self.fn = fn
        self.args = args
        self.tag = tag
        self.future = future
        self.pre_delay = pre_delay
        self.post_delay = post_delay
        self.callback = callback
        self.state = TaskState.PENDING

    def __await__(self):
        return self.future.__await__()

    def __repr__(self) -> str:
        name = getattr(self.fn, "__name__", repr(self.fn))
        return f"WriteTask(tag={self.tag}, fn={name}, state={self.state.value})"


class TaskQueue:
    """FIFO served by a single worker coroutine.

    Tasks run strictly one at a time in queue order. A failing task only fails its
    own future; the tasks behind it still run.
    """

    def __init__(self):
        self._pending: Deque[WriteTask] = deque()
        self._tags = itertools.count(1)
        self._worker: Optional["asyncio.Task[None]"] = None
        self._current: Optional[WriteTask] = None
        self._idle = asyncio.Event()
        self._idle.set()

    def push(
        self,
        fn: Callable[..., Any],
        *args: Any,
        pre_delay: float = 0.0,
        post_delay: float = 0.0,
        callback: Optional[Callable[[], None]] = None,
    ) -> WriteTask:
        """Append a task at the tail and start the worker if idle."""
        task = self._make_task(fn, args, pre_delay, post_delay, callback)
        self._pending.append(task)
        self._ensure_worker()
        return task

    def unshift(
        self,
        fn: Callable[..., Any],
        *args: Any,
        pre_delay: float = 0.0,
        post_delay: float = 0.0,
        callback: Optional[Callable[[], None]] = None,
    ) -> WriteTask:
        """Insert a task at the head so it runs before anything already queued."""
        task = self._make_task(fn, args, pre_delay, post_delay, callback)
        self._pending.appendleft(task)
        self._ensure_worker()
        return task

    def rm_event(self, target: Any, is_tag: bool = True) -> int:
        """
        Drop not-yet-run tasks by tag, or by function identity when `is_tag` is False.

        Removed tasks are marked REMOVED and their futures cancelled.

        Returns:
            int: Number of tasks removed.
        """
        kept: Deque[WriteTask] = deque()
        removed = 0
        for task in self._pending:
            hit = task.tag == target if is_tag else task.fn is target
            if hit:
                task.state = TaskState.REMOVED
                task.future.cancel()
                removed += 1
            else:
                kept.append(task)
        self._pending = kept
        if removed:
            logger.debug("Removed %d queued task(s) matching %r", removed, target)
        return removed

    def clear(self) -> int:
        """Remove every pending task."""
        removed = 0
        while self._pending:
            task = self._pending.popleft()
            task.state = TaskState.REMOVED
            task.future.cancel()
            removed += 1
        return removed

    async def join(self) -> None:
        """Wait until the queue is drained and the worker is idle."""
        await self._idle.wait()

    @property
    def running(self) -> Optional[WriteTask]:
        return self._current

    def __len__(self) -> int:
        return len(self._pending)

    def _make_task(self, fn, args, pre_delay, post_delay, callback) -> WriteTask:
        loop = asyncio.get_running_loop()
        return WriteTask(
            fn,
            args,
            tag=next(self._tags),
            future=loop.create_future(),
            pre_delay=pre_delay,
            post_delay=post_delay,
            callback=callback,
        )

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._idle.clear()
            self._worker = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        try:
            while self._pending:
                task = self._pending.popleft()
                self._current = task
                await self._execute(task)
                self._current = None
        finally:
            self._current = None
            self._worker = None
            self._idle.set()

    async def _execute(self, task: WriteTask) -> None:
        task.state = TaskState.RUNNING
        try:
            if task.pre_delay:
                await asyncio.sleep(task.pre_delay)
            result = task.fn(*task.args)
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError:
            task.state = TaskState.FAILED
            if not task.future.done():
                task.future.cancel()
            raise
        except Exception as e:  # noqa: BLE001 - one task's failure must not stall the queue
            logger.warning("Queued task %r failed: %s", task, e, exc_info=True)
            task.state = TaskState.FAILED
            if not task.future.done():
                task.future.set_exception(e)
            return

        if task.post_delay:
            await asyncio.sleep(task.post_delay)
        if task.callback is not None:
            BLEErrorHandler.safe_execute(
                task.callback, error_msg=f"Error in callback for {task!r}"
            )
        task.state = TaskState.COMPLETED
        if not task.future.done():
            task.future.set_result(result)


__all__ = ["TaskQueue", "TaskState", "WriteTask"]
