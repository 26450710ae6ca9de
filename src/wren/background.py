"""Background tasks — work a handler schedules for after its response.

A handler asks for a ``background`` argument and adds callables to it::

    @app.post("/signup")
    async def signup(body: dict, background: BackgroundTasks):
        background.add_task(send_welcome_email, body["email"])
        return {"ok": True}, 201

Tasks run in the order they were added, once the response has been sent
and before the request's dependencies are cleaned up, so they can still
use injected values. They are meant for light I/O; anything heavier
belongs on a real job queue.

A failing or timed-out task is logged and skipped; the rest still run.
Tasks added by a handler whose request ends in an error response are
discarded.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import anyio

from wren._internal.invoke import invoke

logger = logging.getLogger("wren.background")

# Tasks slower than this are logged as a hint to move them to a job queue
SLOW_TASK_SECONDS = 0.1


@dataclass(frozen=True, slots=True)
class BackgroundTask:
    """One scheduled call."""

    func: Callable[..., Any]
    args: tuple[Any, ...] = ()
    kwargs: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return getattr(self.func, "__qualname__", repr(self.func))


class BackgroundTasks:
    """Ordered collection of tasks for one request."""

    __slots__ = ("_tasks", "errors")

    def __init__(self) -> None:
        self._tasks: list[BackgroundTask] = []
        self.errors: list[BaseException] = []

    def add_task(self, func: Callable[..., Any], /, *args: Any, **kwargs: Any) -> None:
        """Schedule ``func(*args, **kwargs)``. *func* may be sync or async."""
        if not callable(func):
            msg = f"Background task must be callable, got {func!r}"
            raise TypeError(msg)
        self._tasks.append(BackgroundTask(func, args, kwargs))

    def clear(self) -> None:
        self._tasks.clear()

    @property
    def tasks(self) -> tuple[BackgroundTask, ...]:
        return tuple(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    async def run(self, *, timeout: float | None = None) -> list[BaseException]:
        """Run and drain every task. Returns the failures, also kept on ``errors``.

        *timeout* bounds each task separately.
        """
        tasks, self._tasks = self._tasks, []
        failures: list[BaseException] = []
        for task in tasks:
            started = time.perf_counter()
            try:
                with anyio.fail_after(timeout):
                    await invoke(task.func, *task.args, **task.kwargs)
            except TimeoutError as exc:
                logger.error("Background task %s timed out after %ss", task.name, timeout)
                failures.append(exc)
                continue
            except Exception as exc:
                logger.exception("Background task %s failed", task.name)
                failures.append(exc)
                continue
            elapsed = time.perf_counter() - started
            if elapsed > SLOW_TASK_SECONDS:
                logger.warning(
                    "Background task %s took %.3fs; consider a job queue for heavy work",
                    task.name,
                    elapsed,
                )
        self.errors.extend(failures)
        return failures
