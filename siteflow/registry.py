"""Task registry and composition operators.

Tasks are named zero-argument coroutine functions. The registry owns them for
the lifetime of the process and is the only place they are executed, which
lets it guarantee that a given task never has two executions in flight at
the same time.

Composition:
- sequence(a, b, ...): await each task in order; the first failure aborts the rest.
- concurrent(a, b, ...): start every task on the event loop; complete when all
  finish, or fail as soon as the first one fails. Siblings that are still
  running are not cancelled, but their outcome is no longer reported.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from .context import BuildContext
from .errors import (
    CollaboratorError,
    DuplicateTaskError,
    FilesystemError,
    TaskError,
    UnknownTaskError,
)

logger = logging.getLogger(__name__)

Action = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class Task:
    """A named unit of build work.

    Attributes:
        name: Unique task name.
        action: Zero-argument coroutine function doing the work.
        inputs: Globs the task reads from.
        output: Path the task writes to, if any.
    """

    name: str
    action: Action
    inputs: tuple[str, ...] = ()
    output: str | None = None


class TaskRegistry:
    """Registry of named tasks bound to one BuildContext.

    Attributes:
        context: Runtime context recording in-flight task names.
    """

    def __init__(self, context: BuildContext):
        self.context = context
        self._tasks: dict[str, Task] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._loop: asyncio.AbstractEventLoop | None = None

    def register(
        self,
        name: str,
        action: Action,
        inputs: Iterable[str] = (),
        output: str | None = None,
    ) -> Task:
        """Create and register a task.

        Raises:
            DuplicateTaskError: If a task with this name already exists.
        """
        return self.add(Task(name, action, tuple(inputs), output))

    def add(self, task: Task) -> Task:
        """Register a prebuilt task."""
        if task.name in self._tasks:
            raise DuplicateTaskError(f"Task '{task.name}' is already registered")
        self._tasks[task.name] = task
        return task

    def get(self, name: str) -> Task:
        try:
            return self._tasks[name]
        except KeyError:
            raise UnknownTaskError(f"No task named '{name}'") from None

    def names(self) -> list[str]:
        return list(self._tasks)

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    def resolve(self, task: Task | str) -> Task:
        return self.get(task) if isinstance(task, str) else task

    async def run(self, task: Task | str) -> None:
        """Execute a task, waiting behind any execution of it already in flight.

        OSErrors and undecodable input escaping the action are reported as
        FilesystemError, other ValueErrors raised by a collaborator library as
        CollaboratorError. Task errors get the failing task's name attached if
        they lack one.
        """
        task = self.resolve(task)
        lock = self._lock_for(task.name)
        async with lock:
            self.context.in_flight.add(task.name)
            started = time.perf_counter()
            logger.info("Starting '%s'...", task.name)
            try:
                await task.action()
            except TaskError as exc:
                raise exc.with_task(task.name)
            except OSError as exc:
                raise FilesystemError(str(exc), task=task.name, original_error=exc) from exc
            except UnicodeDecodeError as exc:
                raise FilesystemError(
                    f"Input is not valid UTF-8: {exc}", task=task.name, original_error=exc
                ) from exc
            except ValueError as exc:
                raise CollaboratorError(str(exc), task=task.name, original_error=exc) from exc
            finally:
                self.context.in_flight.discard(task.name)
            logger.info(
                "Finished '%s' after %s", task.name, _format_elapsed(time.perf_counter() - started)
            )

    def is_running(self, task: Task | str) -> bool:
        name = task if isinstance(task, str) else task.name
        return name in self.context.in_flight

    def sequence(self, *tasks: Task | str, name: str | None = None) -> Task:
        """Compose tasks to run strictly one after another."""
        steps = [self.resolve(t) for t in tasks]

        async def action() -> None:
            for step in steps:
                await self.run(step)

        return Task(name or _composite_name("sequence", steps), action)

    def concurrent(self, *tasks: Task | str, name: str | None = None) -> Task:
        """Compose tasks to start together and join on completion."""
        members = [self.resolve(t) for t in tasks]

        async def action() -> None:
            if not members:
                return
            finished: list[asyncio.Task] = []
            running = []
            for member in members:
                job = asyncio.create_task(self.run(member), name=member.name)
                job.add_done_callback(finished.append)
                running.append(job)
            try:
                _, pending = await asyncio.wait(running, return_when=asyncio.FIRST_EXCEPTION)
            except asyncio.CancelledError:
                for job in running:
                    job.cancel()
                raise
            failures = [
                job for job in finished if not job.cancelled() and job.exception() is not None
            ]
            if not failures:
                return
            for job in pending:
                self.context.detach(job)
            raise failures[0].exception()

        return Task(name or _composite_name("concurrent", members), action)

    def _lock_for(self, name: str) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if loop is not self._loop:
            # Locks from an earlier event loop cannot be awaited on this one.
            self._loop = loop
            self._locks = {}
        return self._locks.setdefault(name, asyncio.Lock())


def _composite_name(kind: str, tasks: list[Task]) -> str:
    return f"{kind}({', '.join(t.name for t in tasks)})"


def _format_elapsed(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:.0f} ms"
    return f"{seconds:.2f} s"
