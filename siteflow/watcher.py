"""File watcher for the develop loop.

Wraps a watchdog Observer. Raw notifications arrive on the observer thread
and are handed to the asyncio loop, where they are debounced per path:
notifications for the same path inside the debounce window collapse into a
single ChangeEvent, emitted once the path has been quiet for the window.

Key classes:
- ChangeEvent: One debounced change to one project-relative path.
- FileWatcher: Glob-scoped subscriptions over a shared observer.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .globs import GlobSet, compile_globs

logger = logging.getLogger(__name__)

ChangeKind = Literal["created", "modified", "deleted"]


@dataclass(frozen=True)
class ChangeEvent:
    """A debounced file-system change.

    Attributes:
        path: Posix path relative to the project root.
        kind: "created", "modified" or "deleted".
        timestamp: Wall-clock time the event was emitted.
    """

    path: str
    kind: ChangeKind
    timestamp: float


def _merge_kinds(previous: ChangeKind | None, current: ChangeKind) -> ChangeKind:
    if previous == "created" and current == "modified":
        return "created"
    if previous == "deleted" and current == "created":
        return "modified"
    return current


class FileWatcher:
    """Reports debounced ChangeEvents for paths matching subscribed globs.

    Subscriptions live until stop() releases all of them together.

    Attributes:
        project_root: Directory globs and event paths are relative to.
        debounce: Quiet period in seconds before a change is emitted.
    """

    def __init__(
        self,
        project_root: Path,
        debounce: float = 0.1,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self.project_root = project_root.resolve()
        self.debounce = debounce
        self._loop = loop
        self._subscriptions: list[tuple[list[GlobSet], Callable[[ChangeEvent], None]]] = []
        self._pending: dict[str, ChangeKind] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._observer: Observer | None = None

    def watch(
        self,
        globs: str | Iterable[str] | GlobSet | list[GlobSet],
        on_event: Callable[[ChangeEvent], None],
    ) -> None:
        """Subscribe a callback to changes matching the globs.

        A list of GlobSets subscribes once to the union of the sets; the
        callback still runs only once per event. The callback runs on the
        event loop thread.
        """
        if isinstance(globs, GlobSet):
            compiled = [globs]
        elif isinstance(globs, list) and globs and all(isinstance(g, GlobSet) for g in globs):
            compiled = list(globs)
        else:
            compiled = [compile_globs(globs)]
        self._subscriptions.append((compiled, on_event))
        if self._observer is not None:
            self._schedule(self._observer, compiled)

    def start(self) -> None:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        observer = Observer()
        self._schedule(observer, [g for globsets, _ in self._subscriptions for g in globsets])
        observer.start()
        self._observer = observer

    def stop(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._pending.clear()
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None

    async def run(self) -> None:
        """Watch until cancelled, then release every subscription."""
        self.start()
        try:
            await asyncio.Future()
        finally:
            self.stop()

    def _schedule(self, observer: Observer, globsets: list[GlobSet]) -> None:
        roots: dict[Path, bool] = {}
        for globs in globsets:
            for base, recursive in globs.roots():
                path = self.project_root / base if base else self.project_root
                roots[path] = roots.get(path, False) or recursive
        handler = _ChangeHandler(self)
        for path, recursive in roots.items():
            if not path.is_dir():
                logger.warning("Not watching %s: directory does not exist", path)
                continue
            observer.schedule(handler, str(path), recursive=recursive)

    def notify_threadsafe(self, path: str, kind: ChangeKind) -> None:
        """Hand a raw notification from the observer thread to the loop."""
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self.queue, path, kind)

    def queue(self, path: str, kind: ChangeKind) -> None:
        """Record a raw notification and restart that path's debounce timer."""
        self._pending[path] = _merge_kinds(self._pending.get(path), kind)
        timer = self._timers.pop(path, None)
        if timer is not None:
            timer.cancel()
        loop = self._loop or asyncio.get_running_loop()
        self._timers[path] = loop.call_later(self.debounce, self._emit, path)

    def _emit(self, path: str) -> None:
        self._timers.pop(path, None)
        kind = self._pending.pop(path, None)
        if kind is None:
            return
        event = ChangeEvent(path=path, kind=kind, timestamp=time.time())
        logger.debug("%s %s", kind.capitalize(), path)
        for globsets, callback in self._subscriptions:
            if any(g.match(path) for g in globsets):
                callback(event)

    def relative(self, raw_path: str | bytes) -> str | None:
        if isinstance(raw_path, bytes):
            raw_path = raw_path.decode()
        try:
            return Path(raw_path).resolve().relative_to(self.project_root).as_posix()
        except ValueError:
            return None


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, watcher: FileWatcher):
        super().__init__()
        self.watcher = watcher

    def on_any_event(self, event: FileSystemEvent):
        if event.is_directory:
            return
        if event.event_type == "moved":
            self._report(event.src_path, "deleted")
            self._report(event.dest_path, "created")
        elif event.event_type in ("created", "modified", "deleted"):
            self._report(event.src_path, event.event_type)

    def _report(self, raw_path, kind: ChangeKind) -> None:
        rel = self.watcher.relative(raw_path)
        if rel is None:
            return
        if "node_modules" in rel.split("/"):
            return
        self.watcher.notify_threadsafe(rel, kind)
