"""Runtime context shared by the registry, tasks and orchestrator.

A BuildContext is created once at startup and passed explicitly to
everything that needs shared state: the validated configuration, the live
reload broadcaster and its client set, the names of tasks currently running,
and sibling tasks left running after a concurrent group failed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from .broadcaster import Broadcaster
from .config import SiteConfig

logger = logging.getLogger(__name__)


@dataclass
class BuildContext:
    """Explicit owner of process-wide mutable state.

    Attributes:
        config: Validated site configuration.
        broadcaster: Live reload broadcaster owning the preview client set.
        in_flight: Names of tasks whose action is currently executing.
        detached: Tasks still running after their concurrent group reported a failure.
    """

    config: SiteConfig
    broadcaster: Broadcaster = field(default_factory=Broadcaster)
    in_flight: set[str] = field(default_factory=set)
    detached: set[asyncio.Task] = field(default_factory=set)

    def detach(self, task: asyncio.Task) -> None:
        """Keep a still-running sibling alive without surfacing its outcome."""
        self.detached.add(task)
        task.add_done_callback(self._reap)

    def _reap(self, task: asyncio.Task) -> None:
        self.detached.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug("Discarded error from '%s' after sibling failure: %s", task.get_name(), exc)

    async def wait_detached(self) -> None:
        """Wait until every detached sibling has finished."""
        while self.detached:
            done, _ = await asyncio.wait(set(self.detached))
            self.detached.difference_update(done)
