"""Live reload broadcaster.

Keeps the set of connected preview clients and pushes reload signals to all
of them. Delivery is fire-and-forget: there is no acknowledgement and no
retry, and a client whose send fails is dropped from the set.

Key classes:
- ReloadSignal: Full-page reload or asset-scoped (stylesheet) refresh.
- Broadcaster: Connection set plus the websockets connection handler.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Literal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReloadSignal:
    """A signal pushed to preview clients.

    Attributes:
        scope: "full" reloads the page, "asset" refreshes a single asset in place.
        target: URL path of the asset for asset-scoped signals.
    """

    scope: Literal["full", "asset"]
    target: str | None = None

    @classmethod
    def full(cls) -> ReloadSignal:
        return cls("full")

    @classmethod
    def asset(cls, target: str) -> ReloadSignal:
        return cls("asset", target if target.startswith("/") else f"/{target}")

    def to_message(self) -> str:
        """Serialize to the JSON message understood by the injected client script."""
        if self.scope == "asset":
            return json.dumps({"type": "asset", "path": self.target})
        return json.dumps({"type": "reload"})


class Broadcaster:
    """Holds connected preview channels and broadcasts reload signals.

    A channel is anything with an async ``send(str)`` method; in practice a
    websockets server connection.
    """

    def __init__(self):
        self._clients: set[Any] = set()

    @property
    def clients(self) -> frozenset:
        return frozenset(self._clients)

    def connect(self, channel: Any) -> None:
        self._clients.add(channel)
        logger.debug("Preview client connected (%d total)", len(self._clients))

    def disconnect(self, channel: Any) -> None:
        self._clients.discard(channel)
        logger.debug("Preview client disconnected (%d left)", len(self._clients))

    async def notify(self, signal: ReloadSignal) -> int:
        """Push a signal to every connected channel.

        Args:
            signal: Signal to broadcast.

        Returns:
            Number of channels the signal was delivered to.
        """
        message = signal.to_message()
        stale = set()
        delivered = 0
        for channel in list(self._clients):
            try:
                await channel.send(message)
                delivered += 1
            except Exception as exc:
                logger.debug("Dropping preview client after failed send: %s", exc)
                stale.add(channel)
        for channel in stale:
            self._clients.discard(channel)
        if delivered:
            logger.info("Reloading %d preview client(s) (%s)", delivered, signal.target or signal.scope)
        return delivered

    async def handler(self, websocket) -> None:
        """websockets connection handler: register until the socket closes."""
        self.connect(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self.disconnect(websocket)
