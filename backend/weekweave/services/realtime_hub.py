from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Iterable

from fastapi import WebSocket

logger = logging.getLogger(__name__)


def recipient_channel(recipient_id: str) -> str:
    return f"recipient:{recipient_id}"


def class_channel(class_id: str) -> str:
    return f"class:{class_id}"


class RealtimeHub:
    """Fans JSON events out to websockets subscribed to named channels."""

    def __init__(self) -> None:
        self._subscribers: dict[str, set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def subscribe(self, websocket: WebSocket, channels: Iterable[str]) -> None:
        async with self._lock:
            for channel in channels:
                self._subscribers[channel].add(websocket)

    async def unsubscribe(self, websocket: WebSocket, channels: Iterable[str] | None = None) -> None:
        async with self._lock:
            targets = list(channels) if channels is not None else list(self._subscribers)
            for channel in targets:
                sockets = self._subscribers.get(channel)
                if not sockets:
                    continue
                sockets.discard(websocket)
                if not sockets:
                    self._subscribers.pop(channel, None)

    async def publish(self, channel: str, payload: dict) -> int:
        async with self._lock:
            sockets = list(self._subscribers.get(channel, ()))
        if not sockets:
            return 0

        delivered = 0
        stale: list[WebSocket] = []
        for websocket in sockets:
            try:
                await websocket.send_json(payload)
                delivered += 1
            except Exception:  # pragma: no cover - network/runtime dependent
                stale.append(websocket)

        if stale:
            await self.unsubscribe_many(stale, channel)
            logger.debug("Dropped %d stale websocket(s) from %s", len(stale), channel)
        return delivered

    async def unsubscribe_many(self, websockets: Iterable[WebSocket], channel: str) -> None:
        for websocket in websockets:
            await self.unsubscribe(websocket, [channel])


realtime_hub = RealtimeHub()
