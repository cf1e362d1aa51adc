from __future__ import annotations

import asyncio
import logging
from collections import defaultdict, deque
from typing import Any, Deque, Dict, List, Set

from fastapi import WebSocket

from .db import settings
from .utils import now_ts

logger = logging.getLogger(__name__)


class SessionEventHub:
    """Room-based fan-out of session broadcasts.

    Each room is a session id. Every broadcast is sent to the WebSockets
    subscribed to the room and also appended to a bounded, sequenced log so
    clients without a socket can poll via HTTP.
    """

    def __init__(self, history_limit: int = 500):
        self._history_limit = history_limit
        self._subscribers: Dict[str, Set[WebSocket]] = defaultdict(set)
        self._events: Dict[str, Deque[dict[str, Any]]] = {}
        self._seq: Dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def subscribe(self, room: str, websocket: WebSocket) -> None:
        async with self._lock:
            self._subscribers[room].add(websocket)

    async def unsubscribe(self, websocket: WebSocket) -> None:
        """Drop a socket from every room it joined."""
        async with self._lock:
            for room in list(self._subscribers):
                conns = self._subscribers[room]
                conns.discard(websocket)
                if not conns:
                    self._subscribers.pop(room, None)

    async def broadcast(self, room: str, payload: dict[str, Any]) -> int:
        """Record ``payload`` for ``room``, push it to subscribers and return its sequence number."""

        async with self._lock:
            seq = self._seq.get(room, 0) + 1
            self._seq[room] = seq
            log = self._events.setdefault(room, deque(maxlen=self._history_limit))
            log.append({"seq": seq, "timestamp": now_ts(), "payload": payload})
            conns = list(self._subscribers.get(room, set()))

        dead: List[WebSocket] = []
        for ws in conns:
            try:
                await ws.send_json(payload)
            except Exception:
                dead.append(ws)

        if dead:
            logger.debug("Dropping %d dead socket(s) from room %s", len(dead), room)
            async with self._lock:
                for ws in dead:
                    self._subscribers.get(room, set()).discard(ws)
        return seq

    async def list(self, room: str, after: int | None = None, limit: int = 200) -> List[dict[str, Any]]:
        """Return events for a room that occur after the given sequence."""

        async with self._lock:
            log = list(self._events.get(room, ()))
        if after is not None:
            log = [event for event in log if event["seq"] > after]
        return log[:limit]

    async def discard(self, room: str) -> None:
        """Forget a room's subscribers and history."""
        async with self._lock:
            self._subscribers.pop(room, None)
            self._events.pop(room, None)
            self._seq.pop(room, None)

    def subscriber_count(self, room: str) -> int:
        return len(self._subscribers.get(room, ()))


hub = SessionEventHub(history_limit=settings.EVENT_HISTORY_LIMIT)
