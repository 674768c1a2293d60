"""WebSocket fan-out for live session change notifications.

Delivery is at most once: an event goes to whoever is connected when it is
published, nothing is queued for absent subscribers and nothing is replayed.
Clients that miss an event recover by re-fetching.
"""
from __future__ import annotations

import logging

from fastapi import WebSocket

from ccsm.models import WatcherEvent
from ccsm.observability import record_watch_event

logger = logging.getLogger("ccsm.events")

SESSION_CHANGE_EVENT = "session-change"


class EventHub:
    def __init__(self) -> None:
        self._clients: set[WebSocket] = set()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._clients.add(websocket)
        logger.info(f"Subscriber connected ({len(self._clients)} total)")

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self._clients:
            self._clients.discard(websocket)
            logger.info(f"Subscriber disconnected ({len(self._clients)} total)")

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def publish(self, event: WatcherEvent) -> int:
        """Send ``event`` to every connected subscriber; returns deliveries."""
        payload = {"event": SESSION_CHANGE_EVENT, "data": event.model_dump(exclude_none=True)}
        record_watch_event(event.type, project_id=event.projectHash)

        delivered = 0
        disconnected: list[WebSocket] = []
        for websocket in list(self._clients):
            try:
                await websocket.send_json(payload)
                delivered += 1
            except Exception as exc:  # noqa: BLE001
                logger.debug("Dropping subscriber after failed send: %s", exc)
                disconnected.append(websocket)

        for websocket in disconnected:
            self.disconnect(websocket)
        return delivered
