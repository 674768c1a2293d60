"""WebSocket endpoint for live change notifications."""
from __future__ import annotations

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

events_router = APIRouter(tags=["events"])


@events_router.websocket("/ws/events")
async def session_events(websocket: WebSocket):
    hub = websocket.app.state.event_hub
    await hub.connect(websocket)
    try:
        while True:
            # Inbound messages are ignored; reading keeps the disconnect observable.
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(websocket)
