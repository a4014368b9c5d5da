from __future__ import annotations

import logging
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class DetectionBroadcaster:
    """Difunde cada detección nueva a los websockets suscritos."""

    def __init__(self) -> None:
        self.clients: set[WebSocket] = set()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.clients.add(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        self.clients.discard(websocket)

    async def broadcast(self, message: dict[str, Any]) -> int:
        delivered = 0
        stale = []
        for ws in list(self.clients):
            try:
                await ws.send_json(message)
                delivered += 1
            except Exception as exc:  # socket cerrado por el cliente
                logger.debug("Websocket descartado: %s", exc)
                stale.append(ws)
        for ws in stale:
            self.clients.discard(ws)
        return delivered
