from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from packet_sentinel.config.settings import AppSettings
from packet_sentinel.detection.engine import DetectionConfig, HeuristicDetectionEngine
from packet_sentinel.forensics.repository import ForensicsRepository, PersistenceError
from packet_sentinel.models.events import PacketPayloadError, PacketRecord
from packet_sentinel.notifications.webhook import WebhookNotifier
from packet_sentinel.service.notifications import DetectionBroadcaster

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(
    settings: AppSettings | None = None,
    engine: HeuristicDetectionEngine | None = None,
    repository: ForensicsRepository | None = None,
    broadcaster: DetectionBroadcaster | None = None,
    notifier: WebhookNotifier | None = None,
) -> FastAPI:
    settings = settings or AppSettings()
    engine = engine or HeuristicDetectionEngine(DetectionConfig(**asdict(settings.detection)))
    repository = repository or ForensicsRepository(settings.database.sqlite_path)
    broadcaster = broadcaster or DetectionBroadcaster()
    notifier = notifier or WebhookNotifier.from_settings(settings.notifications)

    app = FastAPI(title=settings.app_name)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["*"],
    )
    app.state.engine = engine
    app.state.repository = repository
    app.state.broadcaster = broadcaster
    app.state.notifier = notifier

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": "packet-sentinel", "model_version": engine.model_version}

    @app.post("/analyze-packet")
    async def analyze_packet(request: Request) -> Any:
        try:
            body = await request.json()
        except ValueError:
            return _error(400, "Invalid JSON body")

        try:
            packet = PacketRecord.from_mapping(body.get("packet") if isinstance(body, dict) else None)
        except PacketPayloadError as exc:
            return _error(400, str(exc))

        try:
            packet_id = repository.save_packet(packet)
            outcome = engine.classify(packet)
            detection_id = repository.save_detection(packet_id, outcome, engine.model_version)
        except PersistenceError as exc:
            logger.exception("Error procesando paquete")
            return _error(500, str(exc))

        response = {
            "success": True,
            "packet_id": packet_id,
            "detection_id": detection_id,
            "result": outcome.result.to_dict(),
            "features": outcome.features.to_dict(),
        }
        await broadcaster.broadcast({"event": "detection", "packet": packet.to_dict(), **response})
        await run_in_threadpool(notifier.notify, packet, outcome, detection_id)
        return response

    @app.get("/stats")
    def stats() -> Any:
        try:
            return repository.summary().to_dict()
        except PersistenceError as exc:
            return _error(500, str(exc))

    @app.get("/detections/recent")
    def recent_detections(limit: int = Query(20, ge=1, le=500)) -> Any:
        try:
            return repository.recent_detections(limit)
        except PersistenceError as exc:
            return _error(500, str(exc))

    @app.patch("/detections/{detection_id}/status")
    async def update_detection_status(detection_id: int, request: Request) -> Any:
        try:
            body = await request.json()
        except ValueError:
            return _error(400, "Invalid JSON body")
        status = body.get("status") if isinstance(body, dict) else None
        try:
            updated = repository.update_status(detection_id, str(status))
        except ValueError as exc:
            return _error(400, str(exc))
        except PersistenceError as exc:
            return _error(500, str(exc))
        if not updated:
            return _error(404, f"Detection {detection_id} not found")
        return {"ok": True, "detection_id": detection_id, "status": status}

    @app.websocket("/ws/detections")
    async def ws_detections(websocket: WebSocket) -> None:
        await broadcaster.connect(websocket)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            broadcaster.disconnect(websocket)

    return app

