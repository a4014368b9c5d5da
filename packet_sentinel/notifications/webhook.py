from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import requests

from packet_sentinel.config.settings import NotificationSettings
from packet_sentinel.models.events import ClassificationOutcome, PacketRecord, Severity

logger = logging.getLogger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True)
class WebhookNotifier:
    """Reenvía detecciones maliciosas a un webhook HTTP (SIEM, chat, etc.)."""

    url: str = ""
    min_severity: Severity = Severity.HIGH
    timeout_s: float = 8.0

    @classmethod
    def from_settings(cls, settings: NotificationSettings) -> "WebhookNotifier":
        return cls(
            url=settings.webhook_url,
            min_severity=Severity(settings.min_severity.lower()),
            timeout_s=settings.timeout_s,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def should_notify(self, outcome: ClassificationOutcome) -> bool:
        result = outcome.result
        return self.enabled and result.is_malicious and result.severity.rank >= self.min_severity.rank

    def notify(
        self,
        packet: PacketRecord,
        outcome: ClassificationOutcome,
        detection_id: int | None = None,
    ) -> dict[str, Any] | None:
        if not self.should_notify(outcome):
            return None

        payload = {
            "event": "threat_detected",
            "detection_id": detection_id,
            "packet": packet.to_dict(),
            "result": outcome.result.to_dict(),
            "ts": utc_now(),
        }
        try:
            response = requests.post(self.url, json=payload, timeout=self.timeout_s)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.error("Fallo al entregar webhook de detección %s: %s", detection_id, exc)
            return {"ok": False, "error": str(exc), "ts": utc_now()}
        return {"ok": True, "status": response.status_code, "ts": utc_now()}
