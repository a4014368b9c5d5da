import pytest
import requests

from packet_sentinel.config.settings import NotificationSettings
from packet_sentinel.detection.engine import HeuristicDetectionEngine
from packet_sentinel.models.events import PacketRecord, Severity
from packet_sentinel.notifications.webhook import WebhookNotifier

SCAN = PacketRecord("10.0.0.66", "8.8.4.4", 1000, 500, "TCP", 60, 0, 32, "SYN,FIN")
PROBE = PacketRecord("10.0.0.66", "8.8.4.4", 100, 4444, "TCP", 40, 0, 64, "SYN")
NORMAL = PacketRecord("10.0.0.1", "8.8.8.8", 50000, 443, "TCP", 500, 350, 64, "SYN,ACK")


class _Response:
    status_code = 202

    def raise_for_status(self) -> None:
        return None


def test_delivers_high_severity_detection(monkeypatch: pytest.MonkeyPatch) -> None:
    sent = []

    def _post(url, json, timeout):
        sent.append((url, json, timeout))
        return _Response()

    monkeypatch.setattr("packet_sentinel.notifications.webhook.requests.post", _post)
    notifier = WebhookNotifier(url="https://siem.example/hook", timeout_s=3.0)

    result = notifier.notify(SCAN, HeuristicDetectionEngine().classify(SCAN), detection_id=4)

    assert result["ok"] is True
    assert result["status"] == 202
    url, payload, timeout = sent[0]
    assert url == "https://siem.example/hook"
    assert timeout == 3.0
    assert payload["detection_id"] == 4
    assert payload["result"]["threat_type"] == "TCP Scan Attack"
    assert payload["packet"]["dest_port"] == 500


def test_delivery_failure_is_reported(monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
    def _post(url, json, timeout):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr("packet_sentinel.notifications.webhook.requests.post", _post)
    notifier = WebhookNotifier(url="https://siem.example/hook")

    result = notifier.notify(PROBE, HeuristicDetectionEngine().classify(PROBE), detection_id=9)

    assert result["ok"] is False
    assert "connection refused" in result["error"]
    assert "Fallo al entregar webhook" in caplog.text


def test_skips_benign_low_severity_and_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    def _post(url, json, timeout):
        raise AssertionError("no debería enviarse")

    monkeypatch.setattr("packet_sentinel.notifications.webhook.requests.post", _post)
    engine = HeuristicDetectionEngine()

    assert WebhookNotifier(url="https://siem.example/hook").notify(NORMAL, engine.classify(NORMAL)) is None
    critical_only = WebhookNotifier(url="https://siem.example/hook", min_severity=Severity.CRITICAL)
    assert critical_only.notify(SCAN, engine.classify(SCAN)) is None
    assert WebhookNotifier().notify(SCAN, engine.classify(SCAN)) is None


def test_from_settings() -> None:
    notifier = WebhookNotifier.from_settings(
        NotificationSettings(webhook_url="https://hooks.example/x", min_severity="CRITICAL", timeout_s=2.5)
    )
    assert notifier.enabled
    assert notifier.min_severity == Severity.CRITICAL
    assert notifier.timeout_s == 2.5
    assert not WebhookNotifier.from_settings(NotificationSettings()).enabled
