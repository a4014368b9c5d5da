from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass(slots=True)
class DatabaseSettings:
    sqlite_path: str = "data/packet_sentinel.db"


@dataclass(slots=True)
class CaptureSettings:
    interface: str = "any"
    bpf_filter: str = ""
    replay_pcap: str | None = None
    simulate: bool = False
    simulate_interval_s: float = 1.0
    malicious_ratio: float = 0.15


@dataclass(slots=True)
class DetectionSettings:
    malicious_threshold: float = 0.45
    confidence_floor: float = 0.60
    confidence_ceiling: float = 0.99
    icmp_anomaly_probability: float = 0.1
    random_seed: int | None = None
    model_version: str = "v1.0-ensemble"


@dataclass(slots=True)
class NotificationSettings:
    webhook_url: str = ""
    min_severity: str = "high"
    timeout_s: float = 8.0


@dataclass(slots=True)
class ApiSettings:
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass(slots=True)
class AppSettings:
    app_name: str = "PACKET SENTINEL"
    log_level: str = "INFO"
    timezone: str = "UTC"
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    capture: CaptureSettings = field(default_factory=CaptureSettings)
    detection: DetectionSettings = field(default_factory=DetectionSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    api: ApiSettings = field(default_factory=ApiSettings)


class SettingsLoader:
    @staticmethod
    def _loads(text: str) -> dict[str, Any]:
        data = yaml.safe_load(text)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError("Configuración inválida: se esperaba un mapeo YAML")
        return data

    @staticmethod
    def load(path: str | Path) -> AppSettings:
        content = SettingsLoader._loads(Path(path).read_text(encoding="utf-8"))
        defaults = AppSettings()

        return AppSettings(
            app_name=content.get("app_name", defaults.app_name),
            log_level=content.get("log_level", defaults.log_level),
            timezone=content.get("timezone", defaults.timezone),
            database=DatabaseSettings(**content.get("database", {})),
            capture=CaptureSettings(**content.get("capture", {})),
            detection=DetectionSettings(**content.get("detection", {})),
            notifications=NotificationSettings(**content.get("notifications", {})),
            api=ApiSettings(**content.get("api", {})),
        )

    @staticmethod
    def dump_default(path: str | Path) -> None:
        defaults = AppSettings()
        payload: dict[str, Any] = {
            "app_name": defaults.app_name,
            "log_level": defaults.log_level,
            "timezone": defaults.timezone,
            "database": asdict(defaults.database),
            "capture": asdict(defaults.capture),
            "detection": asdict(defaults.detection),
            "notifications": asdict(defaults.notifications),
            "api": asdict(defaults.api),
        }
        Path(path).write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
