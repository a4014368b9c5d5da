from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = (Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL)


class ThreatType(str, Enum):
    NORMAL = "Normal Traffic"
    TCP_SCAN = "TCP Scan Attack"
    KNOWN_MALICIOUS_PORT = "Known Malicious Port"
    PROTOCOL_ANOMALY = "Protocol Anomaly"
    DDOS = "DDoS Attempt"
    SPOOFING = "Spoofing Attempt"
    ANOMALOUS = "Anomalous Behavior"


class PacketPayloadError(ValueError):
    """Raised when a packet mapping is missing or cannot be coerced."""


_INT_FIELDS = ("source_port", "dest_port", "packet_size", "payload_size", "ttl")
_STR_FIELDS = ("source_ip", "dest_ip", "protocol")


@dataclass(slots=True, frozen=True)
class PacketRecord:
    source_ip: str
    dest_ip: str
    source_port: int
    dest_port: int
    protocol: str
    packet_size: int
    payload_size: int
    ttl: int
    flags: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc), compare=False)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "PacketRecord":
        """Construye un paquete desde JSON/dict; solo valida la forma, no los rangos."""
        if not data:
            raise PacketPayloadError("Packet data required")
        if not isinstance(data, Mapping):
            raise PacketPayloadError("Packet data must be an object")

        values: dict[str, Any] = {}
        for name in _STR_FIELDS:
            if data.get(name) is None:
                raise PacketPayloadError(f"Missing packet field: {name}")
            values[name] = str(data[name])
        for name in _INT_FIELDS:
            raw = data.get(name)
            if raw is None or isinstance(raw, bool):
                raise PacketPayloadError(f"Missing packet field: {name}")
            if isinstance(raw, float) and not raw.is_integer():
                raise PacketPayloadError(f"Invalid integer for {name}: {raw!r}")
            try:
                values[name] = int(raw)
            except (TypeError, ValueError) as exc:
                raise PacketPayloadError(f"Invalid integer for {name}: {raw!r}") from exc

        flags = data.get("flags")
        values["flags"] = str(flags) if flags else None
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_ip": self.source_ip,
            "dest_ip": self.dest_ip,
            "source_port": self.source_port,
            "dest_port": self.dest_port,
            "protocol": self.protocol,
            "packet_size": self.packet_size,
            "payload_size": self.payload_size,
            "ttl": self.ttl,
            "flags": self.flags,
        }


@dataclass(slots=True, frozen=True)
class FeatureVector:
    port_entropy: float
    size_anomaly: float
    protocol_score: float
    flag_pattern: float
    ttl_anomaly: float
    known_malicious_port: bool
    payload_ratio: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True, frozen=True)
class ClassificationResult:
    is_malicious: bool
    confidence: float
    threat_type: ThreatType
    severity: Severity

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_malicious": self.is_malicious,
            "confidence": self.confidence,
            "threat_type": self.threat_type.value,
            "severity": self.severity.value,
        }


@dataclass(slots=True, frozen=True)
class ClassificationOutcome:
    features: FeatureVector
    result: ClassificationResult
    anomaly_score: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "features": self.features.to_dict(),
            "result": self.result.to_dict(),
            "anomaly_score": self.anomaly_score,
        }
