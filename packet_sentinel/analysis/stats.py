from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Any

from packet_sentinel.models.events import ClassificationOutcome


@dataclass(slots=True)
class SystemStats:
    total_packets: int = 0
    threats_detected: int = 0
    detection_rate: float = 0.0
    false_positive_rate: float = 0.0
    avg_confidence: float = 0.0
    top_threat_types: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class DetectionStats:
    """Acumulador en memoria para el pipeline en curso."""

    def __init__(self, top_n: int = 5) -> None:
        self.top_n = top_n
        self.packets_total = 0
        self.threats_total = 0
        self.confidence_sum = 0.0
        self.by_threat_type: Counter[str] = Counter()

    def record(self, outcome: ClassificationOutcome) -> None:
        self.packets_total += 1
        self.confidence_sum += outcome.result.confidence
        if outcome.result.is_malicious:
            self.threats_total += 1
            self.by_threat_type[outcome.result.threat_type.value] += 1

    def snapshot(self) -> SystemStats:
        if not self.packets_total:
            return SystemStats()
        return SystemStats(
            total_packets=self.packets_total,
            threats_detected=self.threats_total,
            detection_rate=self.threats_total / self.packets_total,
            avg_confidence=self.confidence_sum / self.packets_total,
            top_threat_types=dict(self.by_threat_type.most_common(self.top_n)),
        )
