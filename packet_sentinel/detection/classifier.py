from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from packet_sentinel.models.events import ClassificationResult, FeatureVector, Severity, ThreatType


@dataclass(slots=True, frozen=True)
class ThreatRule:
    threat_type: ThreatType
    severity: Severity
    matches: Callable[[FeatureVector], bool]


# El orden importa: varias reglas pueden cumplirse a la vez y gana la primera.
THREAT_RULES: tuple[ThreatRule, ...] = (
    ThreatRule(ThreatType.TCP_SCAN, Severity.HIGH, lambda f: f.flag_pattern > 0.8),
    ThreatRule(ThreatType.KNOWN_MALICIOUS_PORT, Severity.CRITICAL, lambda f: f.known_malicious_port),
    ThreatRule(ThreatType.PROTOCOL_ANOMALY, Severity.MEDIUM, lambda f: f.protocol_score > 0.7),
    ThreatRule(ThreatType.DDOS, Severity.HIGH, lambda f: f.size_anomaly > 0.7),
    ThreatRule(ThreatType.SPOOFING, Severity.HIGH, lambda f: f.ttl_anomaly > 0.7),
)
FALLBACK_RULE = ThreatRule(ThreatType.ANOMALOUS, Severity.MEDIUM, lambda f: True)


class ThreatClassifier:
    def __init__(
        self,
        malicious_threshold: float = 0.45,
        confidence_floor: float = 0.60,
        confidence_ceiling: float = 0.99,
        rules: tuple[ThreatRule, ...] = THREAT_RULES,
    ) -> None:
        if confidence_floor > confidence_ceiling:
            raise ValueError("confidence_floor no puede superar confidence_ceiling")
        self.malicious_threshold = malicious_threshold
        self.confidence_floor = confidence_floor
        self.confidence_ceiling = confidence_ceiling
        self.rules = rules

    def classify(self, score: float, features: FeatureVector) -> ClassificationResult:
        is_malicious = score > self.malicious_threshold
        # la confianza no depende del veredicto, solo de la puntuación acotada
        confidence = min(self.confidence_ceiling, max(self.confidence_floor, score))

        if not is_malicious:
            return ClassificationResult(False, confidence, ThreatType.NORMAL, Severity.LOW)

        rule = self.match_rule(features)
        return ClassificationResult(True, confidence, rule.threat_type, rule.severity)

    def match_rule(self, features: FeatureVector) -> ThreatRule:
        return next((rule for rule in self.rules if rule.matches(features)), FALLBACK_RULE)
