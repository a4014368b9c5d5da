from __future__ import annotations

import math
from types import MappingProxyType
from typing import Mapping

from packet_sentinel.models.events import FeatureVector

DEFAULT_WEIGHTS = MappingProxyType(
    {
        "port_entropy": 0.15,
        "size_anomaly": 0.12,
        "protocol_score": 0.18,
        "flag_pattern": 0.25,
        "ttl_anomaly": 0.10,
        "known_malicious_port": 0.15,
        "payload_ratio": 0.05,
    }
)


class AnomalyScorer:
    """Suma ponderada fija de las características; sin recorte del resultado."""

    def __init__(self, weights: Mapping[str, float] | None = None) -> None:
        weights = dict(weights or DEFAULT_WEIGHTS)
        missing = set(DEFAULT_WEIGHTS) - set(weights)
        if missing:
            raise ValueError(f"Pesos incompletos, faltan: {', '.join(sorted(missing))}")
        if not math.isclose(sum(weights.values()), 1.0):
            raise ValueError(f"Los pesos deben sumar 1.0 (suman {sum(weights.values()):.4f})")
        self.weights = MappingProxyType(weights)

    def score(self, features: FeatureVector) -> float:
        w = self.weights
        score = 0.0
        score += features.port_entropy * w["port_entropy"]
        score += features.size_anomaly * w["size_anomaly"]
        score += features.protocol_score * w["protocol_score"]
        score += features.flag_pattern * w["flag_pattern"]
        score += features.ttl_anomaly * w["ttl_anomaly"]
        score += (1 if features.known_malicious_port else 0) * w["known_malicious_port"]
        # un ratio de payload bajo aumenta la sospecha
        score += (1 - features.payload_ratio) * w["payload_ratio"]
        return score
