from __future__ import annotations

import logging
import random
from dataclasses import dataclass

from packet_sentinel.detection.classifier import ThreatClassifier
from packet_sentinel.detection.features import FeatureExtractor, RandomSource
from packet_sentinel.detection.scoring import AnomalyScorer
from packet_sentinel.models.events import ClassificationOutcome, PacketRecord

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DetectionConfig:
    malicious_threshold: float = 0.45
    confidence_floor: float = 0.60
    confidence_ceiling: float = 0.99
    icmp_anomaly_probability: float = 0.1
    random_seed: int | None = None
    model_version: str = "v1.0-ensemble"


class HeuristicDetectionEngine:
    """Motor heurístico: características -> puntuación ponderada -> taxonomía.

    No guarda estado entre llamadas, por lo que una instancia puede compartirse
    entre hilos. La aleatoriedad (solo ICMP) viene de ``rng``.
    """

    def __init__(self, config: DetectionConfig | None = None, rng: RandomSource | None = None) -> None:
        self.config = config or DetectionConfig()
        if rng is None:
            rng = random.Random(self.config.random_seed)
        self.extractor = FeatureExtractor(rng=rng, icmp_anomaly_probability=self.config.icmp_anomaly_probability)
        self.scorer = AnomalyScorer()
        self.classifier = ThreatClassifier(
            malicious_threshold=self.config.malicious_threshold,
            confidence_floor=self.config.confidence_floor,
            confidence_ceiling=self.config.confidence_ceiling,
        )

    @property
    def model_version(self) -> str:
        return self.config.model_version

    def classify(self, packet: PacketRecord) -> ClassificationOutcome:
        features = self.extractor.extract(packet)
        score = self.scorer.score(features)
        result = self.classifier.classify(score, features)
        logger.debug(
            "Paquete %s:%s -> %s:%s puntuación=%.4f tipo=%s",
            packet.source_ip,
            packet.source_port,
            packet.dest_ip,
            packet.dest_port,
            score,
            result.threat_type.value,
        )
        return ClassificationOutcome(features=features, result=result, anomaly_score=score)
