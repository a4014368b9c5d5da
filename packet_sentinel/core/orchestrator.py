from __future__ import annotations

import asyncio
import logging
import random
from collections import deque
from dataclasses import asdict

from packet_sentinel.analysis.stats import DetectionStats
from packet_sentinel.capture.engine import PacketCaptureEngine
from packet_sentinel.capture.simulator import PacketGenerator
from packet_sentinel.config.settings import AppSettings
from packet_sentinel.detection.engine import DetectionConfig, HeuristicDetectionEngine
from packet_sentinel.forensics.repository import ForensicsRepository
from packet_sentinel.notifications.webhook import WebhookNotifier

logger = logging.getLogger(__name__)


class SentinelOrchestrator:
    def __init__(
        self,
        capture: PacketCaptureEngine,
        detector: HeuristicDetectionEngine,
        forensics: ForensicsRepository,
        notifier: WebhookNotifier | None = None,
    ) -> None:
        self.capture = capture
        self.detector = detector
        self.forensics = forensics
        self.notifier = notifier or WebhookNotifier()
        self.stats = DetectionStats()
        self.recent_detections = deque(maxlen=300)

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "SentinelOrchestrator":
        seed = settings.detection.random_seed
        generator = PacketGenerator(
            rng=random.Random(seed),
            malicious_ratio=settings.capture.malicious_ratio,
        )
        capture = PacketCaptureEngine(
            interface=settings.capture.interface,
            bpf_filter=settings.capture.bpf_filter,
            replay_pcap=settings.capture.replay_pcap,
            simulate=settings.capture.simulate,
            generator=generator,
            simulate_interval_s=settings.capture.simulate_interval_s,
        )
        detector = HeuristicDetectionEngine(DetectionConfig(**asdict(settings.detection)))
        forensics = ForensicsRepository(db_path=settings.database.sqlite_path)
        notifier = WebhookNotifier.from_settings(settings.notifications)
        return cls(capture, detector, forensics, notifier)

    async def run(self, max_packets: int | None = None) -> None:
        processed = 0
        async for packet in self.capture.stream():
            packet_id = self.forensics.save_packet(packet)
            outcome = self.detector.classify(packet)
            detection_id = self.forensics.save_detection(packet_id, outcome, self.detector.model_version)
            self.stats.record(outcome)

            result = outcome.result
            if result.is_malicious:
                self.recent_detections.append((detection_id, packet, outcome))
                logger.warning(
                    "Amenaza %s [%s] %s -> %s:%s",
                    result.threat_type.value,
                    result.severity.value,
                    packet.source_ip,
                    packet.dest_ip,
                    packet.dest_port,
                    extra={
                        "packet_id": packet_id,
                        "detection_id": detection_id,
                        "threat_type": result.threat_type.value,
                        "severity": result.severity.value,
                        "confidence": result.confidence,
                    },
                )
                await asyncio.to_thread(self.notifier.notify, packet, outcome, detection_id)

            processed += 1
            if max_packets is not None and processed >= max_packets:
                break

        summary = self.stats.snapshot()
        logger.info(
            "Pipeline detenido: %d paquetes, %d amenazas (tasa %.2f%%)",
            summary.total_packets,
            summary.threats_detected,
            summary.detection_rate * 100,
        )


async def run_default(settings: AppSettings, max_packets: int | None = None) -> SentinelOrchestrator:
    orchestrator = SentinelOrchestrator.from_settings(settings)
    await orchestrator.run(max_packets=max_packets)
    return orchestrator
