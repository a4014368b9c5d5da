import random

import pytest

from packet_sentinel.detection.classifier import ThreatClassifier
from packet_sentinel.detection.engine import DetectionConfig, HeuristicDetectionEngine
from packet_sentinel.detection.scoring import DEFAULT_WEIGHTS, AnomalyScorer
from packet_sentinel.models.events import FeatureVector, PacketRecord, Severity, ThreatType


class FixedRandom:
    def __init__(self, value: float) -> None:
        self.value = value

    def random(self) -> float:
        return self.value


def _features(**overrides) -> FeatureVector:
    fields = {
        "port_entropy": 0.2,
        "size_anomaly": 0.2,
        "protocol_score": 0.1,
        "flag_pattern": 0.2,
        "ttl_anomaly": 0.1,
        "known_malicious_port": False,
        "payload_ratio": 0.7,
    }
    fields.update(overrides)
    return FeatureVector(**fields)


def _packet(**overrides) -> PacketRecord:
    fields = {
        "source_ip": "203.0.113.7",
        "dest_ip": "10.0.0.5",
        "source_port": 50000,
        "dest_port": 443,
        "protocol": "TCP",
        "packet_size": 500,
        "payload_size": 350,
        "ttl": 64,
        "flags": "SYN,ACK",
    }
    fields.update(overrides)
    return PacketRecord(**fields)


def _engine(draw: float = 0.5) -> HeuristicDetectionEngine:
    return HeuristicDetectionEngine(rng=FixedRandom(draw))


def test_default_weights_sum_to_one() -> None:
    assert sum(DEFAULT_WEIGHTS.values()) == pytest.approx(1.0)


def test_scorer_rejects_weights_that_do_not_sum_to_one() -> None:
    with pytest.raises(ValueError):
        AnomalyScorer({**DEFAULT_WEIGHTS, "flag_pattern": 0.5})
    with pytest.raises(ValueError):
        AnomalyScorer({"flag_pattern": 1.0})


def test_scorer_weighted_sum_with_inverted_payload_ratio() -> None:
    scorer = AnomalyScorer()
    assert scorer.score(_features()) == pytest.approx(0.147)
    assert scorer.score(_features(known_malicious_port=True)) == pytest.approx(0.297)
    assert scorer.score(_features(payload_ratio=0.0)) == pytest.approx(0.182)


def test_confidence_is_clamped_for_every_verdict() -> None:
    classifier = ThreatClassifier()
    assert classifier.classify(0.1, _features()).confidence == 0.60
    assert classifier.classify(0.5, _features()).confidence == 0.60
    assert classifier.classify(0.75, _features()).confidence == 0.75
    assert classifier.classify(1.4, _features()).confidence == 0.99


def test_threshold_is_strictly_greater_than() -> None:
    classifier = ThreatClassifier()
    assert not classifier.classify(0.45, _features()).is_malicious
    assert classifier.classify(0.4501, _features()).is_malicious


@pytest.mark.parametrize(
    ("overrides", "threat_type", "severity"),
    [
        ({"flag_pattern": 0.85, "known_malicious_port": True}, ThreatType.TCP_SCAN, Severity.HIGH),
        ({"known_malicious_port": True, "protocol_score": 0.8}, ThreatType.KNOWN_MALICIOUS_PORT, Severity.CRITICAL),
        ({"protocol_score": 0.8, "size_anomaly": 0.8}, ThreatType.PROTOCOL_ANOMALY, Severity.MEDIUM),
        ({"size_anomaly": 0.8, "ttl_anomaly": 0.9}, ThreatType.DDOS, Severity.HIGH),
        ({"ttl_anomaly": 0.9}, ThreatType.SPOOFING, Severity.HIGH),
        ({"flag_pattern": 0.8, "size_anomaly": 0.7}, ThreatType.ANOMALOUS, Severity.MEDIUM),
    ],
)
def test_rule_cascade_first_match_wins(overrides: dict, threat_type: ThreatType, severity: Severity) -> None:
    result = ThreatClassifier().classify(0.6, _features(**overrides))
    assert result.is_malicious
    assert result.threat_type == threat_type
    assert result.severity == severity


def test_benign_verdict_ignores_matching_rules() -> None:
    result = ThreatClassifier().classify(0.3, _features(flag_pattern=0.95, known_malicious_port=True))
    assert result.threat_type == ThreatType.NORMAL
    assert result.severity == Severity.LOW


def test_scenario_a_normal_traffic() -> None:
    outcome = _engine().classify(_packet())
    assert outcome.anomaly_score == pytest.approx(0.147)
    assert outcome.result.is_malicious is False
    assert outcome.result.threat_type == ThreatType.NORMAL
    assert outcome.result.severity == Severity.LOW
    assert outcome.result.confidence == 0.60


def test_scenario_b_known_port_below_threshold() -> None:
    outcome = _engine().classify(
        _packet(source_port=12345, dest_port=31337, packet_size=1500, payload_size=1460, ttl=128, flags="PSH,ACK")
    )
    assert outcome.features.known_malicious_port is True
    assert outcome.features.flag_pattern == 0.2
    assert outcome.anomaly_score == pytest.approx(0.43333, abs=1e-4)
    assert outcome.result.is_malicious is False


def test_known_malicious_port_header_only_probe_is_critical() -> None:
    outcome = _engine().classify(
        _packet(source_port=100, dest_port=4444, packet_size=40, payload_size=0, flags="SYN")
    )
    assert outcome.anomaly_score == pytest.approx(0.518)
    assert outcome.result.threat_type == ThreatType.KNOWN_MALICIOUS_PORT
    assert outcome.result.severity == Severity.CRITICAL


def test_scenario_c_syn_fin_is_tcp_scan() -> None:
    outcome = _engine().classify(
        _packet(source_port=1000, dest_port=500, packet_size=60, payload_size=0, ttl=32, flags="SYN,FIN")
    )
    assert outcome.features.flag_pattern == 0.95
    assert outcome.anomaly_score == pytest.approx(0.6805)
    assert outcome.result.threat_type == ThreatType.TCP_SCAN
    assert outcome.result.severity == Severity.HIGH
    assert outcome.result.confidence == pytest.approx(0.6805)


def test_null_scan_on_malicious_port_prefers_scan_rule() -> None:
    outcome = _engine().classify(
        _packet(source_port=40000, dest_port=31337, packet_size=20, payload_size=0, ttl=255, flags="NULL")
    )
    assert outcome.features.known_malicious_port is True
    assert outcome.result.is_malicious
    assert outcome.result.threat_type == ThreatType.TCP_SCAN
    assert outcome.result.severity == Severity.HIGH


def test_scenario_d_low_ttl() -> None:
    outcome = _engine().classify(_packet(ttl=10))
    assert outcome.features.ttl_anomaly == 0.9


def test_icmp_protocol_anomaly_depends_on_random_source() -> None:
    packet = _packet(source_port=0, dest_port=0, protocol="ICMP", packet_size=28, payload_size=0, flags=None)

    fired = _engine(draw=0.05).classify(packet)
    assert fired.anomaly_score == pytest.approx(0.51)
    assert fired.result.threat_type == ThreatType.PROTOCOL_ANOMALY
    assert fired.result.severity == Severity.MEDIUM

    quiet = _engine(draw=0.95).classify(packet)
    assert quiet.features.protocol_score == 0.4
    assert quiet.result.is_malicious is False


def test_oversized_frame_with_ttl_anomaly_is_ddos() -> None:
    outcome = _engine().classify(
        _packet(source_port=1000, dest_port=2000, protocol="UDP", packet_size=9000, payload_size=0, ttl=96, flags=None)
    )
    assert outcome.result.threat_type == ThreatType.DDOS
    assert outcome.result.severity == Severity.HIGH


def test_ttl_anomaly_alone_is_spoofing() -> None:
    outcome = _engine().classify(
        _packet(source_port=1000, dest_port=2000, packet_size=500, payload_size=0, ttl=10, flags=None)
    )
    assert outcome.anomaly_score == pytest.approx(0.461)
    assert outcome.result.threat_type == ThreatType.SPOOFING


def test_many_flags_without_other_signals_is_anomalous_behavior() -> None:
    outcome = _engine().classify(
        _packet(source_port=1000, dest_port=2000, packet_size=500, payload_size=0, flags="ACK,PSH,URG,ECE,CWR")
    )
    assert outcome.result.is_malicious
    assert outcome.result.threat_type == ThreatType.ANOMALOUS
    assert outcome.result.severity == Severity.MEDIUM


def test_classify_is_deterministic_for_non_icmp_packets() -> None:
    engine = HeuristicDetectionEngine()
    packet = _packet(flags="RST,SYN", ttl=100)
    assert engine.classify(packet) == engine.classify(packet)


def test_seeded_engines_agree_on_icmp() -> None:
    packet = _packet(protocol="ICMP", dest_port=0, flags=None)
    first = HeuristicDetectionEngine(DetectionConfig(random_seed=11))
    second = HeuristicDetectionEngine(DetectionConfig(random_seed=11))
    assert [first.classify(packet) for _ in range(20)] == [second.classify(packet) for _ in range(20)]


def test_confidence_bounds_hold_across_random_packets() -> None:
    rng = random.Random(2024)
    engine = HeuristicDetectionEngine(rng=rng)
    for _ in range(500):
        packet = _packet(
            source_port=rng.randint(0, 70000),
            dest_port=rng.randint(0, 70000),
            protocol=rng.choice(["TCP", "UDP", "ICMP", "SCTP"]),
            packet_size=rng.randint(0, 9000),
            payload_size=rng.randint(0, 1500),
            ttl=rng.randint(0, 255),
            flags=rng.choice([None, "", "SYN", "SYN,FIN", "NULL", "RST,SYN", "A,B,C,D,E"]),
        )
        result = engine.classify(packet).result
        assert 0.60 <= result.confidence <= 0.99
        if not result.is_malicious:
            assert result.threat_type == ThreatType.NORMAL
