from __future__ import annotations

import random
from types import MappingProxyType
from typing import Protocol

from packet_sentinel.models.events import FeatureVector, PacketRecord

SUSPICIOUS_PORTS = frozenset(
    {1337, 31337, 12345, 6667, 6666, 4444, 5555, 27374, 27665, 20034, 9996, 1243, 6711, 6776}
)
NORMAL_TTLS = (64, 128, 255)
PROTOCOL_PORTS = MappingProxyType(
    {
        "TCP": frozenset({80, 443, 22, 21, 25, 110, 143}),
        "UDP": frozenset({53, 67, 68, 123, 161, 162}),
        "ICMP": frozenset(),
    }
)

EPHEMERAL_PORT_FLOOR = 49152
EPHEMERAL_PORT_CEILING = 65535
WELL_KNOWN_PORT_CEILING = 1024
MIN_FRAME_SIZE = 64
MAX_FRAME_SIZE = 1500
LARGE_FRAME_SIZE = 1200


class RandomSource(Protocol):
    def random(self) -> float: ...


class FeatureExtractor:
    """Convierte un PacketRecord en el vector de 7 características.

    El único punto no determinista es la puntuación de protocolo para ICMP, que
    consulta ``rng``. Pasar un ``random.Random(seed)`` o un doble de prueba fija
    el resultado.
    """

    def __init__(self, rng: RandomSource | None = None, icmp_anomaly_probability: float = 0.1) -> None:
        self._rng = rng or random.Random()
        self.icmp_anomaly_probability = icmp_anomaly_probability

    def extract(self, packet: PacketRecord) -> FeatureVector:
        return FeatureVector(
            port_entropy=self.port_entropy(packet.source_port, packet.dest_port),
            size_anomaly=self.size_anomaly(packet.packet_size, packet.payload_size),
            protocol_score=self.protocol_score(packet.protocol, packet.dest_port),
            flag_pattern=self.flag_pattern(packet.flags or ""),
            ttl_anomaly=self.ttl_anomaly(packet.ttl),
            known_malicious_port=self.is_malicious_port(packet.dest_port),
            payload_ratio=self.payload_ratio(packet.packet_size, packet.payload_size),
        )

    @staticmethod
    def port_entropy(src_port: int, dst_port: int) -> float:
        ephemeral_src = EPHEMERAL_PORT_FLOOR < src_port < EPHEMERAL_PORT_CEILING
        well_known_dst = dst_port < WELL_KNOWN_PORT_CEILING

        if ephemeral_src and well_known_dst:
            return 0.2
        if WELL_KNOWN_PORT_CEILING < dst_port < EPHEMERAL_PORT_FLOOR:
            return 0.6
        if src_port < WELL_KNOWN_PORT_CEILING and well_known_dst:
            # dos puertos privilegiados hablando entre sí
            return 0.9
        return 0.4

    @staticmethod
    def size_anomaly(packet_size: int, payload_size: int) -> float:
        if packet_size < MIN_FRAME_SIZE or packet_size > MAX_FRAME_SIZE:
            return 0.8
        if payload_size == 0 and packet_size > MIN_FRAME_SIZE:
            return 0.7
        if packet_size > LARGE_FRAME_SIZE:
            return 0.5
        return 0.2

    def protocol_score(self, protocol: str, dst_port: int) -> float:
        if dst_port in PROTOCOL_PORTS.get(protocol, frozenset()):
            return 0.1
        if protocol == "ICMP" and self._rng.random() < self.icmp_anomaly_probability:
            return 0.8
        return 0.4

    @staticmethod
    def flag_pattern(flags: str) -> float:
        if not flags:
            return 0.3
        if "SYN" in flags and "FIN" in flags:
            return 0.95
        if "FIN" in flags and "URG" in flags and "PSH" in flags:
            return 0.9
        if flags == "NULL":
            return 0.85
        if "RST" in flags and "SYN" in flags:
            return 0.8
        if len(flags.split(",")) > 4:
            return 0.7
        return 0.2

    @staticmethod
    def ttl_anomaly(ttl: int) -> float:
        # min() conserva el primer candidato en caso de empate
        closest = min(NORMAL_TTLS, key=lambda ref: abs(ref - ttl))
        difference = abs(closest - ttl)

        if difference > 30:
            return 0.9
        if difference > 15:
            return 0.6
        if difference > 5:
            return 0.3
        return 0.1

    @staticmethod
    def is_malicious_port(port: int) -> bool:
        return port in SUSPICIOUS_PORTS

    @staticmethod
    def payload_ratio(packet_size: int, payload_size: int) -> float:
        if packet_size > 0:
            return payload_size / packet_size
        return 0.0
