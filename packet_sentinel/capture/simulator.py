from __future__ import annotations

import random

from packet_sentinel.models.events import PacketRecord

NORMAL_PORTS = (80, 443, 22, 53, 25, 110, 143, 21)
MALICIOUS_PORTS = (1337, 31337, 12345, 6667, 4444, 5555)
PROTOCOLS = ("TCP", "UDP", "ICMP")
NORMAL_TTLS = (64, 128, 255)


class PacketGenerator:
    """Genera tráfico sintético (normal y cinco arquetipos de ataque) para demos y pruebas."""

    def __init__(self, rng: random.Random | None = None, malicious_ratio: float = 0.15) -> None:
        self.rng = rng or random.Random()
        self.malicious_ratio = malicious_ratio

    def _ip(self) -> str:
        return ".".join(str(self.rng.randint(0, 254)) for _ in range(4))

    def _ephemeral_port(self) -> int:
        return self.rng.randint(49152, 65534)

    def _port(self, malicious: bool) -> int:
        if malicious and self.rng.random() < 0.5:
            return self.rng.choice(MALICIOUS_PORTS)
        if self.rng.random() < 0.7:
            return self.rng.choice(NORMAL_PORTS)
        return self.rng.randint(0, 65534)

    def generate_normal(self) -> PacketRecord:
        protocol = self.rng.choice(PROTOCOLS[:2])
        packet_size = self.rng.randint(64, 1063)
        return PacketRecord(
            source_ip=self._ip(),
            dest_ip=self._ip(),
            source_port=self._ephemeral_port(),
            dest_port=self._port(malicious=False),
            protocol=protocol,
            packet_size=packet_size,
            payload_size=int(packet_size * 0.7),
            ttl=self.rng.choice(NORMAL_TTLS),
            flags="SYN,ACK" if protocol == "TCP" else None,
        )

    def generate_malicious(self) -> PacketRecord:
        archetype = self.rng.randrange(5)
        src_ip, dst_ip = self._ip(), self._ip()

        if archetype == 0:
            # SYN scan
            return PacketRecord(
                src_ip, dst_ip, self.rng.randint(0, 65534), self._port(malicious=True),
                "TCP", packet_size=40, payload_size=0, ttl=64, flags="SYN",
            )
        if archetype == 1:
            # SYN+FIN malformado entre puertos privilegiados
            return PacketRecord(
                src_ip, dst_ip, self.rng.randint(0, 1023), self.rng.randint(0, 1023),
                "TCP", packet_size=60, payload_size=0, ttl=32, flags="SYN,FIN",
            )
        if archetype == 2:
            # ráfaga tipo exfiltración hacia un backdoor
            return PacketRecord(
                src_ip, dst_ip, self._ephemeral_port(), self.rng.choice(MALICIOUS_PORTS),
                "TCP", packet_size=1500, payload_size=1460, ttl=128, flags="PSH,ACK",
            )
        if archetype == 3:
            # NULL scan
            return PacketRecord(
                src_ip, dst_ip, self.rng.randint(0, 65534), 80,
                "TCP", packet_size=20, payload_size=0, ttl=255, flags="NULL",
            )
        return PacketRecord(
            src_ip, dst_ip, self._ephemeral_port(), 3389,
            "TCP", packet_size=1200, payload_size=50, ttl=45, flags="FIN,URG,PSH",
        )

    def generate(self) -> PacketRecord:
        if self.rng.random() < self.malicious_ratio:
            return self.generate_malicious()
        return self.generate_normal()
