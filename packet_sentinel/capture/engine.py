from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, AsyncIterator, Literal

from packet_sentinel.capture.simulator import PacketGenerator
from packet_sentinel.models.events import PacketRecord

logger = logging.getLogger(__name__)
CaptureStatus = Literal["live", "replay", "simulated", "error"]

# Orden en que se serializan los bits del campo de flags TCP.
TCP_FLAG_BITS = (
    ("SYN", 0x02),
    ("ACK", 0x10),
    ("FIN", 0x01),
    ("RST", 0x04),
    ("PSH", 0x08),
    ("URG", 0x20),
    ("ECE", 0x40),
    ("CWR", 0x80),
)


class CaptureRuntimeError(RuntimeError):
    """Raised when capture runtime cannot initialize in the requested mode."""


def resolve_capture_status(interface: str, replay_pcap: str | None, simulate: bool) -> CaptureStatus:
    if simulate:
        return "simulated"
    if replay_pcap:
        return "replay"
    if interface.lower() in {"", "none", "offline"}:
        return "error"
    return "live"


def tcp_flags_to_text(value: int) -> str:
    if value == 0:
        return "NULL"
    return ",".join(name for name, bit in TCP_FLAG_BITS if value & bit)


def packet_from_scapy(pkt: Any) -> PacketRecord | None:
    """Normaliza un paquete scapy con capa IP; devuelve None para tramas no IP."""
    from scapy.layers.inet import ICMP, IP, TCP, UDP  # type: ignore

    if IP not in pkt:
        return None
    ip = pkt[IP]
    src_port = dst_port = 0
    flags: str | None = None
    transport = ip

    if TCP in ip:
        transport = ip[TCP]
        src_port, dst_port = int(transport.sport), int(transport.dport)
        flags = tcp_flags_to_text(int(transport.flags))
        protocol = "TCP"
    elif UDP in ip:
        transport = ip[UDP]
        src_port, dst_port = int(transport.sport), int(transport.dport)
        protocol = "UDP"
    elif ICMP in ip:
        transport = ip[ICMP]
        protocol = "ICMP"
    else:
        protocol = str(ip.proto)

    return PacketRecord(
        source_ip=str(ip.src),
        dest_ip=str(ip.dst),
        source_port=src_port,
        dest_port=dst_port,
        protocol=protocol,
        packet_size=len(ip),
        payload_size=len(bytes(transport.payload)),
        ttl=int(ip.ttl),
        flags=flags,
    )


class PacketCaptureEngine:
    """Motor de captura con modos explícitos (live/replay/simulated)."""

    def __init__(
        self,
        interface: str = "any",
        bpf_filter: str = "",
        replay_pcap: str | None = None,
        simulate: bool = False,
        generator: PacketGenerator | None = None,
        simulate_interval_s: float = 0.1,
    ) -> None:
        self.interface = interface
        self.bpf_filter = bpf_filter
        self.replay_pcap = replay_pcap
        self.simulate = simulate
        self.generator = generator or PacketGenerator()
        self.simulate_interval_s = simulate_interval_s
        self.capture_status: CaptureStatus = resolve_capture_status(interface, replay_pcap, simulate)

    def _set_error_status(self) -> None:
        self.capture_status = "error"

    def _require_scapy(self) -> None:
        try:
            import scapy.all  # noqa: F401
        except ImportError as exc:
            self._set_error_status()
            raise CaptureRuntimeError(
                "No se pudo iniciar captura operativa: Scapy/libpcap no está disponible. "
                "Instale el extra 'capture' o use --simulate para tráfico sintético explícito."
            ) from exc

    async def _stream_simulated(self) -> AsyncIterator[PacketRecord]:
        self.capture_status = "simulated"
        logger.warning("Captura en modo simulación explícita")
        while True:
            await asyncio.sleep(self.simulate_interval_s)
            yield self.generator.generate()

    async def _stream_replay(self) -> AsyncIterator[PacketRecord]:
        self._require_scapy()
        replay_path = Path(self.replay_pcap or "")
        if not replay_path.exists():
            self._set_error_status()
            raise CaptureRuntimeError(f"Archivo PCAP no encontrado: {replay_path}")

        from scapy.utils import PcapReader  # type: ignore

        self.capture_status = "replay"
        logger.info("Captura en modo replay desde %s", replay_path)
        with PcapReader(str(replay_path)) as reader:
            for pkt in reader:
                packet = packet_from_scapy(pkt)
                if packet is None:
                    logger.debug("Trama sin capa IP descartada en replay")
                else:
                    yield packet
                await asyncio.sleep(0)

    async def _stream_live(self) -> AsyncIterator[PacketRecord]:
        self._require_scapy()
        from scapy.all import AsyncSniffer  # type: ignore

        queue: asyncio.Queue[PacketRecord] = asyncio.Queue(maxsize=2000)
        loop = asyncio.get_running_loop()

        def on_packet(pkt: object) -> None:
            packet = packet_from_scapy(pkt)
            if packet is not None:
                loop.call_soon_threadsafe(queue.put_nowait, packet)

        sniffer = AsyncSniffer(iface=self.interface, filter=self.bpf_filter or None, prn=on_packet, store=False)

        try:
            sniffer.start()
            self.capture_status = "live"
            logger.info("Captura iniciada en %s", self.interface)
            while True:
                yield await queue.get()
        except OSError as exc:
            self._set_error_status()
            raise CaptureRuntimeError(
                "Fallo al iniciar captura en vivo. Verifique interfaz, permisos y soporte libpcap."
            ) from exc
        finally:
            if sniffer.running:
                sniffer.stop()

    async def stream(self) -> AsyncIterator[PacketRecord]:
        if self.simulate:
            async for packet in self._stream_simulated():
                yield packet
            return
        if self.replay_pcap:
            async for packet in self._stream_replay():
                yield packet
            return
        async for packet in self._stream_live():
            yield packet
