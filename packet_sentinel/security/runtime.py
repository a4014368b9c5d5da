from __future__ import annotations

import os


class PrivilegeError(RuntimeError):
    """Raised when capture mode needs elevated privileges."""


def enforce_live_capture_privileges(interface: str, replay_pcap: str | None, simulate: bool = False) -> None:
    """Require root for live sniffing only.

    Simulated traffic and PCAP replay run unprivileged, as do the HTTP service
    and the export commands.
    """

    if simulate or replay_pcap:
        return
    if interface.lower() in {"", "none", "offline"}:
        return
    if os.geteuid() != 0:
        raise PrivilegeError(
            "La captura en vivo requiere privilegios elevados (root o CAP_NET_RAW/CAP_NET_ADMIN). "
            "Use --simulate o modo replay para análisis sin privilegios."
        )
