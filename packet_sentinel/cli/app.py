from __future__ import annotations

import argparse
import asyncio
import json
import random
import sys
from dataclasses import asdict, replace
from pathlib import Path

from packet_sentinel.analysis.stats import DetectionStats
from packet_sentinel.capture.simulator import PacketGenerator
from packet_sentinel.config.settings import AppSettings, SettingsLoader
from packet_sentinel.core.logging_setup import configure_logging
from packet_sentinel.core.orchestrator import run_default
from packet_sentinel.detection.engine import DetectionConfig, HeuristicDetectionEngine
from packet_sentinel.forensics.exporters import export_detections_csv, export_detections_json
from packet_sentinel.forensics.repository import ForensicsRepository
from packet_sentinel.models.events import PacketPayloadError, PacketRecord
from packet_sentinel.security.runtime import PrivilegeError, enforce_live_capture_privileges
from packet_sentinel.security.validators import validate_capture_filter


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="packet-sentinel", description="Clasificador heurístico de amenazas por paquete")
    parser.add_argument("--config", default="packet_sentinel.yaml", help="Ruta del archivo YAML")

    sub = parser.add_subparsers(dest="command", required=False)

    sub.add_parser("init-config", help="Genera YAML por defecto")
    sub.add_parser("quickstart", help="Prepara configuración inicial y levanta la API")

    p_classify = sub.add_parser("classify", help="Clasifica un paquete JSON (inline o @archivo)")
    p_classify.add_argument("packet", help='JSON del paquete, p.ej. \'{"source_ip": ...}\' o @paquete.json')

    p_sim = sub.add_parser("simulate", help="Genera y clasifica tráfico sintético sin persistir")
    p_sim.add_argument("--count", type=int, default=20)
    p_sim.add_argument("--seed", type=int, default=None)

    p_run = sub.add_parser("run", help="Pipeline captura -> detección -> persistencia")
    p_run.add_argument("--max-packets", type=int, default=500)
    p_run.add_argument("--simulate", action="store_true", help="Usa el generador sintético como fuente")
    p_run.add_argument("--replay", default=None, help="Reproduce un archivo PCAP")

    p_serve = sub.add_parser("serve", help="Levanta la API HTTP/WebSocket")
    p_serve.add_argument("--host", default=None)
    p_serve.add_argument("--port", type=int, default=None)

    sub.add_parser("stats", help="Estadísticas agregadas de la base")

    p_export = sub.add_parser("export-detections", help="Exporta detecciones")
    p_export.add_argument("--output", required=True)
    p_export.add_argument("--format", choices=("json", "csv"), default="json")
    return parser


def _ensure_config(config_path: str) -> None:
    config_file = Path(config_path)
    if config_file.exists():
        return
    SettingsLoader.dump_default(config_path)
    print(f"[quickstart] Configuración base creada en {config_path}")


def _load_settings(config_path: str) -> AppSettings:
    if Path(config_path).exists():
        return SettingsLoader.load(config_path)
    return AppSettings()


def _read_packet(raw: str) -> PacketRecord:
    text = Path(raw[1:]).read_text(encoding="utf-8") if raw.startswith("@") else raw
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise PacketPayloadError(f"JSON inválido: {exc.msg}") from exc
    if isinstance(data, dict) and "packet" in data:
        data = data["packet"]
    return PacketRecord.from_mapping(data)


def _serve(settings: AppSettings, host: str | None, port: int | None) -> None:
    import uvicorn

    from packet_sentinel.service.api import create_app

    uvicorn.run(
        create_app(settings),
        host=host or settings.api.host,
        port=port or settings.api.port,
        log_config=None,
    )


def _simulate(settings: AppSettings, count: int, seed: int | None) -> None:
    config = DetectionConfig(**asdict(settings.detection))
    if seed is not None:
        config.random_seed = seed
    engine = HeuristicDetectionEngine(config)
    generator = PacketGenerator(rng=random.Random(seed), malicious_ratio=settings.capture.malicious_ratio)
    stats = DetectionStats()

    for _ in range(count):
        packet = generator.generate()
        outcome = engine.classify(packet)
        stats.record(outcome)
        print(json.dumps({"packet": packet.to_dict(), **outcome.to_dict()}, ensure_ascii=False))
    print(json.dumps({"summary": stats.snapshot().to_dict()}, ensure_ascii=False))


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    command = args.command or "quickstart"

    if command == "quickstart":
        _ensure_config(args.config)
        command = "serve"
        args.host = args.port = None

    if command == "init-config":
        SettingsLoader.dump_default(args.config)
        print(f"Configuración creada en {args.config}")
        return

    settings = _load_settings(args.config)
    configure_logging(settings.log_level, stream=sys.stderr)

    if command == "classify":
        try:
            packet = _read_packet(args.packet)
        except (PacketPayloadError, OSError) as exc:
            parser.error(str(exc))
        engine = HeuristicDetectionEngine(DetectionConfig(**asdict(settings.detection)))
        print(json.dumps(engine.classify(packet).to_dict(), ensure_ascii=False, indent=2))
    elif command == "simulate":
        _simulate(settings, args.count, args.seed)
    elif command == "run":
        capture = settings.capture
        if args.simulate or args.replay:
            capture = replace(capture, simulate=args.simulate or capture.simulate, replay_pcap=args.replay or capture.replay_pcap)
            settings = replace(settings, capture=capture)
        if capture.bpf_filter and not validate_capture_filter(capture.bpf_filter):
            parser.error(f"Filtro BPF no permitido: {capture.bpf_filter!r}")
        try:
            enforce_live_capture_privileges(capture.interface, capture.replay_pcap, capture.simulate)
        except PrivilegeError as exc:
            parser.error(str(exc))

        asyncio.run(run_default(settings, max_packets=args.max_packets))
    elif command == "serve":
        _serve(settings, args.host, args.port)
    elif command == "stats":
        summary = ForensicsRepository(settings.database.sqlite_path).summary()
        print(json.dumps(summary.to_dict(), ensure_ascii=False, indent=2))
    elif command == "export-detections":
        repository = ForensicsRepository(settings.database.sqlite_path)
        if args.format == "csv":
            total = export_detections_csv(repository, args.output)
        else:
            total = export_detections_json(repository, args.output)
        print(f"Detecciones exportadas ({total}): {args.output}")


if __name__ == "__main__":
    main()
