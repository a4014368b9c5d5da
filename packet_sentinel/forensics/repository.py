from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from packet_sentinel.analysis.stats import SystemStats
from packet_sentinel.models.events import ClassificationOutcome, PacketRecord

logger = logging.getLogger(__name__)

DETECTION_STATUSES = frozenset({"new", "investigating", "resolved", "false_positive"})


class PersistenceError(RuntimeError):
    """Raised when the SQLite store rejects a read or write."""


class ForensicsRepository:
    """Almacén SQLite de paquetes y detecciones enlazadas (packet_id)."""

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_db(self) -> None:
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS network_packets (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        ts TEXT NOT NULL,
                        source_ip TEXT NOT NULL,
                        dest_ip TEXT NOT NULL,
                        source_port INTEGER NOT NULL,
                        dest_port INTEGER NOT NULL,
                        protocol TEXT NOT NULL,
                        packet_size INTEGER NOT NULL,
                        payload_size INTEGER NOT NULL,
                        ttl INTEGER NOT NULL,
                        flags TEXT
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS threat_detections (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        packet_id INTEGER NOT NULL REFERENCES network_packets(id),
                        threat_type TEXT NOT NULL,
                        confidence_score REAL NOT NULL,
                        severity TEXT NOT NULL,
                        is_malicious INTEGER NOT NULL,
                        features_vector TEXT NOT NULL,
                        model_version TEXT NOT NULL,
                        detected_at TEXT NOT NULL,
                        status TEXT NOT NULL DEFAULT 'new',
                        prev_hash TEXT,
                        record_hash TEXT NOT NULL
                    )
                    """
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"No se pudo inicializar la base {self.db_path}: {exc}") from exc

    @staticmethod
    def _record_hash(detected_at: str, packet_id: int, threat_type: str, confidence: float, prev_hash: str) -> str:
        raw = f"{detected_at}|{packet_id}|{threat_type}|{confidence!r}|{prev_hash}"
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    def save_packet(self, packet: PacketRecord) -> int:
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO network_packets
                        (ts, source_ip, dest_ip, source_port, dest_port, protocol, packet_size, payload_size, ttl, flags)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        packet.timestamp.isoformat(),
                        packet.source_ip,
                        packet.dest_ip,
                        packet.source_port,
                        packet.dest_port,
                        packet.protocol,
                        packet.packet_size,
                        packet.payload_size,
                        packet.ttl,
                        packet.flags,
                    ),
                )
                return int(cursor.lastrowid)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Fallo al guardar paquete: {exc}") from exc

    def save_detection(self, packet_id: int, outcome: ClassificationOutcome, model_version: str) -> int:
        result = outcome.result
        detected_at = datetime.now(tz=timezone.utc).isoformat()
        try:
            with self._connect() as conn:
                row = conn.execute("SELECT record_hash FROM threat_detections ORDER BY id DESC LIMIT 1").fetchone()
                prev_hash = row[0] if row else ""
                record_hash = self._record_hash(
                    detected_at, packet_id, result.threat_type.value, result.confidence, prev_hash
                )
                cursor = conn.execute(
                    """
                    INSERT INTO threat_detections
                        (packet_id, threat_type, confidence_score, severity, is_malicious, features_vector,
                         model_version, detected_at, prev_hash, record_hash)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        packet_id,
                        result.threat_type.value,
                        result.confidence,
                        result.severity.value,
                        int(result.is_malicious),
                        json.dumps(outcome.features.to_dict(), ensure_ascii=False),
                        model_version,
                        detected_at,
                        prev_hash,
                        record_hash,
                    ),
                )
                return int(cursor.lastrowid)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Fallo al guardar detección del paquete {packet_id}: {exc}") from exc

    def update_status(self, detection_id: int, status: str) -> bool:
        if status not in DETECTION_STATUSES:
            raise ValueError(f"Estado desconocido: {status}")
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    "UPDATE threat_detections SET status = ? WHERE id = ?", (status, detection_id)
                )
                return cursor.rowcount > 0
        except sqlite3.Error as exc:
            raise PersistenceError(f"Fallo al actualizar detección {detection_id}: {exc}") from exc

    def recent_detections(self, limit: int = 20) -> list[dict[str, Any]]:
        try:
            with self._connect() as conn:
                conn.row_factory = sqlite3.Row
                rows = conn.execute(
                    """
                    SELECT d.id, d.packet_id, d.threat_type, d.confidence_score, d.severity, d.is_malicious,
                           d.detected_at, d.status, p.source_ip, p.dest_ip, p.dest_port, p.protocol
                    FROM threat_detections d
                    JOIN network_packets p ON p.id = d.packet_id
                    ORDER BY d.id DESC
                    LIMIT ?
                    """,
                    (limit,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Fallo al leer detecciones recientes: {exc}") from exc
        return [{**dict(row), "is_malicious": bool(row["is_malicious"])} for row in rows]

    def summary(self, top_n: int = 5) -> SystemStats:
        try:
            with self._connect() as conn:
                total_packets = conn.execute("SELECT COUNT(*) FROM network_packets").fetchone()[0]
                threats, false_positives, avg_confidence = conn.execute(
                    """
                    SELECT
                        COALESCE(SUM(is_malicious), 0),
                        COALESCE(SUM(CASE WHEN status = 'false_positive' AND is_malicious = 1 THEN 1 ELSE 0 END), 0),
                        AVG(confidence_score)
                    FROM threat_detections
                    """
                ).fetchone()
                top = conn.execute(
                    """
                    SELECT threat_type, COUNT(*) AS hits
                    FROM threat_detections
                    WHERE is_malicious = 1
                    GROUP BY threat_type
                    ORDER BY hits DESC, threat_type ASC
                    LIMIT ?
                    """,
                    (top_n,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Fallo al calcular el resumen: {exc}") from exc

        return SystemStats(
            total_packets=total_packets,
            threats_detected=threats,
            detection_rate=threats / total_packets if total_packets else 0.0,
            false_positive_rate=false_positives / threats if threats else 0.0,
            avg_confidence=avg_confidence or 0.0,
            top_threat_types={threat_type: hits for threat_type, hits in top},
        )

    def export_json(self) -> list[dict[str, Any]]:
        try:
            with self._connect() as conn:
                conn.row_factory = sqlite3.Row
                rows = conn.execute("SELECT * FROM threat_detections ORDER BY id ASC").fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Fallo al exportar detecciones: {exc}") from exc
        exported = []
        for row in rows:
            item = dict(row)
            item["is_malicious"] = bool(item["is_malicious"])
            item["features_vector"] = json.loads(item["features_vector"])
            exported.append(item)
        return exported

    def verify_chain(self) -> bool:
        prev_hash = ""
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    """
                    SELECT detected_at, packet_id, threat_type, confidence_score, prev_hash, record_hash
                    FROM threat_detections ORDER BY id ASC
                    """
                ).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Fallo al verificar la cadena de detecciones: {exc}") from exc
        for detected_at, packet_id, threat_type, confidence, stored_prev, record_hash in rows:
            if (stored_prev or "") != prev_hash:
                logger.warning("Cadena de detecciones rota antes de %s", record_hash)
                return False
            if self._record_hash(detected_at, packet_id, threat_type, confidence, prev_hash) != record_hash:
                logger.warning("Hash de detección alterado: %s", record_hash)
                return False
            prev_hash = record_hash
        return True
