from __future__ import annotations

import csv
import json
from pathlib import Path

from packet_sentinel.forensics.repository import ForensicsRepository


def export_detections_json(repository: ForensicsRepository, output: str | Path) -> int:
    rows = repository.export_json()
    Path(output).write_text(json.dumps(rows, ensure_ascii=False, indent=2), encoding="utf-8")
    return len(rows)


def export_detections_csv(repository: ForensicsRepository, output: str | Path) -> int:
    rows = repository.export_json()
    if not rows:
        Path(output).write_text("", encoding="utf-8")
        return 0

    for row in rows:
        row["features_vector"] = json.dumps(row["features_vector"], ensure_ascii=False)
    with Path(output).open("w", newline="", encoding="utf-8") as fh:
        writer = csv.DictWriter(fh, fieldnames=list(rows[0].keys()))
        writer.writeheader()
        writer.writerows(rows)
    return len(rows)
