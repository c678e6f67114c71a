"""JSON and CSV export for scan results."""

from __future__ import annotations

import csv
import io
import json
from typing import Iterable

from cdnspeed.models import CSV_HEADERS, IPResult, ScanResult


def export_csv(results: Iterable[IPResult]) -> str:
    """Export results as CSV string (one row per address)."""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_HEADERS)
    for r in results:
        writer.writerow(r.to_row())
    return output.getvalue()


def export_json(result: ScanResult, indent: int = 2) -> str:
    """Export a scan as JSON string."""
    data = {
        "config": {
            "mode": "http" if result.config.httping else "tcp",
            "port": result.config.effective_port,
            "url": result.config.url,
            "ping_times": result.config.effective_ping_times,
            "max_delay_ms": result.config.max_delay_ms,
            "min_delay_ms": result.config.min_delay_ms,
            "max_loss_rate": result.config.max_loss_rate,
            "min_speed": result.config.min_speed,
            "test_count": result.config.effective_test_count,
            "download_disabled": result.config.disable_download,
        },
        "candidates": result.candidate_count,
        "reachable": result.probed_count,
        "results": [_result_to_dict(r) for r in result.results],
    }
    return json.dumps(data, indent=indent)


def write_to_file(content: str, filepath: str) -> None:
    """Write export content to a file."""
    with open(filepath, "w", encoding="utf-8", newline="") as f:
        f.write(content)


def _result_to_dict(r: IPResult) -> dict:
    delay = r.delay_ms
    return {
        "address": str(r.address),
        "sent": r.sent,
        "received": r.received,
        "loss_rate": round(r.loss_rate, 4),
        "delay_ms": round(delay, 2) if delay is not None else None,
        "download_speed_mb": round(r.speed_mb, 2),
        "colo": r.colo,
    }
