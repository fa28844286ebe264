"""
Output formatting -- JSON export, plain text, and CSV.
"""
from __future__ import annotations

import json
import math
import os
from typing import Any, Dict, List, Optional

from netq.models import Snapshot, TimelineSample
from netq.stats import format_latency, format_speed


def _json_float(value: float, digits: int) -> Optional[float]:
    if math.isnan(value):
        return None
    return round(value, digits)


def create_snapshot_json(
    snapshot: Snapshot,
    timeline: Optional[List[TimelineSample]] = None,
) -> Dict[str, Any]:
    """Build the JSON document printed by ``--json`` and ``--output``."""
    result = snapshot.to_dict()
    if timeline is not None:
        result["timeline"] = [
            {
                "offset_sec": round(s.offset_sec, 2),
                "quality_score": _json_float(s.quality_score, 1),
                "tier": s.tier,
                "download_mbps": _json_float(s.download_mbps, 2),
                "upload_mbps": _json_float(s.upload_mbps, 2),
                "latency_ms": _json_float(s.latency_ms, 1),
                "jitter_ms": _json_float(s.jitter_ms, 1),
                "loss_pct": _json_float(s.loss_pct, 1),
            }
            for s in timeline
        ]
    return result


def save_json(result: Dict[str, Any], filepath: str) -> None:
    """Write *result* to *filepath* atomically (write-tmp then rename)."""
    dir_path = os.path.dirname(filepath) or "."
    tmp = os.path.join(dir_path, f".tmp_{os.path.basename(filepath)}")

    try:
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(result, fh, indent=2, ensure_ascii=False)
        os.replace(tmp, filepath)
    except OSError as exc:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise OSError(f"Failed to save JSON to {filepath}: {exc}") from exc


# ---------------------------------------------------------------------------
# Plain-text / CSV helpers
# ---------------------------------------------------------------------------

def format_text_result(snapshot: Snapshot) -> str:
    sep = "=" * 50
    mid = "-" * 50
    lines = [
        sep,
        f"Network Quality: {snapshot.quality_score:.1f} ({snapshot.tier})",
        sep,
        f"Interface: {snapshot.interface.name} ({snapshot.interface.interface_type})",
        f"Latency host: {snapshot.latency_host}",
        mid,
        f"Latency: {format_latency(snapshot.latency_ms)} (jitter: {format_latency(snapshot.jitter_ms)})",
        f"Loss: {snapshot.loss_pct:.1f}%",
        f"Download: {format_speed(snapshot.download_mbps)}",
        f"Upload: {format_speed(snapshot.upload_mbps)}",
        f"Consistency: {snapshot.consistency_score * 100:.0f}%",
    ]
    if snapshot.last_download_error and not snapshot.download.success:
        lines.append(f"Download error: {snapshot.last_download_error}")
    if snapshot.last_upload_error and not snapshot.upload.success:
        lines.append(f"Upload error: {snapshot.last_upload_error}")
    lines.append(sep)
    return "\n".join(lines)


def format_csv_header() -> str:
    return "timestamp,interface,tier,quality_score,download_mbps,upload_mbps,latency_ms,jitter_ms,loss_pct"


def format_csv_row(snapshot: Snapshot) -> str:
    def _num(value: float, fmt: str) -> str:
        return "" if math.isnan(value) else format(value, fmt)

    return ",".join([
        snapshot.timestamp_utc.isoformat(),
        snapshot.interface.name,
        snapshot.tier,
        f"{snapshot.quality_score:.1f}",
        f"{snapshot.download_mbps:.2f}",
        f"{snapshot.upload_mbps:.2f}",
        _num(snapshot.latency_ms, ".1f"),
        _num(snapshot.jitter_ms, ".1f"),
        f"{snapshot.loss_pct:.1f}",
    ])
