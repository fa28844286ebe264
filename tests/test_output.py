"""Unit tests for ui.output and ui.dashboard -- JSON, text, CSV and rendering."""

import json
import os
import tempfile
import unittest
from datetime import datetime, timezone

from rich.console import Console

from netq.config import Config
from netq.history import build_timeline
from netq.models import InterfaceInfo, LatencyResult, ProbeResult, Snapshot
from ui.dashboard import render_snapshot, timeline_chart
from ui.output import (
    create_snapshot_json,
    format_csv_header,
    format_csv_row,
    format_text_result,
    save_json,
)

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _make(**overrides):
    defaults = dict(
        timestamp_utc=T0,
        interface=InterfaceInfo(True, "eth0", "Ethernet", 1000.0),
        latency=LatencyResult(True, "1.1.1.1", 12.3, 1.2, 0.0),
        download=ProbeResult.ok(95.123, 12_000_000, 1010, "https://d"),
        upload=ProbeResult.ok(19.5, 2_400_000, 990, "https://u"),
        download_mbps=95.12,
        upload_mbps=19.5,
        latency_ms=12.3,
        jitter_ms=1.2,
        loss_pct=0.0,
        consistency_score=0.95,
        quality_score=84.6,
        tier="High",
        offline=False,
    )
    defaults.update(overrides)
    return Snapshot(**defaults)


def _offline():
    return Snapshot(timestamp_utc=T0, download=ProbeResult.fail("All download endpoints failed."))


class TestCreateSnapshotJson(unittest.TestCase):
    def test_basic_structure(self):
        r = create_snapshot_json(_make())
        for key in ("timestamp", "interface", "quality_score", "tier", "probes", "history"):
            self.assertIn(key, r)
        self.assertEqual(r["tier"], "High")
        self.assertEqual(r["probes"]["download"]["endpoint"], "https://d")
        self.assertEqual(r["latency_host"], "1.1.1.1")

    def test_nan_becomes_null(self):
        r = create_snapshot_json(_offline())
        self.assertIsNone(r["latency_ms"])
        self.assertIsNone(r["jitter_ms"])
        self.assertTrue(r["offline"])
        # must serialise as strict JSON
        json.loads(json.dumps(r, allow_nan=False))

    def test_timeline_included(self):
        r = create_snapshot_json(_make(), build_timeline([], T0, step=1.0))
        self.assertEqual(len(r["timeline"]), 61)
        self.assertIsNone(r["timeline"][0]["quality_score"])

    def test_timeline_omitted_by_default(self):
        self.assertNotIn("timeline", create_snapshot_json(_make()))


class TestSaveJson(unittest.TestCase):
    def test_round_trip(self):
        with tempfile.TemporaryDirectory() as d:
            path = os.path.join(d, "out.json")
            save_json(create_snapshot_json(_make()), path)
            with open(path) as fh:
                self.assertEqual(json.load(fh)["quality_score"], 84.6)
            self.assertEqual(os.listdir(d), ["out.json"])

    def test_missing_directory(self):
        with tempfile.TemporaryDirectory() as d:
            with self.assertRaises(OSError):
                save_json({}, os.path.join(d, "nope", "out.json"))


class TestFormatText(unittest.TestCase):
    def test_contains_metrics(self):
        text = format_text_result(_make())
        self.assertIn("Network Quality: 84.6 (High)", text)
        self.assertIn("Download: 95.12 Mbps", text)
        self.assertIn("Latency: 12.3 ms (jitter: 1.2 ms)", text)
        self.assertNotIn("error", text)

    def test_failure_reported(self):
        text = format_text_result(_offline())
        self.assertIn("Latency: n/a", text)
        self.assertIn("Download error: All download endpoints failed.", text)


class TestCsv(unittest.TestCase):
    def test_header_matches_row(self):
        self.assertEqual(
            len(format_csv_header().split(",")),
            len(format_csv_row(_make()).split(",")),
        )

    def test_row_values(self):
        row = format_csv_row(_make()).split(",")
        self.assertEqual(row[1], "eth0")
        self.assertEqual(row[2], "High")
        self.assertEqual(row[3], "84.6")
        self.assertEqual(row[4], "95.12")

    def test_nan_is_empty(self):
        row = format_csv_row(_offline()).split(",")
        self.assertEqual(row[6], "")
        self.assertEqual(row[7], "")


class TestDashboard(unittest.TestCase):
    def _render(self, panel):
        console = Console(width=100, record=True, color_system=None)
        console.print(panel)
        return console.export_text()

    def test_placeholder_before_first_sample(self):
        self.assertIn("Collecting first samples", self._render(render_snapshot(None, Config())))

    def test_renders_snapshot(self):
        text = self._render(render_snapshot(_make(), Config(), build_timeline([], T0)))
        self.assertIn("High", text)
        self.assertIn("95.12 Mbps", text)
        self.assertIn("eth0", text)

    def test_offline_renders(self):
        text = self._render(render_snapshot(_offline(), Config()))
        self.assertIn("Offline", text)
        self.assertIn("no interface", text)

    def test_chart_downsampled(self):
        chart = timeline_chart(build_timeline([], T0, step=0.2), width=60)
        self.assertLessEqual(len(chart), 61)
        self.assertEqual(timeline_chart([]), "")


if __name__ == "__main__":
    unittest.main()
