"""Tests for netq.history -- per-second history and the resampled timeline."""

import math
import unittest
from datetime import datetime, timedelta, timezone

from netq.history import QualityHistory, align_to_next_second, build_timeline, sparkline
from netq.models import Snapshot

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _snap(score=80.0, tier="High", down=100.0):
    return Snapshot(
        timestamp_utc=T0,
        quality_score=score,
        tier=tier,
        offline=False,
        download_mbps=down,
        upload_mbps=20.0,
        latency_ms=15.0,
        jitter_ms=1.5,
        loss_pct=0.0,
    )


def _fill(history, seconds, score=80.0):
    for s in range(seconds + 1):
        history.record_tick(_snap(score), T0 + timedelta(seconds=s))


class TestAlign(unittest.TestCase):
    def test_rounds_up(self):
        ts = T0 + timedelta(milliseconds=300)
        self.assertEqual(align_to_next_second(ts), T0 + timedelta(seconds=1))

    def test_whole_second_unchanged(self):
        self.assertEqual(align_to_next_second(T0), T0)


class TestRecordTick(unittest.TestCase):
    def setUp(self):
        self.history = QualityHistory()

    def test_one_point_per_second(self):
        self.assertEqual(self.history.record_tick(_snap(), T0), 1)
        self.assertEqual(self.history.record_tick(_snap(), T0 + timedelta(milliseconds=500)), 0)
        self.assertEqual(self.history.record_tick(_snap(), T0 + timedelta(seconds=1)), 1)
        self.assertEqual(len(self.history), 2)

    def test_gap_is_back_filled(self):
        self.history.record_tick(_snap(), T0)
        self.assertEqual(self.history.record_tick(_snap(), T0 + timedelta(seconds=5)), 5)
        stamps = [p.timestamp_utc for p in self.history.points()]
        self.assertEqual(stamps, [T0 + timedelta(seconds=s) for s in range(6)])

    def test_trailing_window_kept(self):
        _fill(self.history, 90)
        points = self.history.points()
        self.assertEqual(len(points), 61)
        self.assertEqual(points[0].timestamp_utc, T0 + timedelta(seconds=30))

    def test_long_stall_only_fills_window(self):
        self.history.record_tick(_snap(), T0)
        self.history.record_tick(_snap(), T0 + timedelta(seconds=200))
        points = self.history.points()
        self.assertEqual(len(points), 61)
        self.assertEqual(points[0].timestamp_utc, T0 + timedelta(seconds=140))

    def test_version_changes_on_append(self):
        before = self.history.version
        self.history.record_tick(_snap(), T0)
        self.assertGreater(self.history.version, before)

    def test_prune(self):
        _fill(self.history, 10)
        self.assertEqual(self.history.prune(T0 + timedelta(seconds=65)), 5)
        self.assertEqual(len(self.history), 6)


class TestTimeline(unittest.TestCase):
    def test_empty_history_spans_window(self):
        samples = build_timeline([], T0, step=0.2)
        self.assertEqual(len(samples), 301)
        self.assertEqual(samples[0].offset_sec, 0.0)
        self.assertEqual(samples[-1].offset_sec, 60.0)
        self.assertTrue(all(math.isnan(s.quality_score) for s in samples))

    def test_invalid_step(self):
        with self.assertRaises(ValueError):
            build_timeline([], T0, step=0.0)

    def test_no_data_before_first_point(self):
        history = QualityHistory()
        _fill(history, 10)
        samples = history.timeline(T0 + timedelta(seconds=10), step=0.2)
        self.assertEqual(len(samples), 301)
        self.assertEqual(sum(1 for s in samples if not s.has_data), 250)
        self.assertTrue(samples[250].has_data)
        self.assertAlmostEqual(samples[-1].quality_score, 80.0)
        self.assertEqual(samples[-1].tier, "High")
        self.assertAlmostEqual(samples[-1].download_mbps, 100.0)

    def test_interpolates_between_points(self):
        history = QualityHistory()
        history.record_tick(_snap(down=100.0), T0)
        history.record_tick(_snap(down=200.0), T0 + timedelta(seconds=1))
        samples = history.timeline(T0 + timedelta(seconds=1), step=0.5)
        # offsets 59.0, 59.5, 60.0 map to T0, T0+0.5s, T0+1s
        self.assertAlmostEqual(samples[-3].download_mbps, 100.0)
        self.assertAlmostEqual(samples[-2].download_mbps, 150.0)
        self.assertAlmostEqual(samples[-1].download_mbps, 200.0)

    def test_score_clamped_to_range(self):
        history = QualityHistory()
        for s in range(12):
            score = 100.0 if s % 3 == 0 else 0.0
            history.record_tick(_snap(score=score), T0 + timedelta(seconds=s))
        samples = history.timeline(T0 + timedelta(seconds=11), step=0.1)
        scores = [s.quality_score for s in samples if s.has_data]
        self.assertTrue(scores)
        self.assertTrue(all(0.0 <= v <= 100.0 for v in scores))

    def test_cached_until_version_changes(self):
        history = QualityHistory()
        _fill(history, 3)
        now = T0 + timedelta(seconds=3)
        first = history.timeline(now)
        self.assertEqual(history.timeline(now + timedelta(milliseconds=50)), first)

        history.record_tick(_snap(score=10.0), T0 + timedelta(seconds=4))
        refreshed = history.timeline(T0 + timedelta(seconds=4))
        self.assertAlmostEqual(refreshed[-1].quality_score, 10.0)


class TestSparkline(unittest.TestCase):
    def test_gaps_render_blank(self):
        self.assertEqual(sparkline([0.0, float("nan"), 10.0]), "▁ █")

    def test_all_missing(self):
        self.assertEqual(sparkline([float("nan")] * 3), "   ")


if __name__ == "__main__":
    unittest.main()
