"""Tests for netq.scoring -- score, tier and probe cadence."""

import math
import unittest

from netq.config import Config
from netq.scoring import (
    consistency_score,
    decay_stale_value,
    linear_ramp,
    normalize_log_scale,
    resolve_tier,
    score_quality,
    speed_interval_for,
)

NAN = float("nan")


class TestComponents(unittest.TestCase):
    def test_log_scale_reference_is_one(self):
        self.assertAlmostEqual(normalize_log_scale(200.0, 200.0), 1.0)

    def test_log_scale_clamped(self):
        self.assertEqual(normalize_log_scale(5000.0, 200.0), 1.0)
        self.assertEqual(normalize_log_scale(0.0, 200.0), 0.0)
        self.assertEqual(normalize_log_scale(NAN, 200.0), 0.0)

    def test_linear_ramp(self):
        self.assertEqual(linear_ramp(0.0, 180.0), 1.0)
        self.assertAlmostEqual(linear_ramp(90.0, 180.0), 0.5)
        self.assertEqual(linear_ramp(400.0, 180.0), 0.0)
        self.assertEqual(linear_ramp(NAN, 180.0), 0.0)

    def test_decay_half_life(self):
        self.assertAlmostEqual(decay_stale_value(100.0, 45.0), 50.0)
        self.assertAlmostEqual(decay_stale_value(100.0, 90.0), 25.0)

    def test_decay_fresh_or_empty(self):
        self.assertEqual(decay_stale_value(100.0, 0.0), 100.0)
        self.assertEqual(decay_stale_value(0.0, 30.0), 0.0)


class TestConsistency(unittest.TestCase):
    def test_steady_windows(self):
        self.assertAlmostEqual(consistency_score([50.0, 50.0], [10.0, 10.0], [1.0, 1.0]), 1.0)

    def test_empty_windows_are_stable(self):
        self.assertAlmostEqual(consistency_score([], [], []), 1.0)

    def test_failures_lower_score(self):
        value = consistency_score([50.0, 50.0], [10.0, 10.0], [1.0, 0.0])
        self.assertAlmostEqual(value, (1.0 + 1.0 + 0.5) / 3.0)

    def test_zero_mean_window(self):
        value = consistency_score([0.0, 0.0], [10.0, 10.0], [1.0])
        self.assertAlmostEqual(value, 2.0 / 3.0)

    def test_erratic_window_saturates(self):
        value = consistency_score([1.0, 100.0, 1.0, 100.0], [10.0], [1.0])
        self.assertAlmostEqual(value, 2.0 / 3.0)


class TestScoreQuality(unittest.TestCase):
    def setUp(self):
        self.config = Config().normalized()

    def test_healthy_link_is_high(self):
        score, tier = score_quality(100.0, 20.0, 20.0, 2.0, 0.0, 1.0, False, False, self.config)
        self.assertGreaterEqual(score, 70.0)
        self.assertAlmostEqual(score, 87.8)
        self.assertEqual(tier, "High")

    def test_offline(self):
        self.assertEqual(
            score_quality(100.0, 20.0, 20.0, 2.0, 0.0, 1.0, True, False, self.config),
            (0.0, "Offline"),
        )

    def test_paused_holds_previous(self):
        self.assertEqual(
            score_quality(0.0, 0.0, NAN, NAN, 100.0, 0.0, False, True, self.config, previous_score=64.2),
            (64.2, "Paused"),
        )

    def test_paused_wins_over_offline(self):
        self.assertEqual(
            score_quality(0.0, 0.0, NAN, NAN, 100.0, 0.0, True, True, self.config)[1],
            "Paused",
        )

    def test_nothing_measured(self):
        score, tier = score_quality(0.0, 0.0, NAN, NAN, 100.0, 0.0, False, False, self.config)
        self.assertEqual(score, 0.0)
        self.assertEqual(tier, "Bad")

    def test_score_bounded(self):
        score, _ = score_quality(1e6, 1e6, 0.0, 0.0, 0.0, 5.0, False, False, self.config)
        self.assertEqual(score, 100.0)
        self.assertFalse(math.isnan(score))


class TestTiers(unittest.TestCase):
    def setUp(self):
        self.config = Config().normalized()

    def test_boundaries(self):
        self.assertEqual(resolve_tier(70.0, False, self.config), "High")
        self.assertEqual(resolve_tier(69.9, False, self.config), "Poor")
        self.assertEqual(resolve_tier(45.0, False, self.config), "Poor")
        self.assertEqual(resolve_tier(44.9, False, self.config), "VeryPoor")
        self.assertEqual(resolve_tier(25.0, False, self.config), "VeryPoor")
        self.assertEqual(resolve_tier(24.9, False, self.config), "Bad")

    def test_offline(self):
        self.assertEqual(resolve_tier(99.0, True, self.config), "Offline")

    def test_custom_thresholds(self):
        config = Config(quality_high_min_score=90).normalized()
        self.assertEqual(resolve_tier(80.0, False, config), "Poor")


class TestCadence(unittest.TestCase):
    def setUp(self):
        self.config = Config().normalized()

    def test_intervals(self):
        self.assertEqual(speed_interval_for(85.0, False, self.config), 30)
        self.assertEqual(speed_interval_for(55.0, False, self.config), 18)
        self.assertEqual(speed_interval_for(20.0, False, self.config), 10)

    def test_offline_is_poor_cadence(self):
        self.assertEqual(speed_interval_for(85.0, True, self.config), 10)


if __name__ == "__main__":
    unittest.main()
