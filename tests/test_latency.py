"""Tests for netq.latency -- sticky-host ICMP probing."""

import math
import unittest
from unittest import mock

from netq.latency import LatencyProber, parse_rtt, ping_command, summarize


class ScriptedLatencyProber(LatencyProber):
    """``replies`` maps host -> list of RTTs (None = timeout), consumed in order."""

    def __init__(self, replies):
        self.replies = {h: list(v) for h, v in replies.items()}
        self.sent = []

    async def _echo(self, host, timeout_ms):
        self.sent.append(host)
        queue = self.replies.get(host)
        if not queue:
            return None
        return queue.pop(0)


class TestParsing(unittest.TestCase):
    def test_linux_output(self):
        out = "64 bytes from 1.1.1.1: icmp_seq=1 ttl=57 time=12.4 ms"
        self.assertEqual(parse_rtt(out), 12.4)

    def test_windows_sub_millisecond(self):
        out = "Reply from 1.1.1.1: bytes=32 time<1ms TTL=57"
        self.assertEqual(parse_rtt(out), 1.0)

    def test_no_match(self):
        self.assertIsNone(parse_rtt("Request timed out."))

    def test_command_unix(self):
        with mock.patch("netq.latency.sys.platform", "linux"):
            self.assertEqual(ping_command("1.1.1.1", 900), ["ping", "-c", "1", "-W", "1", "1.1.1.1"])

    def test_command_windows(self):
        with mock.patch("netq.latency.sys.platform", "win32"):
            self.assertEqual(ping_command("1.1.1.1", 900), ["ping", "-n", "1", "-w", "900", "1.1.1.1"])


class TestSummarize(unittest.TestCase):
    def test_stats(self):
        r = summarize("h", [10.0, 20.0], 4)
        self.assertTrue(r.success)
        self.assertEqual(r.avg_ms, 15.0)
        self.assertEqual(r.jitter_ms, 7.1)
        self.assertEqual(r.loss_pct, 50.0)

    def test_no_replies(self):
        r = summarize("h", [], 4)
        self.assertFalse(r.success)
        self.assertTrue(math.isnan(r.avg_ms))
        self.assertEqual(r.loss_pct, 100.0)


class TestMeasureLatency(unittest.IsolatedAsyncioTestCase):
    async def test_preferred_host_first(self):
        prober = ScriptedLatencyProber({"9.9.9.9": [5.0, 6.0, 7.0], "1.1.1.1": [1.0] * 3})
        result = await prober.measure_latency(["1.1.1.1", "9.9.9.9"], "9.9.9.9", 3, 900)
        self.assertEqual(result.host, "9.9.9.9")
        self.assertEqual(result.avg_ms, 6.0)
        self.assertEqual(result.jitter_ms, 1.0)
        self.assertEqual(result.loss_pct, 0.0)
        self.assertEqual(prober.sent, ["9.9.9.9"] * 3)

    async def test_falls_through_to_next_host(self):
        prober = ScriptedLatencyProber({"8.8.8.8": [20.0, None, 22.0, None]})
        result = await prober.measure_latency(["1.1.1.1", "8.8.8.8"], None, 4, 900)
        self.assertTrue(result.success)
        self.assertEqual(result.host, "8.8.8.8")
        self.assertEqual(result.avg_ms, 21.0)
        self.assertEqual(result.loss_pct, 50.0)
        self.assertEqual(prober.sent, ["1.1.1.1", "8.8.8.8", "8.8.8.8", "8.8.8.8", "8.8.8.8"])

    async def test_all_hosts_silent(self):
        prober = ScriptedLatencyProber({})
        result = await prober.measure_latency(["1.1.1.1", "8.8.8.8"], "1.1.1.1", 8, 900)
        self.assertFalse(result.success)
        self.assertIsNone(result.host)
        self.assertTrue(math.isnan(result.avg_ms))
        self.assertTrue(math.isnan(result.jitter_ms))
        self.assertEqual(result.loss_pct, 100.0)
        # preferred host is not probed twice
        self.assertEqual(prober.sent, ["1.1.1.1", "8.8.8.8"])

    async def test_no_hosts(self):
        result = await ScriptedLatencyProber({}).measure_latency([], None, 8, 900)
        self.assertFalse(result.success)

    async def test_missing_ping_binary(self):
        prober = LatencyProber()
        with mock.patch("netq.latency.asyncio.create_subprocess_exec", side_effect=FileNotFoundError):
            self.assertIsNone(await prober._echo("1.1.1.1", 300))


if __name__ == "__main__":
    unittest.main()
