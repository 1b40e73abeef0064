from __future__ import annotations

import unittest

from dailydrop.observability.telemetry import (
    counter,
    get_counters,
    get_latency_stats,
    reset_telemetry,
    time_block,
)


class TelemetryTests(unittest.TestCase):
    def setUp(self):
        reset_telemetry()

    def test_time_block_appends_ms_suffix(self):
        metric_name = "analysis.llm.latency"

        with time_block(metric_name):
            pass

        stats = get_latency_stats(metric_name)
        self.assertEqual(stats["count"], 1)
        self.assertEqual(get_latency_stats("analysis.llm.latency_ms")["count"], 1)
        self.assertGreaterEqual(stats["p95"], 0.0)

    def test_time_block_respects_existing_suffix(self):
        metric_name = "pipeline.total_ms"

        with time_block(metric_name):
            pass

        stats = get_latency_stats(metric_name)
        self.assertEqual(stats["count"], 1)

    def test_time_block_records_when_body_raises(self):
        with self.assertRaises(ValueError), time_block("analysis.pipeline.latency"):
            raise ValueError("boom")

        self.assertEqual(get_latency_stats("analysis.pipeline.latency")["count"], 1)

    def test_empty_stats(self):
        self.assertEqual(get_latency_stats("never.recorded")["count"], 0)

    def test_counter_increments(self):
        before = counter("test.counter", 0)
        counter("test.counter")
        after = counter("test.counter", 0)
        self.assertEqual(after, before + 1)

    def test_reset_clears_counters(self):
        counter("analysis.created")
        reset_telemetry()
        self.assertEqual(get_counters(), {})


if __name__ == "__main__":
    unittest.main()
