from __future__ import annotations

import threading
import unittest

from clientwatch.observability.telemetry import (
    counter,
    get_latency_stats,
    reset_telemetry,
    time_block,
)


class TelemetryTests(unittest.TestCase):
    def setUp(self):
        reset_telemetry()

    def test_time_block_appends_ms_suffix(self):
        metric_name = "basecamp.request.latency"

        with time_block(metric_name):
            pass

        stats = get_latency_stats(metric_name)
        self.assertEqual(stats["count"], 1)
        self.assertEqual(get_latency_stats("basecamp.request.latency_ms")["count"], 1)
        self.assertGreaterEqual(stats["min"], 0.0)

    def test_time_block_respects_existing_suffix(self):
        metric_name = "scan.total_ms"

        with time_block(metric_name):
            pass

        stats = get_latency_stats(metric_name)
        self.assertEqual(stats["count"], 1)

    def test_time_block_records_on_exception(self):
        with self.assertRaises(RuntimeError):
            with time_block("scan.latency"):
                raise RuntimeError("boom")

        self.assertEqual(get_latency_stats("scan.latency")["count"], 1)

    def test_unknown_metric_has_empty_stats(self):
        self.assertEqual(
            get_latency_stats("never.recorded"),
            {"count": 0, "min": 0.0, "max": 0.0, "avg": 0.0},
        )

    def test_counter_increments(self):
        before = counter("test.counter", 0)
        counter("test.counter")
        after = counter("test.counter", 0)
        self.assertEqual(after, before + 1)

    def test_counter_is_thread_safe(self):
        def bump():
            for _ in range(500):
                counter("test.threaded")

        threads = [threading.Thread(target=bump) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(counter("test.threaded", 0), 2000)

    def test_reset_clears_counters(self):
        counter("test.reset", 5)
        reset_telemetry()
        self.assertEqual(counter("test.reset", 0), 0)


if __name__ == "__main__":
    unittest.main()
