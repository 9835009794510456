"""
Tests for Performance Monitoring and Logging
============================================
"""

import logging
import sys
import time
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from modules.utils.logger import PredictionLogger, log_timing, setup_logging
from modules.utils.performance_monitor import PerformanceMonitor, STAGES


class TestPerformanceMonitor:
    """Test suite for PerformanceMonitor."""

    def test_measure_stage(self):
        """measure() records elapsed milliseconds."""
        monitor = PerformanceMonitor()
        with monitor.measure("inference"):
            time.sleep(0.01)
        assert monitor.get_stage_latency("inference") >= 9

    def test_measure_records_on_error(self):
        monitor = PerformanceMonitor()
        with pytest.raises(ValueError):
            with monitor.measure("extraction"):
                raise ValueError("bad frame")
        assert len(monitor._stage_times["extraction"]) == 1

    def test_rolling_window(self):
        monitor = PerformanceMonitor(window_size=3)
        for value in (100.0, 1.0, 2.0, 3.0):
            monitor.record("total", value)
        assert monitor.total_latency_ms == pytest.approx(2.0)

    def test_unknown_stage_is_zero(self):
        assert PerformanceMonitor().get_stage_latency("nope") == 0.0

    def test_known_stages_reported(self):
        latencies = PerformanceMonitor().get_all_latencies()
        assert set(STAGES) <= set(latencies)

    def test_report_counts(self):
        monitor = PerformanceMonitor()
        for _ in range(4):
            monitor.tick()
        monitor.record_drop()
        monitor.record_failure()
        report = monitor.get_report()
        assert report["total_frames"] == 4
        assert report["dropped_frames"] == 1
        assert report["failed_frames"] == 1
        assert report["drop_rate"] == 25.0

    def test_reset(self):
        monitor = PerformanceMonitor()
        monitor.tick()
        monitor.record("total", 5.0)
        monitor.reset()
        assert monitor.frame_count == 0
        assert monitor.total_latency_ms == 0.0

    def test_print_report(self, caplog):
        monitor = PerformanceMonitor()
        monitor.record("total", 1.0)
        with caplog.at_level(logging.INFO):
            monitor.print_report()
        assert "PERFORMANCE REPORT" in caplog.text


class TestPredictionLogger:
    """Test suite for PredictionLogger."""

    def test_only_changes_logged(self):
        log = PredictionLogger()
        assert log.log_prediction("fist", 0.9, via="fast_path")
        assert not log.log_prediction("fist", 0.8)
        assert log.log_prediction(None, 0.0)
        assert log.log_prediction("fist", 0.7)
        assert [entry["gesture"] for entry in log.get_history()] == ["fist", None, "fist"]
        assert log.current_label == "fist"

    def test_confidence_level_recorded(self):
        log = PredictionLogger()
        log.log_prediction("fist", 0.9, via="consensus", level="high")
        assert log.get_history()[-1]["level"] == "high"

    def test_history_limit(self):
        log = PredictionLogger(max_history=2)
        for label in ("a", "b", "c"):
            log.log_prediction(label, 0.9)
        assert [e["gesture"] for e in log.get_history()] == ["b", "c"]
        assert len(log.get_history(last_n=1)) == 1


class TestLoggingSetup:
    """Test suite for logging configuration."""

    def test_file_handler_created(self, tmp_path):
        log_file = tmp_path / "logs" / "run.log"
        root = setup_logging(level="DEBUG", log_file=str(log_file))
        try:
            logging.getLogger("gesture_test").info("hello")
            for handler in root.handlers:
                handler.flush()
            assert log_file.exists()
            assert "hello" in log_file.read_text()
        finally:
            for handler in list(root.handlers):
                handler.close()
            root.handlers.clear()

    def test_log_timing(self):
        @log_timing
        def work(x):
            return x * 2

        assert work(4) == 8
        assert work.__name__ == "work"
