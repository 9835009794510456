"""
Per-stage latency tracking for the classification and recording paths.
Thread-safe metrics collection with rolling windows.
"""

import time
import threading
import logging
from collections import deque
from contextlib import contextmanager

logger = logging.getLogger(__name__)

STAGES = ("extraction", "inference", "smoothing", "recording", "total")


class PerformanceMonitor:
    """Tracks throughput, per-stage latency, dropped and failed frames."""

    def __init__(self, window_size=100):
        self._window_size = window_size
        self._lock = threading.Lock()
        self._stage_times = {name: deque(maxlen=window_size) for name in STAGES}
        self._frame_count = 0
        self._dropped_frames = 0
        self._failed_frames = 0
        self._start_time = time.time()

    @contextmanager
    def measure(self, stage_name: str):
        """Context manager to measure a pipeline stage's duration."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record(stage_name, (time.perf_counter() - start) * 1000)

    def record(self, stage_name: str, elapsed_ms: float):
        with self._lock:
            if stage_name not in self._stage_times:
                self._stage_times[stage_name] = deque(maxlen=self._window_size)
            self._stage_times[stage_name].append(elapsed_ms)

    def tick(self):
        """Call once per processed frame."""
        with self._lock:
            self._frame_count += 1

    def record_drop(self):
        """Record a frame whose result was discarded (out of order)."""
        with self._lock:
            self._dropped_frames += 1

    def record_failure(self):
        """Record a frame that produced a classification error."""
        with self._lock:
            self._failed_frames += 1

    @property
    def frame_count(self) -> int:
        with self._lock:
            return self._frame_count

    @property
    def total_latency_ms(self) -> float:
        """Average total pipeline latency in ms."""
        return self.get_stage_latency("total")

    def get_stage_latency(self, stage_name: str) -> float:
        """Average latency for one stage in ms."""
        with self._lock:
            times = self._stage_times.get(stage_name)
            if not times:
                return 0.0
            return sum(times) / len(times)

    def get_all_latencies(self) -> dict:
        with self._lock:
            return {name: (sum(times) / len(times) if times else 0.0)
                    for name, times in self._stage_times.items()}

    def get_report(self) -> dict:
        """Snapshot of throughput and latency metrics."""
        uptime = time.time() - self._start_time
        latencies = self.get_all_latencies()
        with self._lock:
            frames = self._frame_count
            dropped = self._dropped_frames
            failed = self._failed_frames
        return {
            "frames_per_second": round(frames / uptime, 1) if uptime > 0 else 0.0,
            "total_frames": frames,
            "dropped_frames": dropped,
            "failed_frames": failed,
            "drop_rate": round(dropped / max(frames, 1) * 100, 2),
            "uptime_seconds": round(uptime, 1),
            "latencies_ms": {k: round(v, 2) for k, v in latencies.items()},
        }

    def print_report(self):
        """Log formatted performance report."""
        report = self.get_report()
        logger.info("=" * 60)
        logger.info("PERFORMANCE REPORT")
        logger.info("=" * 60)
        logger.info("Throughput:     %.1f frames/s", report["frames_per_second"])
        logger.info("Total Frames:   %d", report["total_frames"])
        logger.info("Dropped Frames: %d (%.2f%%)", report["dropped_frames"], report["drop_rate"])
        logger.info("Failed Frames:  %d", report["failed_frames"])
        logger.info("Uptime:         %.1fs", report["uptime_seconds"])
        logger.info("-" * 40)
        logger.info("Stage Latencies (avg ms):")
        for stage, latency in report["latencies_ms"].items():
            logger.info("  %-18s %7.2f ms", stage, latency)
        logger.info("=" * 60)

    def reset(self):
        """Reset all metrics."""
        with self._lock:
            for times in self._stage_times.values():
                times.clear()
            self._frame_count = 0
            self._dropped_frames = 0
            self._failed_frames = 0
            self._start_time = time.time()
