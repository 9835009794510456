"""
Logging setup plus a recorder for stable-gesture and sample events.
"""

import os
import logging
import logging.handlers
import time
from collections import deque
from functools import wraps


def setup_logging(level="INFO", log_file=None, max_size_mb=10, backup_count=3):
    """Configure console (and optional rotating file) logging."""
    console_format = "%(asctime)s  %(levelname)-5s  %(message)s"
    file_format = "%(asctime)s [%(levelname)-7s] %(name)-25s | %(message)s"
    date_format = "%H:%M:%S"

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    root_logger.handlers.clear()

    console = logging.StreamHandler()
    console.setLevel(root_logger.level)
    console.setFormatter(logging.Formatter(console_format, datefmt=date_format))
    root_logger.addHandler(console)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(file_format, datefmt=date_format))
        root_logger.addHandler(file_handler)

    return root_logger


class PredictionLogger:
    """Logs stable gesture changes and saved samples, keeping a short history.

    Only label *changes* are logged so a held gesture does not flood the log.
    """

    def __init__(self, max_history: int = 500):
        self.logger = logging.getLogger("gesture_events")
        self._history = deque(maxlen=max_history)
        self._current_label = None

    def log_prediction(self, label, confidence, via=None, latency_ms=None, level=None):
        """Record a stable prediction (or None when nothing is stable)."""
        if label == self._current_label:
            return False
        self._current_label = label
        self._history.append({
            "timestamp": time.time(),
            "gesture": label,
            "confidence": confidence,
            "via": via,
            "level": level,
            "latency_ms": latency_ms,
        })
        self.logger.info(
            "Gesture: %-15s | Confidence: %.2f (%s) | Via: %-9s | Latency: %s",
            label or "none",
            confidence,
            level or "-",
            via or "-",
            f"{latency_ms:.1f}ms" if latency_ms else "N/A",
        )
        return True

    def log_sample(self, label, reason, total=None):
        """Log a saved recording sample."""
        self.logger.info("Sample: %-15s | %s | total=%s", label, reason, total)

    def get_history(self, last_n=None):
        """Get recent prediction changes."""
        history = list(self._history)
        if last_n:
            return history[-last_n:]
        return history

    @property
    def current_label(self):
        return self._current_label


def log_timing(func):
    """Decorator to log function execution time."""
    logger = logging.getLogger(func.__module__)

    @wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        result = func(*args, **kwargs)
        elapsed = (time.perf_counter() - start) * 1000
        logger.debug("%s took %.2fms", func.__name__, elapsed)
        return result

    return wrapper
