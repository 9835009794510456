#!/usr/bin/env python3
"""
Gesture stream - streaming hand-gesture classification and sample capture.

Replays a recorded detector stream (JSON lines, one DetectionFrame per line)
through the pipeline.

Usage:
    python main.py --mode predict --input stream.jsonl
    python main.py --mode record --label fist --input stream.jsonl
    python main.py --mode samples                      # list saved samples
    python main.py --mode samples --remove-label fist
    python main.py --mode samples --clear
    python main.py --mode samples --export train.npz
"""

import sys
import signal
import argparse
import logging

from core.events import Events
from core.pipeline import GesturePipeline
from core.types import make_frame
from models.feature_extractor import FeatureExtractor
from modules.capture.landmark_source import read_detection_stream
from modules.recognition.classifier import SingleFrameClassifier
from modules.recognition.temporal_smoother import TemporalSmoother
from modules.recognition.threshold_manager import ConfidenceThresholdManager
from modules.recording.dataset import export_training_set
from modules.recording.recorder import SampleRecorder
from modules.recording.sample_store import SampleStore
from modules.utils.config import Config
from modules.utils.logger import setup_logging, PredictionLogger
from modules.utils.performance_monitor import PerformanceMonitor

logger = logging.getLogger(__name__)

# Synthetic frame used for the startup extraction self-check
_CHECK_FRAME = make_frame([(0.1 * i, 0.2 * i, 0.3 * i) for i in range(21)])


class GestureStreamApp:
    """Wires the pipeline components from configuration."""

    def __init__(self, config: Config):
        self._config = config
        self._running = False

        # Recognition
        self.extractor = FeatureExtractor({
            "indices_file": config.resolve_path(config.get("features.indices_file")),
        })
        self.thresholds = ConfidenceThresholdManager(config.recognition)
        metrics_file = config.resolve_path(config.get("recognition.metrics_file"))
        if metrics_file:
            self.thresholds.load_metrics_file(metrics_file)

        recognition_cfg = dict(config.recognition)
        recognition_cfg["model_path"] = config.resolve_path(recognition_cfg.get("model_path"))
        self.classifier = SingleFrameClassifier(recognition_cfg, threshold_manager=self.thresholds)
        self.smoother = TemporalSmoother(config.temporal)
        if self.extractor.output_dim != self.classifier.expected_width:
            logger.error("Extractor produces %d features but the classifier expects %d; "
                         "every frame will fail until features.indices_file or "
                         "recognition.feature_width is fixed",
                         self.extractor.output_dim, self.classifier.expected_width)

        # Recording
        self.store = SampleStore(config.resolve_path(
            config.get("recording.samples_file", "data/samples/gestures.json")))
        self.recorder = SampleRecorder(self.store, config.recording)

        # Pipeline
        self.perf = PerformanceMonitor()
        self.pipeline = GesturePipeline(
            extractor=self.extractor,
            classifier=self.classifier,
            smoother=self.smoother,
            recorder=self.recorder,
            performance_monitor=self.perf,
            config=config.pipeline,
        )
        self.prediction_log = PredictionLogger()
        bus = self.pipeline.event_bus
        bus.subscribe(Events.PREDICTION_UPDATED, self._on_prediction)
        bus.subscribe(Events.HAND_LOST, self._on_hand_lost)
        bus.subscribe(Events.SAMPLE_SAVED, self._on_sample_saved)

        self.extractor.verify_consistency(_CHECK_FRAME)
        logger.info("Thresholds: %s", self.thresholds.get_all_thresholds() or "default only")

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _on_prediction(self, result):
        prediction = result.prediction
        self.prediction_log.log_prediction(
            prediction.label if prediction else None,
            prediction.confidence if prediction else 0.0,
            via=prediction.via if prediction else None,
            latency_ms=result.latency_ms,
            level=(self.thresholds.classify_confidence(prediction.label, prediction.confidence)
                   if prediction else None),
        )

    def _on_hand_lost(self, result):
        self.prediction_log.log_prediction(None, 0.0, via="no hand")

    def _on_sample_saved(self, result):
        reason = result.decision.reason if result.decision else "saved"
        self.prediction_log.log_sample(self.recorder.label, reason, len(self.store))

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    def replay(self, path: str):
        """Feed a recorded detector stream through the pipeline."""
        self._running = True
        pending = []
        for detection in read_detection_stream(path):
            if not self._running:
                break
            pending.append(self.pipeline.submit(detection))
        for future in pending:
            future.result()

    def run_predict(self, path: str):
        if not self.classifier.is_available:
            logger.warning("No model loaded: every frame will report no prediction")
        self.replay(path)
        logger.info("Smoother state:\n%s", self.pipeline.describe_state())

    def run_record(self, path: str, label: str):
        self.pipeline.start_recording(label)
        try:
            self.replay(path)
        finally:
            self.pipeline.stop_recording()
            self.recorder.print_status()

    def manage_samples(self, clear=False, remove_label=None, export=None):
        bus = self.pipeline.event_bus
        if export:
            export_training_set(self.store.all(), self.extractor, export)
        if clear:
            self.store.clear_saved()
            bus.emit(Events.SAMPLES_CLEARED, label=None)
        elif remove_label:
            removed = self.store.remove_label(remove_label)
            logger.info("Removed %d samples labeled '%s'", removed, remove_label)
            bus.emit(Events.SAMPLES_CLEARED, label=remove_label)
        self.recorder.print_status()
        saved = self.store.saved_file()
        logger.info("Sample file: %s", saved or "(none)")

    def shutdown(self):
        self.pipeline.shutdown()
        self.perf.print_report()
        logger.info("Shutdown complete.")

    def handle_signal(self, signum, frame):
        """Handle SIGINT/SIGTERM for graceful shutdown."""
        logger.info("Signal %d received, shutting down...", signum)
        self._running = False


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Gesture stream - streaming hand-gesture classification"
    )
    parser.add_argument(
        "--mode", choices=["predict", "record", "samples"],
        default="predict", help="Operating mode"
    )
    parser.add_argument(
        "--input", type=str, default=None,
        help="JSON-lines detector stream to replay"
    )
    parser.add_argument(
        "--label", type=str, default=None,
        help="Gesture label to record (record mode)"
    )
    parser.add_argument(
        "--config", type=str, default=None,
        help="Path to config.yaml"
    )
    parser.add_argument("--model", type=str, default=None, help="Model weights (.npz)")
    parser.add_argument("--metrics", type=str, default=None, help="Model metrics JSON")
    parser.add_argument("--indices", type=str, default=None, help="Feature index JSON")
    parser.add_argument("--samples-file", type=str, default=None, help="Sample store JSON")
    parser.add_argument(
        "--clear", action="store_true",
        help="Delete all saved samples (samples mode)"
    )
    parser.add_argument(
        "--remove-label", type=str, default=None,
        help="Delete saved samples with this label (samples mode)"
    )
    parser.add_argument(
        "--export", type=str, default=None,
        help="Write saved samples as a training matrix (.npz, samples mode)"
    )
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    config = Config()
    config.load(config_path=args.config)
    for key, value in (("recognition.model_path", args.model),
                       ("recognition.metrics_file", args.metrics),
                       ("features.indices_file", args.indices),
                       ("recording.samples_file", args.samples_file)):
        if value is not None:
            config.set(key, value)

    log_cfg = config.get_section("logging")
    setup_logging(
        level=log_cfg.get("level", "INFO"),
        log_file=config.resolve_path(log_cfg.get("file")),
        max_size_mb=log_cfg.get("max_size_mb", 10),
        backup_count=log_cfg.get("backup_count", 3),
    )

    logger.info("=" * 60)
    logger.info("  GESTURE STREAM  v%s", config.get("system.version", "1.0.0"))
    logger.info("  Mode: %s", args.mode)
    logger.info("=" * 60)

    if args.mode in ("predict", "record") and not args.input:
        logger.error("--input is required in %s mode", args.mode)
        return 2
    if args.mode == "record" and not args.label:
        logger.error("--label is required in record mode")
        return 2

    app = GestureStreamApp(config)
    signal.signal(signal.SIGINT, app.handle_signal)
    signal.signal(signal.SIGTERM, app.handle_signal)

    try:
        if args.mode == "predict":
            app.run_predict(args.input)
        elif args.mode == "record":
            app.run_record(args.input, args.label)
        else:
            app.manage_samples(clear=args.clear, remove_label=args.remove_label,
                               export=args.export)
    finally:
        app.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
