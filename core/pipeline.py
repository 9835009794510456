"""
Pipeline orchestrator for the gesture stream.

Architecture:
    DetectionFrame -> FeatureExtractor -> SingleFrameClassifier
    -> TemporalSmoother -> EventBus                       (predict mode)
    DetectionFrame -> SampleRecorder -> SampleStore       (record mode)

submit() is called on the detector's delivery thread and never blocks on
inference or disk I/O: classification runs on a worker pool and recording
on a single dedicated worker. Every frame gets a sequence number at
delivery; smoothing updates are applied and published in that order, and a
late result from an older frame is discarded.
"""

import time
import logging
import threading
from contextlib import nullcontext
from concurrent.futures import Future, ThreadPoolExecutor

from core.errors import ClassifyError, PersistenceError
from core.events import EventBus, Events
from core.types import PipelineResult

logger = logging.getLogger(__name__)

MODE_PREDICT = "predict"
MODE_RECORD = "record"


class GesturePipeline:
    """Streams detector frames through classification or recording.

    Results are published on the EventBus as PipelineResult objects:
    - Events.PREDICTION_UPDATED for every applied classification frame
    - Events.STABLE_GESTURE when that frame produced a stable label
    - Events.HAND_LOST when a frame has no hand
    - Events.SAMPLE_SAVED / SAMPLE_REJECTED / PERSISTENCE_FAILED while recording
    """

    def __init__(
        self,
        extractor,
        classifier,
        smoother,
        recorder=None,
        event_bus=None,
        performance_monitor=None,
        config=None,
    ):
        self._extractor = extractor
        self._classifier = classifier
        self._smoother = smoother
        self._recorder = recorder
        self._bus = event_bus or EventBus()
        self._perf = performance_monitor

        config = config or {}
        self._classify_pool = ThreadPoolExecutor(
            max_workers=int(config.get("classification_workers", 2)),
            thread_name_prefix="classify",
        )
        self._record_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="recording")

        # State
        self._state_lock = threading.Lock()
        self._deliver_lock = threading.Lock()
        self._sequence = 0
        self._mode = MODE_PREDICT
        self._closed = False
        self._current_prediction = None

    # ------------------------------------------------------------------
    # Frame entry points
    # ------------------------------------------------------------------

    def submit(self, detection) -> Future:
        """Queue one detector frame; returns a Future of its PipelineResult.

        Hand-lost frames are handled inline so the smoother reset applies
        to every frame delivered afterwards.
        """
        sequence, mode = self._next_sequence()
        if detection.primary_hand is None:
            future = Future()
            future.set_result(self._handle_hand_lost(detection, sequence))
            return future
        if mode == MODE_RECORD:
            return self._record_pool.submit(self._run_recording, detection, sequence)
        return self._classify_pool.submit(self._run_prediction, detection, sequence)

    def process(self, detection) -> PipelineResult:
        """Run one frame synchronously on the calling thread."""
        sequence, mode = self._next_sequence()
        if detection.primary_hand is None:
            return self._handle_hand_lost(detection, sequence)
        if mode == MODE_RECORD:
            return self._run_recording(detection, sequence)
        return self._run_prediction(detection, sequence)

    def _next_sequence(self):
        with self._state_lock:
            if self._closed:
                raise RuntimeError("Pipeline has been shut down")
            self._sequence += 1
            return self._sequence, self._mode

    # ------------------------------------------------------------------
    # Classification path
    # ------------------------------------------------------------------

    def _run_prediction(self, detection, sequence) -> PipelineResult:
        start = time.perf_counter()
        result = PipelineResult(sequence, detection.timestamp, MODE_PREDICT)
        result.hand_detected = True

        record = None
        try:
            with self._measure("extraction"):
                features = self._extractor.prepare_for_prediction(detection.primary_hand)
            with self._measure("inference"):
                raw, accepted = self._classifier.evaluate(features, detection.timestamp)
            result.raw_prediction = raw
            record = raw if accepted else None
            if not accepted:
                self._log_ranking(features, sequence)
        except ClassifyError as e:
            result.error = str(e)
            if self._perf:
                self._perf.record_failure()
            logger.debug("Frame #%d not classified: %s", sequence, e)

        with self._deliver_lock:
            with self._measure("smoothing"):
                applied, prediction = self._smoother.apply(record, sequence)
            result.latency_ms = (time.perf_counter() - start) * 1000

            if not applied:
                result.discarded = True
                if self._perf:
                    self._perf.record_drop()
                return result

            result.prediction = prediction
            self._current_prediction = prediction
            self._finish(result)
            self._bus.emit(Events.PREDICTION_UPDATED, result=result)
            if prediction is not None:
                self._bus.emit(Events.STABLE_GESTURE, result=result)
        return result

    def _log_ranking(self, features, sequence):
        """Debug view of every class probability for a rejected frame."""
        if not logger.isEnabledFor(logging.DEBUG):
            return
        try:
            ranked = self._classifier.rank(features)
        except ClassifyError as e:
            logger.debug("Frame #%d ranking unavailable: %s", sequence, e)
            return
        logger.debug("Frame #%d rejected, ranking: %s", sequence,
                     ", ".join("%s=%.3f" % pair for pair in ranked))

    def _handle_hand_lost(self, detection, sequence) -> PipelineResult:
        result = PipelineResult(sequence, detection.timestamp, self.mode)
        with self._deliver_lock:
            self._smoother.reset(sequence=sequence)
            self._current_prediction = None
            self._bus.emit(Events.HAND_LOST, result=result)
        return result

    # ------------------------------------------------------------------
    # Recording path
    # ------------------------------------------------------------------

    def _run_recording(self, detection, sequence) -> PipelineResult:
        start = time.perf_counter()
        result = PipelineResult(sequence, detection.timestamp, MODE_RECORD)
        result.hand_detected = True

        if self._recorder is None:
            result.error = "no recorder configured"
            return result

        try:
            with self._measure("recording"):
                decision, sample = self._recorder.handle_frame(detection.primary_hand)
            result.decision = decision
            result.sample_saved = sample is not None
        except PersistenceError as e:
            # Sample is already in memory; the next mutation retries the write
            result.sample_saved = True
            result.error = str(e)
            logger.error("Sample persistence failed: %s", e)
            self._bus.emit(Events.PERSISTENCE_FAILED, result=result, error=e)

        result.latency_ms = (time.perf_counter() - start) * 1000
        self._finish(result)
        if result.sample_saved:
            self._bus.emit(Events.SAMPLE_SAVED, result=result)
        elif result.decision is not None:
            self._bus.emit(Events.SAMPLE_REJECTED, result=result)
        return result

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start_recording(self, label: str):
        """Switch to record mode; classification history is dropped."""
        if self._recorder is None:
            raise RuntimeError("Pipeline has no recorder")
        self._recorder.start(label)
        with self._state_lock:
            self._mode = MODE_RECORD
            sequence = self._sequence
        with self._deliver_lock:
            self._smoother.reset(sequence=sequence)
            self._current_prediction = None
        self._bus.emit(Events.RECORDING_STARTED, label=label)
        logger.info("Pipeline mode: %s [%s]", MODE_RECORD, label)

    def stop_recording(self) -> dict:
        """Return to predict mode; returns the recording summary."""
        if self._recorder is None:
            raise RuntimeError("Pipeline has no recorder")
        with self._state_lock:
            self._mode = MODE_PREDICT
        summary = self._recorder.stop()
        self._bus.emit(Events.RECORDING_STOPPED, summary=summary)
        logger.info("Pipeline mode: %s", MODE_PREDICT)
        return summary

    def reset(self):
        """Drop smoothing history; in-flight frames are discarded."""
        with self._state_lock:
            sequence = self._sequence
        with self._deliver_lock:
            self._smoother.reset(sequence=sequence)
            self._current_prediction = None

    def shutdown(self, wait: bool = True):
        """Stop accepting frames and release worker threads."""
        with self._state_lock:
            self._closed = True
        self._classify_pool.shutdown(wait=wait)
        self._record_pool.shutdown(wait=wait)
        self._classifier.shutdown(wait=wait)
        logger.info("Pipeline shut down after %d frames", self._sequence)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _measure(self, stage):
        if self._perf is None:
            return nullcontext()
        return self._perf.measure(stage)

    def _finish(self, result):
        if self._perf:
            self._perf.record("total", result.latency_ms)
            self._perf.tick()

    @property
    def event_bus(self) -> EventBus:
        return self._bus

    @property
    def mode(self) -> str:
        with self._state_lock:
            return self._mode

    @property
    def sequence(self) -> int:
        with self._state_lock:
            return self._sequence

    @property
    def current_prediction(self):
        """Last stable prediction published (None when nothing is stable)."""
        return self._current_prediction

    def describe_state(self) -> str:
        return self._smoother.describe_state()
