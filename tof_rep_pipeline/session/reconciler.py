"""
Live set segmentation and reconciliation.

The session buffers raw ToF frames per set, detects set boundaries from the
device's set counter, merges per-rep metric notifications into live rep
samples, and hands each completed set's buffer to the correction pipeline on
a worker. Validated counts are emitted in set order and override the live
counts; live samples remain the fallback when a set had too few frames.

State flow:
    IDLE -> AWAITING_BASELINE -> TRACKING -> (set boundaries) -> FINISHED
"""
import itertools
import logging
import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from ..core.config import SessionConfig
from ..core.interfaces import (CorrectionResult, DistanceFrame, LiveRepSample,
                               MetricKind, SetBuffer)
from ..correction.pipeline import CorrectionPipeline, build_pipeline
from ..data.device_values import normalize_counter_key, parse_device_value
from ..data.frame_decoder import FrameDecoder
from ..metrics.summary import (CoachNote, SetSummary, make_coach_notes, rows_from_metrics,
                               summarize_set)
from ..processing.sampling import SamplingRateEstimator
from .events import EventFanout, Listener, SessionEvent, SetCompleted, ValidatedRepsReady

logger = logging.getLogger(__name__)

COUNTER_REPS = "reps"
COUNTER_SET = "set"


class SessionPhase(str, Enum):
    IDLE = "idle"
    AWAITING_BASELINE = "awaiting_baseline"
    TRACKING = "tracking"
    FINISHED = "finished"


@dataclass
class SetRecord:
    """Reconciled view of one set."""
    set_number: int
    session_id: int
    live_reps: List[LiveRepSample] = field(default_factory=list)
    frame_count: int = 0
    weight: Optional[float] = None
    correction: Optional[CorrectionResult] = None
    correction_pending: bool = False

    @property
    def rep_count(self) -> int:
        """Validated count when correction ran, else the live count."""
        if self.correction is not None:
            return self.correction.count
        return len(self.live_reps)

    def rows(self) -> List[LiveRepSample]:
        if self.correction is not None:
            return rows_from_metrics(self.correction.rep_metrics, self.live_reps)
        return list(self.live_reps)

    def summary(self) -> SetSummary:
        return summarize_set(self.rows(), self.weight)

    def notes(self) -> List[CoachNote]:
        return make_coach_notes(self.rows())


@dataclass
class SessionReport:
    exercise_id: str
    sets: List[SetRecord]

    @property
    def counts(self) -> Dict[int, int]:
        return {s.set_number: s.rep_count for s in self.sets}

    def summaries(self) -> Dict[int, SetSummary]:
        return {s.set_number: s.summary() for s in self.sets}

    def notes(self) -> Dict[int, List[CoachNote]]:
        return {s.set_number: s.notes() for s in self.sets}


@dataclass
class SessionState:
    """All mutable per-exercise state, owned by one RepSession."""
    phase: SessionPhase = SessionPhase.IDLE
    exercise_id: str = ""
    session_id: int = 0
    started_ms: float = 0.0
    # Set-counter baseline capture
    baseline_key: Optional[str] = None
    last_set_key: Optional[str] = None
    # Rep-counter movement gate
    awaiting_movement: bool = False
    prev_reps_before_start: Optional[float] = None
    device_reps: Optional[float] = None
    movement_live: bool = False
    # Current set
    set_number: int = 1
    last_emitted_set: int = 0
    buffer: Optional[SetBuffer] = None
    current_rep: Optional[LiveRepSample] = None
    live_reps: List[LiveRepSample] = field(default_factory=list)
    # Completed sets and pending weights
    sets: Dict[int, SetRecord] = field(default_factory=dict)
    weights: Dict[int, float] = field(default_factory=dict)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class RepSession:
    def __init__(
        self,
        pipeline: Optional[CorrectionPipeline] = None,
        config: Optional[SessionConfig] = None,
        decoder: Optional[FrameDecoder] = None,
        clock: Optional[Callable[[], float]] = None,
        executor: Optional[ThreadPoolExecutor] = None
    ):
        """
        Initialize a session.

        Args:
            pipeline: Correction pipeline run for each completed set
            config: Session thresholds
            decoder: Frame decoder used for raw byte payloads
            clock: Millisecond clock for baseline debouncing
            executor: Executor that runs corrections off the arrival path
        """
        self.config = config or SessionConfig()
        self.pipeline = pipeline or build_pipeline()
        self.decoder = decoder or FrameDecoder()
        self.clock = clock or _monotonic_ms
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(
            max_workers=self.config.correction_workers,
            thread_name_prefix="rep-correction",
        )
        self.state = SessionState()
        self.events = EventFanout()
        self.rate_estimator = SamplingRateEstimator()

        # Guards state only; listeners never run while it is held
        self._lock = threading.RLock()
        # Events are queued under _lock and delivered in queue order by
        # whichever thread holds _delivery_lock
        self._outbox: deque = deque()
        self._delivery_lock = threading.Lock()
        # Corrections are queued under _lock and submitted after it is released
        self._jobs: deque = deque()
        self._buffer_ids = itertools.count(1)
        self._futures: List[Future] = []
        # Ordered emission of correction results, keyed by set number
        self._resolved: Dict[int, Optional[CorrectionResult]] = {}
        self._next_emit = 1

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def subscribe(self, listener: Listener, event_type=None) -> Callable[[], None]:
        return self.events.subscribe(listener, event_type)

    @property
    def phase(self) -> SessionPhase:
        return self.state.phase

    @property
    def movement_live(self) -> bool:
        """True once the device rep counter has shown a fresh reset this exercise."""
        return self.state.movement_live

    @property
    def device_reps(self) -> Optional[float]:
        """Latest device rep count that passed the movement gate."""
        return self.state.device_reps

    @property
    def sampling_hz(self) -> Optional[float]:
        """Running sampling-rate estimate over completed sets."""
        return self.rate_estimator.estimate

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start_exercise(self, exercise_id: str, now_ms: Optional[float] = None):
        """Reset all per-set aggregates and wait for a trustworthy set-counter baseline."""
        now = self.clock() if now_ms is None else now_ms
        with self._lock:
            previous_reps = self.state.device_reps
            session_id = next(self._buffer_ids)
            self.state = SessionState(
                phase=SessionPhase.AWAITING_BASELINE,
                exercise_id=exercise_id,
                session_id=session_id,
                started_ms=now,
                awaiting_movement=True,
                prev_reps_before_start=previous_reps,
                buffer=SetBuffer(session_id=session_id, set_number=1),
            )
            self._resolved = {}
            self._next_emit = 1
            self._futures = [f for f in self._futures if not f.done()]
            self.rate_estimator.reset()
        logger.info(f"Exercise '{exercise_id}' started; awaiting set-counter baseline")

    def set_weight(self, set_number: int, weight: float):
        with self._lock:
            self.state.weights[set_number] = float(weight)
            record = self.state.sets.get(set_number)
            if record is not None:
                record.weight = float(weight)

    def end_exercise(self):
        """Flush the in-progress set through the normal finalize path and stop tracking."""
        with self._lock:
            if self.state.phase in (SessionPhase.IDLE, SessionPhase.FINISHED):
                return
            self._finalize_current_rep()
            has_data = bool(self.state.live_reps) or (
                self.state.buffer is not None and len(self.state.buffer) > 0)
            if has_data and self.state.last_emitted_set != self.state.set_number:
                self._complete_set(open_next=False)
            self.state.phase = SessionPhase.FINISHED
        self._flush()
        logger.info(f"Exercise '{self.state.exercise_id}' ended")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until every dispatched correction has finished; True when all are done."""
        with self._lock:
            futures = list(self._futures)
        done, not_done = wait(futures, timeout=timeout)
        with self._lock:
            self._futures = [f for f in self._futures if f not in done]
        return not not_done

    def finish(self, timeout: Optional[float] = None) -> SessionReport:
        """End the exercise, wait for outstanding corrections and hand back the report."""
        self.end_exercise()
        self.wait(timeout)
        return self.report()

    def report(self) -> SessionReport:
        with self._lock:
            sets = [self.state.sets[n] for n in sorted(self.state.sets)]
            return SessionReport(exercise_id=self.state.exercise_id, sets=sets)

    def close(self):
        if self._owns_executor:
            self.executor.shutdown(wait=True)

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------
    def on_frame(self, payload: Union[bytes, bytearray, str, DistanceFrame],
                 received_ms: Optional[int] = None) -> bool:
        """Buffer one raw frame for the current set; returns False when it was dropped."""
        if isinstance(payload, DistanceFrame):
            frame = payload
        elif isinstance(payload, str):
            frame = self.decoder.decode_b64(payload, received_ms)
        else:
            frame = self.decoder.decode(payload, received_ms)
        if frame is None:
            return False

        with self._lock:
            if self.state.phase not in (SessionPhase.AWAITING_BASELINE, SessionPhase.TRACKING):
                return False
            if not self.state.buffer.append(frame):
                logger.debug(f"Rejected out-of-order frame at {frame.timestamp_ms}ms")
                return False
            return True

    def on_metric(self, kind: Union[MetricKind, str], raw_value) -> bool:
        """Merge one per-rep metric notification into the in-progress rep."""
        try:
            kind = MetricKind(kind)
        except ValueError:
            logger.debug(f"Ignoring unknown metric kind {kind!r}")
            return False
        parsed = parse_device_value(raw_value)
        if not parsed.is_ok:
            logger.debug(f"Ignoring {kind.value} value: {parsed.reason}")
            return False

        with self._lock:
            if self.state.phase not in (SessionPhase.AWAITING_BASELINE, SessionPhase.TRACKING):
                return False
            current = self.state.current_rep
            if current is None:
                current = self.state.current_rep = LiveRepSample()
            elif current.velocity is not None:
                # Velocity is the last metric the firmware sends for a rep
                self._finalize_current_rep()
                current = self.state.current_rep = LiveRepSample()
            current.set_metric(kind, parsed.value)
            return True

    def on_counter(self, counter: str, raw_value, now_ms: Optional[float] = None):
        """Handle a device 'reps' or 'set' counter notification."""
        now = self.clock() if now_ms is None else now_ms
        with self._lock:
            if self.state.phase not in (SessionPhase.AWAITING_BASELINE, SessionPhase.TRACKING):
                return
            if counter == COUNTER_REPS:
                self._on_reps_counter(raw_value)
            elif counter == COUNTER_SET:
                self._on_set_counter(raw_value, now)
            else:
                logger.debug(f"Ignoring unknown counter {counter!r}")
        self._flush()

    # ------------------------------------------------------------------
    # Counter handling
    # ------------------------------------------------------------------
    def _on_reps_counter(self, raw_value):
        parsed = parse_device_value(raw_value)
        if not parsed.is_ok:
            return
        n = parsed.value
        state = self.state
        if state.awaiting_movement:
            prev = state.prev_reps_before_start
            just_reset = n in (0, 1) or (prev is not None and n < prev)
            if not just_reset:
                logger.debug(f"Discarding stale reps value {n} while awaiting movement")
                return
            state.awaiting_movement = False
            state.movement_live = True
            logger.info("Rep counter reset observed; movement is live")
        state.device_reps = n

    def _on_set_counter(self, raw_value, now: float):
        key = normalize_counter_key(raw_value)
        if key is None:
            return
        state = self.state

        if state.phase is SessionPhase.AWAITING_BASELINE:
            # Elapsed time counts from exercise start; a repeat of the
            # provisional value after that window confirms it
            elapsed = now - state.started_ms
            if (state.baseline_key is not None and key == state.baseline_key
                    and elapsed >= self.config.baseline_confirm_ms):
                state.last_set_key = key
                state.phase = SessionPhase.TRACKING
                logger.info(f"Set-counter baseline confirmed at {key}")
            else:
                state.baseline_key = key
            return

        if key != state.last_set_key:
            logger.info(f"Set boundary: counter {state.last_set_key} -> {key}")
            state.last_set_key = key
            self._finalize_current_rep()
            self._complete_set(open_next=True)

    # ------------------------------------------------------------------
    # Set completion and correction
    # ------------------------------------------------------------------
    def _finalize_current_rep(self):
        current = self.state.current_rep
        if current is not None and current.has_any():
            self.state.live_reps.append(current)
        self.state.current_rep = None

    def _complete_set(self, open_next: bool):
        state = self.state
        set_number = state.set_number
        buffer = state.buffer
        record = SetRecord(
            set_number=set_number,
            session_id=buffer.session_id,
            live_reps=list(state.live_reps),
            frame_count=len(buffer),
            weight=state.weights.get(set_number),
        )
        state.sets[set_number] = record
        state.last_emitted_set = set_number

        # Ownership of the buffer moves to the correction job
        if open_next:
            state.set_number += 1
            state.session_id = next(self._buffer_ids)
            state.buffer = SetBuffer(session_id=state.session_id, set_number=state.set_number)
            state.live_reps = []
        else:
            state.buffer = None

        self._queue(SetCompleted(
            exercise_id=state.exercise_id,
            set_number=set_number,
            reps=list(record.live_reps),
            weight=record.weight,
            frame_count=record.frame_count,
        ))

        if record.frame_count >= self.config.min_frames_for_correction:
            record.correction_pending = True
            hz_hint = self.rate_estimator.update(buffer.timestamps)
            self._jobs.append((set_number, buffer, hz_hint))
            logger.info(f"Set {set_number}: queued correction for {record.frame_count} frames")
        else:
            logger.info(f"Set {set_number}: {record.frame_count} frames, keeping live samples")
            self._resolve(set_number, None)

    def _run_correction(self, set_number: int, buffer: SetBuffer,
                        hz_hint: Optional[float] = None):
        """Worker job: correct one handed-off buffer and apply the result to its own set."""
        try:
            result = self.pipeline.process(buffer, sampling_hz_hint=hz_hint)
        except Exception:
            logger.exception(f"Correction failed for set {set_number}")
            result = CorrectionResult(validated_reps=[], rep_metrics=[])

        with self._lock:
            record = self.state.sets.get(set_number)
            if record is None or record.session_id != buffer.session_id:
                logger.warning(f"Discarding correction for set {set_number}: buffer no longer tracked")
                return
            record.correction = result
            record.correction_pending = False
            self._resolve(set_number, result)
        self._deliver()

    def _resolve(self, set_number: int, result: Optional[CorrectionResult]):
        """Record a set's outcome and queue every result that is next in set order."""
        with self._lock:
            self._resolved[set_number] = result
            while self._next_emit in self._resolved:
                n = self._next_emit
                res = self._resolved.pop(n)
                self._next_emit += 1
                if res is None:
                    continue
                self._queue(ValidatedRepsReady(
                    exercise_id=self.state.exercise_id,
                    set_number=n,
                    count=res.count,
                    reps=list(res.validated_reps),
                    metrics=list(res.rep_metrics),
                ))

    # ------------------------------------------------------------------
    # Event delivery
    # ------------------------------------------------------------------
    def _queue(self, event: SessionEvent):
        """Called with _lock held; queue order is delivery order."""
        self._outbox.append(event)

    def _flush(self):
        """Submit queued corrections, then deliver queued events. Never called with _lock held."""
        while True:
            try:
                set_number, buffer, hz_hint = self._jobs.popleft()
            except IndexError:
                break
            future = self.executor.submit(self._run_correction, set_number, buffer, hz_hint)
            with self._lock:
                self._futures.append(future)
        self._deliver()

    def _deliver(self):
        """
        Deliver queued events without holding the state lock.

        Only one thread delivers at a time. A thread that finds delivery
        already in progress leaves its events to that thread, which checks
        the queue again after releasing the delivery lock.
        """
        while self._outbox:
            if not self._delivery_lock.acquire(blocking=False):
                return
            try:
                while True:
                    try:
                        event = self._outbox.popleft()
                    except IndexError:
                        break
                    self.events.emit(event)
            finally:
                self._delivery_lock.release()
