"""
Recording Session
=================

Drives one timed ECG recording from countdown to prediction.

States:
    IDLE -> COUNTDOWN -> RECORDING -> PROCESSING -> IDLE

While recording:
    - samples from the ingest feed the beat detector and the session series
    - every scoring tick scores the most recent window and publishes
      HealthMetricsUpdated, plus HealthAlert below the alert threshold
    - the personal profile is locked
    - the device link keeps reconnecting on loss

On completion:
    - the ECGSession is built from the per-beat heart rates and saved;
      a save failure is published as RecordingSaveFailed
    - the analysis graph runs on whatever history is available and its
      prediction is published as PredictionReady
    - the personal profile is relearned from the updated history

Stress Estimate (from the mean absolute successive difference of heart
rates, lower variability reads as higher stress):
    < 5 -> 0.8, < 10 -> 0.6, < 20 -> 0.4, else 0.2; fewer than 3 rates -> 0.3
"""

import asyncio
import logging
import math
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Protocol, Sequence

import numpy as np

from cardio_stream.analysis.graph import SessionAnalysisGraph
from cardio_stream.errors import PersistenceError, ProfileLockedError
from cardio_stream.events.bus import EventBus
from cardio_stream.events.types import (
    HealthAlert,
    HealthMetricsUpdated,
    HeartRateUpdated,
    PredictionReady,
    RecordingSaveFailed,
    RecordingStateChanged,
)
from cardio_stream.ingest.ring_buffer import is_empty_sample
from cardio_stream.models.health import HealthMetrics
from cardio_stream.models.prediction import CardiacPrediction
from cardio_stream.models.profile import PersonalSignalProfile
from cardio_stream.models.session import ECGSession, UserProfile
from cardio_stream.scoring.health_scorer import ContinuousHealthScorer
from cardio_stream.signals.adaptive_processor import AdaptiveSignalProcessor
from cardio_stream.signals.beat_detector import BeatDetector
from cardio_stream.stores.base import SessionStore, UserProfileStore
from cardio_stream.tasks import spawn


logger = logging.getLogger(__name__)


class RecordingState(str, Enum):
    IDLE = "idle"
    COUNTDOWN = "countdown"
    RECORDING = "recording"
    PROCESSING = "processing"


class RecordingLink(Protocol):
    """The part of the device link a recording needs."""

    def recording_started(self) -> None:
        ...


def estimate_stress(rates: Sequence[float]) -> float:
    """Stress level in [0, 1] from heart-rate variability."""
    if len(rates) < 3:
        return 0.3
    variability = float(np.mean(np.abs(np.diff(np.asarray(rates, dtype=np.float64)))))
    if variability < 5:
        return 0.8
    if variability < 10:
        return 0.6
    if variability < 20:
        return 0.4
    return 0.2


def session_quality(samples: Sequence[float]) -> float:
    """Coarse quality score: 80 base, penalised for spread, rewarded for length."""
    score = 80.0
    if samples:
        spread = float(np.std(samples))
        if spread > 100:
            score -= 20
        elif spread > 50:
            score -= 10
    if len(samples) > 1000:
        score += 10
    return max(0.0, min(100.0, score))


def rhythm_label(irregular: bool) -> str:
    return "Irregular Rhythm" if irregular else "Normal Sinus Rhythm"


class RecordingSession:
    """
    Timed recording controller.

    Attributes:
        state: Current RecordingState
        latest_metrics: Most recent health snapshot
        latest_prediction: Most recent prediction

    Example:
        recorder = RecordingSession(user_id, bus, detector, scorer, processor,
                                    analysis, session_store, profile_store, link)
        ingest.add_listener(recorder.on_samples)
        await recorder.load_context()
        await recorder.start()
        prediction = await recorder.wait_finished()
    """

    def __init__(
        self,
        user_id: str,
        bus: EventBus,
        detector: BeatDetector,
        scorer: ContinuousHealthScorer,
        processor: AdaptiveSignalProcessor,
        analysis: SessionAnalysisGraph,
        session_store: SessionStore,
        profile_store: UserProfileStore,
        link: Optional[RecordingLink] = None,
        countdown_seconds: float = 3.0,
        duration_seconds: float = 30.0,
        tick_interval_seconds: float = 0.5,
        window_samples: int = 3750,
        alert_threshold: float = 60.0,
        history_limit: int = 100,
        score_conditioned_signal: bool = False,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.user_id = user_id
        self.bus = bus
        self.detector = detector
        self.scorer = scorer
        self.processor = processor
        self.analysis = analysis
        self.session_store = session_store
        self.profile_store = profile_store
        self.link = link
        self.countdown_seconds = countdown_seconds
        self.duration_seconds = duration_seconds
        self.tick_interval_seconds = tick_interval_seconds
        self.window_samples = window_samples
        self.alert_threshold = alert_threshold
        self.history_limit = history_limit
        self.score_conditioned_signal = score_conditioned_signal
        self.clock = clock

        self._state = RecordingState.IDLE
        self._user = UserProfile(user_id=user_id)
        self._history: List[ECGSession] = []
        self._samples: List[float] = []
        self._rates: List[float] = []
        self._started_at: Optional[datetime] = None

        self._run_task: Optional[asyncio.Task] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._finished = asyncio.Event()
        self._finished.set()

        self.latest_metrics: Optional[HealthMetrics] = None
        self.latest_prediction: Optional[CardiacPrediction] = None
        self.last_session_quality: Optional[float] = None
        self._recordings: int = 0
        self._save_failures: int = 0
        self._ticks: int = 0

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def state(self) -> RecordingState:
        return self._state

    @property
    def user(self) -> UserProfile:
        return self._user

    @property
    def cached_history(self) -> List[ECGSession]:
        return list(self._history)

    @property
    def sample_count(self) -> int:
        return len(self._samples)

    @property
    def profile(self) -> PersonalSignalProfile:
        return self.processor.profile or self.processor.default_profile(self._user)

    # -------------------------------------------------------------------------
    # Context
    # -------------------------------------------------------------------------

    async def load_context(self) -> None:
        """
        Load the wearer, the recent history and the personal profile.

        Store reads run in a worker thread; failures keep the previous values.
        """
        try:
            self._user = await asyncio.to_thread(
                self.profile_store.load_user_profile, self.user_id
            )
        except PersistenceError as e:
            logger.warning(f"User profile load failed, keeping defaults: {e}")
        try:
            self._history = await asyncio.to_thread(
                self.session_store.load_recent_sessions, self.user_id, self.history_limit
            )
        except PersistenceError as e:
            logger.warning(f"History load failed, keeping cached history: {e}")
        self._relearn_profile()

    def _relearn_profile(self) -> None:
        try:
            self.processor.relearn(self._history, self._user)
        except ProfileLockedError as e:
            logger.warning(f"Profile not relearned: {e}")

    # -------------------------------------------------------------------------
    # Samples
    # -------------------------------------------------------------------------

    def on_samples(self, values: Sequence[float]) -> None:
        """Ingest listener; samples outside a recording are ignored."""
        if self._state != RecordingState.RECORDING:
            return
        for value in values:
            if not is_empty_sample(value):
                self._samples.append(float(value))
            if self.detector.update(value) is not None:
                rate = self.detector.heart_rate
                if rate > 0:
                    self._rates.append(rate)
                    self.bus.publish(HeartRateUpdated(bpm=rate))

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> bool:
        """
        Begin the countdown.

        Returns:
            False if a recording is already in progress
        """
        if self._state != RecordingState.IDLE:
            logger.warning(f"Recording not started, state is {self._state.value}")
            return False
        self._finished.clear()
        self._set_state(RecordingState.COUNTDOWN)
        self._run_task = spawn(self._run(), name="recording")
        return True

    async def stop(self) -> Optional[CardiacPrediction]:
        """
        Stop early.

        A countdown is aborted without a session; a running recording is
        completed and analysed.

        Returns:
            The prediction, if the recording was completed
        """
        if self._state == RecordingState.IDLE:
            return None
        if self._state == RecordingState.PROCESSING:
            await self._finished.wait()
            return self.latest_prediction

        was_recording = self._state == RecordingState.RECORDING
        await self._cancel(self._run_task)
        self._run_task = None
        if not was_recording:
            self._set_state(RecordingState.IDLE)
            self._finished.set()
            logger.info("Recording countdown aborted")
            return None
        return await self._complete()

    async def wait_finished(self) -> Optional[CardiacPrediction]:
        await self._finished.wait()
        return self.latest_prediction

    async def _run(self) -> None:
        await self._count_down(self.countdown_seconds, RecordingState.COUNTDOWN)

        self._begin_recording()
        await self._count_down(self.duration_seconds, RecordingState.RECORDING)

        self._run_task = None
        await self._complete()

    async def _count_down(self, seconds: float, state: RecordingState) -> None:
        remaining = seconds
        while remaining > 0:
            self.bus.publish(
                RecordingStateChanged(state=state.value, remaining_seconds=math.ceil(remaining))
            )
            step = min(1.0, remaining)
            await asyncio.sleep(step)
            remaining -= step

    def _begin_recording(self) -> None:
        self._samples = []
        self._rates = []
        self.detector.reset()
        self.processor.lock()
        if self.link is not None:
            self.link.recording_started()
        self._started_at = self.clock()
        self._set_state(RecordingState.RECORDING)
        self._tick_task = spawn(self._scoring_loop(), name="recording_scores")
        logger.info(f"Recording started ({self.duration_seconds:.0f}s)")

    async def _scoring_loop(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval_seconds)
            self.score_tick()

    def score_tick(self) -> HealthMetrics:
        """Score the current window and publish the snapshot."""
        window = self._samples[-self.window_samples:]
        profile = self.profile
        if self.score_conditioned_signal and window:
            window = self.processor.adaptive_filter(window, profile)

        metrics = self.scorer.calculate_real_time_score(
            window,
            profile,
            self._history,
            self._user,
            current_time=self.clock(),
            stress_level=estimate_stress(self._rates),
        )
        self._ticks += 1
        self.latest_metrics = metrics
        self.bus.publish(HealthMetricsUpdated(metrics=metrics))
        if metrics.overall_score < self.alert_threshold:
            logger.warning(
                f"Health alert: overall={metrics.overall_score:.1f} ({metrics.health_status.value})"
            )
            self.bus.publish(HealthAlert(metrics=metrics))
        return metrics

    async def _complete(self) -> Optional[CardiacPrediction]:
        self._set_state(RecordingState.PROCESSING)
        await self._cancel(self._tick_task)
        self._tick_task = None

        try:
            session = self.build_session()
            self.last_session_quality = session_quality(session.samples)
            await self._save(session)

            self.processor.unlock()
            result = await asyncio.to_thread(
                self.analysis.analyze,
                self._user,
                self.profile,
                session=session,
                cached_history=self._history,
                metrics=self.latest_metrics,
                analysis_time=self.clock(),
                stress_level=estimate_stress(self._rates),
            )
            self._history = result.history
            self.latest_metrics = result.metrics
            self.latest_prediction = result.prediction
            self._relearn_profile()
            self.bus.publish(PredictionReady(prediction=result.prediction))

            self._recordings += 1
            logger.info(
                f"Recording complete: {len(session.samples)} samples, "
                f"avg={session.avg_bpm:.1f} BPM, quality={self.last_session_quality:.0f}, "
                f"risk={result.prediction.risk_level.value}"
            )
            return result.prediction
        finally:
            self.processor.unlock()
            self._set_state(RecordingState.IDLE)
            self._finished.set()

    async def analyze_now(self) -> CardiacPrediction:
        """Run the analysis on the cached history and latest snapshot."""
        result = await asyncio.to_thread(
            self.analysis.analyze,
            self._user,
            self.profile,
            cached_history=self._history,
            metrics=self.latest_metrics,
            analysis_time=self.clock(),
            stress_level=estimate_stress(self._rates),
        )
        self._history = result.history
        self.latest_metrics = result.metrics
        self.latest_prediction = result.prediction
        self.bus.publish(PredictionReady(prediction=result.prediction))
        return result.prediction

    def build_session(self) -> ECGSession:
        """ECGSession from the samples and per-beat heart rates collected so far."""
        started = self._started_at or self.clock()
        rates = self._rates
        report = self.processor.detect_personal_anomalies(self._samples, self.profile)

        session = ECGSession(
            user_id=self.user_id,
            session_name=f"ECG {started.strftime('%Y-%m-%d %H:%M')}",
            timestamp=started,
            duration=max(0.0, (self.clock() - started).total_seconds()),
            samples=list(self._samples),
            avg_bpm=float(np.mean(rates)) if rates else 0.0,
            min_bpm=float(min(rates)) if rates else 0.0,
            max_bpm=float(max(rates)) if rates else 0.0,
            rhythm=rhythm_label(report.irregular_rhythm),
        )
        status = session.heart_rate_status
        if report.irregular_rhythm:
            status = "Irregular"
        elif status == "Unknown":
            status = "Normal"
        return session.model_copy(update={"status": status})

    async def _save(self, session: ECGSession) -> None:
        try:
            await asyncio.to_thread(self.session_store.save_session, session)
        except PersistenceError as e:
            self._save_failures += 1
            logger.error(f"Session save failed: {e}")
            self.bus.publish(RecordingSaveFailed(error=str(e)))

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _set_state(self, state: RecordingState) -> None:
        if state == self._state:
            return
        self._state = state
        self.bus.publish(RecordingStateChanged(state=state.value, remaining_seconds=0))

    @staticmethod
    async def _cancel(task: Optional[asyncio.Task]) -> None:
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def get_metrics(self) -> dict:
        return {
            "state": self._state.value,
            "recordings": self._recordings,
            "save_failures": self._save_failures,
            "ticks": self._ticks,
            "samples": len(self._samples),
            "heart_rate": self.detector.heart_rate,
            "history_sessions": len(self._history),
            "last_session_quality": self.last_session_quality,
        }
