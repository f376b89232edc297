"""
CardioStream Runtime
====================

Builds and owns every pipeline component for one service instance.

Wiring:
    DeviceLink --frames--> SampleIngest --samples--> RecordingSession
                                |                        |
                          BufferSnapshot          BeatDetector, Scorer,
                                |                 SessionAnalysisGraph
                                v                        |
                             EventBus <------------------+

All dependencies are passed in; nothing here is a process-wide singleton,
so tests build a runtime around a fake transport and in-memory stores.
"""

import asyncio
import logging
import time
from typing import Optional

from cardio_stream.analysis.graph import SessionAnalysisGraph
from cardio_stream.config import Settings
from cardio_stream.events.bus import EventBus
from cardio_stream.ingest.decoder import FrameDecoder
from cardio_stream.ingest.ingest import SampleIngest
from cardio_stream.link.bleak_transport import BleakTransport
from cardio_stream.link.device_link import DeviceLink
from cardio_stream.link.machine import LinkStateMachine
from cardio_stream.link.policy import ReconnectPolicy
from cardio_stream.link.transport import DeviceTransport
from cardio_stream.prediction.detector import PredictiveCardiacDetector
from cardio_stream.scoring.health_scorer import ContinuousHealthScorer
from cardio_stream.session.recorder import RecordingSession
from cardio_stream.signals.adaptive_processor import AdaptiveSignalProcessor
from cardio_stream.signals.beat_detector import BeatDetector
from cardio_stream.stores import create_stores
from cardio_stream.stores.base import SessionStore, UserProfileStore
from cardio_stream.tasks import spawn


logger = logging.getLogger(__name__)


class CardioRuntime:
    """
    One wired acquisition and analysis pipeline.

    Example:
        runtime = CardioRuntime(settings)
        await runtime.start()
        await runtime.recorder.start()
        ...
        await runtime.stop()
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[DeviceTransport] = None,
        session_store: Optional[SessionStore] = None,
        profile_store: Optional[UserProfileStore] = None,
    ) -> None:
        """
        Build the pipeline.

        Args:
            settings: Loaded configuration
            transport: Sensor transport (bleak when None)
            session_store: Session store (configured backend when None)
            profile_store: User profile store (configured backend when None)
        """
        self.settings = settings
        signal = settings.signal

        if session_store is None or profile_store is None:
            default_sessions, default_profiles = create_stores(settings.storage)
            session_store = session_store or default_sessions
            profile_store = profile_store or default_profiles
        self.session_store = session_store
        self.profile_store = profile_store

        if transport is None:
            transport = BleakTransport()

        self.bus = EventBus()
        self.ingest = SampleIngest(
            decoder=FrameDecoder(reference_voltage=settings.ingest.reference_voltage),
            capacity=settings.ingest.buffer_capacity,
            min_batch_interval_ms=settings.ingest.min_batch_interval_ms,
        )
        self.detector = BeatDetector(
            sample_interval_ms=signal.sample_interval_ms,
            threshold_factor=signal.threshold_factor,
            refractory_samples=signal.refractory_samples,
            threshold_window=signal.threshold_window,
        )
        self.processor = AdaptiveSignalProcessor(
            sample_interval_ms=signal.sample_interval_ms,
            learning_window=settings.profile.learning_window,
            threshold_factor=signal.threshold_factor,
            refractory_samples=signal.refractory_samples,
        )
        self.scorer = ContinuousHealthScorer(
            sample_interval_ms=signal.sample_interval_ms,
            threshold_factor=signal.threshold_factor,
            refractory_samples=signal.refractory_samples,
        )
        self.predictor = PredictiveCardiacDetector(
            pattern_window=settings.prediction.pattern_window,
        )
        self.analysis = SessionAnalysisGraph(
            session_store=self.session_store,
            scorer=self.scorer,
            detector=self.predictor,
            history_limit=settings.storage.history_limit,
            window_samples=settings.scoring.window_samples,
        )

        link_config = settings.link
        self.machine = LinkStateMachine(
            keywords=settings.device.name_keywords,
            scan_timeout=settings.device.scan_timeout_seconds,
            connect_timeout=settings.device.connect_timeout_seconds,
            heartbeat_interval=link_config.heartbeat_interval_seconds,
            stale_after=link_config.stale_after_seconds,
            max_missed_heartbeats=link_config.max_missed_heartbeats,
            status_check_interval=link_config.status_check_interval_seconds,
            force_reconnect_pause=link_config.force_reconnect_pause_seconds,
            rescan_delay=link_config.rescan_delay_seconds,
            policy=ReconnectPolicy(
                schedule=link_config.backoff_schedule_seconds,
                max_attempts=link_config.max_reconnect_attempts,
                cap_pause=link_config.cap_pause_seconds,
            ),
        )
        self.link = DeviceLink(
            transport=transport,
            machine=self.machine,
            bus=self.bus,
            frame_sink=self.ingest.on_frame,
        )
        self.recorder = RecordingSession(
            user_id=settings.service.user_id,
            bus=self.bus,
            detector=self.detector,
            scorer=self.scorer,
            processor=self.processor,
            analysis=self.analysis,
            session_store=self.session_store,
            profile_store=self.profile_store,
            link=self.link,
            countdown_seconds=settings.recording.countdown_seconds,
            duration_seconds=settings.recording.duration_seconds,
            tick_interval_seconds=settings.scoring.tick_interval_ms / 1000.0,
            window_samples=settings.scoring.window_samples,
            alert_threshold=settings.scoring.alert_threshold,
            history_limit=settings.storage.history_limit,
            score_conditioned_signal=settings.scoring.score_conditioned_signal,
        )
        self.ingest.add_listener(self.recorder.on_samples)

        self._snapshot_task: Optional[asyncio.Task] = None
        self._started_at: Optional[float] = None
        self._ready: bool = False

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def uptime_seconds(self) -> float:
        return time.time() - self._started_at if self._started_at else 0.0

    async def start(self) -> None:
        self._started_at = time.time()
        await self.recorder.load_context()
        await self.link.start()
        if self.settings.device.auto_scan:
            self.link.scan()
        self._snapshot_task = spawn(self._publish_snapshots(), name="buffer_snapshots")
        self._ready = True
        logger.info(f"Runtime started for user {self.settings.service.user_id}")

    async def stop(self) -> None:
        self._ready = False
        await self.recorder.stop()
        await self.link.stop()
        if self._snapshot_task:
            self._snapshot_task.cancel()
            try:
                await self._snapshot_task
            except asyncio.CancelledError:
                pass
            self._snapshot_task = None
        logger.info("Runtime stopped")

    async def _publish_snapshots(self) -> None:
        interval = self.settings.ingest.snapshot_interval_ms / 1000.0
        last_written = -1
        while True:
            await asyncio.sleep(interval)
            written = self.ingest.metrics.samples_written
            if self.ingest.channel_count and written != last_written:
                last_written = written
                self.bus.publish(self.ingest.snapshot())

    def get_metrics(self) -> dict:
        return {
            "uptime_seconds": round(self.uptime_seconds, 1),
            "link": self.link.get_metrics(),
            "ingest": {
                **self.ingest.metrics.to_dict(),
                "channels": self.ingest.channel_count,
                "decode_errors": self.ingest.decode_errors,
            },
            "beats": self.detector.get_metrics(),
            "recording": self.recorder.get_metrics(),
            "analysis": self.analysis.get_metrics(),
            "events": self.bus.metrics(),
        }
