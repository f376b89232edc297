"""
Device Link
===========

Asyncio actor that drives the LinkStateMachine against a transport.

This module provides the DeviceLink class which:
    - Owns one event queue; every source (user calls, timers, scan
      results, notifications, transport state) only posts events
    - Applies each event to the pure reducer in FIFO order
    - Executes the returned effects (scan, connect, timers, publishing)
    - Forwards incoming frames to a frame sink (the sample ingest)

Design Rules:
    - Link errors never escape; they become ConnectFailed or LinkLost
    - Timers use loop.call_later and only post events
    - Timers, scan, connect and subscriptions are all cancelled together
      on disconnect or disposal
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from cardio_stream.errors import ConnectTimeoutError, LinkError
from cardio_stream.events.bus import EventBus
from cardio_stream.events.types import ConnectionStatusChanged
from cardio_stream.ingest.frame import RawFrame
from cardio_stream.link.machine import (
    CancelAllTimers,
    CancelTimer,
    CloseLink,
    Connect,
    ConnectFailed,
    ConnectRequested,
    ConnectSucceeded,
    DataReceived,
    DeviceDiscovered,
    DisconnectRequested,
    Dispose,
    HeartbeatTick,
    LinkEffect,
    LinkEvent,
    LinkLost,
    LinkStateMachine,
    PublishStatus,
    QueryTransportStatus,
    RecordingStarted,
    ReconnectTimerFired,
    RescanTimerFired,
    ScanCompleted,
    ScanRequested,
    ScheduleTimer,
    StartScan,
    StatusCheckTick,
    StopScan,
    TimerKind,
    TransportStatus,
)
from cardio_stream.link.transport import DeviceTransport
from cardio_stream.models.link import ConnectionState, DeviceCandidate, LinkState


logger = logging.getLogger(__name__)


FrameSink = Callable[[RawFrame], None]

_TIMER_EVENTS = {
    TimerKind.RECONNECT: ReconnectTimerFired,
    TimerKind.RESCAN: RescanTimerFired,
    TimerKind.HEARTBEAT: HeartbeatTick,
    TimerKind.STATUS_CHECK: StatusCheckTick,
}


class DeviceLinkMetrics:
    """Metrics for DeviceLink observability."""

    __slots__ = (
        "events_processed",
        "frames_received",
        "connect_attempts",
        "connect_failures",
        "links_lost",
        "sink_errors",
    )

    def __init__(self) -> None:
        self.events_processed: int = 0
        self.frames_received: int = 0
        self.connect_attempts: int = 0
        self.connect_failures: int = 0
        self.links_lost: int = 0
        self.sink_errors: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "events_processed": self.events_processed,
            "frames_received": self.frames_received,
            "sink_errors": self.sink_errors,
            "connect_attempts": self.connect_attempts,
            "connect_failures": self.connect_failures,
            "links_lost": self.links_lost,
        }


class DeviceLink:
    """
    Sensor link actor.

    Attributes:
        state: Current LinkState
        metrics: Operational metrics

    Example:
        link = DeviceLink(BleakTransport(), LinkStateMachine(), bus, ingest.on_frame)
        await link.start()
        link.scan()
        ...
        await link.stop()
    """

    def __init__(
        self,
        transport: DeviceTransport,
        machine: Optional[LinkStateMachine] = None,
        bus: Optional[EventBus] = None,
        frame_sink: Optional[FrameSink] = None,
    ) -> None:
        """
        Initialize the device link.

        Args:
            transport: Sensor transport
            machine: Link reducer (defaults to the standard configuration)
            bus: Event bus for connection status events
            frame_sink: Receives every incoming frame
        """
        self.transport = transport
        self.machine = machine or LinkStateMachine()
        self.bus = bus
        self.frame_sink = frame_sink

        self._state = LinkState()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._runner: Optional[asyncio.Task] = None
        self._timers: Dict[TimerKind, asyncio.TimerHandle] = {}
        self._scan_task: Optional[asyncio.Task] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._notify_task: Optional[asyncio.Task] = None
        self._state_task: Optional[asyncio.Task] = None
        self._status_task: Optional[asyncio.Task] = None
        self._link: Any = None

        self.metrics = DeviceLinkMetrics()

    @property
    def state(self) -> LinkState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state.connection == ConnectionState.CONNECTED

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        if self._runner is None or self._runner.done():
            self._runner = asyncio.create_task(self._run())
            logger.info("DeviceLink started")

    async def stop(self) -> None:
        """Dispose the link and wait for the actor to finish."""
        if self._runner is None:
            return
        self.post(Dispose(at=self._now()))
        try:
            await self._runner
        finally:
            self._runner = None
            self._cancel_tasks()
        logger.info("DeviceLink stopped")

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def post(self, event: LinkEvent) -> None:
        self._queue.put_nowait(event)

    def scan(self) -> None:
        self.post(ScanRequested(at=self._now()))

    def connect_to(self, candidate: DeviceCandidate) -> None:
        self.post(ConnectRequested(candidate=candidate, at=self._now()))

    def disconnect(self) -> None:
        self.post(DisconnectRequested(at=self._now()))

    def recording_started(self) -> None:
        self.post(RecordingStarted(at=self._now()))

    def get_metrics(self) -> dict:
        return {
            "connection": self._state.connection.value,
            "reconnect_attempts": self._state.reconnect_attempts,
            "missed_heartbeats": self._state.missed_heartbeats,
            "device": self._state.device.name if self._state.device else None,
            **self.metrics.to_dict(),
        }

    # -------------------------------------------------------------------------
    # Actor loop
    # -------------------------------------------------------------------------

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            previous = self._state.connection
            self._state, effects = self.machine.apply(self._state, event)
            self.metrics.events_processed += 1

            if self._state.connection != previous:
                logger.info(
                    f"Link state: {previous.value} -> {self._state.connection.value} "
                    f"({type(event).__name__})"
                )

            for effect in effects:
                await self._execute(effect)

            if self._state.disposed:
                break

    async def _execute(self, effect: LinkEffect) -> None:
        if isinstance(effect, StartScan):
            self._cancel(self._scan_task)
            self._scan_task = asyncio.create_task(self._scan(effect.timeout))
        elif isinstance(effect, StopScan):
            self._cancel(self._scan_task)
            self._scan_task = None
        elif isinstance(effect, Connect):
            self._cancel(self._connect_task)
            self.metrics.connect_attempts += 1
            self._connect_task = asyncio.create_task(
                self._connect(effect.candidate, effect.timeout)
            )
        elif isinstance(effect, CloseLink):
            await self._close_link()
        elif isinstance(effect, ScheduleTimer):
            self._schedule(effect.kind, effect.delay, effect.repeat)
        elif isinstance(effect, CancelTimer):
            handle = self._timers.pop(effect.kind, None)
            if handle is not None:
                handle.cancel()
        elif isinstance(effect, CancelAllTimers):
            for handle in self._timers.values():
                handle.cancel()
            self._timers.clear()
        elif isinstance(effect, QueryTransportStatus):
            self._cancel(self._status_task)
            self._status_task = asyncio.create_task(self._query_status())
        elif isinstance(effect, PublishStatus):
            if self.bus is not None:
                self.bus.publish(
                    ConnectionStatusChanged(
                        state=effect.state,
                        message=effect.message,
                        device_name=effect.device_name,
                    )
                )
        else:
            logger.warning(f"Unhandled link effect: {effect!r}")

    # -------------------------------------------------------------------------
    # Effect workers
    # -------------------------------------------------------------------------

    async def _scan(self, timeout: float) -> None:
        try:
            async for candidate in self.transport.scan(timeout):
                self.post(DeviceDiscovered(candidate=candidate, at=self._now()))
        except LinkError as e:
            logger.warning(f"Scan error: {e}")
        self.post(ScanCompleted(at=self._now()))

    async def _connect(self, candidate: DeviceCandidate, timeout: float) -> None:
        try:
            link, payloads = await asyncio.wait_for(self._open(candidate, timeout), timeout=timeout)
        except asyncio.TimeoutError:
            error: LinkError = ConnectTimeoutError(
                f"Connecting to {candidate.address} timed out after {timeout:.0f}s"
            )
            self.metrics.connect_failures += 1
            self.post(ConnectFailed(error=str(error), at=self._now()))
            return
        except LinkError as e:
            self.metrics.connect_failures += 1
            self.post(ConnectFailed(error=str(e), at=self._now()))
            return

        self._link = link
        self._notify_task = asyncio.create_task(self._pump_notifications(payloads))
        self._state_task = asyncio.create_task(
            self._watch_state(self.transport.connection_state_stream(link))
        )
        self.post(ConnectSucceeded(candidate=candidate, at=self._now()))

    async def _open(self, candidate: DeviceCandidate, timeout: float):
        link = await self.transport.connect(candidate, timeout)
        try:
            channel = await self.transport.discover_notify_channel(link)
            payloads = await self.transport.subscribe(link, channel)
        except (LinkError, asyncio.CancelledError):
            await self._disconnect_quietly(link)
            raise
        return link, payloads

    async def _pump_notifications(self, payloads) -> None:
        try:
            async for payload in payloads:
                now = self._now()
                self.metrics.frames_received += 1
                if self.frame_sink is not None:
                    try:
                        self.frame_sink(RawFrame(payload=payload, received_at=now))
                    except Exception:
                        # A failing consumer must not stop the notification stream
                        self.metrics.sink_errors += 1
                        logger.exception("Frame sink failed, frame dropped")
                self.post(DataReceived(at=now))
        except LinkError as e:
            self.metrics.links_lost += 1
            self.post(LinkLost(reason=f"Notification stream failed: {e}", at=self._now()))

    async def _watch_state(self, states) -> None:
        try:
            async for connected in states:
                if not connected:
                    self.metrics.links_lost += 1
                    self.post(LinkLost(reason="Device disconnected", at=self._now()))
        except LinkError as e:
            self.post(LinkLost(reason=f"State stream failed: {e}", at=self._now()))

    async def _query_status(self) -> None:
        link = self._link
        if link is None:
            connected = False
        else:
            try:
                connected = await self.transport.is_connected(link)
            except LinkError as e:
                logger.warning(f"Status query failed: {e}")
                connected = False
        self.post(TransportStatus(connected=connected, at=self._now()))

    async def _close_link(self) -> None:
        self._cancel(self._connect_task)
        self._cancel(self._notify_task)
        self._cancel(self._state_task)
        self._connect_task = self._notify_task = self._state_task = None
        link, self._link = self._link, None
        if link is not None:
            await self._disconnect_quietly(link)

    async def _disconnect_quietly(self, link: Any) -> None:
        try:
            await self.transport.disconnect(link)
        except LinkError as e:
            logger.warning(f"Disconnect error ignored: {e}")

    # -------------------------------------------------------------------------
    # Timers
    # -------------------------------------------------------------------------

    def _schedule(self, kind: TimerKind, delay: float, repeat: bool) -> None:
        existing = self._timers.pop(kind, None)
        if existing is not None:
            existing.cancel()
        loop = asyncio.get_running_loop()
        self._timers[kind] = loop.call_later(delay, self._fire, kind, delay, repeat)

    def _fire(self, kind: TimerKind, delay: float, repeat: bool) -> None:
        self._timers.pop(kind, None)
        self.post(_TIMER_EVENTS[kind](at=self._now()))
        if repeat:
            self._schedule(kind, delay, repeat)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _now() -> float:
        return asyncio.get_running_loop().time()

    @staticmethod
    def _cancel(task: Optional[asyncio.Task]) -> None:
        if task is not None and not task.done():
            task.cancel()

    def _cancel_tasks(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        for task in (
            self._scan_task,
            self._connect_task,
            self._notify_task,
            self._state_task,
            self._status_task,
        ):
            self._cancel(task)
