"""
Link State Machine
==================

Pure reducer for the sensor link lifecycle.

    apply(state, event) -> (new_state, effects)

The reducer never performs I/O and never reads a clock: every event
carries the loop time ``at`` it was posted at, and every side effect is
returned as an effect value for the runtime to execute. This makes the
whole connection lifecycle testable with a virtual clock.

States:
    DISCONNECTED -> SCANNING -> CONNECTING -> CONNECTED
    CONNECTED -> RECONNECTING on link loss or stale data
    RECONNECTING -> CONNECTING (known device) or SCANNING (no device)

Recovery Rules:
    - maintain_connection is set by the first successful connect and
      cleared only by an explicit disconnect or disposal
    - every link failure goes through the ReconnectPolicy while
      maintain_connection is set
    - a failed first connect rescans after rescan_delay
    - three consecutive stale heartbeats force a reconnection after a
      short pause on top of the policy delay
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union

from cardio_stream.link.policy import ReconnectPolicy
from cardio_stream.models.link import ConnectionState, DeviceCandidate, LinkState


logger = logging.getLogger(__name__)


# =============================================================================
# Events
# =============================================================================

@dataclass(frozen=True, slots=True)
class ScanRequested:
    at: float = 0.0


@dataclass(frozen=True, slots=True)
class DeviceDiscovered:
    candidate: DeviceCandidate
    at: float = 0.0


@dataclass(frozen=True, slots=True)
class ScanCompleted:
    at: float = 0.0


@dataclass(frozen=True, slots=True)
class ConnectRequested:
    """User picked a device explicitly."""

    candidate: DeviceCandidate
    at: float = 0.0


@dataclass(frozen=True, slots=True)
class ConnectSucceeded:
    candidate: DeviceCandidate
    at: float = 0.0


@dataclass(frozen=True, slots=True)
class ConnectFailed:
    error: str
    at: float = 0.0


@dataclass(frozen=True, slots=True)
class DataReceived:
    at: float = 0.0


@dataclass(frozen=True, slots=True)
class LinkLost:
    reason: str
    at: float = 0.0


@dataclass(frozen=True, slots=True)
class HeartbeatTick:
    at: float = 0.0


@dataclass(frozen=True, slots=True)
class StatusCheckTick:
    at: float = 0.0


@dataclass(frozen=True, slots=True)
class TransportStatus:
    """Answer to a QueryTransportStatus effect."""

    connected: bool
    at: float = 0.0


@dataclass(frozen=True, slots=True)
class ReconnectTimerFired:
    at: float = 0.0


@dataclass(frozen=True, slots=True)
class RescanTimerFired:
    at: float = 0.0


@dataclass(frozen=True, slots=True)
class DisconnectRequested:
    at: float = 0.0


@dataclass(frozen=True, slots=True)
class Dispose:
    at: float = 0.0


@dataclass(frozen=True, slots=True)
class RecordingStarted:
    """A recording needs the link; recovery is forced on."""

    at: float = 0.0


LinkEvent = Union[
    ScanRequested,
    DeviceDiscovered,
    ScanCompleted,
    ConnectRequested,
    ConnectSucceeded,
    ConnectFailed,
    DataReceived,
    LinkLost,
    HeartbeatTick,
    StatusCheckTick,
    TransportStatus,
    ReconnectTimerFired,
    RescanTimerFired,
    DisconnectRequested,
    Dispose,
    RecordingStarted,
]


# =============================================================================
# Effects
# =============================================================================

class TimerKind(str, Enum):
    RECONNECT = "reconnect"
    RESCAN = "rescan"
    HEARTBEAT = "heartbeat"
    STATUS_CHECK = "status_check"


@dataclass(frozen=True, slots=True)
class StartScan:
    timeout: float


@dataclass(frozen=True, slots=True)
class StopScan:
    pass


@dataclass(frozen=True, slots=True)
class Connect:
    candidate: DeviceCandidate
    timeout: float


@dataclass(frozen=True, slots=True)
class CloseLink:
    """Cancel the subscriptions and close the open link, if any."""


@dataclass(frozen=True, slots=True)
class ScheduleTimer:
    """(Re)arm a timer; a repeating timer re-arms itself after firing."""

    kind: TimerKind
    delay: float
    repeat: bool = False


@dataclass(frozen=True, slots=True)
class CancelTimer:
    kind: TimerKind


@dataclass(frozen=True, slots=True)
class CancelAllTimers:
    pass


@dataclass(frozen=True, slots=True)
class QueryTransportStatus:
    pass


@dataclass(frozen=True, slots=True)
class PublishStatus:
    state: ConnectionState
    message: str
    device_name: Optional[str] = None


LinkEffect = Union[
    StartScan,
    StopScan,
    Connect,
    CloseLink,
    ScheduleTimer,
    CancelTimer,
    CancelAllTimers,
    QueryTransportStatus,
    PublishStatus,
]

Transition = Tuple[LinkState, List[LinkEffect]]


# =============================================================================
# Reducer
# =============================================================================

class LinkStateMachine:
    """
    Deterministic link lifecycle reducer.

    Example:
        machine = LinkStateMachine(keywords=("ecg", "hm-10"))
        state = LinkState()
        state, effects = machine.apply(state, ScanRequested(at=0.0))
        # effects == [StartScan(10.0), PublishStatus(SCANNING, ...)]
    """

    def __init__(
        self,
        keywords: Sequence[str] = ("hm-10", "hm10", "b869h", "v5.0", "mlt-bt05", "ecg", "heart", "esp32"),
        scan_timeout: float = 10.0,
        connect_timeout: float = 15.0,
        heartbeat_interval: float = 5.0,
        stale_after: float = 10.0,
        max_missed_heartbeats: int = 3,
        status_check_interval: float = 15.0,
        force_reconnect_pause: float = 1.0,
        rescan_delay: float = 3.0,
        policy: Optional[ReconnectPolicy] = None,
    ) -> None:
        self.keywords = tuple(keywords)
        self.scan_timeout = scan_timeout
        self.connect_timeout = connect_timeout
        self.heartbeat_interval = heartbeat_interval
        self.stale_after = stale_after
        self.max_missed_heartbeats = max_missed_heartbeats
        self.status_check_interval = status_check_interval
        self.force_reconnect_pause = force_reconnect_pause
        self.rescan_delay = rescan_delay
        self.policy = policy or ReconnectPolicy()

    def apply(self, state: LinkState, event: LinkEvent) -> Transition:
        """
        Reduce one event.

        Args:
            state: Current link state
            event: Event to apply

        Returns:
            Tuple of (new_state, effects to execute in order)
        """
        if state.disposed:
            return state, []

        if isinstance(event, ScanRequested):
            return self._on_scan_requested(state)
        if isinstance(event, DeviceDiscovered):
            return self._on_device_discovered(state, event)
        if isinstance(event, ScanCompleted):
            return self._on_scan_completed(state)
        if isinstance(event, ConnectRequested):
            return self._on_connect_requested(state, event)
        if isinstance(event, ConnectSucceeded):
            return self._on_connect_succeeded(state, event)
        if isinstance(event, ConnectFailed):
            return self._on_connect_failed(state, event)
        if isinstance(event, DataReceived):
            if state.connection != ConnectionState.CONNECTED:
                return state, []
            return state.model_copy(update={"last_data_at": event.at, "missed_heartbeats": 0}), []
        if isinstance(event, HeartbeatTick):
            return self._on_heartbeat(state, event)
        if isinstance(event, StatusCheckTick):
            if state.connection != ConnectionState.CONNECTED:
                return state, []
            return state, [QueryTransportStatus()]
        if isinstance(event, TransportStatus):
            if event.connected or state.connection != ConnectionState.CONNECTED:
                return state, []
            return self._on_link_lost(state, "Transport reports the link is down")
        if isinstance(event, LinkLost):
            if state.connection != ConnectionState.CONNECTED:
                return state, []
            return self._on_link_lost(state, event.reason)
        if isinstance(event, ReconnectTimerFired):
            return self._on_reconnect_timer(state)
        if isinstance(event, RescanTimerFired):
            if state.connection != ConnectionState.DISCONNECTED or state.maintain_connection:
                return state, []
            return self._on_scan_requested(state)
        if isinstance(event, DisconnectRequested):
            return self._shutdown(state, disposed=False)
        if isinstance(event, Dispose):
            return self._shutdown(state, disposed=True)
        if isinstance(event, RecordingStarted):
            return self._on_recording_started(state)

        logger.warning(f"Unhandled link event: {event!r}")
        return state, []

    # -------------------------------------------------------------------------
    # Scan and connect
    # -------------------------------------------------------------------------

    def _on_scan_requested(self, state: LinkState) -> Transition:
        if state.connection in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            return state, []
        new_state = state.model_copy(
            update={"connection": ConnectionState.SCANNING, "candidates": ()}
        )
        return new_state, [
            CancelTimer(TimerKind.RESCAN),
            StartScan(self.scan_timeout),
            PublishStatus(ConnectionState.SCANNING, "Scanning for ECG devices"),
        ]

    def _on_device_discovered(self, state: LinkState, event: DeviceDiscovered) -> Transition:
        # Results that arrive after a connection has started are ignored
        if state.connection != ConnectionState.SCANNING:
            return state, []
        candidate = event.candidate
        if not candidate.matches(self.keywords):
            return state, []
        if any(c.address == candidate.address for c in state.candidates):
            return state, []

        candidates = state.candidates + (candidate,)
        logger.info(f"Found ECG device: {candidate.name} ({candidate.address})")
        return self._begin_connect(
            state.model_copy(update={"candidates": candidates}),
            candidate,
            extra=[StopScan()],
        )

    def _on_scan_completed(self, state: LinkState) -> Transition:
        if state.connection != ConnectionState.SCANNING:
            return state, []
        if state.maintain_connection:
            return self._schedule_reconnect(state, "No device found")
        new_state = state.model_copy(update={"connection": ConnectionState.DISCONNECTED})
        return new_state, [PublishStatus(ConnectionState.DISCONNECTED, "No ECG devices found")]

    def _on_connect_requested(self, state: LinkState, event: ConnectRequested) -> Transition:
        if state.connection in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            return state, []
        extra: List[LinkEffect] = [CancelTimer(TimerKind.RECONNECT), CancelTimer(TimerKind.RESCAN)]
        if state.connection == ConnectionState.SCANNING:
            extra.append(StopScan())
        return self._begin_connect(state, event.candidate, extra=extra)

    def _begin_connect(
        self,
        state: LinkState,
        candidate: DeviceCandidate,
        extra: Sequence[LinkEffect] = (),
    ) -> Transition:
        new_state = state.model_copy(
            update={"connection": ConnectionState.CONNECTING, "device": candidate}
        )
        return new_state, [
            *extra,
            Connect(candidate, self.connect_timeout),
            PublishStatus(
                ConnectionState.CONNECTING,
                f"Connecting to {candidate.name or candidate.address}",
                candidate.name,
            ),
        ]

    def _on_connect_succeeded(self, state: LinkState, event: ConnectSucceeded) -> Transition:
        if state.connection != ConnectionState.CONNECTING:
            # A late success after a disconnect or timeout; drop the link
            return state, [CloseLink()]

        candidate = event.candidate
        new_state = state.model_copy(
            update={
                "connection": ConnectionState.CONNECTED,
                "device": candidate,
                "maintain_connection": True,
                "reconnect_attempts": 0,
                "missed_heartbeats": 0,
                "last_data_at": event.at,
            }
        )
        logger.info(f"Connected to {candidate.name or candidate.address}")
        return new_state, [
            CancelTimer(TimerKind.RECONNECT),
            CancelTimer(TimerKind.RESCAN),
            ScheduleTimer(TimerKind.HEARTBEAT, self.heartbeat_interval, repeat=True),
            ScheduleTimer(TimerKind.STATUS_CHECK, self.status_check_interval, repeat=True),
            PublishStatus(
                ConnectionState.CONNECTED,
                f"Connected to {candidate.name or candidate.address}",
                candidate.name,
            ),
        ]

    def _on_connect_failed(self, state: LinkState, event: ConnectFailed) -> Transition:
        if state.connection != ConnectionState.CONNECTING:
            return state, []
        logger.warning(f"Connection attempt failed: {event.error}")
        if state.maintain_connection:
            return self._schedule_reconnect(state, "Connection failed", extra=[CloseLink()])

        new_state = state.model_copy(update={"connection": ConnectionState.DISCONNECTED})
        return new_state, [
            CloseLink(),
            PublishStatus(ConnectionState.DISCONNECTED, f"Connection failed: {event.error}"),
            ScheduleTimer(TimerKind.RESCAN, self.rescan_delay),
        ]

    # -------------------------------------------------------------------------
    # Monitoring and recovery
    # -------------------------------------------------------------------------

    def _on_heartbeat(self, state: LinkState, event: HeartbeatTick) -> Transition:
        if state.connection != ConnectionState.CONNECTED:
            return state, []

        silent_for = event.at - state.last_data_at if state.last_data_at is not None else None
        if silent_for is not None and silent_for <= self.stale_after:
            if state.missed_heartbeats == 0:
                return state, []
            return state.model_copy(update={"missed_heartbeats": 0}), []

        missed = state.missed_heartbeats + 1
        if missed < self.max_missed_heartbeats:
            return state.model_copy(update={"missed_heartbeats": missed}), []

        logger.warning(f"No data for {missed} heartbeats, forcing reconnection")
        return self._schedule_reconnect(
            state.model_copy(update={"missed_heartbeats": 0}),
            "No data received",
            extra=[
                CancelTimer(TimerKind.HEARTBEAT),
                CancelTimer(TimerKind.STATUS_CHECK),
                CloseLink(),
            ],
            pause=self.force_reconnect_pause,
        )

    def _on_link_lost(self, state: LinkState, reason: str) -> Transition:
        logger.warning(f"Link lost: {reason}")
        teardown: List[LinkEffect] = [
            CancelTimer(TimerKind.HEARTBEAT),
            CancelTimer(TimerKind.STATUS_CHECK),
            CloseLink(),
        ]
        if state.maintain_connection:
            return self._schedule_reconnect(state, "Connection lost", extra=teardown)

        new_state = state.model_copy(update={"connection": ConnectionState.DISCONNECTED})
        return new_state, [*teardown, PublishStatus(ConnectionState.DISCONNECTED, reason)]

    def _schedule_reconnect(
        self,
        state: LinkState,
        message: str,
        extra: Sequence[LinkEffect] = (),
        pause: float = 0.0,
    ) -> Transition:
        decision = self.policy.next_attempt(state.reconnect_attempts)
        delay = pause + decision.delay
        new_state = state.model_copy(
            update={
                "connection": ConnectionState.RECONNECTING,
                "reconnect_attempts": decision.attempts,
            }
        )
        if decision.attempts == 0:
            status = f"{message}, pausing {delay:.0f}s before retrying"
        else:
            status = f"{message}, retrying in {delay:.0f}s (attempt {decision.attempts})"
        return new_state, [
            *extra,
            ScheduleTimer(TimerKind.RECONNECT, delay),
            PublishStatus(
                ConnectionState.RECONNECTING,
                status,
                state.device.name if state.device else None,
            ),
        ]

    def _on_reconnect_timer(self, state: LinkState) -> Transition:
        if state.connection != ConnectionState.RECONNECTING:
            return state, []
        if state.device is not None:
            return self._begin_connect(state, state.device)
        new_state = state.model_copy(
            update={"connection": ConnectionState.SCANNING, "candidates": ()}
        )
        return new_state, [
            StartScan(self.scan_timeout),
            PublishStatus(ConnectionState.SCANNING, "Scanning for ECG devices"),
        ]

    def _on_recording_started(self, state: LinkState) -> Transition:
        new_state = state.model_copy(
            update={"maintain_connection": True, "reconnect_attempts": 0}
        )
        if state.connection != ConnectionState.DISCONNECTED:
            return new_state, []
        if state.device is not None:
            return self._begin_connect(new_state, state.device, extra=[CancelTimer(TimerKind.RESCAN)])
        return self._on_scan_requested(new_state)

    def _shutdown(self, state: LinkState, disposed: bool) -> Transition:
        new_state = state.model_copy(
            update={
                "connection": ConnectionState.DISCONNECTED,
                "maintain_connection": False,
                "reconnect_attempts": 0,
                "missed_heartbeats": 0,
                "candidates": (),
                "disposed": disposed,
            }
        )
        return new_state, [
            CancelAllTimers(),
            StopScan(),
            CloseLink(),
            PublishStatus(ConnectionState.DISCONNECTED, "Disposed" if disposed else "Disconnected"),
        ]
