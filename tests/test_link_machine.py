"""
Link State Machine Tests
========================

The pure link reducer driven with a virtual clock, and the reconnection
schedule.
"""

import pytest

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
from cardio_stream.link.policy import ReconnectDecision, ReconnectPolicy
from cardio_stream.models.link import ConnectionState, DeviceCandidate, LinkState


@pytest.fixture
def machine() -> LinkStateMachine:
    return LinkStateMachine(keywords=("hm-10", "ecg"))


def run(machine, state, *events):
    """Apply events in order, collecting every effect."""
    effects = []
    for event in events:
        state, produced = machine.apply(state, event)
        effects.extend(produced)
    return state, effects


def timers(effects, kind):
    return [e for e in effects if isinstance(e, ScheduleTimer) and e.kind == kind]


@pytest.fixture
def connected(machine, ecg_device):
    state, _ = run(
        machine,
        LinkState(),
        ScanRequested(at=0.0),
        DeviceDiscovered(candidate=ecg_device, at=1.0),
        ConnectSucceeded(candidate=ecg_device, at=2.0),
    )
    return state


class TestReconnectPolicy:
    def test_schedule(self):
        policy = ReconnectPolicy()
        delays = []
        attempts = 0
        for _ in range(10):
            decision = policy.next_attempt(attempts)
            delays.append(decision.delay)
            attempts = decision.attempts

        assert delays == [2, 2, 2, 5, 5, 5, 10, 10, 10, 10]
        assert attempts == 10

    def test_cap_resets_counter_with_pause(self):
        assert ReconnectPolicy().next_attempt(10) == ReconnectDecision(delay=10.0, attempts=0)

    def test_empty_schedule_rejected(self):
        with pytest.raises(ValueError):
            ReconnectPolicy(schedule=())


class TestScanAndConnect:
    def test_scan_requested(self, machine):
        state, effects = machine.apply(LinkState(), ScanRequested(at=0.0))

        assert state.connection == ConnectionState.SCANNING
        assert StartScan(timeout=10.0) in effects
        assert effects[-1] == PublishStatus(ConnectionState.SCANNING, "Scanning for ECG devices")

    def test_non_matching_device_ignored(self, machine):
        state, _ = machine.apply(LinkState(), ScanRequested(at=0.0))
        other = DeviceCandidate(name="Headphones", address="00:11")

        new_state, effects = machine.apply(state, DeviceDiscovered(candidate=other, at=1.0))

        assert new_state == state
        assert effects == []

    def test_first_match_connects(self, machine, ecg_device):
        state, _ = machine.apply(LinkState(), ScanRequested(at=0.0))

        state, effects = machine.apply(state, DeviceDiscovered(candidate=ecg_device, at=1.0))

        assert state.connection == ConnectionState.CONNECTING
        assert state.device == ecg_device
        assert effects[0] == StopScan()
        assert Connect(candidate=ecg_device, timeout=15.0) in effects

    def test_keyword_match_is_case_insensitive(self, machine):
        state, _ = machine.apply(LinkState(), ScanRequested(at=0.0))
        device = DeviceCandidate(name="my-ECG-board", address="00:22")

        state, _ = machine.apply(state, DeviceDiscovered(candidate=device, at=1.0))

        assert state.connection == ConnectionState.CONNECTING

    def test_late_scan_results_ignored_while_connecting(self, machine, ecg_device):
        second = DeviceCandidate(name="ECG two", address="00:33")
        state, _ = run(machine, LinkState(), ScanRequested(), DeviceDiscovered(candidate=ecg_device))

        new_state, effects = machine.apply(state, DeviceDiscovered(candidate=second))

        assert new_state.device == ecg_device
        assert effects == []

    def test_scan_without_match(self, machine):
        state, effects = run(machine, LinkState(), ScanRequested(at=0.0), ScanCompleted(at=10.0))

        assert state.connection == ConnectionState.DISCONNECTED
        assert effects[-1] == PublishStatus(ConnectionState.DISCONNECTED, "No ECG devices found")

    def test_connect_success(self, connected, ecg_device):
        assert connected.connection == ConnectionState.CONNECTED
        assert connected.maintain_connection
        assert connected.reconnect_attempts == 0
        assert connected.last_data_at == 2.0

    def test_connect_success_arms_monitoring_timers(self, machine, ecg_device):
        state, _ = run(machine, LinkState(), ScanRequested(), DeviceDiscovered(candidate=ecg_device))

        _, effects = machine.apply(state, ConnectSucceeded(candidate=ecg_device, at=2.0))

        assert ScheduleTimer(TimerKind.HEARTBEAT, 5.0, repeat=True) in effects
        assert ScheduleTimer(TimerKind.STATUS_CHECK, 15.0, repeat=True) in effects

    def test_first_connect_failure_rescans(self, machine, ecg_device):
        state, _ = run(machine, LinkState(), ScanRequested(), DeviceDiscovered(candidate=ecg_device))

        state, effects = machine.apply(state, ConnectFailed(error="refused", at=3.0))

        assert state.connection == ConnectionState.DISCONNECTED
        assert not state.maintain_connection
        assert CloseLink() in effects
        assert timers(effects, TimerKind.RESCAN) == [ScheduleTimer(TimerKind.RESCAN, 3.0)]

        state, effects = machine.apply(state, RescanTimerFired(at=6.0))

        assert state.connection == ConnectionState.SCANNING
        assert StartScan(timeout=10.0) in effects

    def test_late_success_closes_link(self, machine, ecg_device):
        _, effects = machine.apply(LinkState(), ConnectSucceeded(candidate=ecg_device, at=1.0))

        assert effects == [CloseLink()]

    def test_explicit_connect_request(self, machine, ecg_device):
        state, _ = machine.apply(LinkState(), ScanRequested())

        state, effects = machine.apply(state, ConnectRequested(candidate=ecg_device))

        assert state.connection == ConnectionState.CONNECTING
        assert StopScan() in effects
        assert Connect(candidate=ecg_device, timeout=15.0) in effects


class TestMonitoring:
    def test_data_resets_missed_heartbeats(self, machine, connected):
        state, _ = run(machine, connected, HeartbeatTick(at=13.0), DataReceived(at=14.0))

        assert state.missed_heartbeats == 0
        assert state.last_data_at == 14.0

    def test_fresh_data_is_not_a_miss(self, machine, connected):
        state, effects = run(machine, connected, HeartbeatTick(at=7.0), HeartbeatTick(at=12.0))

        assert state.missed_heartbeats == 0
        assert effects == []

    def test_three_stale_heartbeats_force_reconnect(self, machine, connected):
        state, effects = run(
            machine,
            connected,
            HeartbeatTick(at=13.0),
            HeartbeatTick(at=18.0),
        )
        assert state.missed_heartbeats == 2
        assert effects == []

        state, effects = machine.apply(state, HeartbeatTick(at=23.0))

        assert state.connection == ConnectionState.RECONNECTING
        assert state.missed_heartbeats == 0
        assert state.reconnect_attempts == 1
        assert CancelTimer(TimerKind.HEARTBEAT) in effects
        assert CloseLink() in effects
        assert timers(effects, TimerKind.RECONNECT) == [ScheduleTimer(TimerKind.RECONNECT, 3.0)]
        assert effects[-1] == PublishStatus(
            ConnectionState.RECONNECTING,
            "No data received, retrying in 3s (attempt 1)",
            "HM-10 ECG",
        )

    def test_status_check_queries_transport(self, machine, connected):
        _, effects = machine.apply(connected, StatusCheckTick(at=17.0))

        assert effects == [QueryTransportStatus()]

    def test_transport_reports_down(self, machine, connected):
        state, effects = machine.apply(connected, TransportStatus(connected=False, at=17.0))

        assert state.connection == ConnectionState.RECONNECTING
        assert CloseLink() in effects

    def test_transport_reports_up(self, machine, connected):
        state, effects = machine.apply(connected, TransportStatus(connected=True, at=17.0))

        assert state == connected
        assert effects == []


class TestRecovery:
    def test_link_loss_reconnects_to_known_device(self, machine, connected, ecg_device):
        state, effects = machine.apply(connected, LinkLost(reason="out of range", at=5.0))

        assert state.connection == ConnectionState.RECONNECTING
        assert timers(effects, TimerKind.RECONNECT) == [ScheduleTimer(TimerKind.RECONNECT, 2.0)]

        state, effects = machine.apply(state, ReconnectTimerFired(at=7.0))

        assert state.connection == ConnectionState.CONNECTING
        assert Connect(candidate=ecg_device, timeout=15.0) in effects

    def test_failed_reconnects_follow_backoff(self, machine, connected):
        state, _ = machine.apply(connected, LinkLost(reason="gone", at=5.0))
        delays = []
        for i in range(6):
            state, _ = machine.apply(state, ReconnectTimerFired(at=10.0 + i))
            state, effects = machine.apply(state, ConnectFailed(error="timeout", at=10.5 + i))
            delays.extend(t.delay for t in timers(effects, TimerKind.RECONNECT))

        assert delays == [2, 2, 5, 5, 5, 10]
        assert state.reconnect_attempts == 7

    def test_attempt_cap_pauses_then_restarts(self, machine, connected):
        state = connected.model_copy(
            update={"connection": ConnectionState.CONNECTING, "reconnect_attempts": 10}
        )

        state, effects = machine.apply(state, ConnectFailed(error="timeout", at=1.0))

        assert state.reconnect_attempts == 0
        assert state.connection == ConnectionState.RECONNECTING
        assert timers(effects, TimerKind.RECONNECT) == [ScheduleTimer(TimerKind.RECONNECT, 10.0)]

    def test_success_resets_attempts(self, machine, connected, ecg_device):
        state, _ = run(
            machine,
            connected,
            LinkLost(reason="gone", at=5.0),
            ReconnectTimerFired(at=7.0),
            ConnectSucceeded(candidate=ecg_device, at=8.0),
        )

        assert state.connection == ConnectionState.CONNECTED
        assert state.reconnect_attempts == 0

    def test_reconnect_without_device_scans(self, machine):
        state = LinkState(connection=ConnectionState.RECONNECTING, maintain_connection=True)

        state, effects = machine.apply(state, ReconnectTimerFired(at=1.0))

        assert state.connection == ConnectionState.SCANNING
        assert StartScan(timeout=10.0) in effects

    def test_recording_forces_recovery(self, machine, ecg_device):
        state = LinkState(device=ecg_device)

        state, effects = machine.apply(state, RecordingStarted(at=1.0))

        assert state.maintain_connection
        assert state.connection == ConnectionState.CONNECTING
        assert Connect(candidate=ecg_device, timeout=15.0) in effects


class TestShutdown:
    def test_disconnect_stops_recovery(self, machine, connected):
        state, effects = machine.apply(connected, DisconnectRequested(at=5.0))

        assert state.connection == ConnectionState.DISCONNECTED
        assert not state.maintain_connection
        assert effects[:3] == [CancelAllTimers(), StopScan(), CloseLink()]

        state, effects = machine.apply(state, LinkLost(reason="gone", at=6.0))
        assert state.connection == ConnectionState.DISCONNECTED
        assert effects == []

        state, effects = machine.apply(state, ReconnectTimerFired(at=7.0))
        assert effects == []

    def test_disposed_ignores_everything(self, machine, connected):
        state, _ = machine.apply(connected, Dispose(at=5.0))

        assert state.disposed
        for event in (ScanRequested(), RecordingStarted(), ReconnectTimerFired(), HeartbeatTick(at=99.0)):
            new_state, effects = machine.apply(state, event)
            assert new_state == state
            assert effects == []
