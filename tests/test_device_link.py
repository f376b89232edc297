"""
Device Link Tests
=================

The asyncio link actor against an in-process fake transport, with timer
intervals shrunk to milliseconds.
"""

import asyncio

import pytest

from cardio_stream.events.bus import EventBus
from cardio_stream.events.types import ConnectionStatusChanged
from cardio_stream.link import DeviceLink, LinkStateMachine, ReconnectPolicy
from cardio_stream.models.link import ConnectionState


def fast_machine(**overrides) -> LinkStateMachine:
    options = dict(
        keywords=("ecg", "hm-10"),
        scan_timeout=0.5,
        connect_timeout=0.5,
        heartbeat_interval=60.0,
        stale_after=60.0,
        status_check_interval=60.0,
        force_reconnect_pause=0.0,
        rescan_delay=0.01,
        policy=ReconnectPolicy(schedule=(0.01,), max_attempts=10, cap_pause=0.01),
    )
    options.update(overrides)
    return LinkStateMachine(**options)


def drain_statuses(subscription):
    statuses = []
    while (event := subscription.get_nowait()) is not None:
        if isinstance(event, ConnectionStatusChanged):
            statuses.append(event.state)
    return statuses


class TestDeviceLink:
    """Scan, connect, stream and recover."""

    @pytest.mark.asyncio
    async def test_scan_connects_to_first_matching_device(self, fake_transport, ecg_device, wait_until):
        bus = EventBus()
        subscription = bus.subscribe()
        link = DeviceLink(fake_transport, fast_machine(), bus=bus)
        await link.start()

        link.scan()
        await wait_until(lambda: link.connected)

        assert fake_transport.connect_calls == [ecg_device]
        assert link.state.maintain_connection
        assert drain_statuses(subscription) == [
            ConnectionState.SCANNING,
            ConnectionState.CONNECTING,
            ConnectionState.CONNECTED,
        ]
        await link.stop()

    @pytest.mark.asyncio
    async def test_frames_forwarded_to_sink(self, fake_transport, wait_until):
        frames = []
        link = DeviceLink(fake_transport, fast_machine(), frame_sink=frames.append)
        await link.start()
        link.scan()
        await wait_until(lambda: link.connected)

        fake_transport.last_link.emit(b"0.51\n")
        fake_transport.last_link.emit(b"0.48\n")
        await wait_until(lambda: len(frames) == 2)

        assert [f.payload for f in frames] == [b"0.51\n", b"0.48\n"]
        assert frames[0].received_at <= frames[1].received_at
        assert link.get_metrics()["frames_received"] == 2
        await link.stop()

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_stop_stream(self, fake_transport, wait_until):
        frames = []

        def flaky_sink(frame):
            if frame.payload == b"bad\n":
                raise RuntimeError("listener failed")
            frames.append(frame)

        link = DeviceLink(fake_transport, fast_machine(), frame_sink=flaky_sink)
        await link.start()
        link.scan()
        await wait_until(lambda: link.connected)

        fake_transport.last_link.emit(b"bad\n")
        fake_transport.last_link.emit(b"0.48\n")
        await wait_until(lambda: len(frames) == 1)

        assert frames[0].payload == b"0.48\n"
        assert link.get_metrics()["sink_errors"] == 1
        assert link.get_metrics()["frames_received"] == 2
        assert link.connected
        await link.stop()

    @pytest.mark.asyncio
    async def test_link_loss_reconnects_to_same_device(self, fake_transport, ecg_device, wait_until):
        link = DeviceLink(fake_transport, fast_machine())
        await link.start()
        link.scan()
        await wait_until(lambda: link.connected)

        fake_transport.last_link.drop()
        await wait_until(lambda: len(fake_transport.connect_calls) == 2 and link.connected)

        assert fake_transport.connect_calls == [ecg_device, ecg_device]
        assert fake_transport.scan_calls == 1
        assert link.state.reconnect_attempts == 0
        await link.stop()

    @pytest.mark.asyncio
    async def test_failed_first_connect_rescans(self, transport_factory, ecg_device, wait_until):
        transport = transport_factory(devices=[ecg_device], fail_connects=1)
        link = DeviceLink(transport, fast_machine())
        await link.start()

        link.scan()
        await wait_until(lambda: link.connected)

        assert transport.scan_calls == 2
        assert len(transport.connect_calls) == 2
        assert link.get_metrics()["connect_failures"] == 1
        await link.stop()

    @pytest.mark.asyncio
    async def test_no_device_found(self, transport_factory, wait_until):
        transport = transport_factory(devices=[])
        link = DeviceLink(transport, fast_machine())
        await link.start()

        link.scan()
        await wait_until(lambda: transport.scan_calls == 1 and link.state.connection == ConnectionState.DISCONNECTED)

        assert transport.connect_calls == []
        await link.stop()

    @pytest.mark.asyncio
    async def test_silent_link_is_force_reconnected(self, fake_transport, wait_until):
        machine = fast_machine(heartbeat_interval=0.01, stale_after=0.015, max_missed_heartbeats=3)
        link = DeviceLink(fake_transport, machine)
        await link.start()
        link.scan()

        await wait_until(lambda: len(fake_transport.connect_calls) >= 2)

        assert fake_transport.disconnect_calls >= 1
        await link.stop()

    @pytest.mark.asyncio
    async def test_status_check_detects_dead_link(self, fake_transport, wait_until):
        link = DeviceLink(fake_transport, fast_machine(status_check_interval=0.01))
        await link.start()
        link.scan()
        await wait_until(lambda: link.connected)

        # Transport silently reports down without a state notification
        fake_transport.last_link.connected = False
        await wait_until(lambda: len(fake_transport.connect_calls) >= 2)

        await link.stop()

    @pytest.mark.asyncio
    async def test_disconnect_stops_reconnection(self, fake_transport, wait_until):
        link = DeviceLink(fake_transport, fast_machine())
        await link.start()
        link.scan()
        await wait_until(lambda: link.connected)
        first_link = fake_transport.last_link

        link.disconnect()
        await wait_until(lambda: link.state.connection == ConnectionState.DISCONNECTED)
        await asyncio.sleep(0.05)

        assert not link.state.maintain_connection
        assert not first_link.connected
        assert len(fake_transport.connect_calls) == 1
        await link.stop()

    @pytest.mark.asyncio
    async def test_stop_disposes(self, fake_transport, wait_until):
        link = DeviceLink(fake_transport, fast_machine())
        await link.start()
        link.scan()
        await wait_until(lambda: link.connected)

        await link.stop()

        assert link.state.disposed
        assert link.state.connection == ConnectionState.DISCONNECTED
        assert fake_transport.disconnect_calls == 1
