"""
Bleak Transport
===============

Bluetooth LE implementation of DeviceTransport using bleak.

Notify Channel Selection:
    1. Nordic UART Service TX characteristic (6E400003-...)
    2. otherwise the first notifying or indicating characteristic that is
       not a standard GAP/GATT characteristic (2A00, 2A01, 2A04, 2A05)

Notification payloads and connection-state changes arrive on bleak's
callbacks and are handed to the link through bounded queues; a full
payload queue drops its oldest entry.
"""

import asyncio
import logging
from typing import AsyncIterator, Iterable, Optional, Set

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from cardio_stream.errors import (
    ConnectTimeoutError,
    LinkError,
    NotifySubscribeError,
    ServiceDiscoveryError,
)
from cardio_stream.models.link import DeviceCandidate


logger = logging.getLogger(__name__)


# Nordic UART Service (NUS) UUIDs
UART_SERVICE_UUID = "6e400001-b5a3-f393-e0a9-e50e24dcca9e"
UART_TX_CHAR_UUID = "6e400003-b5a3-f393-e0a9-e50e24dcca9e"  # notifications from the device

# Device Name, Appearance, Peripheral Preferred Connection Parameters, Service Changed
STANDARD_CHARACTERISTICS = frozenset({"2a00", "2a01", "2a04", "2a05"})


def _short_uuid(uuid: str) -> str:
    return uuid.lower()[4:8]


def select_notify_characteristic(services: Iterable) -> str:
    """
    Pick the data characteristic from a GATT service collection.

    Args:
        services: Iterable of services exposing ``characteristics`` whose
            items have ``uuid`` and ``properties``

    Returns:
        UUID of the selected characteristic

    Raises:
        ServiceDiscoveryError: No compatible characteristic exists
    """
    fallback: Optional[str] = None
    for service in services:
        for char in service.characteristics:
            uuid = str(char.uuid).lower()
            if uuid == UART_TX_CHAR_UUID:
                return char.uuid
            properties = set(char.properties)
            if (
                fallback is None
                and properties & {"notify", "indicate"}
                and _short_uuid(uuid) not in STANDARD_CHARACTERISTICS
            ):
                fallback = char.uuid
    if fallback is None:
        raise ServiceDiscoveryError("No notifying characteristic found on device")
    return fallback


class BleakLink:
    """Open BLE link: the client plus its payload and state queues."""

    def __init__(self, candidate: DeviceCandidate, queue_size: int) -> None:
        self.candidate = candidate
        self.client: Optional[BleakClient] = None
        self.payloads: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.states: asyncio.Queue = asyncio.Queue()
        self.dropped_payloads: int = 0

    def push_payload(self, payload: Optional[bytes]) -> None:
        if self.payloads.full():
            self.payloads.get_nowait()
            self.dropped_payloads += 1
        self.payloads.put_nowait(payload)

    def close_streams(self) -> None:
        self.push_payload(None)
        self.states.put_nowait(None)


class BleakTransport:
    """
    DeviceTransport over bleak.

    Example:
        transport = BleakTransport()
        async for candidate in transport.scan(10.0):
            print(candidate.name, candidate.address)
    """

    def __init__(self, payload_queue_size: int = 256) -> None:
        self.payload_queue_size = payload_queue_size

    async def scan(self, timeout: float) -> AsyncIterator[DeviceCandidate]:
        loop = asyncio.get_running_loop()
        found: asyncio.Queue = asyncio.Queue()
        seen: Set[str] = set()

        def on_detection(device, advertisement) -> None:
            if device.address in seen:
                return
            seen.add(device.address)
            found.put_nowait(
                DeviceCandidate(
                    name=device.name or advertisement.local_name or "",
                    address=device.address,
                    rssi=advertisement.rssi,
                )
            )

        deadline = loop.time() + timeout
        try:
            async with BleakScanner(detection_callback=on_detection):
                while (remaining := deadline - loop.time()) > 0:
                    try:
                        candidate = await asyncio.wait_for(found.get(), timeout=remaining)
                    except asyncio.TimeoutError:
                        break
                    yield candidate
        except (BleakError, OSError) as e:
            raise LinkError(f"Scan failed: {e}") from e
        logger.info(f"Scan finished, {len(seen)} devices seen")

    async def connect(self, candidate: DeviceCandidate, timeout: float) -> BleakLink:
        link = BleakLink(candidate, self.payload_queue_size)

        def on_disconnect(_client: BleakClient) -> None:
            link.states.put_nowait(False)
            link.close_streams()

        link.client = BleakClient(
            candidate.address,
            disconnected_callback=on_disconnect,
            timeout=timeout,
        )
        try:
            await link.client.connect()
        except asyncio.TimeoutError as e:
            raise ConnectTimeoutError(f"Connecting to {candidate.address} timed out") from e
        except (BleakError, OSError) as e:
            raise LinkError(f"Connecting to {candidate.address} failed: {e}") from e

        link.states.put_nowait(True)
        return link

    async def discover_notify_channel(self, link: BleakLink) -> str:
        try:
            services = link.client.services
        except BleakError as e:
            raise ServiceDiscoveryError(f"Service discovery failed: {e}") from e
        channel = select_notify_characteristic(services)
        logger.info(f"Using notify characteristic {channel}")
        return channel

    async def subscribe(self, link: BleakLink, channel: str) -> AsyncIterator[bytes]:
        def on_notify(_sender, data: bytearray) -> None:
            link.push_payload(bytes(data))

        try:
            await link.client.start_notify(channel, on_notify)
        except (BleakError, OSError, ValueError) as e:
            raise NotifySubscribeError(f"Enabling notifications failed: {e}") from e
        return self._drain(link.payloads)

    def connection_state_stream(self, link: BleakLink) -> AsyncIterator[bool]:
        return self._drain(link.states)

    async def is_connected(self, link: BleakLink) -> bool:
        return link.client is not None and link.client.is_connected

    async def disconnect(self, link: BleakLink) -> None:
        if link.client is None:
            return
        try:
            await link.client.disconnect()
        except (BleakError, OSError) as e:
            raise LinkError(f"Disconnect failed: {e}") from e
        finally:
            link.close_streams()

    @staticmethod
    async def _drain(queue: asyncio.Queue) -> AsyncIterator:
        while True:
            item = await queue.get()
            if item is None:
                return
            yield item
