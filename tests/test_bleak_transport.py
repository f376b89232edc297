"""
Bleak Transport Tests
=====================

Notify characteristic selection and payload queue behaviour. GATT
objects are stand-ins exposing the attributes bleak provides.
"""

from types import SimpleNamespace

import pytest

from cardio_stream.errors import ServiceDiscoveryError
from cardio_stream.link.bleak_transport import (
    UART_TX_CHAR_UUID,
    BleakLink,
    select_notify_characteristic,
)
from cardio_stream.models.link import DeviceCandidate


def char(uuid, *properties):
    return SimpleNamespace(uuid=uuid, properties=list(properties))


def service(*characteristics):
    return SimpleNamespace(characteristics=list(characteristics))


class TestSelectNotifyCharacteristic:
    def test_prefers_uart_tx(self):
        services = [
            service(char("0000ffe1-0000-1000-8000-00805f9b34fb", "notify")),
            service(
                char("6e400002-b5a3-f393-e0a9-e50e24dcca9e", "write"),
                char(UART_TX_CHAR_UUID.upper(), "notify"),
            ),
        ]

        assert select_notify_characteristic(services) == UART_TX_CHAR_UUID.upper()

    def test_falls_back_to_first_custom_notifier(self):
        services = [
            service(
                char("00002a05-0000-1000-8000-00805f9b34fb", "indicate"),
                char("00002a00-0000-1000-8000-00805f9b34fb", "read"),
            ),
            service(
                char("0000ffe1-0000-1000-8000-00805f9b34fb", "read", "notify"),
                char("0000ffe2-0000-1000-8000-00805f9b34fb", "indicate"),
            ),
        ]

        assert select_notify_characteristic(services) == "0000ffe1-0000-1000-8000-00805f9b34fb"

    def test_no_notifier_raises(self):
        services = [service(char("0000ffe1-0000-1000-8000-00805f9b34fb", "read", "write"))]

        with pytest.raises(ServiceDiscoveryError):
            select_notify_characteristic(services)


class TestBleakLink:
    def test_full_payload_queue_drops_oldest(self):
        link = BleakLink(DeviceCandidate(name="ECG", address="00:01"), queue_size=2)

        link.push_payload(b"1")
        link.push_payload(b"2")
        link.push_payload(b"3")

        assert link.dropped_payloads == 1
        assert link.payloads.get_nowait() == b"2"
        assert link.payloads.get_nowait() == b"3"
