"""
Link Module
===========

Sensor connection lifecycle: the pure state machine, the reconnection
policy, the transport interface and the asyncio actor driving them.
"""

from cardio_stream.link.device_link import DeviceLink, DeviceLinkMetrics
from cardio_stream.link.machine import LinkStateMachine, TimerKind
from cardio_stream.link.policy import ReconnectDecision, ReconnectPolicy
from cardio_stream.link.transport import DeviceTransport

__all__ = [
    "DeviceLink",
    "DeviceLinkMetrics",
    "DeviceTransport",
    "LinkStateMachine",
    "ReconnectDecision",
    "ReconnectPolicy",
    "TimerKind",
]
