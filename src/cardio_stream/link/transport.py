"""
Device Transport Interface
==========================

What the device link needs from a wireless transport.

Only ``connect``, ``discover_notify_channel``, ``subscribe`` and
``disconnect`` are awaited by the link. Streams end when the underlying
link goes away.
"""

from typing import Any, AsyncIterator, Protocol

from cardio_stream.models.link import DeviceCandidate


class DeviceTransport(Protocol):
    """
    Protocol for sensor transports.

    Implementations raise LinkError subclasses for every transport
    failure so the link can funnel them into reconnection.
    """

    def scan(self, timeout: float) -> AsyncIterator[DeviceCandidate]:
        """Yield nearby devices until the timeout elapses."""
        ...

    async def connect(self, candidate: DeviceCandidate, timeout: float) -> Any:
        """Open a link to the device and return an opaque link handle."""
        ...

    async def discover_notify_channel(self, link: Any) -> str:
        """Return the identifier of the data notification channel."""
        ...

    async def subscribe(self, link: Any, channel: str) -> AsyncIterator[bytes]:
        """Enable notifications and return the stream of payloads."""
        ...

    def connection_state_stream(self, link: Any) -> AsyncIterator[bool]:
        """Yield the transport's connected flag whenever it changes."""
        ...

    async def is_connected(self, link: Any) -> bool:
        ...

    async def disconnect(self, link: Any) -> None:
        ...
