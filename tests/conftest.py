"""
Test Configuration
==================

Pytest fixtures and test configuration for CardioStream.

Synthetic signals are built from Gaussian P/Q/R/S/T waves so beat
positions, R-R intervals and heart rates are known exactly.
"""

import asyncio
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

import numpy as np
import pytest

from cardio_stream.errors import LinkError, PersistenceError
from cardio_stream.models.link import DeviceCandidate
from cardio_stream.models.session import ECGSession, UserProfile
from cardio_stream.stores.memory import InMemorySessionStore, InMemoryUserProfileStore


# =============================================================================
# Synthetic signals
# =============================================================================

BASELINE = 0.02
FIRST_R_INDEX = 10

# (offset from R in samples, amplitude, width in samples)
WAVES = (
    (-40, 0.03, 4.0),   # P
    (-5, -0.10, 1.5),   # Q
    (0, 1.00, 2.0),     # R
    (5, -0.20, 1.5),    # S
    (38, 0.25, 6.0),    # T
)


def make_ecg(rr_samples: Sequence[int] = (102, 106), beats: int = 40) -> np.ndarray:
    """
    Synthetic single-lead ECG.

    Args:
        rr_samples: R-R intervals in samples, cycled
        beats: Number of beats

    Returns:
        Signal with R peaks at FIRST_R_INDEX + cumulative R-R intervals
    """
    r_positions = [FIRST_R_INDEX]
    for i in range(beats - 1):
        r_positions.append(r_positions[-1] + rr_samples[i % len(rr_samples)])
    length = r_positions[-1] + 60

    t = np.arange(length, dtype=np.float64)
    x = np.full(length, BASELINE)
    for r in r_positions:
        for offset, amplitude, width in WAVES:
            x += amplitude * np.exp(-((t - (r + offset)) ** 2) / (2 * width ** 2))
    return x


def make_spike_train(period: int = 100, count: int = 20, baseline: float = 0.1) -> List[float]:
    """Flat baseline with a single-sample spike every ``period`` samples."""
    samples = [baseline] * (period * count)
    for i in range(period // 2, len(samples), period):
        samples[i] = 1.0
    return samples


@pytest.fixture
def ecg_signal() -> np.ndarray:
    """Regular 72 BPM ECG at 125 Hz (R-R alternating 816/848 ms)."""
    return make_ecg()


@pytest.fixture
def irregular_ecg_signal() -> np.ndarray:
    """ECG with R-R alternating 560/1120 ms."""
    return make_ecg(rr_samples=(70, 140), beats=30)


@pytest.fixture
def spike_train() -> List[float]:
    """75 BPM spike train at 125 Hz."""
    return make_spike_train()


# =============================================================================
# Domain records
# =============================================================================

@pytest.fixture
def analysis_time() -> datetime:
    return datetime(2026, 3, 15, 14, 0, 0)


@pytest.fixture
def sample_user() -> UserProfile:
    return UserProfile(user_id="test-user", age=30, height_cm=175, weight_kg=70, gender="female")


@pytest.fixture
def at_risk_user() -> UserProfile:
    """Overweight hypertensive sedentary man aged 58."""
    return UserProfile(
        user_id="test-user",
        age=58,
        height_cm=174,
        weight_kg=88,
        gender="male",
        activity_level="sedentary",
        medical_conditions=["hypertension"],
    )


def make_session(
    timestamp: datetime,
    avg_bpm: float = 72.0,
    samples: Optional[Sequence[float]] = None,
    status: str = "Normal",
    rhythm: str = "Normal Sinus Rhythm",
    user_id: str = "test-user",
) -> ECGSession:
    return ECGSession(
        user_id=user_id,
        session_name=f"ECG {timestamp:%Y-%m-%d %H:%M}",
        timestamp=timestamp,
        duration=30.0,
        samples=list(samples) if samples is not None else [],
        avg_bpm=avg_bpm,
        min_bpm=max(0.0, avg_bpm - 5),
        max_bpm=avg_bpm + 5,
        rhythm=rhythm,
        status=status,
    )


@pytest.fixture
def rising_history(analysis_time) -> List[ECGSession]:
    """Ten normal sessions three days apart, BPM rising 70 -> 95, newest first."""
    sessions = []
    for i in range(10):
        sessions.append(
            make_session(
                timestamp=analysis_time - timedelta(days=1 + 3 * i),
                avg_bpm=95.0 - i * 25.0 / 9.0,
            )
        )
    return sessions


# =============================================================================
# Stores
# =============================================================================

class FailingSessionStore:
    """Session store whose every call raises PersistenceError."""

    def __init__(self) -> None:
        self.load_calls = 0
        self.save_calls = 0

    def load_recent_sessions(self, user_id: str, limit: int) -> List[ECGSession]:
        self.load_calls += 1
        raise PersistenceError("store unavailable")

    def save_session(self, session: ECGSession) -> None:
        self.save_calls += 1
        raise PersistenceError("store unavailable")


@pytest.fixture
def session_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def profile_store() -> InMemoryUserProfileStore:
    return InMemoryUserProfileStore()


@pytest.fixture
def failing_session_store() -> FailingSessionStore:
    return FailingSessionStore()


# =============================================================================
# Fake transport
# =============================================================================

class FakeLink:
    """Open link of the fake transport."""

    def __init__(self, candidate: DeviceCandidate) -> None:
        self.candidate = candidate
        self.connected = True
        self.payloads: asyncio.Queue = asyncio.Queue()
        self.states: asyncio.Queue = asyncio.Queue()

    def emit(self, payload: bytes) -> None:
        self.payloads.put_nowait(payload)

    def drop(self) -> None:
        """Simulate the device going out of range."""
        self.connected = False
        self.states.put_nowait(False)
        self.payloads.put_nowait(None)

    def close(self) -> None:
        self.connected = False
        self.states.put_nowait(None)
        self.payloads.put_nowait(None)

    async def _drain(self, queue: asyncio.Queue):
        while True:
            item = await queue.get()
            if item is None:
                return
            yield item


class FakeTransport:
    """
    In-process DeviceTransport.

    Scans yield the configured devices immediately; connects fail
    ``fail_connects`` times before succeeding.
    """

    def __init__(
        self,
        devices: Sequence[DeviceCandidate] = (),
        fail_connects: int = 0,
    ) -> None:
        self.devices = list(devices)
        self.fail_connects = fail_connects
        self.scan_calls = 0
        self.connect_calls: List[DeviceCandidate] = []
        self.disconnect_calls = 0
        self.links: List[FakeLink] = []

    async def scan(self, timeout: float):
        self.scan_calls += 1
        for device in self.devices:
            yield device

    async def connect(self, candidate: DeviceCandidate, timeout: float) -> FakeLink:
        self.connect_calls.append(candidate)
        if self.fail_connects > 0:
            self.fail_connects -= 1
            raise LinkError("connection refused")
        link = FakeLink(candidate)
        self.links.append(link)
        return link

    async def discover_notify_channel(self, link: FakeLink) -> str:
        return "6e400003-b5a3-f393-e0a9-e50e24dcca9e"

    async def subscribe(self, link: FakeLink, channel: str):
        return link._drain(link.payloads)

    def connection_state_stream(self, link: FakeLink):
        return link._drain(link.states)

    async def is_connected(self, link: FakeLink) -> bool:
        return link.connected

    async def disconnect(self, link: FakeLink) -> None:
        self.disconnect_calls += 1
        link.close()

    @property
    def last_link(self) -> FakeLink:
        return self.links[-1]


@pytest.fixture
def ecg_device() -> DeviceCandidate:
    return DeviceCandidate(name="HM-10 ECG", address="AA:BB:CC:DD:EE:01", rssi=-60)


@pytest.fixture
def fake_transport(ecg_device) -> FakeTransport:
    return FakeTransport(
        devices=[
            DeviceCandidate(name="Headphones", address="AA:BB:CC:DD:EE:99"),
            ecg_device,
        ]
    )


@pytest.fixture
def wait_until():
    """Poll a predicate on the running loop until it holds or times out."""

    async def _wait(predicate, timeout: float = 2.0, interval: float = 0.005) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("Condition not met before timeout")
            await asyncio.sleep(interval)

    return _wait


@pytest.fixture
def session_factory():
    return make_session


@pytest.fixture
def ecg_factory():
    return make_ecg


@pytest.fixture
def transport_factory():
    return FakeTransport
