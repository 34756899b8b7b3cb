"""
Pytest fixtures for gateway tests.
"""

import asyncio

import pytest

from whatsapp_gateway.auth.base import MemoryAuthStore
from whatsapp_gateway.transport.stub import StubTransport


class FakeClock:
    """Simulated clock: sleeping advances time instantly."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.current = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds

    async def sleep(self, seconds: float) -> None:
        seconds = max(seconds, 0.0)
        self.sleeps.append(seconds)
        self.current += seconds
        await asyncio.sleep(0)


class RecordingSleep:
    """
    Awaitable sleep that records delays and blocks until released.

    Lets tests observe a scheduled reconnect before it fires.
    """

    def __init__(self):
        self.delays: list[float] = []
        self._gates: list[asyncio.Future] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        gate = asyncio.get_running_loop().create_future()
        self._gates.append(gate)
        await gate

    @property
    def waiting(self) -> int:
        return sum(1 for gate in self._gates if not gate.done())

    def release_all(self) -> None:
        for gate in self._gates:
            if not gate.done():
                gate.set_result(None)


class TransportRecorder:
    """Transport factory that keeps every StubTransport it builds."""

    def __init__(self, **options):
        self.options = options
        self.built: list[StubTransport] = []
        self.credentials_seen: list = []

    def __call__(self, session_id, credentials):
        transport = StubTransport(session_id, credentials, **self.options)
        self.built.append(transport)
        self.credentials_seen.append(credentials)
        return transport

    @property
    def latest(self) -> StubTransport:
        return self.built[-1]


async def settle(rounds: int = 5) -> None:
    """Let spawned tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def fake_clock():
    """Simulated clock for queue tests."""
    return FakeClock()


@pytest.fixture
def recording_sleep():
    """Blocking sleep for reconnect tests."""
    return RecordingSleep()


@pytest.fixture
def auth_store():
    """In-memory credential store."""
    return MemoryAuthStore()


@pytest.fixture
def transports():
    """Stub transport factory that records built transports."""
    return TransportRecorder()


@pytest.fixture
def sample_jid():
    """Sample recipient jid."""
    return "5511999999999@s.whatsapp.net"
