"""
Shared fixtures for the maps loader tests.

Everything runs on a virtual clock: the poller's sleep advances the clock and
yields to the event loop once, and scripts only "load" when a test says so.
"""

import asyncio

import pytest

from dispatch_maps.config import READINESS_PATH, MapsConfig
from dispatch_maps.coordinator import MapsLoadCoordinator
from dispatch_maps.environment.page import PageEnvironment, ScriptDeclaration
from dispatch_maps.environment.probe import EnvironmentProbe
from dispatch_maps.errors import LoadError
from dispatch_maps.poller import ReadinessPoller


class VirtualClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay
        await asyncio.sleep(0)


class ManualScriptRunner:
    """Records injected scripts; the test decides when and how they load."""

    def __init__(self):
        self.runs: list[tuple[ScriptDeclaration, PageEnvironment]] = []

    def run(self, declaration, page):
        self.runs.append((declaration, page))

    @property
    def last(self) -> ScriptDeclaration:
        return self.runs[-1][0]

    def signal(self) -> bool:
        declaration, page = self.runs[-1]
        return page.invoke_callback(declaration.callback_name)

    def publish(self) -> None:
        _, page = self.runs[-1]
        page.publish(READINESS_PATH, object)

    def complete(self) -> None:
        self.signal()
        self.publish()

    def fail(self, error: BaseException | None = None) -> None:
        self.last.fail(error or LoadError("Failed to load Google Maps script"))


@pytest.fixture
def clock():
    return VirtualClock()


@pytest.fixture
def runner():
    return ManualScriptRunner()


@pytest.fixture
def page(runner):
    return PageEnvironment(runner=runner)


@pytest.fixture
def probe(page, clock):
    return EnvironmentProbe(page, clock=clock)


@pytest.fixture
def poller(clock):
    return ReadinessPoller(sleep=clock.sleep)


@pytest.fixture
def coordinator(page, probe, poller):
    return MapsLoadCoordinator(page, probe=probe, poller=poller)


@pytest.fixture
def config():
    return MapsConfig(api_key="test-key-0123456789abcdef", poll_interval=0.1, poll_max_attempts=100)
