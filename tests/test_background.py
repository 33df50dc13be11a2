"""Tests for dispatch_maps.background: hosting the coordinator on one loop thread."""

import threading

import pytest

from dispatch_maps.background import LoaderLoop
from dispatch_maps.config import MapsConfig
from dispatch_maps.coordinator import MapsLoadCoordinator
from dispatch_maps.diagnostics import DiagnosticInspector
from dispatch_maps.errors import LoadError
from dispatch_maps.simulator import build_simulated_page, seed_foreign_scripts
from dispatch_maps.state import LoadState

FAST = MapsConfig(api_key="thread-key", poll_interval=0.01, poll_max_attempts=200)


@pytest.fixture
def loader():
    loop = LoaderLoop(name="test-loader")
    yield loop
    loop.stop()


def test_sessions_on_separate_threads_join_one_load(loader):
    page = build_simulated_page("ok", signal_delay=0.2, ready_delay=0.02)
    coordinator = MapsLoadCoordinator(page)
    finished, errors = [], []

    def click():
        try:
            loader.run(coordinator.request_load(FAST), timeout=10)
            finished.append(threading.current_thread().name)
        except Exception as exc:
            errors.append(exc)

    sessions = [threading.Thread(target=click, name=f"session-{i}") for i in range(4)]
    for session in sessions:
        session.start()
    for session in sessions:
        session.join(timeout=15)

    assert errors == []
    assert len(finished) == 4
    assert coordinator.state is LoadState.READY
    assert coordinator.injection_count == 1


def test_failure_is_raised_in_the_calling_thread(loader):
    coordinator = MapsLoadCoordinator(build_simulated_page("error", signal_delay=0.01))

    with pytest.raises(LoadError):
        loader.run(coordinator.request_load(FAST), timeout=10)

    assert coordinator.state is LoadState.FAILED


def test_call_runs_plain_functions_on_the_loop_thread(loader):
    page = build_simulated_page("ok")
    inspector = DiagnosticInspector(MapsLoadCoordinator(page))
    seen = []

    loader.call(lambda: seen.append(threading.current_thread().name))
    loader.call(seed_foreign_scripts, page, 2)

    assert seen == ["test-loader"]
    assert loader.call(inspector.get_state)["has_conflicts"] is True


def test_stop_is_idempotent():
    loop = LoaderLoop()
    assert loop.running
    loop.stop()
    loop.stop()
    assert not loop.running
