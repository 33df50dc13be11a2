"""Tests for dispatch_maps.environment.runners: HTTP-backed script loading."""

from unittest.mock import MagicMock

import pytest
import requests

from dispatch_maps.config import READINESS_PATH, MapsConfig
from dispatch_maps.coordinator import MapsLoadCoordinator
from dispatch_maps.environment.page import PageEnvironment, ScriptDeclaration
from dispatch_maps.environment.runners import HttpScriptRunner, ScriptBundle
from dispatch_maps.errors import LoadError
from dispatch_maps.state import LoadState

SRC = "https://maps.googleapis.com/maps/api/js?key=k&callback=googleMapsCallback_1_abc"


def _session(text="/* maps bundle */", error=None):
    session = MagicMock()
    if error is not None:
        session.get.side_effect = error
    else:
        session.get.return_value.text = text
    return session


@pytest.mark.asyncio
async def test_load_publishes_bundle_and_fires_callback():
    session = _session()
    runner = HttpScriptRunner(session=session, timeout=3.0)
    page = PageEnvironment(runner=runner)
    fired = []
    page.register_global("googleMapsCallback_1_abc", lambda: fired.append(True))
    decl = ScriptDeclaration(src=SRC)
    page.append_script(decl, execute=False)

    await runner.load(decl, page)

    session.get.assert_called_once_with(SRC, timeout=3.0)
    bundle = page.resolve(READINESS_PATH)
    assert isinstance(bundle, ScriptBundle)
    assert bundle.size == len("/* maps bundle */")
    assert fired == [True]


@pytest.mark.asyncio
async def test_network_error_goes_to_onerror():
    runner = HttpScriptRunner(session=_session(error=requests.ConnectionError("refused")))
    page = PageEnvironment(runner=runner)
    errors = []
    decl = ScriptDeclaration(src=SRC, on_error=errors.append)
    page.append_script(decl, execute=False)

    await runner.load(decl, page)

    assert len(errors) == 1
    assert isinstance(errors[0], LoadError)
    assert "refused" in str(errors[0])
    assert not page.has("google")


@pytest.mark.asyncio
async def test_removed_declaration_is_not_evaluated():
    evaluator = MagicMock()
    runner = HttpScriptRunner(session=_session(), evaluator=evaluator)
    page = PageEnvironment(runner=runner)
    decl = ScriptDeclaration(src=SRC)

    await runner.load(decl, page)

    evaluator.assert_not_called()


@pytest.mark.asyncio
async def test_evaluator_crash_becomes_load_error():
    evaluator = MagicMock(side_effect=RuntimeError("syntax error"))
    runner = HttpScriptRunner(session=_session(), evaluator=evaluator)
    page = PageEnvironment(runner=runner)
    errors = []
    decl = ScriptDeclaration(src=SRC, on_error=errors.append)
    page.append_script(decl, execute=False)

    await runner.load(decl, page)

    assert isinstance(errors[0], LoadError)
    assert isinstance(errors[0].__cause__, RuntimeError)


@pytest.mark.asyncio
async def test_coordinator_loads_over_http():
    session = _session()
    page = PageEnvironment(runner=HttpScriptRunner(session=session))
    coordinator = MapsLoadCoordinator(page)
    config = MapsConfig(api_key="http-key", poll_interval=0.01, poll_max_attempts=200)

    await coordinator.request_load(config)

    assert coordinator.state is LoadState.READY
    requested = session.get.call_args.args[0]
    assert "key=http-key" in requested
    assert "callback=googleMapsCallback_" in requested


@pytest.mark.asyncio
async def test_coordinator_surfaces_http_failure():
    session = _session(error=requests.HTTPError("403 Forbidden"))
    page = PageEnvironment(runner=HttpScriptRunner(session=session))
    coordinator = MapsLoadCoordinator(page)
    config = MapsConfig(api_key="http-key", poll_interval=0.01, poll_max_attempts=200)

    with pytest.raises(LoadError, match="403 Forbidden"):
        await coordinator.request_load(config)

    assert coordinator.state is LoadState.FAILED
    assert page.scripts == ()
