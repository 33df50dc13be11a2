"""Tests for dispatch_maps.diagnostics: operator debug views."""

import asyncio
import logging

import pandas as pd
import pytest

from dispatch_maps.config import READINESS_PATH
from dispatch_maps.diagnostics import (
    DECLARATION_COLUMNS,
    HISTORY_COLUMNS,
    DiagnosticInspector,
    mask_api_key,
)
from dispatch_maps.errors import LoadError
from dispatch_maps.simulator import seed_foreign_scripts
from dispatch_maps.state import LoadState


@pytest.fixture
def inspector(coordinator):
    return DiagnosticInspector(coordinator)


def test_mask_api_key_truncates_key_only():
    masked = mask_api_key(
        "https://maps.googleapis.com/maps/api/js?key=AIzaSyA1234567890abcdef&libraries=places&callback=cb"
    )
    assert "AIzaSyA123..." in masked
    assert "abcdef" not in masked
    assert "libraries=places" in masked
    assert "callback=cb" in masked


def test_mask_api_key_without_key_is_unchanged():
    src = "https://maps.googleapis.com/maps/api/js?libraries=places"
    assert mask_api_key(src) == src


def test_get_state_on_clean_page(inspector):
    state = inspector.get_state()

    assert set(state) == {
        "timestamp", "manager_state", "guard_state", "window_google", "window_google_maps",
        "window_google_maps_map", "existing_scripts", "existing_callbacks",
        "orphaned_callbacks", "script_urls", "has_conflicts",
    }
    assert state["manager_state"]["state"] == "unloaded"
    assert state["existing_scripts"] == 0
    assert state["window_google"] is False
    assert state["has_conflicts"] is False
    assert inspector.get_load_state() is LoadState.UNLOADED


def test_get_state_reports_foreign_conflict(page, inspector):
    seed_foreign_scripts(page, count=2, with_callbacks=True)

    state = inspector.get_state()

    assert state["existing_scripts"] == 2
    assert state["existing_callbacks"] == 2
    assert state["orphaned_callbacks"] == ["googleMapsCallback_foreign_0", "googleMapsCallback_foreign_1"]
    assert state["has_conflicts"] is True
    assert inspector.get_conflict_report().declaration_count == 2


@pytest.mark.asyncio
async def test_declarations_frame_marks_active_injection(coordinator, runner, config, inspector):
    task = asyncio.ensure_future(coordinator.request_load(config))
    await asyncio.sleep(0)

    frame = inspector.declarations_frame()

    assert list(frame.columns) == DECLARATION_COLUMNS
    assert len(frame) == 1
    row = frame.iloc[0]
    assert bool(row["owned"])
    assert bool(row["active"])
    assert config.api_key not in row["src"]

    runner.complete()
    await task


@pytest.mark.asyncio
async def test_declarations_frame_marks_adopted_script(coordinator, config, page, inspector):
    seed_foreign_scripts(page, count=1)
    page.publish(READINESS_PATH, object)
    await coordinator.request_load(config)

    frame = inspector.declarations_frame()

    assert len(frame) == 1
    assert not bool(frame.iloc[0]["owned"])
    assert bool(frame.iloc[0]["active"])
    assert inspector.get_state()["manager_state"]["adopted_script"] is not None


@pytest.mark.asyncio
async def test_history_frame_records_outcomes(coordinator, runner, config, inspector):
    task = asyncio.ensure_future(coordinator.request_load(config))
    await asyncio.sleep(0)
    runner.fail()
    with pytest.raises(LoadError):
        await task

    frame = inspector.history_frame()

    assert list(frame.columns) == HISTORY_COLUMNS
    assert len(frame) == 1
    row = frame.iloc[0]
    assert row["outcome"] == "failed"
    assert row["error"] == "Failed to load Google Maps script"
    assert isinstance(row["started_at"], pd.Timestamp)


def test_empty_frames_keep_columns(inspector):
    assert list(inspector.declarations_frame().columns) == DECLARATION_COLUMNS
    assert inspector.history_frame().empty


@pytest.mark.asyncio
async def test_force_reload_delegates_to_coordinator(coordinator, runner, config, page, inspector):
    task = asyncio.ensure_future(coordinator.request_load(config))
    await asyncio.sleep(0)
    runner.complete()
    await task
    assert inspector.get_state()["window_google_maps_map"] is True

    inspector.force_reload()

    assert coordinator.state is LoadState.UNLOADED
    assert inspector.list_matching_declarations() == []


def test_log_existing_scripts(page, inspector, caplog):
    seed_foreign_scripts(page, count=2)
    with caplog.at_level(logging.INFO, logger="dispatch_maps.diagnostics"):
        inspector.log_existing_scripts()
    assert "Found 2 existing maps scripts" in caplog.text
    assert "key=FOREIGN..." in caplog.text
