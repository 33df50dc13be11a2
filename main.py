"""
Dispatch Maps — end-to-end loader smoke test.

Runs the shared maps loader against simulated pages and prints PASS/FAIL
checks for the join, conflict, timeout, unmount and recovery paths.

Usage:
    python main.py
"""

import asyncio
import logging
import sys
import time
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent))

from dispatch_maps.config import MapsConfig
from dispatch_maps.consumer import MapsConsumer
from dispatch_maps.coordinator import MapsLoadCoordinator
from dispatch_maps.diagnostics import DiagnosticInspector
from dispatch_maps.errors import ConflictError, ReadinessTimeoutError
from dispatch_maps.simulator import build_simulated_page, seed_foreign_scripts
from dispatch_maps.state import LoadState

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

# Fast budget so the timeout scenario finishes in about a second.
DEMO_CONFIG = MapsConfig(api_key="demo-key", poll_interval=0.01, poll_max_attempts=100)
WIDGETS = ["tracking_map", "route_map", "driver_map", "dispatch_map", "admin_map"]


def check(label: str, ok: bool) -> bool:
    print(f"  [{'PASS' if ok else 'FAIL'}] {label}")
    return ok


async def scenario_concurrent_mount() -> list[bool]:
    page = build_simulated_page("ok", signal_delay=0.02, ready_delay=0.05, jitter=0.01)
    coordinator = MapsLoadCoordinator(page)
    consumers = [MapsConsumer(coordinator, DEMO_CONFIG, name=name) for name in WIDGETS]

    tasks = [t for t in (c.mount() for c in consumers) if t is not None]
    await asyncio.gather(*tasks)

    return [
        check(f"All {len(consumers)} widgets loaded", all(c.is_loaded for c in consumers)),
        check("Exactly one script injected", coordinator.injection_count == 1),
        check("Exactly one maps script on the page", len(coordinator.probe.list_matching_declarations()) == 1),
        check("Coordinator is READY", coordinator.state is LoadState.READY),
    ]


async def scenario_conflict() -> list[bool]:
    page = build_simulated_page("ok")
    seed_foreign_scripts(page, count=2)
    coordinator = MapsLoadCoordinator(page)

    try:
        await coordinator.request_load(DEMO_CONFIG)
        raised = False
    except ConflictError as exc:
        print(f"  Conflict surfaced: {exc}")
        raised = True

    return [
        check("request_load raised ConflictError", raised),
        check("No script injected", coordinator.injection_count == 0),
        check("Coordinator is FAILED", coordinator.state is LoadState.FAILED),
    ]


async def scenario_timeout() -> list[bool]:
    page = build_simulated_page("silent")
    coordinator = MapsLoadCoordinator(page)

    start = time.perf_counter()
    try:
        await coordinator.request_load(DEMO_CONFIG)
        timed_out = False
    except ReadinessTimeoutError as exc:
        print(f"  Timeout surfaced: {exc}")
        timed_out = True
    elapsed = time.perf_counter() - start
    budget = DEMO_CONFIG.poll_interval * DEMO_CONFIG.poll_max_attempts

    return [
        check("request_load raised ReadinessTimeoutError", timed_out),
        check(f"Timed out after {elapsed:.2f}s (budget {budget:.2f}s)", elapsed < budget * 3),
        check("Injected script removed on failure", len(page.scripts) == 0),
        check("Callback token retired", not coordinator.probe.list_callback_names()),
    ]


async def scenario_unmount() -> list[bool]:
    page = build_simulated_page("ok", signal_delay=0.02, ready_delay=0.02)
    coordinator = MapsLoadCoordinator(page)
    leaving = MapsConsumer(coordinator, DEMO_CONFIG, name="leaving")
    staying = MapsConsumer(coordinator, DEMO_CONFIG, name="staying")

    tasks = [leaving.mount(), staying.mount()]
    leaving.unmount()
    await asyncio.gather(*tasks)

    return [
        check("Unmounted widget was not updated", not leaving.is_loaded),
        check("Mounted widget loaded", staying.is_loaded),
    ]


async def scenario_recovery() -> list[bool]:
    page = build_simulated_page("error", signal_delay=0.01)
    coordinator = MapsLoadCoordinator(page)
    inspector = DiagnosticInspector(coordinator)

    try:
        await coordinator.request_load(DEMO_CONFIG)
    except Exception as exc:
        print(f"  First attempt failed: {exc}")
    failed = coordinator.state is LoadState.FAILED

    page.runner.behaviour = "ok"
    inspector.force_reload()
    await coordinator.request_load(DEMO_CONFIG)

    print(inspector.history_frame()[["token", "outcome", "poll_checks", "error"]].to_string(index=False))
    return [
        check("First attempt FAILED", failed),
        check("Second attempt READY after force reload", coordinator.state is LoadState.READY),
        check("Fresh injection performed", coordinator.injection_count == 2),
    ]


async def run_all() -> bool:
    scenarios = [
        ("Concurrent widgets join one load", scenario_concurrent_mount),
        ("Conflicting scripts short-circuit", scenario_conflict),
        ("Completion signal never fires", scenario_timeout),
        ("Widget unmounts mid-load", scenario_unmount),
        ("Operator force reload recovers", scenario_recovery),
    ]
    results = []
    for idx, (title, scenario) in enumerate(scenarios, start=1):
        print(f"\n[ {idx} ] {title.upper()}")
        print("-" * 40)
        results.extend(await scenario())
    return all(results)


def main() -> None:
    """Run every loader scenario and print smoke-test outputs."""

    print("=" * 70)
    print("  DISPATCH MAPS — Shared Google Maps Loader")
    print("  Loader Smoke Test")
    print("=" * 70)

    ok = asyncio.run(run_all())

    print("\n" + "=" * 70)
    print(f"  Smoke test {'passed' if ok else 'FAILED'}.")
    print("=" * 70)
    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
