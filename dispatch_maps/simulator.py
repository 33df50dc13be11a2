"""
Simulated browser behaviour for the maps loader.

SimulatedScriptRunner plays the part of the browser: after a delay it fires
the completion callback of an injected script, and a little later publishes
the maps API. Behaviours cover the failure modes seen in the field. Nothing
here touches the network.
"""

import asyncio
import logging
from typing import Awaitable, Callable

import numpy as np

from .config import MAPS_SCRIPT_URL, READINESS_PATH
from .environment.page import PageEnvironment, ScriptDeclaration
from .errors import LoadError

logger = logging.getLogger(__name__)

# Seed for reproducibility
_RNG = np.random.default_rng(42)

BEHAVIOURS = ("ok", "error", "silent", "partial")


class SimulatedMap:
    """Stand-in for the google.maps.Map constructor."""

    def __init__(self, element=None, **options):
        self.element = element
        self.options = options


class SimulatedScriptRunner:
    """Evaluates injected declarations on a timer.

    behaviour
    ---------
    - ok      : callback fires after `signal_delay`, API published after `ready_delay`
    - error   : the script fails to load (onerror) after `signal_delay`
    - silent  : nothing ever happens
    - partial : callback fires but the API never becomes usable
    """

    def __init__(
        self,
        behaviour: str = "ok",
        signal_delay: float = 0.05,
        ready_delay: float = 0.2,
        jitter: float = 0.0,
        readiness_path: str = READINESS_PATH,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ):
        if behaviour not in BEHAVIOURS:
            raise ValueError(f"Unknown behaviour '{behaviour}', expected one of {BEHAVIOURS}")
        self.behaviour = behaviour
        self.signal_delay = signal_delay
        self.ready_delay = ready_delay
        self.jitter = jitter
        self.readiness_path = readiness_path
        self._sleep = sleep or asyncio.sleep
        self.runs: list[ScriptDeclaration] = []
        self._tasks: set[asyncio.Task] = set()

    def run(self, declaration: ScriptDeclaration, page: PageEnvironment) -> None:
        self.runs.append(declaration)
        task = asyncio.get_running_loop().create_task(self._evaluate(declaration, page))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _delay(self, base: float) -> float:
        if self.jitter <= 0:
            return base
        return base + float(_RNG.uniform(0, self.jitter))

    async def _evaluate(self, declaration: ScriptDeclaration, page: PageEnvironment) -> None:
        if self.behaviour == "silent":
            return

        await self._sleep(self._delay(self.signal_delay))
        if declaration not in page:
            return

        if self.behaviour == "error":
            declaration.fail(LoadError("Failed to load Google Maps script"))
            return

        callback = declaration.callback_name
        if callback:
            page.invoke_callback(callback)
        if self.behaviour == "partial":
            return

        await self._sleep(self._delay(self.ready_delay))
        page.publish(self.readiness_path, SimulatedMap)


def seed_foreign_scripts(page: PageEnvironment, count: int = 2, with_callbacks: bool = False) -> list[ScriptDeclaration]:
    """Insert maps script tags that some other, uncoordinated code rendered.

    The tags are inert: the runner never sees them.
    """
    seeded = []
    for idx in range(count):
        callback = f"googleMapsCallback_foreign_{idx}"
        decl = ScriptDeclaration(src=f"{MAPS_SCRIPT_URL}?key=FOREIGN&callback={callback}")
        page.append_script(decl, execute=False)
        if with_callbacks:
            page.register_global(callback, lambda: None)
        seeded.append(decl)
    logger.debug("Seeded %d foreign maps scripts", count)
    return seeded


def build_simulated_page(behaviour: str = "ok", **runner_kwargs) -> PageEnvironment:
    """A page whose injected scripts are evaluated by a SimulatedScriptRunner."""
    return PageEnvironment(runner=SimulatedScriptRunner(behaviour, **runner_kwargs))
