"""
Per-component adapter over the shared coordinator.

Each map widget owns one MapsConsumer. The consumer exposes the small
is_loaded / is_loading / error / retry surface the widget renders from, and a
mounted flag: once unmounted, late results are dropped instead of updating a
widget that no longer exists. Unmounting never cancels the shared load.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable

from .config import CONFLICT_MESSAGE, MISSING_KEY_MESSAGE, MapsConfig
from .coordinator import MapsLoadCoordinator
from .errors import MapsLoaderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConsumerStatus:
    is_loaded: bool = False
    is_loading: bool = False
    error: str | None = None


class MapsConsumer:
    """Local load status for one display component."""

    def __init__(
        self,
        coordinator: MapsLoadCoordinator,
        config: MapsConfig,
        on_change: Callable[[ConsumerStatus], None] | None = None,
        name: str = "map",
    ):
        self.coordinator = coordinator
        self.config = config
        self.name = name
        self.is_loaded = False
        self.is_loading = False
        self.error: str | None = None
        self._on_change = on_change
        self._mounted = False
        self._task: asyncio.Task | None = None

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def status(self) -> ConsumerStatus:
        return ConsumerStatus(self.is_loaded, self.is_loading, self.error)

    def mount(self) -> asyncio.Task | None:
        """Start tracking the shared load. Returns the load task, if one was started."""
        self._mounted = True

        if self.coordinator.is_ready():
            logger.debug("[%s] Google Maps already ready", self.name)
            self._update(is_loaded=True)
            return None

        if self.coordinator.probe.check().has_conflict:
            self._update(error=CONFLICT_MESSAGE)
            return None

        return self._start()

    def unmount(self) -> None:
        self._mounted = False

    def retry(self) -> asyncio.Task | None:
        """Clear the local error and request the load again (no force reload)."""
        logger.info("[%s] Retrying Google Maps load", self.name)
        self._update(error=None, is_loaded=False)
        return self._start()

    def _start(self) -> asyncio.Task:
        if self._task is not None and not self._task.done():
            logger.debug("[%s] Already loading, skipping duplicate call", self.name)
            return self._task
        self._task = asyncio.get_running_loop().create_task(self._load())
        return self._task

    async def _load(self) -> None:
        if not self.config.has_api_key:
            self._update(error=MISSING_KEY_MESSAGE)
            return

        if self.coordinator.probe.check().has_conflict:
            self._update(error=CONFLICT_MESSAGE)
            return

        self._update(is_loading=True, error=None)
        try:
            await self.coordinator.request_load(self.config)
        except MapsLoaderError as exc:
            logger.warning("[%s] Error loading maps: %s", self.name, exc)
            self._update(is_loading=False, error=str(exc))
        else:
            self._update(is_loaded=True, is_loading=False)

    def _update(self, **changes) -> None:
        if not self._mounted:
            logger.debug("[%s] Dropping update after unmount: %s", self.name, changes)
            return
        for key, value in changes.items():
            setattr(self, key, value)
        if self._on_change is not None:
            self._on_change(self.status)
