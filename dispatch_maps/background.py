"""
A dedicated event loop thread for hosting the coordinator.

The coordinator's futures and tasks belong to one event loop. Hosts that
serve requests on many threads (the Streamlit panel runs each session on its
own thread) must not call it from their own loops. LoaderLoop owns a single
loop on a daemon thread; every coordinator call is submitted to it and the
calling thread blocks on the result.
"""

import asyncio
import logging
import threading
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class LoaderLoop:
    """One event loop on a daemon thread, fed from any other thread."""

    def __init__(self, name: str = "dispatch-maps-loop"):
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()
        logger.debug("Started loader loop thread %s", name)

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    @property
    def running(self) -> bool:
        return self._thread.is_alive() and not self.loop.is_closed()

    def run(self, coro: Awaitable[Any], timeout: float | None = None) -> Any:
        """Run a coroutine on the loop thread and return its result (or raise its error)."""
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(timeout=timeout)

    def call(self, fn: Callable[..., Any], *args, timeout: float | None = None) -> Any:
        """Run a plain callable on the loop thread, so it sees a consistent coordinator."""
        async def _invoke():
            return fn(*args)

        return self.run(_invoke(), timeout=timeout)

    def stop(self, timeout: float = 5.0) -> None:
        if self.loop.is_closed():
            return
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=timeout)
        self.loop.close()
        logger.debug("Stopped loader loop thread %s", self._thread.name)
