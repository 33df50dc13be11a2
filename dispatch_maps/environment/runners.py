"""
HTTP script runner for headless pages.

A server-side page cannot execute the maps JavaScript bundle. What it can do
is fetch the bundle once, publish it where the rendered map components look
for it, and fire the completion callback named in the script URL. Fetching
runs in a worker thread so the event loop stays free.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable

import requests

from ..config import HTTP_TIMEOUT_SECONDS, READINESS_PATH
from ..errors import LoadError
from .page import PageEnvironment, ScriptDeclaration

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScriptBundle:
    """Fetched script source, published into the page namespace."""

    src: str
    source: str
    fetched_at: float

    @property
    def size(self) -> int:
        return len(self.source)


Evaluator = Callable[[ScriptDeclaration, str, PageEnvironment], None]


def publish_bundle(
    declaration: ScriptDeclaration,
    source: str,
    page: PageEnvironment,
    path: str = READINESS_PATH,
) -> None:
    """Default evaluator: publish the bundle at `path`, then fire the callback."""
    page.publish(path, ScriptBundle(src=declaration.src, source=source, fetched_at=time.time()))
    callback = declaration.callback_name
    if callback:
        page.invoke_callback(callback)


class HttpScriptRunner:
    """Loads injected declarations over HTTP with `requests`."""

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        evaluator: Evaluator = publish_bundle,
    ):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.evaluator = evaluator
        self._tasks: set[asyncio.Task] = set()

    def run(self, declaration: ScriptDeclaration, page: PageEnvironment) -> None:
        task = asyncio.get_running_loop().create_task(self.load(declaration, page))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _fetch(self, url: str) -> str:
        response = self.session.get(url, timeout=self.timeout)
        response.raise_for_status()
        return response.text

    async def load(self, declaration: ScriptDeclaration, page: PageEnvironment) -> None:
        """Fetch and evaluate one declaration; failures go to its onerror hook."""
        try:
            source = await asyncio.to_thread(self._fetch, declaration.src)
        except requests.RequestException as exc:
            error = LoadError(f"Failed to load Google Maps script: {exc}")
            error.__cause__ = exc
            declaration.fail(error)
            return

        if declaration not in page:
            logger.debug("Script %s removed before evaluation, skipping", declaration.declaration_id)
            return

        logger.info("Fetched maps script %s (%d bytes)", declaration.declaration_id, len(source))
        try:
            self.evaluator(declaration, source, page)
        except Exception as exc:
            error = LoadError(f"Google Maps script evaluation failed: {exc}")
            error.__cause__ = exc
            declaration.fail(error)
