"""
Process-wide coordinator for loading the Google Maps script exactly once.

Every display component that needs the maps API goes through
MapsLoadCoordinator.request_load(). The first caller injects the script; any
caller arriving while that attempt is in flight joins it and receives the
same outcome. If the page already holds exactly one maps script, the
coordinator adopts it and waits for the API instead of injecting a second.
Failures are terminal until an operator calls force_reload().

State machine
-------------
    UNLOADED --request_load--> LOADING --ready--> READY
        |                          |
        +--conflict--> FAILED <----+--timeout / load error
    READY, FAILED, LOADING --force_reload--> UNLOADED
"""

import asyncio
import functools
import logging
import secrets
import string
import time
from collections import deque
from typing import Callable

from .config import (
    CALLBACK_PREFIX,
    CALLBACK_SUFFIX_LENGTH,
    CONFLICT_MESSAGE,
    MISSING_KEY_MESSAGE,
    PROBE_MIN_INTERVAL_SECONDS,
    MapsConfig,
)
from .environment.page import PageEnvironment, ScriptDeclaration
from .environment.probe import EnvironmentProbe
from .errors import (
    ConfigurationError,
    ConflictError,
    LoadError,
    MapsLoaderError,
    ReadinessTimeoutError,
    StateError,
)
from .poller import ReadinessPoller
from .state import LoadAttempt, LoadState, PendingLoad

logger = logging.getLogger(__name__)

_TOKEN_ALPHABET = string.ascii_lowercase + string.digits
OWNER_TAG = "dispatch_maps"
HISTORY_LIMIT = 50


def generate_callback_token(clock: Callable[[], float] = time.time) -> str:
    """Return a collision-resistant callback name, e.g. googleMapsCallback_1700000000000_k3j9x0a1b."""
    suffix = "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(CALLBACK_SUFFIX_LENGTH))
    return f"{CALLBACK_PREFIX}{int(clock() * 1000)}_{suffix}"


def _consume_outcome(future: asyncio.Future) -> None:
    # Mark the exception as retrieved; joined callers re-raise it themselves.
    if not future.cancelled():
        future.exception()


class MapsLoadCoordinator:
    """Single writer of the maps LoadState and the in-flight PendingLoad."""

    def __init__(
        self,
        page: PageEnvironment,
        probe: EnvironmentProbe | None = None,
        poller: ReadinessPoller | None = None,
        token_factory: Callable[[], str] = generate_callback_token,
        history_limit: int = HISTORY_LIMIT,
        probe_interval: float = PROBE_MIN_INTERVAL_SECONDS,
    ):
        self.page = page
        self.probe = probe or EnvironmentProbe(page, min_interval=probe_interval)
        self.poller = poller or ReadinessPoller()
        self._token_factory = token_factory
        self._state = LoadState.UNLOADED
        self._pending: PendingLoad | None = None
        self._attempt_task: asyncio.Task | None = None
        self._injected: ScriptDeclaration | None = None
        self._adopted: ScriptDeclaration | None = None
        self._last_error: MapsLoaderError | None = None
        self._retired_tokens: set[str] = set()
        self._tearing_down = False
        self.injection_count = 0
        self.history: deque[LoadAttempt] = deque(maxlen=history_limit)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------
    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def pending(self) -> PendingLoad | None:
        return self._pending

    @property
    def last_error(self) -> MapsLoaderError | None:
        return self._last_error

    @property
    def injected_declaration(self) -> ScriptDeclaration | None:
        return self._injected

    @property
    def adopted_declaration(self) -> ScriptDeclaration | None:
        return self._adopted

    def is_ready(self) -> bool:
        return self._state is LoadState.READY

    def is_token_retired(self, token: str) -> bool:
        return token in self._retired_tokens

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    async def request_load(self, config: MapsConfig) -> None:
        """Resolve once the maps API is usable; raise the shared failure otherwise.

        Cancelling the awaiting caller does not cancel the shared attempt.
        """
        if self._state is LoadState.READY:
            return

        if self._state is LoadState.LOADING and self._pending is not None:
            logger.debug("Joining in-flight maps load %s", self._pending.token)
            await asyncio.shield(self._pending.future)
            return

        if self._state is LoadState.FAILED:
            logger.debug("Maps load previously failed; force_reload required")
            raise self._last_error or StateError("Maps load failed; force reload required")

        if not config.has_api_key:
            raise ConfigurationError(MISSING_KEY_MESSAGE)

        report = self.probe.check()
        if report.has_conflict:
            error = ConflictError(
                f"{CONFLICT_MESSAGE} ({report.declaration_count} scripts, "
                f"{report.callback_count} callbacks)",
                declaration_count=report.declaration_count,
                callback_count=report.callback_count,
            )
            self._state = LoadState.FAILED
            self._last_error = error
            self.history.append(LoadAttempt(
                token=None,
                started_at=time.time(),
                finished_at=time.time(),
                outcome=LoadState.FAILED,
                error=str(error),
            ))
            logger.warning("Refusing to inject maps script: %s", error)
            raise error

        existing = self.probe.list_matching_declarations()
        if len(existing) == 1:
            pending = self._adopt(existing[0], config)
            if pending is None:
                return
        else:
            pending = self._begin(config)
        await asyncio.shield(pending.future)

    def _new_token(self) -> str:
        token = self._token_factory()
        while token in self._retired_tokens or token in self.page.window:
            token = self._token_factory()
        return token

    def _begin(self, config: MapsConfig) -> PendingLoad:
        loop = asyncio.get_running_loop()
        pending = PendingLoad(token=self._new_token(), future=loop.create_future())
        pending.future.add_done_callback(_consume_outcome)

        self._pending = pending
        self._state = LoadState.LOADING
        self._last_error = None
        self.history.append(LoadAttempt(token=pending.token, started_at=pending.started_at))
        logger.info("Loading Google Maps script (callback %s)", pending.token)

        self.page.register_global(pending.token, functools.partial(self._on_completion_signal, pending))
        declaration = ScriptDeclaration(
            src=config.build_script_url(pending.token),
            injected_by=OWNER_TAG,
            on_error=functools.partial(self._on_transport_error, pending),
        )
        pending.declaration = declaration
        self.injection_count += 1
        try:
            self.page.append_script(declaration)
        except Exception as exc:
            error = LoadError(f"Failed to inject Google Maps script: {exc}")
            error.__cause__ = exc
            self._finish_failed(pending, error)
            return pending

        self._attempt_task = loop.create_task(self._await_readiness(pending, config))
        return pending

    def _adopt(self, declaration: ScriptDeclaration, config: MapsConfig) -> PendingLoad | None:
        """Wait on a script already on the page instead of injecting a second one.

        Returns None when the API is already usable and the state went straight
        to READY.
        """
        self._adopted = declaration
        self._last_error = None
        label = declaration.callback_name or f"existing_{declaration.declaration_id}"

        if self.page.has(config.readiness_path):
            now = time.time()
            self._state = LoadState.READY
            self.history.append(LoadAttempt(
                token=label,
                started_at=now,
                finished_at=now,
                outcome=LoadState.READY,
                poll_checks=0,
            ))
            logger.info("Existing Google Maps script %s already ready", declaration.declaration_id)
            return None

        loop = asyncio.get_running_loop()
        pending = PendingLoad(token=label, future=loop.create_future(), declaration=declaration, adopted=True)
        pending.future.add_done_callback(_consume_outcome)
        self._pending = pending
        self._state = LoadState.LOADING
        self.history.append(LoadAttempt(token=label, started_at=pending.started_at))
        logger.info("Google Maps script %s already on the page, waiting for it to load",
                    declaration.declaration_id)
        self._attempt_task = loop.create_task(self._await_readiness(pending, config))
        return pending

    def _on_completion_signal(self, pending: PendingLoad) -> None:
        if pending.retired or pending is not self._pending:
            logger.debug("Ignoring late completion signal for %s", pending.token)
            return
        logger.info("Maps script signalled completion via %s", pending.token)
        pending.signal_received = True
        self._retire_token(pending)

    def _on_transport_error(self, pending: PendingLoad, error: BaseException) -> None:
        if pending.settled or pending is not self._pending:
            return
        pending.transport_error = error

    async def _await_readiness(self, pending: PendingLoad, config: MapsConfig) -> None:
        def ready() -> bool:
            if pending.transport_error is not None:
                if isinstance(pending.transport_error, MapsLoaderError):
                    raise pending.transport_error
                raise LoadError(f"Failed to load Google Maps script: {pending.transport_error}")
            if pending.adopted:
                return self.page.has(config.readiness_path)
            return pending.signal_received and self.page.has(config.readiness_path)

        budget = config.poll_interval * config.poll_max_attempts
        try:
            checks = await self.poller.poll(ready, config.poll_interval, config.poll_max_attempts)
        except ReadinessTimeoutError as exc:
            if pending.adopted:
                message = f"Existing Google Maps script failed to initialize after {budget:.1f} seconds"
            elif pending.signal_received:
                message = f"Google Maps failed to initialize after {budget:.1f} seconds"
            else:
                message = f"Google Maps script did not signal completion within {budget:.1f} seconds"
            error = ReadinessTimeoutError(message, attempts=exc.attempts)
            error.__cause__ = exc
            self._finish_failed(pending, error, poll_checks=exc.attempts)
        except MapsLoaderError as exc:
            self._finish_failed(pending, exc)
        except Exception as exc:
            error = LoadError(f"Unexpected error while waiting for Google Maps: {exc}")
            error.__cause__ = exc
            logger.exception("Readiness wait crashed for %s", pending.token)
            self._finish_failed(pending, error)
        else:
            self._finish_ready(pending, checks)

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------
    def _record(self, pending: PendingLoad, outcome: LoadState, error: str | None = None,
                poll_checks: int | None = None) -> None:
        for attempt in reversed(self.history):
            if attempt.token == pending.token:
                attempt.finished_at = time.time()
                attempt.outcome = outcome
                attempt.error = error
                attempt.poll_checks = poll_checks
                return

    def _finish_ready(self, pending: PendingLoad, checks: int) -> None:
        if pending is not self._pending:
            return
        self._retire_token(pending)
        if not pending.adopted:
            self._injected = pending.declaration
        self._pending = None
        self._attempt_task = None
        self._state = LoadState.READY
        self._record(pending, LoadState.READY, poll_checks=checks)
        logger.info("Google Maps ready after %d readiness checks", checks)
        if not pending.future.done():
            pending.future.set_result(None)

    def _finish_failed(self, pending: PendingLoad, error: MapsLoaderError,
                       poll_checks: int | None = None) -> None:
        if pending is not self._pending:
            return
        self._teardown(pending)
        self._pending = None
        self._attempt_task = None
        self._state = LoadState.FAILED
        self._last_error = error
        self._record(pending, LoadState.FAILED, str(error), poll_checks)
        logger.error("Google Maps load failed: %s", error)
        if not pending.future.done():
            pending.future.set_exception(error)

    def _retire_token(self, pending: PendingLoad) -> None:
        if pending.retired:
            return
        pending.retired = True
        if pending.adopted:
            return
        self._retired_tokens.add(pending.token)
        self.page.delete_global(pending.token)

    def _teardown(self, pending: PendingLoad) -> None:
        """Remove every artifact of an attempt: its script tag and its callback."""
        self._tearing_down = True
        try:
            if pending.declaration is not None and not pending.adopted:
                self.page.remove_script(pending.declaration)
            self._retire_token(pending)
        finally:
            self._tearing_down = False

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------
    def force_reload(self) -> None:
        """Tear down everything this coordinator injected and return to UNLOADED.

        Operator action only. Callers still joined to an in-flight attempt are
        rejected with StateError.
        """
        if self._tearing_down:
            raise StateError("force_reload called while a teardown is in progress")

        logger.warning("Force reloading Google Maps (state was %s)", self._state.value)
        pending, task = self._pending, self._attempt_task
        if pending is not None:
            self._teardown(pending)
        self._pending = None
        self._attempt_task = None

        if pending is not None:
            error = StateError("Maps load aborted by force reload")
            self._record(pending, LoadState.UNLOADED, str(error))
            if not pending.future.done():
                pending.future.set_exception(error)
        if task is not None and not task.done():
            task.cancel()

        for declaration in (self._injected, self._adopted):
            if declaration is not None:
                self.page.remove_script(declaration)
        self._injected = None
        self._adopted = None

        self._state = LoadState.UNLOADED
        self._last_error = None
        self.probe.invalidate()

    def snapshot(self) -> dict:
        """Plain-dict view of the coordinator for diagnostics."""
        return {
            "state": self._state.value,
            "is_loading": self._state is LoadState.LOADING,
            "is_loaded": self._state is LoadState.READY,
            "pending_token": self._pending.token if self._pending else None,
            "signal_received": self._pending.signal_received if self._pending else None,
            "injected_script": self._injected.src if self._injected else None,
            "adopted_script": self._adopted.src if self._adopted else None,
            "injection_count": self.injection_count,
            "last_error": str(self._last_error) if self._last_error else None,
        }


# ---------------------------------------------------------------------------
# Process-wide instance
# ---------------------------------------------------------------------------
_coordinator: MapsLoadCoordinator | None = None


def get_coordinator(
    page: PageEnvironment | None = None,
    config: MapsConfig | None = None,
) -> MapsLoadCoordinator:
    """Return the shared coordinator, creating it on first use.

    Without an explicit page the coordinator gets a headless page backed by
    the HTTP script runner. The probe interval comes from `config`, or from
    the environment when no config is given.
    """
    global _coordinator
    if _coordinator is None:
        if page is None:
            from .environment.runners import HttpScriptRunner

            page = PageEnvironment(runner=HttpScriptRunner())
        config = config or MapsConfig.from_env()
        _coordinator = MapsLoadCoordinator(page, probe_interval=config.probe_interval)
    return _coordinator


def install_coordinator(coordinator: MapsLoadCoordinator) -> MapsLoadCoordinator:
    global _coordinator
    _coordinator = coordinator
    return coordinator


def reset_coordinator() -> None:
    """Forget the shared coordinator; the next get_coordinator() starts UNLOADED."""
    global _coordinator
    _coordinator = None
