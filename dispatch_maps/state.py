"""
Load state records shared by the coordinator, probe and inspector.

LoadState is the single process-wide lifecycle value. PendingLoad exists only
while an attempt is in flight; ConflictReport is the probe's cached scan.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class LoadState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass
class PendingLoad:
    """The in-flight attempt every joined caller awaits.

    `future` is the one-shot settlement: set exactly once, to None on success
    or to the failure exception. `retired` flips when the token is consumed or
    torn down; a completion signal arriving after that is ignored.
    An `adopted` load waits on a script some other code already declared;
    its declaration and callback are never removed by teardown.
    """

    token: str
    future: asyncio.Future
    started_at: float = field(default_factory=time.time)
    declaration: Any = None
    signal_received: bool = False
    transport_error: BaseException | None = None
    retired: bool = False
    adopted: bool = False

    @property
    def settled(self) -> bool:
        return self.future.done()


@dataclass(frozen=True)
class ConflictReport:
    """Outcome of one environment scan."""

    declaration_count: int = 0
    callback_names: tuple[str, ...] = ()
    scanned_at: float | None = None

    @property
    def callback_count(self) -> int:
        return len(self.callback_names)

    @property
    def has_conflict(self) -> bool:
        # A single declaration may be our own injection or a legitimate
        # earlier load; only plural matches are conflicts.
        return self.declaration_count > 1 or self.callback_count > 1

    def as_dict(self) -> dict:
        return {
            "declaration_count": self.declaration_count,
            "callback_count": self.callback_count,
            "callback_names": list(self.callback_names),
            "has_conflict": self.has_conflict,
            "scanned_at": self.scanned_at,
        }


@dataclass
class LoadAttempt:
    """History row for one attempt, kept for the operator panel.

    `token` is None for attempts refused before injection (conflicts).
    """

    token: str | None
    started_at: float
    finished_at: float | None = None
    outcome: LoadState = LoadState.LOADING
    error: str | None = None
    poll_checks: int | None = None

    @property
    def duration(self) -> float | None:
        if self.finished_at is None:
            return None
        return self.finished_at - self.started_at
