"""
Environment scanning for conflicting mapping-script loads.

The probe counts script declarations that point at the maps host and global
callback registrations that use the maps callback prefix. Scans are rate
limited; within the interval the cached report is returned.
"""

import logging
import time
from typing import Callable

from ..config import CALLBACK_PREFIX, MAPS_SCRIPT_HOST, PROBE_MIN_INTERVAL_SECONDS
from ..state import ConflictReport
from .page import PageEnvironment, ScriptDeclaration

logger = logging.getLogger(__name__)


class EnvironmentProbe:
    """Detects pre-existing or duplicate mapping script loads on a page."""

    def __init__(
        self,
        page: PageEnvironment,
        pattern: str = MAPS_SCRIPT_HOST,
        callback_prefix: str = CALLBACK_PREFIX,
        min_interval: float = PROBE_MIN_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.page = page
        self.pattern = pattern
        self.callback_prefix = callback_prefix
        self.min_interval = min_interval
        self._clock = clock
        self._last_report: ConflictReport | None = None
        self._last_scan: float | None = None
        self.scan_count = 0

    @property
    def last_report(self) -> ConflictReport | None:
        return self._last_report

    def check(self, force: bool = False) -> ConflictReport:
        """Return the conflict report, rescanning only if the cache is stale."""
        now = self._clock()
        if (
            not force
            and self._last_report is not None
            and self._last_scan is not None
            and now - self._last_scan <= self.min_interval
        ):
            return self._last_report

        report = ConflictReport(
            declaration_count=len(self.list_matching_declarations()),
            callback_names=tuple(self.list_callback_names()),
            scanned_at=time.time(),
        )
        self._last_report = report
        self._last_scan = now
        self.scan_count += 1

        if report.has_conflict:
            logger.warning(
                "Conflicting map loads detected: %d scripts, %d callbacks",
                report.declaration_count,
                report.callback_count,
            )
        return report

    def invalidate(self) -> None:
        """Drop the cached report so the next check rescans."""
        self._last_report = None
        self._last_scan = None

    def list_matching_declarations(self) -> list[ScriptDeclaration]:
        return self.page.query_scripts(self.pattern)

    def list_callback_names(self) -> list[str]:
        return self.page.global_names(self.callback_prefix)

    def orphaned_callbacks(self, owned_token: str | None = None) -> list[str]:
        """Callback registrations that do not belong to the current attempt."""
        return [name for name in self.list_callback_names() if name != owned_token]
