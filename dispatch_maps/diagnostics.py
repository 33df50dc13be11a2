"""
Operator-facing diagnostics for the maps loader.

These are the entry points for the debug panel in app.py. Each function
returns plain dicts or DataFrames suitable for rendering cards and tables.
Only force_reload() changes anything, and it must only ever be wired to an
explicit operator action.
"""

import logging
from datetime import datetime, timezone
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import pandas as pd

from .config import MASKED_KEY_VISIBLE_CHARS
from .coordinator import MapsLoadCoordinator
from .environment.page import ScriptDeclaration
from .state import ConflictReport, LoadState

logger = logging.getLogger(__name__)

DECLARATION_COLUMNS = ["declaration_id", "src", "callback", "owned", "active", "async", "defer"]
HISTORY_COLUMNS = ["token", "started_at", "finished_at", "duration_s", "outcome", "poll_checks", "error"]


def mask_api_key(src: str) -> str:
    """Replace the key= query value in a script URL with a truncated form."""
    parsed = urlparse(src)
    params = [
        (k, f"{v[:MASKED_KEY_VISIBLE_CHARS // 2]}..." if k == "key" and v else v)
        for k, v in parse_qsl(parsed.query, keep_blank_values=True)
    ]
    return urlunparse(parsed._replace(query=urlencode(params, safe=",.")))


class DiagnosticInspector:
    """Read-only projection of coordinator, probe and page state."""

    def __init__(self, coordinator: MapsLoadCoordinator):
        self.coordinator = coordinator

    def get_load_state(self) -> LoadState:
        return self.coordinator.state

    def get_conflict_report(self) -> ConflictReport:
        """Current (rate-limited) probe report."""
        return self.coordinator.probe.check()

    def list_matching_declarations(self) -> list[ScriptDeclaration]:
        return self.coordinator.probe.list_matching_declarations()

    def get_state(self) -> dict:
        """Snapshot of everything the debug panel shows."""
        page = self.coordinator.page
        probe = self.coordinator.probe
        report = self.get_conflict_report()
        pending = self.coordinator.pending
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "manager_state": self.coordinator.snapshot(),
            "guard_state": report.as_dict(),
            "window_google": page.has("google"),
            "window_google_maps": page.has("google.maps"),
            "window_google_maps_map": page.has("google.maps.Map"),
            "existing_scripts": len(self.list_matching_declarations()),
            "existing_callbacks": len(probe.list_callback_names()),
            "orphaned_callbacks": probe.orphaned_callbacks(pending.token if pending else None),
            "script_urls": [mask_api_key(d.src) for d in self.list_matching_declarations()],
            "has_conflicts": report.has_conflict,
        }

    def declarations_frame(self) -> pd.DataFrame:
        """One row per matching script declaration, keys masked."""
        rows = []
        pending = self.coordinator.pending
        injected = self.coordinator.injected_declaration
        adopted = self.coordinator.adopted_declaration
        active = {id(d) for d in (pending.declaration if pending else None, injected, adopted) if d is not None}
        for decl in self.list_matching_declarations():
            rows.append({
                "declaration_id": decl.declaration_id,
                "src": mask_api_key(decl.src),
                "callback": decl.callback_name,
                "owned": decl.injected_by is not None,
                "active": id(decl) in active,
                "async": decl.is_async,
                "defer": decl.defer,
            })
        return pd.DataFrame(rows, columns=DECLARATION_COLUMNS)

    def history_frame(self) -> pd.DataFrame:
        """Attempt history, oldest first."""
        rows = []
        for attempt in self.coordinator.history:
            rows.append({
                "token": attempt.token,
                "started_at": pd.to_datetime(attempt.started_at, unit="s", utc=True),
                "finished_at": (
                    pd.to_datetime(attempt.finished_at, unit="s", utc=True)
                    if attempt.finished_at is not None else pd.NaT
                ),
                "duration_s": attempt.duration,
                "outcome": attempt.outcome.value,
                "poll_checks": attempt.poll_checks,
                "error": attempt.error,
            })
        return pd.DataFrame(rows, columns=HISTORY_COLUMNS)

    def log_existing_scripts(self) -> None:
        """Write every matching declaration and callback to the log."""
        declarations = self.list_matching_declarations()
        logger.info("Found %d existing maps scripts", len(declarations))
        for idx, decl in enumerate(declarations):
            logger.info("Script %d: %s", idx, mask_api_key(decl.src))
        logger.info("Found existing callbacks: %s", self.coordinator.probe.list_callback_names())
        logger.info("Guard state: %s", self.get_conflict_report().as_dict())

    def force_reload(self) -> None:
        logger.warning("Operator requested maps force reload")
        self.coordinator.force_reload()
