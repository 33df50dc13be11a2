"""
Configuration: script endpoint, callback naming, polling budget, constants.

MapsConfig carries everything a single load attempt needs. Build it with
MapsConfig.from_env() in applications, or construct it directly in tests.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from urllib.parse import urlencode

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Script endpoint
# ---------------------------------------------------------------------------
MAPS_SCRIPT_HOST = "maps.googleapis.com"
MAPS_SCRIPT_URL = f"https://{MAPS_SCRIPT_HOST}/maps/api/js"
DEFAULT_LIBRARIES: tuple[str, ...] = ("places",)

# Dotted path that must resolve in the page namespace before the API counts
# as usable. The callback fires before the full surface is published.
READINESS_PATH = "google.maps.Map"

# ---------------------------------------------------------------------------
# Completion callbacks
# ---------------------------------------------------------------------------
CALLBACK_PREFIX = "googleMapsCallback_"
CALLBACK_SUFFIX_LENGTH = 9

# ---------------------------------------------------------------------------
# Timing (seconds)
# ---------------------------------------------------------------------------
POLL_INTERVAL_SECONDS = 0.1
POLL_MAX_ATTEMPTS = 100          # 10 seconds max
PROBE_MIN_INTERVAL_SECONDS = 5.0
HTTP_TIMEOUT_SECONDS = 10.0

# ---------------------------------------------------------------------------
# API keys
# ---------------------------------------------------------------------------
API_KEY_ENV_VARS = ("GOOGLE_MAPS_API_KEY", "VITE_GOOGLE_MAPS_API_KEY")
PLACEHOLDER_API_KEYS = frozenset({"YOUR_GOOGLE_MAPS_API_KEY", "YOUR_API_KEY"})
MASKED_KEY_VISIBLE_CHARS = 20

MISSING_KEY_MESSAGE = "Google Maps API key not configured"
CONFLICT_MESSAGE = "Multiple Google Maps scripts detected. Please refresh the page."


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r, using %s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %s", name, raw, default)
        return default


def _env_libraries() -> tuple[str, ...]:
    raw = os.getenv("DISPATCH_MAPS_LIBRARIES")
    if not raw:
        return DEFAULT_LIBRARIES
    return tuple(lib.strip() for lib in raw.split(",") if lib.strip())


def _env_api_key() -> str:
    for name in API_KEY_ENV_VARS:
        value = os.getenv(name)
        if value:
            return value.strip()
    return ""


@dataclass(frozen=True)
class MapsConfig:
    """Endpoint and init options for one mapping script load."""

    api_key: str = ""
    libraries: tuple[str, ...] = DEFAULT_LIBRARIES
    script_url: str = MAPS_SCRIPT_URL
    readiness_path: str = READINESS_PATH
    poll_interval: float = POLL_INTERVAL_SECONDS
    poll_max_attempts: int = POLL_MAX_ATTEMPTS
    probe_interval: float = PROBE_MIN_INTERVAL_SECONDS
    extra_params: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> "MapsConfig":
        """Read the API key and tuning knobs from the process environment."""
        return cls(
            api_key=_env_api_key(),
            libraries=_env_libraries(),
            poll_interval=_env_float("DISPATCH_MAPS_POLL_INTERVAL", POLL_INTERVAL_SECONDS),
            poll_max_attempts=_env_int("DISPATCH_MAPS_POLL_ATTEMPTS", POLL_MAX_ATTEMPTS),
            probe_interval=_env_float("DISPATCH_MAPS_PROBE_INTERVAL", PROBE_MIN_INTERVAL_SECONDS),
        )

    def with_api_key(self, api_key: str) -> "MapsConfig":
        return replace(self, api_key=api_key)

    @property
    def has_api_key(self) -> bool:
        """True when a usable (non-empty, non-placeholder) key is set."""
        key = (self.api_key or "").strip()
        return bool(key) and key not in PLACEHOLDER_API_KEYS

    def build_script_url(self, callback_name: str) -> str:
        """Return the script src for an attempt signalling `callback_name`."""
        params = {"key": self.api_key}
        if self.libraries:
            params["libraries"] = ",".join(self.libraries)
        params.update(self.extra_params)
        params["callback"] = callback_name
        return f"{self.script_url}?{urlencode(params, safe=',')}"

    def masked_api_key(self) -> str:
        """Operator-safe rendering of the key: a prefix and an ellipsis."""
        if not self.api_key:
            return "(not set)"
        return f"{self.api_key[:MASKED_KEY_VISIBLE_CHARS]}..."
