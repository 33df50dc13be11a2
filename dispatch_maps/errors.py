"""Exception hierarchy for the maps load coordinator."""


class MapsLoaderError(Exception):
    """Base class for every failure the loader surfaces to callers."""


class ConfigurationError(MapsLoaderError, ValueError):
    """The load request does not identify a usable endpoint (e.g. no API key)."""


class ConflictError(MapsLoaderError):
    """More than one unexplained mapping script or callback is present."""

    def __init__(self, message: str, declaration_count: int = 0, callback_count: int = 0):
        super().__init__(message)
        self.declaration_count = declaration_count
        self.callback_count = callback_count


class LoadError(MapsLoaderError):
    """The injected script failed to load (transport or evaluation failure)."""


class ReadinessTimeoutError(MapsLoaderError, TimeoutError):
    """Readiness was not confirmed within the polling budget."""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class StateError(MapsLoaderError):
    """An operation was invoked in a state that does not support it."""
