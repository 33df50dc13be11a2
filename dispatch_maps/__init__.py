"""
Dispatch Maps: shared Google Maps script loader for the operations dashboard.

Every map widget (delivery tracking, route optimisation, driver views) needs
the same third-party script. This package loads it exactly once per page,
lets concurrent widgets join the in-flight load, refuses to load when another
part of the page already injected competing copies, and waits for the full
API surface rather than trusting the script's own "loaded" callback.

To use from a widget:
    Create a consumer.MapsConsumer with get_coordinator() and
    MapsConfig.from_env(), call mount() when the widget appears and unmount()
    when it goes away, and render from consumer.status.

To swap the page model:
    Implement the ScriptRunner protocol (environment.page) and pass it to
    PageEnvironment. The simulated runner in simulator.py is a working
    example.

To troubleshoot a stuck page:
    diagnostics.DiagnosticInspector(get_coordinator()).get_state(), or run
    the operator panel:  streamlit run app.py

To host the coordinator in a multi-threaded server:
    Create one background.LoaderLoop and submit every coordinator call
    through loader.run() / loader.call().
"""

from .background import LoaderLoop
from .config import MapsConfig
from .consumer import ConsumerStatus, MapsConsumer
from .coordinator import (
    MapsLoadCoordinator,
    get_coordinator,
    install_coordinator,
    reset_coordinator,
)
from .diagnostics import DiagnosticInspector
from .errors import (
    ConfigurationError,
    ConflictError,
    LoadError,
    MapsLoaderError,
    ReadinessTimeoutError,
    StateError,
)
from .poller import ReadinessPoller
from .state import ConflictReport, LoadState

__all__ = [
    "LoaderLoop",
    "MapsConfig",
    "ConsumerStatus",
    "MapsConsumer",
    "MapsLoadCoordinator",
    "get_coordinator",
    "install_coordinator",
    "reset_coordinator",
    "DiagnosticInspector",
    "ConfigurationError",
    "ConflictError",
    "LoadError",
    "MapsLoaderError",
    "ReadinessTimeoutError",
    "StateError",
    "ReadinessPoller",
    "ConflictReport",
    "LoadState",
]
