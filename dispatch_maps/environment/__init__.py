"""Page model, script runners and conflict probe for the maps loader."""

from .page import PageEnvironment, ScriptDeclaration, ScriptRunner
from .probe import EnvironmentProbe
from .runners import HttpScriptRunner, ScriptBundle, publish_bundle

__all__ = [
    "PageEnvironment",
    "ScriptDeclaration",
    "ScriptRunner",
    "EnvironmentProbe",
    "HttpScriptRunner",
    "ScriptBundle",
    "publish_bundle",
]
