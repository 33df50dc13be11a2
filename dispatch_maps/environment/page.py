"""
In-process model of the page the mapping script is injected into.

A PageEnvironment holds the ordered script declarations (the document head)
and the global namespace (the window). Declarations are handed to a script
runner on insertion; the runner decides when the script "executes", which is
when the completion callback fires and the API surface is published.
"""

import logging
import uuid
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any, Callable, Protocol
from urllib.parse import parse_qs, urlparse

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ScriptDeclaration:
    """One script element. Identity-compared: two tags with the same src are distinct."""

    src: str
    is_async: bool = True
    defer: bool = True
    injected_by: str | None = None
    declaration_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    on_error: Callable[[BaseException], None] | None = field(default=None, repr=False)

    def query_param(self, name: str) -> str | None:
        values = parse_qs(urlparse(self.src).query).get(name)
        return values[0] if values else None

    @property
    def callback_name(self) -> str | None:
        return self.query_param("callback")

    def fail(self, error: BaseException) -> None:
        """Signal a load failure the way a script element's onerror would."""
        logger.warning("Script %s failed to load: %s", self.declaration_id, error)
        if self.on_error is not None:
            self.on_error(error)


class ScriptRunner(Protocol):
    def run(self, declaration: ScriptDeclaration, page: "PageEnvironment") -> None:
        """Begin loading `declaration`; must not block."""


class PageEnvironment:
    """Script declarations plus a global namespace, with an optional runner."""

    def __init__(self, runner: ScriptRunner | None = None):
        self._scripts: list[ScriptDeclaration] = []
        self.window: dict[str, Any] = {}
        self.runner = runner

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------
    @property
    def scripts(self) -> tuple[ScriptDeclaration, ...]:
        return tuple(self._scripts)

    def __contains__(self, declaration: object) -> bool:
        return any(s is declaration for s in self._scripts)

    def append_script(self, declaration: ScriptDeclaration, execute: bool = True) -> None:
        """Insert a declaration and hand it to the runner.

        `execute=False` inserts an inert tag, e.g. markup rendered by another
        part of the page that will never load in this process.
        """
        self._scripts.append(declaration)
        logger.debug("Appended script %s src=%s", declaration.declaration_id, declaration.src)
        if execute and self.runner is not None:
            self.runner.run(declaration, self)

    def remove_script(self, declaration: ScriptDeclaration) -> bool:
        for idx, existing in enumerate(self._scripts):
            if existing is declaration:
                del self._scripts[idx]
                logger.debug("Removed script %s", declaration.declaration_id)
                return True
        return False

    def query_scripts(self, src_contains: str) -> list[ScriptDeclaration]:
        """All declarations whose src contains the substring, in document order."""
        return [s for s in self._scripts if src_contains in s.src]

    # ------------------------------------------------------------------
    # Global namespace
    # ------------------------------------------------------------------
    def register_global(self, name: str, value: Any) -> None:
        self.window[name] = value

    def delete_global(self, name: str) -> bool:
        return self.window.pop(name, None) is not None

    def global_names(self, prefix: str = "") -> list[str]:
        return sorted(name for name in self.window if name.startswith(prefix))

    def invoke_callback(self, name: str) -> bool:
        """Call window[name]() if it is registered and callable."""
        fn = self.window.get(name)
        if not callable(fn):
            logger.debug("No callable registered for %s", name)
            return False
        fn()
        return True

    def resolve(self, path: str) -> Any | None:
        """Follow a dotted path like "google.maps.Map" through the namespace."""
        node: Any = self.window
        for part in path.split("."):
            if isinstance(node, dict):
                node = node.get(part)
            else:
                node = getattr(node, part, None)
            if node is None:
                return None
        return node

    def has(self, path: str) -> bool:
        return self.resolve(path) is not None

    def publish(self, path: str, value: Any) -> None:
        """Set a dotted path, creating intermediate namespaces as needed."""
        head, *rest = path.split(".")
        if not rest:
            self.window[head] = value
            return
        node = self.window.get(head)
        if node is None:
            node = self.window[head] = SimpleNamespace()
        *middle, leaf = rest
        for part in middle:
            child = getattr(node, part, None)
            if child is None:
                child = SimpleNamespace()
                setattr(node, part, child)
            node = child
        setattr(node, leaf, value)
