"""
Tool registry.

Each tool module registers its tools at import time with a JSON schema, the
toolset it belongs to and an async handler. ``model_tools`` reads the registry
to build the definitions sent to the model and to dispatch calls.

A tool registered without a handler is client-side: the conversation driver
surfaces the call to the user instead of executing it.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

ToolHandler = Callable[..., Awaitable[Any]]


@dataclass
class ToolEntry:
    name: str
    toolset: str
    schema: Dict[str, Any]
    handler: Optional[ToolHandler] = None
    check_fn: Optional[Callable[[], bool]] = None
    requires_env: List[str] = field(default_factory=list)

    @property
    def client_side(self) -> bool:
        return self.handler is None

    def is_available(self) -> bool:
        if self.check_fn is None:
            return True
        try:
            return bool(self.check_fn())
        except Exception as e:
            logger.warning("Availability check for %s failed: %s", self.name, e)
            return False


class ToolRegistry:
    def __init__(self):
        self._tools: Dict[str, ToolEntry] = {}

    def register(
        self,
        name: str,
        toolset: str,
        schema: Dict[str, Any],
        handler: Optional[ToolHandler] = None,
        check_fn: Optional[Callable[[], bool]] = None,
        requires_env: Optional[List[str]] = None,
    ) -> None:
        if name in self._tools:
            logger.debug("Re-registering tool %s", name)
        self._tools[name] = ToolEntry(
            name=name,
            toolset=toolset,
            schema=schema,
            handler=handler,
            check_fn=check_fn,
            requires_env=list(requires_env or []),
        )

    def get_entry(self, name: str) -> Optional[ToolEntry]:
        return self._tools.get(name)

    def is_client_side(self, name: str) -> bool:
        entry = self._tools.get(name)
        return entry is not None and entry.client_side

    def get_definitions(self, names: Optional[List[str]] = None, available_only: bool = True) -> List[Dict[str, Any]]:
        """Return OpenAI function-tool definitions, sorted by name."""
        definitions = []
        for name in sorted(self._tools):
            if names is not None and name not in names:
                continue
            entry = self._tools[name]
            if available_only and not entry.is_available():
                continue
            definitions.append({"type": "function", "function": entry.schema})
        return definitions

    async def dispatch(self, name: str, args: Dict[str, Any], **kwargs) -> Any:
        """Run the handler for ``name``. Raises KeyError for unknown or client-side tools."""
        entry = self._tools.get(name)
        if entry is None:
            raise KeyError(f"Unknown tool: {name}")
        if entry.handler is None:
            raise KeyError(f"Tool {name} is fulfilled by the client and has no handler")
        return await entry.handler(args, **kwargs)


registry = ToolRegistry()
