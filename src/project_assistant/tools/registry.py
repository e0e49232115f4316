"""Tool registry for tool discovery and registration.

This module provides the ToolRegistry class that maps tool names to their
spec and handler. Read tools are plain async callables; action tools are
objects exposing ``prepare()``, which the confirmation protocol drives.
"""

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Protocol, Union

from project_assistant.governance.models import Scope
from project_assistant.telemetry import get_logger
from project_assistant.tools.types import CONFIRMED_PARAM, ToolSpec

if TYPE_CHECKING:
    from project_assistant.actions.types import ActionPlan

log = get_logger(__name__)

ReadHandler = Callable[[dict[str, Any], Scope], Awaitable[Any]]


class ActionHandler(Protocol):
    """Handler of a mutating tool."""

    async def prepare(self, args: dict[str, Any], scope: Scope) -> "ActionPlan":
        """Validate read-only and describe the mutation without performing it."""
        ...


ToolHandler = Union[ReadHandler, ActionHandler]


class ToolRegistry:
    """Central registry of available tools.

    Populated once at startup; lookups afterwards are read-only.
    """

    def __init__(self) -> None:
        """Initialize empty tool registry."""
        self._tools: dict[str, tuple[ToolSpec, ToolHandler]] = {}
        log.debug("tool_registry_initialized")

    def register(self, spec: ToolSpec, handler: ToolHandler) -> None:
        """Register a tool with its spec and handler.

        Args:
            spec: Tool spec with schema and flags.
            handler: ``async (args, scope) -> payload`` for read tools, or an
                ActionHandler for mutating tools.

        Raises:
            ValueError: If the name is already registered, or the handler
                does not fit the tool's kind.
        """
        if spec.name in self._tools:
            raise ValueError(f"Tool '{spec.name}' is already registered")
        if spec.mutating and not callable(getattr(handler, "prepare", None)):
            raise ValueError(f"Mutating tool '{spec.name}' needs a handler with prepare()")
        if not spec.mutating and not callable(handler):
            raise ValueError(f"Read tool '{spec.name}' needs a callable handler")

        self._tools[spec.name] = (spec, handler)
        log.debug(
            "tool_registered",
            tool_name=spec.name,
            cacheable=spec.cacheable,
            mutating=spec.mutating,
            required_capability=spec.required_capability,
        )

    def get_tool(self, name: str) -> tuple[ToolSpec, ToolHandler] | None:
        """Retrieve tool spec and handler.

        Args:
            name: Tool name to retrieve.

        Returns:
            Tuple of (ToolSpec, handler) if found, None otherwise.
        """
        return self._tools.get(name)

    def get_spec(self, name: str) -> ToolSpec | None:
        """Retrieve only the spec of a tool."""
        entry = self._tools.get(name)
        return entry[0] if entry else None

    def list_tools(self, mutating: bool | None = None) -> list[ToolSpec]:
        """List tool specs, optionally only read or only action tools."""
        specs = [spec for spec, _ in self._tools.values()]
        if mutating is None:
            return specs
        return [spec for spec in specs if spec.mutating == mutating]

    def list_tool_names(self) -> list[str]:
        """List names of all registered tools."""
        return list(self._tools.keys())

    def __contains__(self, name: object) -> bool:  # noqa: D105
        return name in self._tools

    def __len__(self) -> int:  # noqa: D105
        return len(self._tools)

    def get_tool_definitions_for_llm(self, mutating: bool | None = None) -> list[dict[str, Any]]:
        """Get tool definitions in OpenAI function calling format.

        Mutating tools get an extra ``confirmed`` boolean the model sets only
        after the user explicitly agrees to the preview.

        Returns:
            List of tool definitions in OpenAI format (for function calling).
        """
        result = []
        for spec in self.list_tools(mutating=mutating):
            properties: dict[str, Any] = {
                param.name: param.json_schema() for param in spec.parameters
            }
            if spec.mutating:
                properties[CONFIRMED_PARAM] = {
                    "type": "boolean",
                    "description": "Set to true only after the user explicitly confirms the action",
                }

            result.append(
                {
                    "type": "function",
                    "function": {
                        "name": spec.name,
                        "description": spec.description,
                        "parameters": {
                            "type": "object",
                            "properties": properties,
                            "required": [param.name for param in spec.parameters if param.required],
                            "additionalProperties": False,
                        },
                    },
                }
            )
        return result
