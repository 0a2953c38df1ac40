"""Tool table: each definition paired with its validator and handler."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from jsonschema import Draft7Validator
from jsonschema.exceptions import best_match

from ..bridge.connection import GodotConnection
from ..shared.errors import SchemaValidationError, ToolExecutionError, UnknownTool
from .defs import TOOL_DEFINITIONS, ToolDefinition
from .handlers import HANDLERS, ToolHandler


@dataclass(frozen=True)
class RegisteredTool:
    definition: ToolDefinition
    validator: Draft7Validator
    handler: ToolHandler


def _build_table() -> dict[str, RegisteredTool]:
    unpaired = {tool.name for tool in TOOL_DEFINITIONS} ^ set(HANDLERS)
    if unpaired:
        raise RuntimeError(f"Tools missing a definition or handler: {sorted(unpaired)}")
    return {
        tool.name: RegisteredTool(tool, Draft7Validator(tool.input_schema), HANDLERS[tool.name])
        for tool in TOOL_DEFINITIONS
    }


_TOOLS = _build_table()


def list_definitions() -> list[ToolDefinition]:
    return [tool.definition for tool in _TOOLS.values()]


def _lookup(tool_name: str) -> RegisteredTool:
    try:
        return _TOOLS[tool_name]
    except KeyError as exc:
        raise UnknownTool(f"Unknown tool '{tool_name}'") from exc


def validate_arguments(tool_name: str, arguments: Mapping[str, Any] | None) -> dict[str, Any]:
    tool = _lookup(tool_name)
    arguments = dict(arguments or {})
    error = best_match(tool.validator.iter_errors(arguments))
    if error is not None:
        path = ".".join(str(p) for p in error.absolute_path) or "arguments"
        raise SchemaValidationError(f"Invalid arguments for {tool_name}: {path}: {error.message}")
    return arguments


async def run_tool(conn: GodotConnection, tool_name: str, arguments: Mapping[str, Any] | None) -> str:
    """Validate ``arguments`` and run the tool against the editor connection."""
    try:
        validated = validate_arguments(tool_name, arguments)
    except (SchemaValidationError, UnknownTool) as exc:
        raise ToolExecutionError(str(exc)) from exc
    return await _TOOLS[tool_name].handler(conn, validated)
