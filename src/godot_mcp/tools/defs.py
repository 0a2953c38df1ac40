from __future__ import annotations

from dataclasses import dataclass
from typing import Any

_EMPTY = {"type": "object", "properties": {}, "additionalProperties": False}
_VECTOR2 = {"type": "array", "items": {"type": "number"}, "minItems": 2, "maxItems": 2}


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    input_schema: dict[str, Any]


TOOL_DEFINITIONS: list[ToolDefinition] = [
    ToolDefinition(
        name="get_full_scene_tree",
        description="Get the complete scene tree hierarchy of the current scene",
        input_schema=_EMPTY,
    ),
    ToolDefinition(
        name="get_current_scene_structure",
        description="Get detailed information about the current scene structure",
        input_schema=_EMPTY,
    ),
    ToolDefinition(
        name="get_debug_output",
        description="Get the debug output from the Godot editor",
        input_schema=_EMPTY,
    ),
    ToolDefinition(
        name="update_node_transform",
        description="Update position, rotation, or scale of a node",
        input_schema={
            "type": "object",
            "properties": {
                "node_path": {
                    "type": "string",
                    "description": 'Path to the node to update (e.g. "/root/MainScene/Player")',
                },
                "position": {**_VECTOR2, "description": "New position as [x, y]"},
                "rotation": {"type": "number", "description": "New rotation in radians"},
                "scale": {**_VECTOR2, "description": "New scale as [x, y]"},
            },
            "required": ["node_path"],
            "additionalProperties": False,
        },
    ),
    ToolDefinition(
        name="ai_generate_script",
        description="Generate a GDScript template based on a natural language description",
        input_schema={
            "type": "object",
            "properties": {
                "description": {
                    "type": "string",
                    "description": "Description of what the script should do "
                    '(e.g. "A player controller for a 2D platformer")',
                },
                "node_type": {
                    "type": "string",
                    "description": 'The type of node this script is for (e.g. "CharacterBody2D")',
                },
                "create_file": {
                    "type": "boolean",
                    "description": "Whether to create a new script file with the generated content",
                },
                "file_path": {
                    "type": "string",
                    "description": "Path where to save the script (only used if create_file is true)",
                },
            },
            "required": ["description"],
            "additionalProperties": False,
        },
    ),
]
