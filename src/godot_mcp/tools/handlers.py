"""Tool handlers: one editor command each, reply rendered as text."""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from ..bridge.connection import GodotConnection
from ..shared.errors import GodotMCPError, ToolExecutionError

ToolHandler = Callable[[GodotConnection, dict[str, Any]], Awaitable[str]]


def compact_arguments(**kwargs: Any) -> dict[str, Any]:
    return {key: value for key, value in kwargs.items() if value is not None}


async def _send(
    conn: GodotConnection, action: str, command_type: str, params: dict[str, Any] | None = None
) -> Any:
    try:
        return await conn.send_command(command_type, params or {})
    except GodotMCPError as exc:
        raise ToolExecutionError(f"Failed to {action}: {exc}") from exc


def format_scene_tree(node: dict[str, Any], depth: int = 0) -> str:
    lines = [f"{'  ' * depth}{node.get('name')} ({node.get('type')})"]
    for child in node.get("children") or []:
        lines.append(format_scene_tree(child, depth + 1))
    return "\n".join(lines)


async def get_full_scene_tree(conn: GodotConnection, _: dict[str, Any]) -> str:
    result = await _send(conn, "get scene tree", "get_full_scene_tree")
    if not result:
        return "No scene is currently open or the scene is empty."
    return f"Scene Tree:\n{format_scene_tree(result)}"


async def get_current_scene_structure(conn: GodotConnection, _: dict[str, Any]) -> str:
    result = await _send(conn, "get scene structure", "get_current_scene_structure") or {}
    if not result.get("path"):
        return "No scene is currently open."
    return (
        f"Current Scene: {result['path']}\n"
        f"Root Node: {result.get('root_node_name')} ({result.get('root_node_type')})"
    )


async def get_debug_output(conn: GodotConnection, _: dict[str, Any]) -> str:
    result = await _send(conn, "get debug output", "get_debug_output") or {}
    output = result.get("output")
    if not output:
        return "No debug output available."
    return f"Debug Output:\n{output}"


async def update_node_transform(conn: GodotConnection, args: dict[str, Any]) -> str:
    node_path = args["node_path"]
    position = args.get("position")
    rotation = args.get("rotation")
    scale = args.get("scale")

    updates = compact_arguments(
        position={"x": position[0], "y": position[1]} if position else None,
        rotation=rotation,
        scale={"x": scale[0], "y": scale[1]} if scale else None,
    )
    await _send(
        conn,
        "update node transform",
        "update_node_property",
        {"node_path": node_path, "property": "_transform", "value": updates},
    )

    changes = []
    if position:
        changes.append(f"position to ({position[0]}, {position[1]})")
    if rotation is not None:
        changes.append(f"rotation to {rotation:.2f} rad")
    if scale:
        changes.append(f"scale to ({scale[0]}, {scale[1]})")
    return f"Updated {', '.join(changes)} for node at {node_path}"


async def ai_generate_script(conn: GodotConnection, args: dict[str, Any]) -> str:
    # Generation happens in the editor; this only forwards the request.
    description = args["description"]
    create_file = args.get("create_file", False)
    file_path = args.get("file_path", "")

    result = await _send(
        conn,
        "generate script",
        "ai_generate_script",
        {
            "description": description,
            "node_type": args.get("node_type", "Node"),
            "create_file": create_file,
            "file_path": file_path,
        },
    ) or {}

    content = result.get("content", "")
    if create_file and file_path and result.get("success"):
        header = f'Generated script based on "{description}" and saved to {file_path}:'
    else:
        header = f'Generated script based on "{description}":'
    return f"{header}\n\n```gdscript\n{content}\n```"


HANDLERS: dict[str, ToolHandler] = {
    "get_full_scene_tree": get_full_scene_tree,
    "get_current_scene_structure": get_current_scene_structure,
    "get_debug_output": get_debug_output,
    "update_node_transform": update_node_transform,
    "ai_generate_script": ai_generate_script,
}
