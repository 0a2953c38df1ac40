from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from .bridge.connection import GodotConnection
from .shared.errors import UnknownResource

DEFAULT_SCRIPT_PATH = "res://default_script.gd"

ASSET_EXTENSIONS: dict[str, list[str]] = {
    "images": [".png", ".jpg", ".jpeg", ".webp", ".svg", ".bmp", ".tga"],
    "audio": [".ogg", ".mp3", ".wav", ".opus"],
    "fonts": [".ttf", ".otf", ".fnt", ".font"],
    "models": [".glb", ".gltf", ".obj", ".fbx"],
    "shaders": [".gdshader", ".shader"],
    "resources": [".tres", ".res", ".theme", ".material"],
    "all": [],
}

_ASSET_URI = re.compile(r"^godot://assets/(?P<type>[a-z]+)$")

ResourceLoader = Callable[[GodotConnection], Awaitable[str]]


@dataclass(frozen=True)
class ResourceDefinition:
    uri: str
    name: str
    mime_type: str
    load: ResourceLoader


def script_language(path: str) -> str:
    if path.endswith(".gd"):
        return "gdscript"
    if path.endswith(".cs"):
        return "csharp"
    return "unknown"


def organize_files(files: list[str]) -> dict[str, Any]:
    """Nest ``res://`` paths into a folder tree whose leaves map to the full path."""
    tree: dict[str, Any] = {}
    for path in files:
        parts = path.split("/")
        current = tree
        # parts[0:2] are "res:" and "" from the scheme
        for part in parts[2:-1]:
            current = current.setdefault(part, {})
        current[parts[-1]] = path
    return tree


async def load_script_list(conn: GodotConnection) -> str:
    result = await conn.send_command("list_project_files", {"extensions": [".gd", ".cs"]})
    files = (result or {}).get("files") or []
    return json.dumps(
        {
            "scripts": files,
            "count": len(files),
            "gdscripts": [f for f in files if f.endswith(".gd")],
            "csharp_scripts": [f for f in files if f.endswith(".cs")],
        }
    )


async def load_script(conn: GodotConnection) -> str:
    result = await conn.send_command("get_script", {"path": DEFAULT_SCRIPT_PATH}) or {}
    return json.dumps(
        {
            "text": result.get("content", ""),
            "metadata": {
                "path": result.get("script_path", DEFAULT_SCRIPT_PATH),
                "language": script_language(DEFAULT_SCRIPT_PATH),
            },
        }
    )


async def load_script_metadata(conn: GodotConnection) -> str:
    result = await conn.send_command("get_script_metadata", {"path": DEFAULT_SCRIPT_PATH})
    return json.dumps(result)


async def load_debug_log(conn: GodotConnection) -> str:
    result = await conn.send_command("get_debug_output") or {}
    return result.get("output") or "No debug output available."


async def load_asset_list(conn: GodotConnection, asset_type: str) -> str:
    if asset_type not in ASSET_EXTENSIONS:
        raise UnknownResource(f"Unknown asset type '{asset_type}'")

    extensions = ASSET_EXTENSIONS[asset_type]
    result = await conn.send_command("list_project_files", {"extensions": extensions})
    files = (result or {}).get("files") or []
    return json.dumps(
        {
            "assetType": asset_type,
            "extensions": extensions,
            "count": len(files),
            "files": files,
            "organizedFiles": organize_files(files),
        }
    )


RESOURCE_DEFINITIONS: list[ResourceDefinition] = [
    ResourceDefinition("godot://scripts", "Script List", "application/json", load_script_list),
    ResourceDefinition("godot://script", "Script Content", "application/json", load_script),
    ResourceDefinition(
        "godot://script/metadata", "Script Metadata", "application/json", load_script_metadata
    ),
    ResourceDefinition("godot://debug/log", "Godot Debug Output", "text/plain", load_debug_log),
]

ASSET_TEMPLATE_URI = "godot://assets/{type}"

_RESOURCE_INDEX = {resource.uri: resource for resource in RESOURCE_DEFINITIONS}


async def read_resource(conn: GodotConnection, uri: str) -> str:
    resource = _RESOURCE_INDEX.get(uri)
    if resource is not None:
        return await resource.load(conn)

    match = _ASSET_URI.match(uri)
    if match:
        return await load_asset_list(conn, match.group("type"))

    raise UnknownResource(f"Unknown resource '{uri}'")


def mime_type_for(uri: str) -> str:
    resource = _RESOURCE_INDEX.get(uri)
    return resource.mime_type if resource is not None else "application/json"
