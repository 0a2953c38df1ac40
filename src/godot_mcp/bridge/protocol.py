"""JSON text frames exchanged with the Godot editor plugin.

Outbound::

    {"type": "get_script", "params": {"path": "res://a.gd"}, "commandId": "cmd_0"}

Inbound::

    {"status": "success", "result": {...}, "commandId": "cmd_0"}
    {"status": "error", "message": "...", "commandId": "cmd_0"}
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Union

from jsonschema import Draft7Validator

from ..shared.errors import MalformedReply

REPLY_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "status": {"enum": ["success", "error"]},
        "message": {"type": ["string", "null"]},
        "commandId": {"type": "string"},
    },
    "required": ["status"],
}

_REPLY_VALIDATOR = Draft7Validator(REPLY_SCHEMA)


@dataclass(frozen=True)
class Command:
    type: str
    command_id: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SuccessReply:
    command_id: str | None
    result: Any = None


@dataclass(frozen=True)
class ErrorReply:
    command_id: str | None
    message: str = "Unknown error"


Reply = Union[SuccessReply, ErrorReply]


def encode_command(command: Command) -> str:
    return json.dumps(
        {"type": command.type, "params": command.params, "commandId": command.command_id}
    )


def parse_reply(frame: str) -> Reply:
    try:
        data = json.loads(frame)
    except (ValueError, RecursionError) as exc:
        # RecursionError: nesting deeper than the interpreter stack
        raise MalformedReply(f"Invalid JSON: {exc}") from exc

    errors = sorted(_REPLY_VALIDATOR.iter_errors(data), key=lambda e: e.path)
    if errors:
        first = errors[0]
        path = ".".join(str(p) for p in first.path) or "<root>"
        raise MalformedReply(f"{path}: {first.message}")

    command_id = data.get("commandId")
    if data["status"] == "success":
        return SuccessReply(command_id=command_id, result=data.get("result"))
    return ErrorReply(command_id=command_id, message=data.get("message") or "Unknown error")
