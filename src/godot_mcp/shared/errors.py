from __future__ import annotations


class GodotMCPError(Exception):
    code = "godot_mcp_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConnectionFailed(GodotMCPError):
    code = "connection_failed"


class ConnectionTimeout(ConnectionFailed):
    code = "connection_timeout"


class ConnectionClosed(GodotMCPError):
    code = "connection_closed"


class CommandTimeout(GodotMCPError):
    code = "command_timeout"

    def __init__(self, command_type: str) -> None:
        super().__init__(f"Command timed out: {command_type}")
        self.command_type = command_type


class CommandError(GodotMCPError):
    """The editor answered with ``status: "error"``."""

    code = "command_error"


class MalformedReply(GodotMCPError):
    code = "malformed_reply"


class DuplicateCommandId(GodotMCPError):
    code = "duplicate_command_id"


class UnknownTool(GodotMCPError):
    code = "unknown_tool"


class UnknownResource(GodotMCPError):
    code = "unknown_resource"


class SchemaValidationError(GodotMCPError):
    code = "schema_validation_error"


class ToolExecutionError(GodotMCPError):
    code = "tool_execution_error"
