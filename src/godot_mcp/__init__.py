"""MCP server exposing the Godot editor over a single WebSocket connection."""

from .bridge.connection import ConnectionHolder, ConnectionState, GodotConnection
from .shared.config import AppConfig, BridgeConfig, LoggingConfig, load_config

__all__ = [
    "AppConfig",
    "BridgeConfig",
    "ConnectionHolder",
    "ConnectionState",
    "GodotConnection",
    "LoggingConfig",
    "load_config",
]
