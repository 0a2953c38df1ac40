from .connection import ConnectionHolder, ConnectionState, GodotConnection
from .pending import PendingCommands
from .protocol import Command, ErrorReply, SuccessReply, encode_command, parse_reply
from .transport import WebSocketChannel

__all__ = [
    "Command",
    "ConnectionHolder",
    "ConnectionState",
    "ErrorReply",
    "GodotConnection",
    "PendingCommands",
    "SuccessReply",
    "WebSocketChannel",
    "encode_command",
    "parse_reply",
]
