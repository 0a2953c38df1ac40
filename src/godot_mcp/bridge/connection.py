"""Connection to the Godot editor plugin.

A single WebSocket carries every command. Each command gets a ``cmd_<n>``
correlation id, and the reply carrying the same ``commandId`` completes the
awaiting caller. Replies may arrive in any order.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from websockets.exceptions import WebSocketException

from ..shared.config import BridgeConfig
from ..shared.errors import (
    CommandError,
    ConnectionClosed,
    ConnectionFailed,
    ConnectionTimeout,
    MalformedReply,
)
from .pending import PendingCommands
from .protocol import Command, SuccessReply, encode_command, parse_reply
from .transport import CloseCallback, MessageCallback, WebSocketChannel

logger = logging.getLogger(__name__)

ChannelFactory = Callable[[str, MessageCallback, CloseCallback], WebSocketChannel]


def _consume_outcome(future: asyncio.Future) -> None:
    """Mark a failure as retrieved when no caller is left to await it."""
    if future.done() and not future.cancelled():
        future.exception()


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class GodotConnection:
    def __init__(
        self,
        config: Optional[BridgeConfig] = None,
        channel_factory: ChannelFactory = WebSocketChannel,
    ) -> None:
        self.config = config or BridgeConfig()
        self._channel_factory = channel_factory
        self._channel: Optional[WebSocketChannel] = None
        self._state = ConnectionState.DISCONNECTED
        self._connect_task: Optional[asyncio.Task] = None
        self._pending = PendingCommands()
        self._ids = itertools.count()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    async def ensure_connected(self) -> None:
        """Open the WebSocket unless it is already open.

        Callers arriving while an attempt is in flight wait on that same
        attempt; a second socket is never opened concurrently.
        """
        if self._state is ConnectionState.CONNECTED:
            return

        task = self._connect_task
        if task is None:
            self._state = ConnectionState.CONNECTING
            task = self._connect_task = asyncio.create_task(self._connect())
            task.add_done_callback(_consume_outcome)

        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                raise ConnectionFailed("Connection attempt aborted") from None
            raise

    async def _connect(self) -> None:
        url = self.config.url
        timeout = self.config.connect_timeout
        logger.info("Connecting to Godot WebSocket server at %s...", url)

        channel: WebSocketChannel = self._channel_factory(
            url,
            self._handle_message,
            lambda exc: self._handle_close(channel, exc),
        )
        try:
            await asyncio.wait_for(channel.open(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            await channel.terminate()
            self._state = ConnectionState.DISCONNECTED
            raise ConnectionTimeout(f"Connection timeout after {timeout:g}s ({url})") from exc
        except (OSError, WebSocketException) as exc:
            self._state = ConnectionState.DISCONNECTED
            logger.error("WebSocket error: %s", exc)
            raise ConnectionFailed(f"Failed to connect: {exc}") from exc
        except asyncio.CancelledError:
            await channel.terminate()
            raise
        except Exception as exc:
            await channel.terminate()
            self._state = ConnectionState.DISCONNECTED
            logger.error("Unexpected error connecting to %s: %r", url, exc)
            raise ConnectionFailed(f"Failed to connect: {exc}") from exc
        finally:
            if self._connect_task is asyncio.current_task():
                self._connect_task = None

        if not channel.is_open:
            self._state = ConnectionState.DISCONNECTED
            raise ConnectionFailed(f"Failed to connect: {url} closed during handshake")

        self._channel = channel
        self._ids = itertools.count()
        self._state = ConnectionState.CONNECTED
        logger.info("Connected to Godot WebSocket server")

    async def send_command(
        self,
        command_type: str,
        params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Send one command and wait for its reply.

        Args:
            command_type: Editor command name, e.g. ``"get_script"``
            params: Command parameters
            timeout: Seconds to wait for the reply (default from config)

        Returns:
            The ``result`` field of a success reply

        Raises:
            ConnectionFailed: The editor could not be reached
            ConnectionClosed: The socket closed before the reply arrived
            CommandTimeout: No reply within ``timeout``
            CommandError: The editor replied with ``status: "error"``
        """
        await self.ensure_connected()

        channel = self._channel
        if channel is None:
            raise ConnectionClosed("WebSocket not connected")

        command = Command(
            type=command_type,
            command_id=f"cmd_{next(self._ids)}",
            params=dict(params or {}),
        )
        future = self._pending.register(
            command.command_id,
            command_type,
            self.config.timeout if timeout is None else timeout,
        )
        try:
            await channel.send(encode_command(command))
        except (Exception, asyncio.CancelledError):
            # the socket may have closed mid-send and already rejected the future
            _consume_outcome(future)
            self._pending.discard(command.command_id)
            raise

        logger.debug("Sent %s as %s", command_type, command.command_id)
        return await future

    async def disconnect(self) -> None:
        task, self._connect_task = self._connect_task, None
        if task is not None:
            task.cancel()

        channel, self._channel = self._channel, None
        self._state = ConnectionState.DISCONNECTED
        self._pending.drain_all("Connection closed")

        if channel is not None:
            await channel.close()
            logger.info("Disconnected from Godot WebSocket server")

    def _handle_message(self, frame: str) -> None:
        try:
            reply = parse_reply(frame)
        except MalformedReply as exc:
            logger.error("Error parsing response: %s", exc)
            return

        logger.debug("Received response: %s", reply)
        if reply.command_id is None:
            logger.debug("Ignoring reply without commandId")
            return

        if isinstance(reply, SuccessReply):
            self._pending.resolve(reply.command_id, reply.result)
        else:
            self._pending.reject(reply.command_id, CommandError(reply.message))

    def _handle_close(self, channel: WebSocketChannel, exc: Optional[BaseException]) -> None:
        if channel is not self._channel:
            return

        self._channel = None
        self._state = ConnectionState.DISCONNECTED
        if exc is not None:
            logger.warning("Disconnected from Godot WebSocket server: %s", exc)
        else:
            logger.info("Disconnected from Godot WebSocket server")
        self._pending.drain_all("Connection closed")


class ConnectionHolder:
    """Owns the one GodotConnection shared by every tool and resource.

    There is no implicit module-level connection: the server owns exactly
    one holder for the lifetime of the process, built in ``run_server`` and
    closed on shutdown, and hands its connection to each handler.

    ``get()`` builds the connection on first use and returns the same
    instance afterwards; ``close()`` disconnects it and forgets it, so the
    next ``get()`` starts from a fresh connection.
    """

    def __init__(
        self,
        config: Optional[BridgeConfig] = None,
        channel_factory: ChannelFactory = WebSocketChannel,
    ) -> None:
        self.config = config or BridgeConfig()
        self._channel_factory = channel_factory
        self._connection: Optional[GodotConnection] = None

    def get(self) -> GodotConnection:
        if self._connection is None:
            self._connection = GodotConnection(self.config, self._channel_factory)
        return self._connection

    async def close(self) -> None:
        connection, self._connection = self._connection, None
        if connection is not None:
            await connection.disconnect()
