import asyncio
import json
import socket
from typing import Any, AsyncIterator

import pytest
import pytest_asyncio
from websockets.asyncio.server import serve

from fakes import ChannelRecorder


class EditorStub:
    """Loopback stand-in for the Godot editor plugin.

    ``replies`` maps a command type to the reply body (``status`` plus
    ``result`` or ``message``); the incoming ``commandId`` is echoed back.
    ``silent`` command types get no reply, ``hangup`` ones close the socket,
    ``raw`` ones are answered with the given frame verbatim.
    """

    def __init__(self) -> None:
        self.port = 0
        self.received: list[dict[str, Any]] = []
        self.replies: dict[str, dict[str, Any]] = {}
        self.silent: set[str] = set()
        self.hangup: set[str] = set()
        self.raw: dict[str, str] = {}
        self.connections = 0

    @property
    def url_config(self) -> dict[str, Any]:
        return {"host": "127.0.0.1", "port": self.port}

    async def handler(self, websocket) -> None:
        self.connections += 1
        async for message in websocket:
            command = json.loads(message)
            self.received.append(command)
            command_type = command.get("type")
            if command_type in self.hangup:
                await websocket.close()
                return
            if command_type in self.silent:
                continue
            if command_type in self.raw:
                await websocket.send(self.raw[command_type])
                continue
            reply = self.replies.get(command_type, {"status": "success", "result": {}})
            await websocket.send(json.dumps({**reply, "commandId": command["commandId"]}))


@pytest_asyncio.fixture
async def editor() -> AsyncIterator[EditorStub]:
    stub = EditorStub()
    async with serve(stub.handler, "127.0.0.1", 0) as server:
        stub.port = list(server.sockets)[0].getsockname()[1]
        yield stub


@pytest.fixture
def channels() -> ChannelRecorder:
    return ChannelRecorder()


@pytest.fixture
def free_port() -> int:
    """A loopback port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch):
    monkeypatch.delenv("GODOT_MCP_CONFIG", raising=False)


@pytest_asyncio.fixture
async def loop_errors() -> AsyncIterator[list[dict[str, Any]]]:
    """Reports the event loop would otherwise log, such as unretrieved exceptions."""
    loop = asyncio.get_running_loop()
    errors: list[dict[str, Any]] = []
    loop.set_exception_handler(lambda _, context: errors.append(context))
    yield errors
    loop.set_exception_handler(None)
