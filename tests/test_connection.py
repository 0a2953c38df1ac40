import asyncio
import gc

import pytest

from fakes import ChannelRecorder, until
from godot_mcp.bridge.connection import ConnectionHolder, ConnectionState, GodotConnection
from godot_mcp.shared.config import BridgeConfig
from godot_mcp.shared.errors import (
    CommandError,
    CommandTimeout,
    ConnectionClosed,
    ConnectionFailed,
    ConnectionTimeout,
)


def _connection(channels, **config) -> GodotConnection:
    return GodotConnection(BridgeConfig(**config), channel_factory=channels)


async def _start(conn, channels, command_type="get_script", params=None):
    """Issue a command and wait until its frame has been sent."""
    count = sum(len(c.sent) for c in channels.channels)
    task = asyncio.create_task(conn.send_command(command_type, params))
    await until(lambda: sum(len(c.sent) for c in channels.channels) > count)
    return task


@pytest.mark.asyncio
async def test_get_script_resolves_with_result(channels):
    conn = _connection(channels)
    task = await _start(conn, channels, "get_script", {"path": "res://a.gd"})

    assert channels.last.sent == [
        {"type": "get_script", "params": {"path": "res://a.gd"}, "commandId": "cmd_0"}
    ]
    channels.last.reply(status="success", result={"content": "x"}, commandId="cmd_0")

    assert await task == {"content": "x"}
    assert conn.pending_count == 0


@pytest.mark.asyncio
async def test_first_command_connects_lazily(channels):
    conn = _connection(channels, host="127.0.0.1", port=9123)
    assert conn.state is ConnectionState.DISCONNECTED
    assert not conn.is_connected()

    task = await _start(conn, channels)
    assert conn.is_connected()
    assert channels.last.url == "ws://127.0.0.1:9123"

    channels.last.reply(status="success", result=None, commandId="cmd_0")
    assert await task is None


@pytest.mark.asyncio
async def test_error_reply_rejects_and_keeps_channel(channels):
    conn = _connection(channels)
    task = await _start(conn, channels, "get_script")
    channels.last.reply(status="error", message="Script not found", commandId="cmd_0")

    with pytest.raises(CommandError, match="Script not found"):
        await task
    assert conn.is_connected()


@pytest.mark.asyncio
async def test_timeout_names_command_and_keeps_channel(channels):
    conn = _connection(channels, timeout_ms=30)
    task = await _start(conn, channels, "get_full_scene_tree")

    with pytest.raises(CommandTimeout) as exc:
        await task
    assert "get_full_scene_tree" in str(exc.value)
    assert "timed out" in str(exc.value)
    assert conn.pending_count == 0
    assert conn.is_connected()
    assert not channels.last.closed


@pytest.mark.asyncio
async def test_per_call_timeout_override(channels):
    conn = _connection(channels, timeout_ms=10000)
    with pytest.raises(CommandTimeout):
        await conn.send_command("get_debug_output", timeout=0.02)


@pytest.mark.asyncio
async def test_out_of_order_replies_reach_their_callers(channels):
    conn = _connection(channels)
    first = await _start(conn, channels, "a")
    second = await _start(conn, channels, "b")

    ids = [frame["commandId"] for frame in channels.last.sent]
    assert ids == ["cmd_0", "cmd_1"]

    channels.last.reply(status="success", result="second", commandId="cmd_1")
    channels.last.reply(status="success", result="first", commandId="cmd_0")
    assert await first == "first"
    assert await second == "second"


@pytest.mark.asyncio
async def test_malformed_and_unknown_replies_are_dropped(channels):
    conn = _connection(channels)
    task = await _start(conn, channels)

    channels.last.on_message("{not json")
    channels.last.reply(status="success", result="stale", commandId="cmd_99")
    channels.last.reply(status="success", result="orphan")
    assert not task.done()
    assert conn.pending_count == 1

    channels.last.reply(status="success", result="ok", commandId="cmd_0")
    assert await task == "ok"


@pytest.mark.asyncio
async def test_channel_close_rejects_all_pending(channels):
    conn = _connection(channels)
    tasks = [await _start(conn, channels, f"cmd{i}") for i in range(3)]

    channels.last.drop(OSError("peer went away"))

    results = await asyncio.gather(*tasks, return_exceptions=True)
    assert all(isinstance(r, ConnectionClosed) for r in results)
    assert conn.pending_count == 0
    assert conn.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_reconnects_after_close_and_restarts_ids(channels):
    conn = _connection(channels)
    task = await _start(conn, channels)
    channels.last.drop()
    with pytest.raises(ConnectionClosed):
        await task

    task = await _start(conn, channels)
    assert len(channels.channels) == 2
    assert channels.last.sent[0]["commandId"] == "cmd_0"
    channels.last.reply(status="success", result=1, commandId="cmd_0")
    assert await task == 1


@pytest.mark.asyncio
async def test_concurrent_ensure_connected_opens_once():
    channels = ChannelRecorder(open_delay=0.02)
    conn = _connection(channels)

    await asyncio.gather(conn.ensure_connected(), conn.ensure_connected())

    assert len(channels.channels) == 1
    assert conn.state is ConnectionState.CONNECTED


@pytest.mark.asyncio
async def test_concurrent_ensure_connected_share_failure():
    channels = ChannelRecorder(fail=ConnectionRefusedError("refused"), open_delay=0.01)
    conn = _connection(channels)

    results = await asyncio.gather(
        conn.ensure_connected(), conn.ensure_connected(), return_exceptions=True
    )

    assert len(channels.channels) == 1
    assert all(isinstance(r, ConnectionFailed) for r in results)
    assert "Failed to connect" in str(results[0])
    assert conn.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_connect_failure_fails_command_without_sending():
    channels = ChannelRecorder(fail=ConnectionRefusedError("refused"))
    conn = _connection(channels)

    with pytest.raises(ConnectionFailed):
        await conn.send_command("get_script")
    assert channels.last.sent == []
    assert conn.pending_count == 0


@pytest.mark.asyncio
async def test_connect_timeout_terminates_half_open_channel():
    channels = ChannelRecorder(open_delay=1.0)
    conn = _connection(channels, connect_timeout_ms=20)

    with pytest.raises(ConnectionTimeout):
        await conn.ensure_connected()
    assert channels.last.terminated
    assert conn.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_disconnect_rejects_pending_and_is_idempotent(channels):
    conn = _connection(channels)
    task = await _start(conn, channels)

    await conn.disconnect()
    with pytest.raises(ConnectionClosed):
        await task
    assert channels.last.closed
    assert conn.state is ConnectionState.DISCONNECTED

    await conn.disconnect()
    assert conn.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_disconnect_aborts_connect_in_progress():
    channels = ChannelRecorder(open_delay=1.0)
    conn = _connection(channels)
    waiter = asyncio.create_task(conn.ensure_connected())
    await until(lambda: channels.channels)

    await conn.disconnect()

    with pytest.raises(ConnectionFailed):
        await waiter
    assert conn.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_cancelled_caller_leaves_no_pending_entry(channels):
    conn = _connection(channels)
    task = await _start(conn, channels)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    await asyncio.sleep(0)
    assert conn.pending_count == 0


@pytest.mark.asyncio
async def test_holder_returns_single_instance(channels):
    holder = ConnectionHolder(BridgeConfig(), channel_factory=channels)
    first = holder.get()
    assert holder.get() is first

    await first.ensure_connected()
    await holder.close()
    assert first.state is ConnectionState.DISCONNECTED
    assert holder.get() is not first


@pytest.mark.asyncio
async def test_unexpected_connect_error_is_typed_and_resets_state():
    channels = ChannelRecorder(fail=ValueError("Port out of range 0-65535"))
    conn = _connection(channels)

    with pytest.raises(ConnectionFailed, match="Port out of range"):
        await conn.send_command("x")
    assert conn.state is ConnectionState.DISCONNECTED
    assert channels.last.terminated

    # the next command tries again instead of waiting on a stuck attempt
    with pytest.raises(ConnectionFailed):
        await conn.ensure_connected()
    assert len(channels.channels) == 2


@pytest.mark.asyncio
async def test_close_during_send_leaves_no_unretrieved_error(loop_errors):
    channels = ChannelRecorder(drop_on_send=True)
    conn = _connection(channels)

    try:
        await conn.send_command("get_script")
    except ConnectionClosed:
        pass
    else:
        pytest.fail("expected ConnectionClosed")
    gc.collect()

    assert conn.pending_count == 0
    assert conn.state is ConnectionState.DISCONNECTED
    assert loop_errors == []


@pytest.mark.asyncio
async def test_abandoned_connect_failure_is_not_reported(loop_errors):
    channels = ChannelRecorder(fail=ConnectionRefusedError("refused"), open_delay=0.02)
    conn = _connection(channels)

    waiter = asyncio.create_task(conn.ensure_connected())
    await until(lambda: channels.channels)
    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter

    await until(lambda: conn.state is ConnectionState.DISCONNECTED)
    await asyncio.sleep(0)
    gc.collect()
    assert loop_errors == []
