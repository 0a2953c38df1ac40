from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from ..shared.errors import CommandTimeout, ConnectionClosed, DuplicateCommandId

logger = logging.getLogger(__name__)


@dataclass
class PendingCommand:
    command_id: str
    command_type: str
    future: asyncio.Future
    timer: asyncio.TimerHandle


class PendingCommands:
    """In-flight commands keyed by correlation id.

    Every entry is completed at most once and removed on the first of:
    reply, deadline, channel close, or cancellation of the waiting caller.
    """

    def __init__(self) -> None:
        self._pending: dict[str, PendingCommand] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, command_id: object) -> bool:
        return command_id in self._pending

    def register(self, command_id: str, command_type: str, timeout: float) -> asyncio.Future:
        if command_id in self._pending:
            raise DuplicateCommandId(f"Command id already pending: {command_id}")

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        timer = loop.call_later(timeout, self.expire, command_id)
        self._pending[command_id] = PendingCommand(command_id, command_type, future, timer)
        future.add_done_callback(lambda fut: self._discard_cancelled(command_id, fut))
        return future

    def resolve(self, command_id: str, value: Any) -> bool:
        entry = self._pop(command_id)
        if entry is None:
            return False
        if not entry.future.done():
            entry.future.set_result(value)
        return True

    def reject(self, command_id: str, error: BaseException) -> bool:
        entry = self._pop(command_id)
        if entry is None:
            return False
        if not entry.future.done():
            entry.future.set_exception(error)
        return True

    def expire(self, command_id: str) -> None:
        entry = self._pending.get(command_id)
        if entry is None:
            return
        logger.warning("Command %s (%s) timed out", command_id, entry.command_type)
        self.reject(command_id, CommandTimeout(entry.command_type))

    def discard(self, command_id: str) -> None:
        """Forget a command whose frame never left, without completing it."""
        entry = self._pending.pop(command_id, None)
        if entry is not None:
            entry.timer.cancel()
            entry.future.cancel()

    def drain_all(self, reason: str = "Connection closed") -> int:
        entries = list(self._pending.values())
        self._pending.clear()
        for entry in entries:
            entry.timer.cancel()
            if not entry.future.done():
                entry.future.set_exception(ConnectionClosed(reason))
        if entries:
            logger.info("Rejected %d pending command(s): %s", len(entries), reason)
        return len(entries)

    def _pop(self, command_id: str) -> PendingCommand | None:
        entry = self._pending.pop(command_id, None)
        if entry is None:
            # late reply after a timeout, or a duplicate
            logger.warning("No pending command for id %r", command_id)
            return None
        entry.timer.cancel()
        return entry

    def _discard_cancelled(self, command_id: str, future: asyncio.Future) -> None:
        if not future.cancelled():
            return
        entry = self._pending.get(command_id)
        if entry is not None and entry.future is future:
            del self._pending[command_id]
            entry.timer.cancel()
