"""Request/reply session bound to a single connection."""

from __future__ import annotations

import asyncio
import logging

from hsmsctl.core.correlation import CorrelationTable
from hsmsctl.core.errors import TransportSendError
from hsmsctl.core.model import DataMessage, SendResult
from hsmsctl.transports.base import Connection

LOGGER = logging.getLogger(__name__)


class RequestSession:
    """Dispatches messages on a connection and awaits correlated replies.

    The session owns the correlation table for its connection and is the only
    subscriber that resolves entries from the connection's reply events.
    """

    def __init__(self, connection: Connection) -> None:
        self.connection = connection
        self._table = CorrelationTable()
        connection.add_reply_listener(self._on_reply)

    @property
    def pending_tokens(self) -> tuple[int, ...]:
        return self._table.tokens()

    async def send_and_await(
        self,
        message: DataMessage,
        wait_for_reply: bool,
        timeout_ms: int,
    ) -> SendResult:
        if not wait_for_reply:
            self._dispatch(message)
            return SendResult(ok=True, status="sent", request=message)

        future = self._table.register(message, timeout_ms / 1000.0)
        try:
            self._dispatch(message)
        except TransportSendError:
            self._table.discard(message.context)
            raise

        LOGGER.debug("Waiting up to %d ms for reply to %s (token %s)", timeout_ms, message, message.context)
        try:
            pair = await future
        except asyncio.CancelledError:
            self._table.discard(message.context)
            raise
        return SendResult(ok=True, status="replied", request=pair.request, reply=pair.reply)

    def _dispatch(self, message: DataMessage) -> None:
        try:
            self.connection.send(message)
        except TransportSendError:
            raise
        except Exception as exc:
            raise TransportSendError(f"{self.connection.name} send failed: {exc}") from exc

    def _on_reply(self, reply: DataMessage) -> None:
        self._table.resolve(reply.context, reply)
