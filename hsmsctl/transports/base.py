"""Transport interfaces."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from hsmsctl.core.model import DataMessage, EncoderCapabilities

ReplyListener = Callable[[DataMessage], None]


class Connection(Protocol):
    name: str
    capabilities: EncoderCapabilities

    def next_context(self) -> int:
        """Return a correlation token unique among this connection's pending requests."""

    def send(self, message: DataMessage) -> None:
        """Transmit a message, raising ``TransportSendError`` if it is rejected."""

    def add_reply_listener(self, listener: ReplyListener) -> None:
        """Subscribe to replies; the reply's ``context`` is the request's token."""
