"""In-process host/device connection pair for local testing.

Messages sent on one end are delivered to the other on the next event-loop
tick. The device end answers S1F1 (Are You There) with S1F2 by default.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from collections.abc import Callable, Sequence

from hsmsctl.core.errors import TransportSendError
from hsmsctl.core.model import FULL_CAPABILITIES, DataItem, DataMessage, EncoderCapabilities
from hsmsctl.transports.base import ReplyListener

LOGGER = logging.getLogger(__name__)

Responder = Callable[[DataMessage], Sequence[DataItem] | None]
# requests whose reply never came are evicted oldest first beyond this
MAX_AWAITING_REPLIES = 1024


def are_you_there(message: DataMessage) -> list[DataItem]:
    return [DataItem(name="reply", format="A", value="OK", size=2)]


class LoopbackConnection:
    def __init__(
        self,
        name: str,
        *,
        capabilities: EncoderCapabilities = FULL_CAPABILITIES,
        max_awaiting: int = MAX_AWAITING_REPLIES,
    ) -> None:
        self.name = name
        self.capabilities = capabilities
        self.max_awaiting = max_awaiting
        self.peer: LoopbackConnection | None = None
        self.closed = False
        self.sent: list[DataMessage] = []
        self.received: list[DataMessage] = []
        self._contexts = itertools.count(1)
        self._reply_listeners: list[ReplyListener] = []
        self._responders: dict[tuple[int, int], Responder] = {}
        self._awaiting_reply: dict[int, DataMessage] = {}

    @property
    def awaiting_replies(self) -> tuple[int, ...]:
        return tuple(self._awaiting_reply)

    def next_context(self) -> int:
        return next(self._contexts)

    def add_reply_listener(self, listener: ReplyListener) -> None:
        self._reply_listeners.append(listener)

    def set_responder(self, stream: int, func: int, responder: Responder | None) -> None:
        if responder is None:
            self._responders.pop((stream, func), None)
        else:
            self._responders[(stream, func)] = responder

    def send(self, message: DataMessage) -> None:
        if self.closed or self.peer is None or self.peer.closed:
            raise TransportSendError(f"{self.name} connection is not established")
        if message.reply_expected and not message.is_reply:
            self._awaiting_reply[message.context] = message
            while len(self._awaiting_reply) > self.max_awaiting:
                stale = next(iter(self._awaiting_reply))
                del self._awaiting_reply[stale]
                LOGGER.debug("%s stopped awaiting a reply for context %s", self.name, stale)
        self.sent.append(message)
        LOGGER.info("%s send %s (context %s)", self.name, message, message.context)

        peer = self.peer
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            peer._receive(message)
        else:
            loop.call_soon(peer._receive, message)

    def close(self) -> None:
        self.closed = True
        self._awaiting_reply.clear()

    def _receive(self, message: DataMessage) -> None:
        if self.closed:
            return
        self.received.append(message)
        LOGGER.info("%s recv %s (context %s)", self.name, message, message.context)
        if LOGGER.isEnabledFor(logging.DEBUG):
            items = [item.to_dict() for item in message.items]
            LOGGER.debug("%s recv items: %s", self.name, json.dumps(items, indent=2))

        if message.is_reply:
            if self._awaiting_reply.pop(message.context, None) is None:
                LOGGER.debug("%s dropped unsolicited reply %s", self.name, message)
                return
            for listener in list(self._reply_listeners):
                listener(message)
            return

        responder = self._responders.get((message.stream, message.func))
        if responder is None or not message.reply_expected:
            return
        items = responder(message)
        if items is None:
            return
        self.send(
            DataMessage(
                device=message.device,
                stream=message.stream,
                func=message.func + 1,
                reply_expected=False,
                items=tuple(items),
                context=message.context,
            )
        )


class LoopbackLink:
    """Host (active) and device (passive) ends wired to each other."""

    def __init__(
        self,
        *,
        host_capabilities: EncoderCapabilities = FULL_CAPABILITIES,
        device_capabilities: EncoderCapabilities = FULL_CAPABILITIES,
    ) -> None:
        self.host = LoopbackConnection("host", capabilities=host_capabilities)
        self.device = LoopbackConnection("device", capabilities=device_capabilities)
        self.host.peer = self.device
        self.device.peer = self.host
        self.device.set_responder(1, 1, are_you_there)

    def connections(self) -> dict[str, LoopbackConnection]:
        return {"host": self.host, "device": self.device}

    def close(self) -> None:
        self.host.close()
        self.device.close()
