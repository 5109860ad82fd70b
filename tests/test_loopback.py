from __future__ import annotations

import asyncio

import pytest

from hsmsctl.core.errors import TransportSendError
from hsmsctl.core.model import DataItem, DataMessage
from hsmsctl.transports.loopback import LoopbackLink


def _primary(context: int, *, stream: int = 1, func: int = 1, wait: bool = True) -> DataMessage:
    return DataMessage(device=1, stream=stream, func=func, reply_expected=wait, items=(), context=context)


def test_device_answers_are_you_there() -> None:
    link = LoopbackLink()
    replies: list[DataMessage] = []
    link.host.add_reply_listener(replies.append)

    async def scenario() -> None:
        link.host.send(_primary(link.host.next_context()))
        for _ in range(3):
            await asyncio.sleep(0)

    asyncio.run(scenario())

    assert len(replies) == 1
    assert str(replies[0]) == "S1F2"
    assert replies[0].context == 1
    assert replies[0].items == (DataItem(name="reply", format="A", value="OK", size=2),)
    assert [str(m) for m in link.device.received] == ["S1F1"]


def test_no_reply_without_wait_bit_or_responder() -> None:
    link = LoopbackLink()
    replies: list[DataMessage] = []
    link.host.add_reply_listener(replies.append)

    link.host.send(_primary(1, wait=False))
    link.host.send(_primary(2, stream=6, func=11))

    assert replies == []
    assert len(link.device.received) == 2


def test_custom_responder_and_unsolicited_reply() -> None:
    link = LoopbackLink()
    replies: list[DataMessage] = []
    link.host.add_reply_listener(replies.append)
    link.device.set_responder(2, 41, lambda m: [DataItem(name="HCACK", format="B", value=b"\x00", size=1)])

    link.host.send(_primary(7, stream=2, func=41))
    link.device.send(DataMessage(device=1, stream=1, func=2, reply_expected=False, items=(), context=99))

    assert [(str(r), r.context) for r in replies] == [("S2F42", 7)]


def test_contexts_are_unique_per_connection() -> None:
    link = LoopbackLink()
    assert [link.host.next_context() for _ in range(3)] == [1, 2, 3]
    assert link.device.next_context() == 1


def test_send_on_closed_link_raises() -> None:
    link = LoopbackLink()
    link.close()
    with pytest.raises(TransportSendError):
        link.host.send(_primary(1))


def test_unanswered_requests_are_evicted_oldest_first() -> None:
    link = LoopbackLink()
    link.host.max_awaiting = 2
    replies: list[DataMessage] = []
    link.host.add_reply_listener(replies.append)

    for context in (1, 2, 3):
        link.host.send(_primary(context, stream=6, func=11))

    assert link.host.awaiting_replies == (2, 3)
    for context in (1, 3):
        link.device.send(DataMessage(device=1, stream=6, func=12, reply_expected=False, items=(), context=context))
    assert [r.context for r in replies] == [3]
    assert link.host.awaiting_replies == (2,)
