"""Pending-request table pairing outgoing requests with replies or timeouts."""

from __future__ import annotations

import asyncio
import logging
import threading

from hsmsctl.core.errors import ReplyTimeoutError, TransportSendError
from hsmsctl.core.model import DataMessage, ReplyPair

LOGGER = logging.getLogger(__name__)


class PendingRequest:
    """A registered request waiting for its reply or its timeout."""

    def __init__(
        self,
        request: DataMessage,
        future: asyncio.Future[ReplyPair],
        loop: asyncio.AbstractEventLoop,
        timeout_s: float,
    ) -> None:
        self.request = request
        self.future = future
        self.loop = loop
        self.timeout_s = timeout_s
        self.expire_handle: asyncio.TimerHandle | None = None

    @property
    def token(self) -> int:
        return self.request.context

    def settle(self, outcome: ReplyPair | BaseException) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self.loop:
            self._settle(outcome)
        else:
            self.loop.call_soon_threadsafe(self._settle, outcome)

    def cancel_timer(self) -> None:
        if self.expire_handle is not None:
            self.expire_handle.cancel()

    def _settle(self, outcome: ReplyPair | BaseException) -> None:
        self.cancel_timer()
        if self.future.done():
            return
        if isinstance(outcome, BaseException):
            self.future.set_exception(outcome)
        else:
            self.future.set_result(outcome)


class CorrelationTable:
    """Maps correlation tokens to pending requests.

    Removal from the table happens under a lock and before any future is
    settled, so whichever of reply or timeout removes an entry first is the
    only one that settles it.
    """

    def __init__(self) -> None:
        self._pending: dict[int, PendingRequest] = {}
        self._lock = threading.Lock()

    def __contains__(self, token: object) -> bool:
        with self._lock:
            return token in self._pending

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def tokens(self) -> tuple[int, ...]:
        with self._lock:
            return tuple(self._pending)

    def register(self, request: DataMessage, timeout_s: float) -> asyncio.Future[ReplyPair]:
        loop = asyncio.get_running_loop()
        pending = PendingRequest(request, loop.create_future(), loop, timeout_s)
        with self._lock:
            if pending.token in self._pending:
                raise TransportSendError(f"Correlation token {pending.token} is already pending")
            self._pending[pending.token] = pending
            pending.expire_handle = loop.call_later(timeout_s, self.expire, pending.token)
        return pending.future

    def resolve(self, token: int, reply: DataMessage) -> bool:
        pending = self._pop(token)
        if pending is None:
            LOGGER.debug("Reply %s for unknown or settled token %s ignored", reply, token)
            return False
        LOGGER.info("Reply %s matched request %s (token %s)", reply, pending.request, token)
        pending.settle(ReplyPair(request=pending.request, reply=reply))
        return True

    def expire(self, token: int) -> bool:
        pending = self._pop(token)
        if pending is None:
            return False
        LOGGER.warning("No reply for %s (token %s) within %.3fs", pending.request, token, pending.timeout_s)
        pending.settle(
            ReplyTimeoutError(
                f"T3 timeout: no reply to {pending.request} within {pending.timeout_s * 1000:g} ms"
            )
        )
        return True

    def discard(self, token: int) -> bool:
        """Drop an entry without settling it, e.g. after a failed dispatch."""
        pending = self._pop(token)
        if pending is None:
            return False
        pending.cancel_timer()
        pending.future.cancel()
        return True

    def _pop(self, token: int) -> PendingRequest | None:
        with self._lock:
            return self._pending.pop(token, None)
