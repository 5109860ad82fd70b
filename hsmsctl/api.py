"""Stable public API for building tooling on top of hsmsctl.

This module is the supported integration surface for third-party callers
(HTTP front ends, scripts, test harnesses). Avoid importing from internal
modules unless intentionally depending on non-stable internals.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

from hsmsctl.core.errors import (
    HsmsctlError,
    ReplyTimeoutError,
    TemplateLoadError,
    TemplateNotFoundError,
    TemplateValidationError,
    TransportError,
    TransportSendError,
)
from hsmsctl.core.item_builder import ItemBuilder, build_items
from hsmsctl.core.model import (
    FULL_CAPABILITIES,
    DataItem,
    DataMessage,
    EncoderCapabilities,
    ReplyPair,
    SendResult,
    Template,
)
from hsmsctl.core.placeholders import find_placeholders, substitute
from hsmsctl.core.service import DEFAULT_TIMEOUT_MS, TemplateRef, TemplateService
from hsmsctl.core.template_store import DirectoryTemplateStore, TemplateStore
from hsmsctl.transports.base import Connection
from hsmsctl.transports.loopback import LoopbackConnection, LoopbackLink

__all__ = [
    "HsmsctlError",
    "ReplyTimeoutError",
    "TemplateLoadError",
    "TemplateNotFoundError",
    "TemplateValidationError",
    "TransportError",
    "TransportSendError",
    "DataItem",
    "DataMessage",
    "EncoderCapabilities",
    "FULL_CAPABILITIES",
    "ReplyPair",
    "SendResult",
    "Template",
    "ItemBuilder",
    "build_items",
    "find_placeholders",
    "substitute",
    "DEFAULT_TIMEOUT_MS",
    "Connection",
    "DirectoryTemplateStore",
    "TemplateStore",
    "LoopbackConnection",
    "LoopbackLink",
    "Client",
]


class Client:
    """Public client for listing templates and sending them over connections.

    Without explicit connections the client runs against an in-process
    host/device loopback pair.
    """

    def __init__(
        self,
        *,
        connections: Mapping[str, Connection] | None = None,
        store: TemplateStore | None = None,
    ) -> None:
        self._service = TemplateService(connections, store=store)

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    def list_templates(self) -> list[str]:
        return self._service.list_templates()

    def get_template(self, name: str) -> Template:
        return self._service.get_template(name)

    def get_placeholders(self, template_or_name: TemplateRef) -> list[str]:
        return self._service.placeholders(template_or_name)

    def send_template(
        self,
        template_or_name: TemplateRef | None,
        values: Mapping[str, Any] | None = None,
        *,
        sender: str | None,
        wait_reply: bool | None = None,
        timeout_ms: int | None = None,
    ) -> SendResult:
        return asyncio.run(
            self.send_template_async(
                template_or_name,
                values,
                sender=sender,
                wait_reply=wait_reply,
                timeout_ms=timeout_ms,
            )
        )

    async def send_template_async(
        self,
        template_or_name: TemplateRef | None,
        values: Mapping[str, Any] | None = None,
        *,
        sender: str | None,
        wait_reply: bool | None = None,
        timeout_ms: int | None = None,
    ) -> SendResult:
        return await self._service.send_template(
            template_or_name,
            values,
            sender,
            wait_reply=wait_reply,
            timeout_ms=timeout_ms,
        )
