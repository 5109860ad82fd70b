"""Service layer used by the CLI and the public API."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from hsmsctl.core.assembler import assemble, header_field
from hsmsctl.core.errors import HsmsctlError, TemplateNotFoundError, TemplateValidationError
from hsmsctl.core.item_builder import ItemBuilder
from hsmsctl.core.model import DataMessage, SendResult, Template
from hsmsctl.core.placeholders import find_placeholders, missing_placeholders, substitute
from hsmsctl.core.session import RequestSession
from hsmsctl.core.template_store import DirectoryTemplateStore, TemplateStore, validate_template
from hsmsctl.transports.base import Connection
from hsmsctl.transports.loopback import LoopbackLink

DEFAULT_TIMEOUT_MS = 10000
_HEADER_RANGES = {"device": (0, 32767), "stream": (0, 127), "func": (0, 255)}
LOGGER = logging.getLogger(__name__)

TemplateRef = str | Mapping[str, Any] | Template


class TemplateService:
    def __init__(
        self,
        connections: Mapping[str, Connection] | None = None,
        *,
        store: TemplateStore | None = None,
    ) -> None:
        self.link: LoopbackLink | None = None
        if connections is None:
            self.link = LoopbackLink()
            connections = self.link.connections()
        self.store = store or DirectoryTemplateStore()
        self.sessions = {name: RequestSession(connection) for name, connection in connections.items()}

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return tuple(getattr(self.store, "warnings", ()))

    def list_templates(self) -> list[str]:
        return list(self.store.list_names())

    def get_template(self, name: str) -> Template:
        template = self.store.load(name)
        if template is None:
            available = ", ".join(self.store.list_names()) or "<none>"
            raise TemplateNotFoundError(f"Template '{name}' not found. Available: {available}")
        return template

    def placeholders(self, template_or_name: TemplateRef) -> list[str]:
        return sorted(find_placeholders(self._resolve_template(template_or_name).body))

    def prepare(
        self,
        template_or_name: TemplateRef | None,
        values: Mapping[str, Any] | None,
        sender: str | None,
        wait_reply: bool | None = None,
    ) -> tuple[RequestSession, DataMessage]:
        """Validate a send request and build its message without dispatching it."""
        if not sender:
            raise TemplateValidationError("require from (the sending connection)")
        session = self.sessions.get(sender)
        if session is None:
            known = ", ".join(sorted(self.sessions))
            raise TemplateValidationError(f"Unknown connection '{sender}'. Expected one of: {known}")
        if template_or_name is None or (isinstance(template_or_name, str) and not template_or_name):
            raise TemplateValidationError("require a template name or an inline template")
        if values is None:
            values = {}
        if not isinstance(values, Mapping):
            raise TemplateValidationError("values must be a mapping of placeholder names to values")

        template = self._resolve_template(template_or_name)
        substituted = substitute(template.body, values)
        missing = missing_placeholders(template.body, values)
        if missing:
            raise TemplateValidationError(f"Missing values for placeholders: {', '.join(missing)}")

        for field, (low, high) in _HEADER_RANGES.items():
            _check_header(substituted, template.body, field, low, high)
        reply_expected = _check_reply_flag(substituted, template.body, wait_reply)

        builder = ItemBuilder(session.connection.capabilities)
        items = builder.build(substituted.get("items") or [])
        message = assemble(
            substituted,
            items,
            next_context=session.connection.next_context,
            original=template.body,
            reply_expected=reply_expected,
        )
        return session, message

    async def send_template(
        self,
        template_or_name: TemplateRef | None,
        values: Mapping[str, Any] | None,
        sender: str | None,
        wait_reply: bool | None = None,
        timeout_ms: int | None = None,
    ) -> SendResult:
        try:
            timeout = _check_timeout(timeout_ms)
            session, message = self.prepare(template_or_name, values, sender, wait_reply)
            return await session.send_and_await(message, message.reply_expected, timeout)
        except HsmsctlError as exc:
            LOGGER.info("Send failed (%s): %s", exc.kind, exc)
            return SendResult(ok=False, error=str(exc), error_kind=exc.kind)

    def _resolve_template(self, template_or_name: TemplateRef) -> Template:
        if isinstance(template_or_name, Template):
            validate_template(template_or_name.body, template_or_name.name or "<inline>")
            return template_or_name
        if isinstance(template_or_name, str):
            return self.get_template(template_or_name)
        return Template(name=None, body=validate_template(template_or_name))


def _check_timeout(timeout_ms: int | None) -> int:
    if timeout_ms is None:
        return DEFAULT_TIMEOUT_MS
    if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, int) or timeout_ms <= 0:
        raise TemplateValidationError(f"timeoutMs must be a positive integer, got {timeout_ms!r}")
    return timeout_ms


def _check_header(
    substituted: Mapping[str, Any],
    original: Mapping[str, Any],
    field: str,
    low: int,
    high: int,
) -> None:
    value = header_field(substituted, original, field, None)
    if value is None:
        return
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
        raise TemplateValidationError(f"{field} must be an integer in {low}..{high}, got {value!r}")


def _check_reply_flag(
    substituted: Mapping[str, Any],
    original: Mapping[str, Any],
    override: bool | None,
) -> bool:
    if override is not None:
        return bool(override)
    value = header_field(substituted, original, "replyExpected", False)
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    if not isinstance(value, bool):
        raise TemplateValidationError(f"replyExpected must be a boolean, got {value!r}")
    return value
