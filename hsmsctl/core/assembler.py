"""Assemble a data message from a substituted template and built items."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any

from hsmsctl.core.model import DataItem, DataMessage

DEFAULT_DEVICE = 1


def header_field(
    substituted: Mapping[str, Any],
    original: Mapping[str, Any] | None,
    key: str,
    default: Any,
) -> Any:
    """Read a header field, falling back to the original template, then *default*."""
    value = substituted.get(key)
    if value is None and original is not None:
        value = original.get(key)
    return default if value is None else value


def assemble(
    substituted: Mapping[str, Any],
    items: Sequence[DataItem],
    *,
    next_context: Callable[[], int],
    original: Mapping[str, Any] | None = None,
    reply_expected: bool | None = None,
) -> DataMessage:
    if reply_expected is None:
        reply_expected = bool(header_field(substituted, original, "replyExpected", False))
    return DataMessage(
        device=int(header_field(substituted, original, "device", DEFAULT_DEVICE)),
        stream=int(header_field(substituted, original, "stream", 1)),
        func=int(header_field(substituted, original, "func", 1)),
        reply_expected=reply_expected,
        items=tuple(items),
        context=next_context(),
    )
