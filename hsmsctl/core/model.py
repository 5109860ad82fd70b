"""Core data models used across the template store, builder, session, and CLI."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

ITEM_FORMATS = ("A", "U2", "U4", "I2", "I4", "F4", "F8", "BOOL", "BOOL_ARRAY", "B", "LIST")


@dataclass(frozen=True)
class EncoderCapabilities:
    """Item formats a connection knows how to encode natively.

    ASCII is the last resort for every fallback chain, so it is always present.
    """

    formats: frozenset[str] = frozenset(ITEM_FORMATS)

    def __post_init__(self) -> None:
        normalized = frozenset(fmt.upper() for fmt in self.formats) | {"A"}
        object.__setattr__(self, "formats", normalized)

    def supports(self, fmt: str) -> bool:
        return fmt in self.formats

    def without(self, *formats: str) -> EncoderCapabilities:
        return EncoderCapabilities(self.formats - {fmt.upper() for fmt in formats})


FULL_CAPABILITIES = EncoderCapabilities()


@dataclass(frozen=True)
class DataItem:
    name: str
    format: str
    value: Any
    size: int | None = None

    @property
    def items(self) -> tuple[DataItem, ...]:
        return self.value if self.format == "LIST" else ()

    def to_dict(self) -> dict[str, Any]:
        if self.format == "LIST":
            value: Any = [child.to_dict() for child in self.value]
        elif self.format == "B":
            value = self.value.hex()
        elif self.format == "BOOL_ARRAY":
            value = list(self.value)
        else:
            value = self.value
        out: dict[str, Any] = {"name": self.name, "format": self.format, "value": value}
        if self.size is not None:
            out["size"] = self.size
        return out


@dataclass(frozen=True)
class DataMessage:
    device: int
    stream: int
    func: int
    reply_expected: bool
    items: tuple[DataItem, ...]
    context: int

    def __str__(self) -> str:
        return f"S{self.stream}F{self.func}"

    @property
    def is_reply(self) -> bool:
        return self.func != 0 and self.func % 2 == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": str(self),
            "device": self.device,
            "stream": self.stream,
            "func": self.func,
            "replyExpected": self.reply_expected,
            "context": self.context,
            "items": [item.to_dict() for item in self.items],
        }


@dataclass(frozen=True)
class Template:
    name: str | None
    body: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ReplyPair:
    request: DataMessage
    reply: DataMessage


@dataclass(frozen=True)
class SendResult:
    ok: bool
    status: str | None = None
    request: DataMessage | None = None
    reply: DataMessage | None = None
    error: str | None = None
    error_kind: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if not self.ok:
            return {"ok": False, "error": self.error, "errorKind": self.error_kind}
        result: dict[str, Any] = {"status": self.status}
        if self.request is not None:
            result["request"] = self.request.to_dict()
        if self.reply is not None:
            result["reply"] = self.reply.to_dict()
        return {"ok": True, "result": result}
