"""Translate item descriptors into data items.

Each type tag maps to an ordered chain of item formats. The first format the
connection supports is used, and ASCII always closes the chain, so building
never fails: malformed values degrade to a text item instead of raising.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Mapping, Sequence
from typing import Any

from hsmsctl.core.model import FULL_CAPABILITIES, DataItem, EncoderCapabilities

LOGGER = logging.getLogger(__name__)

FALLBACK_CHAINS: dict[str, tuple[str, ...]] = {
    "A": ("A",),
    "U2": ("U2", "A"),
    "U4": ("U4", "A"),
    "I2": ("I2", "I4", "A"),
    "I4": ("I4", "A"),
    "F4": ("F4", "A"),
    "F8": ("F8", "A"),
    "BOOL": ("BOOL", "A"),
    "BOOL_ARRAY": ("BOOL_ARRAY", "LIST", "A"),
    "B": ("B", "A"),
    "LIST": ("LIST", "A"),
}

_TYPE_ALIASES = {"BIN": "B"}
_INTEGER_FORMATS = frozenset({"U2", "U4", "I2", "I4"})
_NUMERIC_TYPES = frozenset({"U2", "U4", "I2", "I4", "F4", "F8"})
# declared size of a number rendered as text
_TEXT_WIDTH = {"U2": 2, "U4": 4, "I2": 2, "I4": 4, "F4": 4, "F8": 8}
_FALSE_STRINGS = frozenset({"", "false", "0", "no", "off"})


def normalize_type(type_tag: Any) -> str:
    """Upper-case a type tag, resolve aliases, and map unknown tags to ``A``."""
    tag = str(type_tag or "A").strip().upper()
    tag = _TYPE_ALIASES.get(tag, tag)
    return tag if tag in FALLBACK_CHAINS else "A"


class ItemBuilder:
    def __init__(self, capabilities: EncoderCapabilities = FULL_CAPABILITIES) -> None:
        self.capabilities = capabilities

    def select_format(self, type_tag: str) -> str:
        tag = normalize_type(type_tag)
        for fmt in FALLBACK_CHAINS[tag]:
            if self.capabilities.supports(fmt):
                return fmt
        return "A"

    def build(self, descriptors: Sequence[Any] | None) -> list[DataItem]:
        if not isinstance(descriptors, Sequence) or isinstance(descriptors, (str, bytes)):
            return []
        return [self.build_item(descriptor) for descriptor in descriptors]

    def build_item(self, descriptor: Any) -> DataItem:
        if not isinstance(descriptor, Mapping):
            descriptor = {"value": descriptor}
        tag = normalize_type(descriptor.get("type"))
        name = str(descriptor.get("name") or "item")
        value = descriptor.get("value")
        fmt = self.select_format(tag)
        if fmt != tag:
            LOGGER.debug("Item '%s' of type %s encoded as %s", name, tag, fmt)

        if tag in _NUMERIC_TYPES:
            return self._numeric(name, tag, fmt, value)
        if tag == "BOOL":
            return self._boolean(name, fmt, value)
        if tag == "BOOL_ARRAY":
            return self._bool_array(name, fmt, value)
        if tag == "B":
            return self._binary(name, fmt, value)
        if tag == "LIST":
            return self._list(name, fmt, value)
        return _ascii(name, value, _declared_size(descriptor.get("size")))

    def _numeric(self, name: str, tag: str, fmt: str, value: Any) -> DataItem:
        number = _to_number(value)
        if number is None:
            return _ascii(name, value)
        if fmt == "A":
            return DataItem(name=name, format="A", value=_text(number), size=_TEXT_WIDTH[tag])
        if fmt in _INTEGER_FORMATS:
            number = int(number)
        else:
            try:
                number = float(number)
            except OverflowError:
                return _ascii(name, value)
        return DataItem(name=name, format=fmt, value=number)

    def _boolean(self, name: str, fmt: str, value: Any) -> DataItem:
        flag = _to_bool(value)
        if fmt == "BOOL":
            return DataItem(name=name, format="BOOL", value=flag)
        return DataItem(name=name, format="A", value=_text(flag), size=1)

    def _bool_array(self, name: str, fmt: str, value: Any) -> DataItem:
        if not isinstance(value, (list, tuple)):
            return DataItem(name=name, format="A", value=_text(value), size=1)
        flags = tuple(_to_bool(element) for element in value)
        if fmt == "BOOL_ARRAY":
            return DataItem(name=name, format="BOOL_ARRAY", value=flags, size=len(flags))
        if fmt == "LIST":
            element_fmt = self.select_format("BOOL")
            children = tuple(
                self._boolean(f"{name}_{index}", element_fmt, flag) for index, flag in enumerate(flags)
            )
            return DataItem(name=name, format="LIST", value=children, size=len(children))
        return DataItem(name=name, format="A", value=_text(list(flags)), size=len(flags))

    def _binary(self, name: str, fmt: str, value: Any) -> DataItem:
        payload = _to_bytes(value)
        if payload is None:
            return _ascii(name, value)
        if fmt == "B":
            return DataItem(name=name, format="B", value=payload, size=len(payload))
        return DataItem(name=name, format="A", value=payload.hex(), size=len(payload))

    def _list(self, name: str, fmt: str, value: Any) -> DataItem:
        descriptors = value if isinstance(value, (list, tuple)) else []
        if fmt == "LIST":
            children = tuple(self.build(descriptors))
            return DataItem(name=name, format="LIST", value=children, size=len(children))
        return _ascii(name, list(descriptors))


def build_items(
    descriptors: Sequence[Any] | None,
    capabilities: EncoderCapabilities = FULL_CAPABILITIES,
) -> list[DataItem]:
    return ItemBuilder(capabilities).build(descriptors)


def _ascii(name: str, value: Any, size: int | None = None) -> DataItem:
    text = _text(value)
    return DataItem(name=name, format="A", value=text, size=size or max(1, len(text)))


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, float):
        return str(value)
    if isinstance(value, int):
        try:
            return str(value)
        except ValueError:
            # beyond the interpreter's int-to-str digit limit
            return hex(value)
    try:
        return json.dumps(value, separators=(",", ":"))
    except (TypeError, ValueError):
        return str(value)


def _declared_size(size: Any) -> int | None:
    if isinstance(size, bool):
        return None
    if isinstance(size, float) and size.is_integer():
        size = int(size)
    if isinstance(size, str) and size.strip().isdigit():
        size = int(size.strip())
    if isinstance(size, int) and size > 0:
        return size
    return None


def _to_number(value: Any) -> int | float | None:
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            return int(text, 0)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def _to_bytes(value: Any) -> bytes | None:
    if isinstance(value, (list, tuple)):
        if all(isinstance(b, int) and not isinstance(b, bool) and 0 <= b <= 255 for b in value):
            return bytes(value)
        return None
    if not isinstance(value, str):
        return None
    if "," in value:
        try:
            numbers = [int(part.strip(), 0) for part in value.split(",") if part.strip()]
        except ValueError:
            return None
        if all(0 <= b <= 255 for b in numbers):
            return bytes(numbers)
        return None
    digits = "".join(ch for ch in value if ch in "0123456789abcdefABCDEF")
    if len(digits) % 2 != 0:
        return None
    return bytes.fromhex(digits)
