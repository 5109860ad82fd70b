"""Placeholder discovery and substitution over JSON-shaped templates.

A placeholder is a string leaf consisting solely of ``{{ key }}``. Substitution
replaces the whole leaf with the looked-up value, so a placeholder may expand
into a number, list, or mapping. Strings with text around the braces are left
alone.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Mapping
from typing import Any

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")


def placeholder_key(value: Any) -> str | None:
    """Return the key of a full-string ``{{ key }}`` token, else ``None``."""
    if not isinstance(value, str):
        return None
    match = _PLACEHOLDER_RE.fullmatch(value)
    if not match:
        return None
    return match.group(1)


def substitute(template: Any, values: Mapping[str, Any]) -> Any:
    """Return a new tree with every resolvable placeholder replaced.

    Unknown keys leave the token string in place; completeness is checked
    separately with :func:`missing_placeholders`.
    """
    if isinstance(template, str):
        key = placeholder_key(template)
        if key is not None and key in values:
            return copy.deepcopy(values[key])
        return template
    if isinstance(template, (list, tuple)):
        return [substitute(element, values) for element in template]
    if isinstance(template, Mapping):
        return {key: substitute(element, values) for key, element in template.items()}
    return template


def find_placeholders(template: Any) -> set[str]:
    found: set[str] = set()
    _collect(template, found)
    return found


def _collect(node: Any, found: set[str]) -> None:
    if isinstance(node, str):
        key = placeholder_key(node)
        if key is not None:
            found.add(key)
    elif isinstance(node, (list, tuple)):
        for element in node:
            _collect(element, found)
    elif isinstance(node, Mapping):
        for element in node.values():
            _collect(element, found)


def missing_placeholders(template: Any, values: Mapping[str, Any]) -> list[str]:
    return sorted(key for key in find_placeholders(template) if key not in values)
