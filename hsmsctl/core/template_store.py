"""Template discovery, loading, and validation for JSON/YAML message templates."""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Mapping, Sequence
from functools import lru_cache
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any, Protocol

import yaml
from jsonschema import ValidationError, validators

from hsmsctl.core.errors import TemplateLoadError, TemplateValidationError
from hsmsctl.core.model import Template

_JSON_SUFFIXES = (".json",)
_YAML_SUFFIXES = (".yml", ".yaml")
_BOOL_TAG = "tag:yaml.org,2002:bool"
LOGGER = logging.getLogger(__name__)


class TemplateStore(Protocol):
    def list_names(self) -> Sequence[str]:
        """Return the names of all available templates."""

    def load(self, name: str) -> Template | None:
        """Return the named template, or ``None`` if it does not exist."""


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys and only treats true/false as booleans."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: [(tag, regexp) for tag, regexp in value if tag != _BOOL_TAG]
    for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
UniqueKeyLoader.add_implicit_resolver(
    _BOOL_TAG,
    re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$"),
    list("tTfF"),
)


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise TemplateValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


def _unique_json_object(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key, value in pairs:
        if key in mapping:
            raise TemplateValidationError(f"Duplicate key '{key}' in JSON document")
        mapping[key] = value
    return mapping


@lru_cache(maxsize=1)
def _load_schema_validator() -> Any:
    schema_text = resources.files("hsmsctl.schemas").joinpath("template.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def validate_template(doc: Any, source: str = "<inline>") -> Mapping[str, Any]:
    if not isinstance(doc, Mapping):
        raise TemplateValidationError(f"Template {source} must contain a mapping at root")
    try:
        _load_schema_validator().validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.absolute_path)
        where = f" ({path})" if path else ""
        raise TemplateValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc
    return doc


def parse_template(content: str, *, source: str, yaml_format: bool = False) -> dict[str, Any]:
    try:
        if yaml_format:
            loaded = yaml.load(content, Loader=UniqueKeyLoader)
        else:
            loaded = json.loads(content, object_pairs_hook=_unique_json_object)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise TemplateValidationError(f"Invalid template syntax in {source}: {exc}") from exc
    validate_template(loaded, source)
    return loaded


def read_template(path: Path | Traversable) -> Template:
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise TemplateLoadError(f"Could not read template file {path}: {exc}") from exc
    doc = parse_template(content, source=str(path), yaml_format=path.name.lower().endswith(_YAML_SUFFIXES))
    return Template(name=path.name, body=doc)


def _is_template_file(name: str) -> bool:
    return name.lower().endswith(_JSON_SUFFIXES + _YAML_SUFFIXES)


def template_dirs() -> tuple[Path, Path]:
    working = Path(os.environ.get("HSMSCTL_TEMPLATES_DIR", "templates"))
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return working, xdg_config / "hsmsctl/templates"


class DirectoryTemplateStore:
    """Templates packaged with hsmsctl overlaid by user template directories.

    Later directories override earlier ones by file name.
    """

    def __init__(
        self,
        directories: Sequence[Path] | None = None,
        *,
        include_packaged: bool = True,
    ) -> None:
        self._directories = tuple(directories) if directories is not None else None
        self.include_packaged = include_packaged
        self.warnings: tuple[str, ...] = ()

    @property
    def directories(self) -> tuple[Path, ...]:
        return self._directories if self._directories is not None else template_dirs()

    def list_names(self) -> list[str]:
        return sorted(self._index())

    def load(self, name: str) -> Template | None:
        index = self._index()
        path = index.get(name)
        if path is None:
            for suffix in _JSON_SUFFIXES + _YAML_SUFFIXES:
                path = index.get(f"{name}{suffix}")
                if path is not None:
                    break
        if path is None:
            return None
        return read_template(path)

    def _index(self) -> dict[str, Path | Traversable]:
        index: dict[str, Path | Traversable] = {}
        warnings: list[str] = []

        if self.include_packaged:
            packaged = resources.files("hsmsctl.templates")
            for item in sorted(packaged.iterdir(), key=lambda p: p.name):
                if _is_template_file(item.name):
                    index[item.name] = item

        for directory in self.directories:
            if not directory.exists() or not directory.is_dir():
                continue
            for path in sorted(p for p in directory.iterdir() if p.is_file() and _is_template_file(p.name)):
                if path.name in index:
                    warning = f"Template '{path.name}' in {directory} overrides an earlier template"
                    if warning not in self.warnings:
                        LOGGER.warning(warning)
                    warnings.append(warning)
                index[path.name] = path

        self.warnings = tuple(warnings)
        return index
