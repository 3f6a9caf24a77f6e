"""Schema sources: where raw schema documents come from."""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import yaml

from entityforge.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

SCHEMA_SUFFIXES = (".yaml", ".yml", ".json")


@runtime_checkable
class SchemaSource(Protocol):
    """Interface every schema source implements.

    load_raw() returns None when the source has no document for the entity;
    it raises ConfigurationError when a document exists but cannot be read.
    A connection name asks for that connection's variant of the document,
    falling back to the default one.
    """

    def load_raw(self, entity_name: str, connection: str | None = None) -> dict[str, Any] | None: ...

    def list_entities(self) -> list[str]: ...


class YamlFileSource:
    """Reads `<entity>.yaml|.yml|.json` documents from a directory.

    With a connection name, `<path>/<connection>/<entity>.*` is tried before
    the default location, and documents found there are tagged with that
    connection unless they declare their own.
    """

    def __init__(self, path: Path | str, connection: str | None = None):
        self.path = Path(path)
        self.connection = connection

    def _candidates(self, entity_name: str, connection: str | None) -> list[Path]:
        dirs = []
        if connection:
            dirs.append(self.path / connection)
        dirs.append(self.path)
        return [d / f"{entity_name}{suffix}" for d in dirs for suffix in SCHEMA_SUFFIXES]

    def load_raw(self, entity_name: str, connection: str | None = None) -> dict[str, Any] | None:
        """Load the first document found for the entity."""
        connection = connection or self.connection
        for candidate in self._candidates(entity_name, connection):
            if not candidate.is_file():
                continue
            data = _read_document(candidate)
            if (
                connection
                and candidate.parent == self.path / connection
                and "connection" not in data
            ):
                data["connection"] = connection
            return data
        return None

    def list_entities(self) -> list[str]:
        """List entity names with a document in the default location."""
        if not self.path.exists():
            return []
        names = {
            p.stem
            for p in self.path.iterdir()
            if p.is_file() and p.suffix in SCHEMA_SUFFIXES
        }
        return sorted(names)


class MappingSource:
    """In-memory source keyed by entity name (remote fetches, tests).

    A key of the form "<entity>@<connection>" holds a connection-specific
    variant of a document.
    """

    def __init__(self, documents: dict[str, dict[str, Any]] | None = None):
        self.documents: dict[str, dict[str, Any]] = dict(documents or {})

    def add(self, entity_name: str, document: dict[str, Any]) -> None:
        self.documents[entity_name] = document

    def load_raw(self, entity_name: str, connection: str | None = None) -> dict[str, Any] | None:
        document = None
        if connection:
            document = self.documents.get(f"{entity_name}@{connection}")
        if document is None:
            document = self.documents.get(entity_name)
        # Callers normalize in place; never hand out the stored dict
        return copy.deepcopy(document) if document is not None else None

    def list_entities(self) -> list[str]:
        return sorted(name for name in self.documents if "@" not in name)


def _read_document(path: Path) -> dict[str, Any]:
    """Parse a YAML or JSON schema document."""
    try:
        with open(path) as f:
            if path.suffix == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        logger.error("Failed to read schema document %s: %s", path, e)
        raise ConfigurationError(f"Cannot read schema document {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Schema document {path} must contain a mapping")
    return data


def merge_documents(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge an override document into a base document.

    Mappings merge recursively (so `fields` merge by field name), anything
    else in the override replaces the base value. Field maps given as lists
    are keyed by name first so partial definitions line up.
    """
    result = copy.deepcopy(base)
    for key, value in override.items():
        if key == "fields":
            value = fields_as_mapping(value)
            current = fields_as_mapping(result.get("fields", {}))
            result["fields"] = _merge_mapping(current, value)
        elif isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge_mapping(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _merge_mapping(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_mapping(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def fields_as_mapping(fields: Any) -> dict[str, Any]:
    if isinstance(fields, dict):
        return fields
    if isinstance(fields, list):
        mapping: dict[str, Any] = {}
        for item in fields:
            if isinstance(item, dict) and item.get("name"):
                entry = dict(item)
                mapping[entry.pop("name")] = entry
        return mapping
    return {}


def load_from_sources(
    sources: list[SchemaSource], entity_name: str, connection: str | None = None
) -> dict[str, Any] | None:
    """Load an entity across chained sources.

    The first source holding the entity supplies the base document; each
    later source holding it supplies an override merged on top.
    """
    document: dict[str, Any] | None = None
    for source in sources:
        raw = source.load_raw(entity_name, connection)
        if raw is None:
            continue
        document = raw if document is None else merge_documents(document, raw)
    return document
