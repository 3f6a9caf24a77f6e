"""
schema/validator.py: structural and semantic validation of schema documents.

Documents are validated after normalization, so the JSON Schema only needs
to describe the canonical format. Usage:

    from entityforge.schema.validator import validate_document, validate_schema_dir

    validate_document(normalized, "widgets")      # raises ConfigurationError
    for issue in validate_schema_dir(Path("metadata/schemas")):
        print(issue)

Errors make the entity unusable. Warnings (e.g. a field list naming an
unknown field) are reported but tolerated, since the pager strips such
entries before querying.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError

from entityforge.core.errors import ConfigurationError
from entityforge.schema.normalizer import SchemaNormalizer
from entityforge.schema.sources import YamlFileSource

logger = logging.getLogger(__name__)

_SCHEMAS_DIR = Path(__file__).parent / "schemas"

REQUIRED_RELATIONSHIP_KEYS: dict[str, tuple[str, ...]] = {
    "one_to_many": ("foreign_key",),
    "many_to_many": ("pivot_table", "foreign_key", "related_key"),
    "many_to_many_through": (
        "first_pivot_table",
        "first_foreign_key",
        "first_related_key",
        "second_pivot_table",
        "second_foreign_key",
        "second_related_key",
    ),
}


@dataclass
class SchemaIssue:
    """A single validation finding for a schema document."""

    entity: str
    message: str
    path: str = ""          # Location within the document, e.g. "relationships[0]"
    severity: str = "error" # "error" | "warning"

    def __str__(self) -> str:
        loc = f" at {self.path}" if self.path else ""
        return f"[{self.severity.upper()}] {self.entity}{loc}: {self.message}"


@lru_cache(maxsize=1)
def _entity_validator() -> Draft202012Validator:
    with (_SCHEMAS_DIR / "entity.schema.json").open() as fh:
        schema = json.load(fh)
    return Draft202012Validator(schema)


def _json_path(error: ValidationError) -> str:
    """Convert a jsonschema ValidationError path to a readable string."""
    parts = []
    for p in error.absolute_path:
        if isinstance(p, int):
            parts.append(f"[{p}]")
        else:
            parts.append(str(p))
    return "/".join(parts).replace("/[", "[")


def collect_issues(document: dict[str, Any], entity_name: str) -> list[SchemaIssue]:
    """Validate a normalized document and return every finding."""
    issues: list[SchemaIssue] = []

    for error in sorted(_entity_validator().iter_errors(document), key=lambda e: list(e.path)):
        issues.append(SchemaIssue(entity=entity_name, message=error.message, path=_json_path(error)))

    # Structural errors make the semantic checks below unreliable
    if issues:
        return issues

    if document["model"] != entity_name:
        issues.append(SchemaIssue(
            entity=entity_name,
            message=(
                f"Schema model name '{document['model']}' does not match "
                f"requested model '{entity_name}'"
            ),
            path="model",
        ))

    fields = document["fields"]
    primary_key = document.get("primary_key", "id")
    if primary_key not in fields:
        issues.append(SchemaIssue(
            entity=entity_name,
            message=f"Primary key '{primary_key}' is not a declared field",
            path="primary_key",
            severity="warning",
        ))

    for i, rel in enumerate(document.get("relationships", [])):
        for key in REQUIRED_RELATIONSHIP_KEYS[rel["type"]]:
            value = rel.get(key)
            if not isinstance(value, str) or not value.strip():
                issues.append(SchemaIssue(
                    entity=entity_name,
                    message=f"Relationship '{rel['name']}' ({rel['type']}) is missing '{key}'",
                    path=f"relationships[{i}]",
                ))

    for list_name in ("sortable", "filterable", "listable"):
        for entry in document.get(list_name) or []:
            if not isinstance(entry, str) or not entry.strip() or entry not in fields:
                issues.append(SchemaIssue(
                    entity=entity_name,
                    message=f"Invalid entry {entry!r} in '{list_name}' will be ignored",
                    path=list_name,
                    severity="warning",
                ))

    for field_name in document.get("default_sort") or {}:
        if field_name not in fields:
            issues.append(SchemaIssue(
                entity=entity_name,
                message=f"default_sort references unknown field '{field_name}'",
                path="default_sort",
                severity="warning",
            ))

    return issues


def validate_document(document: dict[str, Any], entity_name: str) -> list[SchemaIssue]:
    """Validate a normalized document.

    Returns:
        Warning-level issues (the document is usable).

    Raises:
        ConfigurationError: If any error-level issue is found.
    """
    issues = collect_issues(document, entity_name)
    errors = [i for i in issues if i.severity == "error"]
    warnings = [i for i in issues if i.severity == "warning"]

    if errors:
        for issue in errors:
            logger.error("Schema error: %s", issue)
        raise ConfigurationError(
            f"Schema for '{entity_name}' is invalid: " + "; ".join(str(i) for i in errors),
            entity=entity_name,
        )

    for issue in warnings:
        logger.warning("Schema warning: %s", issue)
    return warnings


def validate_schema_dir(schema_dir: Path, *, strict: bool = False) -> list[SchemaIssue]:
    """Validate every schema document in a directory.

    Args:
        schema_dir: Directory of `<entity>.yaml|.yml|.json` documents
        strict: Promote warnings to errors

    Returns:
        All issues found across documents.
    """
    source = YamlFileSource(schema_dir)
    normalizer = SchemaNormalizer()
    issues: list[SchemaIssue] = []

    for entity_name in source.list_entities():
        try:
            raw = source.load_raw(entity_name)
        except ConfigurationError as e:
            issues.append(SchemaIssue(entity=entity_name, message=str(e)))
            continue
        if raw is None:
            continue
        issues.extend(collect_issues(normalizer.normalize(raw), entity_name))

    if strict:
        for issue in issues:
            issue.severity = "error"
    return issues
