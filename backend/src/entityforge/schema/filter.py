"""Materialize a SchemaDocument for a set of contexts."""

from __future__ import annotations

import dataclasses
import logging
from typing import Any

from entityforge.schema.parser import parse_field
from entityforge.schema.types import (
    Context,
    FieldDefinition,
    ResolvedSchema,
    SchemaDocument,
    ValidationRules,
)

logger = logging.getLogger(__name__)

# Override keys copied straight onto the field
_OVERRIDABLE = (
    "label", "type", "required", "default", "sortable", "filterable",
    "readonly", "description", "width", "ui",
)


def filter_for_contexts(document: SchemaDocument, contexts: frozenset[Context]) -> ResolvedSchema:
    """Build the ResolvedSchema holding only the requested contexts.

    Overrides declared under `contexts.<ctx>.fields` are applied only when
    <ctx> is requested, and only to that context's view of the field. A
    field named by an override becomes visible in that context; it is never
    visible in contexts that were not requested.
    """
    context_fields: dict[Context, dict[str, FieldDefinition]] = {}

    for context in sorted(contexts, key=lambda c: c.value):
        overrides = document.context_overrides.get(context, {})
        visible: dict[str, FieldDefinition] = {}

        for name, base in document.fields.items():
            if name in overrides:
                visible[name] = _apply_override(base, overrides[name])
            elif base.visible_in(context):
                visible[name] = base

        for name, attrs in overrides.items():
            if name not in document.fields:
                # Context-only field (e.g. a confirmation input on the form)
                visible[name] = parse_field(name, attrs or {})

        context_fields[context] = visible

    # A field's visibility is the set of requested contexts that show it
    for context, visible in context_fields.items():
        for name, f in visible.items():
            show_in = frozenset(c for c in contexts if name in context_fields[c])
            visible[name] = dataclasses.replace(f, show_in=show_in)

    return ResolvedSchema(document=document, contexts=contexts, context_fields=context_fields)


def _apply_override(base: FieldDefinition, attrs: dict[str, Any] | None) -> FieldDefinition:
    if not attrs:
        return base
    changes: dict[str, Any] = {k: attrs[k] for k in _OVERRIDABLE if k in attrs}
    if "validation" in attrs and isinstance(attrs["validation"], dict):
        rules = dataclasses.asdict(base.validation)
        rules.update({k: v for k, v in attrs["validation"].items() if k in rules})
        changes["validation"] = ValidationRules(**rules)
    if "required" in changes:
        rules = changes.get("validation") or base.validation
        changes["validation"] = dataclasses.replace(rules, required=bool(changes["required"]))
    unknown = set(attrs) - set(_OVERRIDABLE) - {"validation"}
    if unknown:
        logger.debug("Ignoring override attributes %s on field '%s'", sorted(unknown), base.name)
    return dataclasses.replace(base, **changes)
