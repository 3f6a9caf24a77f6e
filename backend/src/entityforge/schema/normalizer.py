"""Normalize raw schema documents into the canonical format.

Every historical spelling a schema document may use (ORM-style attribute
names, legacy per-context boolean visibility flags, UI-suffixed boolean
types, relationship type aliases) is rewritten here. Nothing downstream
branches on the legacy forms.

normalize() is idempotent: normalize(normalize(x)) == normalize(x).
"""

from __future__ import annotations

import copy
import logging
import re
from typing import Any

from entityforge.schema.sources import fields_as_mapping
from entityforge.schema.types import CONTEXT_ALIASES, Context

logger = logging.getLogger(__name__)

# Canonical context order used when emitting show_in lists
CONTEXT_ORDER = [Context.LIST.value, Context.FORM.value, Context.DETAIL.value]

LEGACY_VISIBILITY_FLAGS = ("listable", "editable", "viewable")

RELATIONSHIP_TYPE_ALIASES = {
    "has_many": "one_to_many",
    "hasMany": "one_to_many",
    "one_to_many": "one_to_many",
    "belongs_to_many": "many_to_many",
    "belongsToMany": "many_to_many",
    "many_to_many": "many_to_many",
    "belongs_to_many_through": "many_to_many_through",
    "belongsToManyThrough": "many_to_many_through",
    "many_to_many_through": "many_to_many_through",
}

_BOOLEAN_UI_TYPES = {
    "tgl": "toggle",
    "chk": "checkbox",
    "sel": "select",
    "yn": "select",
}
_BOOLEAN_UI_PATTERN = re.compile(r"^boolean-(tgl|chk|sel|yn)$")

# (alias, canonical) attribute renames applied when the canonical key is absent
_FIELD_ALIASES = [
    ("autoIncrement", "auto_increment"),
    ("primaryKey", "primary"),
    ("readOnly", "readonly"),
    ("defaultValue", "default"),
]

_VALIDATION_ALIASES = [
    ("minLength", "min_length"),
    ("maxLength", "max_length"),
]


class SchemaNormalizer:
    """Rewrites raw schema dicts into the one canonical representation."""

    def normalize(self, schema: dict[str, Any]) -> dict[str, Any]:
        """Return a normalized deep copy of a raw schema document."""
        result = copy.deepcopy(schema)

        fields = fields_as_mapping(result.get("fields", {}))
        normalized_fields: dict[str, Any] = {}
        for name, field_data in fields.items():
            if not isinstance(field_data, dict):
                field_data = {"type": field_data} if isinstance(field_data, str) else {}
            field_data = self.normalize_field_attributes(field_data)
            field_data = self.normalize_boolean_type(field_data)
            field_data = self.normalize_visibility(field_data)
            normalized_fields[name] = field_data
        if "fields" in result:
            result["fields"] = normalized_fields

        if "relationships" in result:
            result["relationships"] = self.normalize_relationships(result["relationships"])

        # Singular legacy `detail` becomes one entry of `details`
        if "detail" in result:
            detail = result.pop("detail")
            details = list(result.get("details") or [])
            if isinstance(detail, dict) and detail not in details:
                details.insert(0, detail)
            result["details"] = details

        if "contexts" in result:
            result["contexts"] = self.normalize_context_overrides(result["contexts"])

        return result

    # ------------------------------------------------------------------
    # Fields
    # ------------------------------------------------------------------

    def normalize_field_attributes(self, field_data: dict[str, Any]) -> dict[str, Any]:
        """Fold ORM-style attribute spellings into canonical keys."""
        data = dict(field_data)

        # nullable is the inverse of required; required wins when both exist
        if "nullable" in data:
            nullable = data.pop("nullable")
            data.setdefault("required", not nullable)

        for alias, canonical in _FIELD_ALIASES:
            if alias in data:
                value = data.pop(alias)
                data.setdefault(canonical, value)

        # Older `validate` block
        if "validate" in data:
            value = data.pop("validate")
            if "validation" not in data and isinstance(value, dict):
                data["validation"] = value

        validation = dict(data.get("validation") or {})
        if "unique" in data:
            validation.setdefault("unique", data.pop("unique"))
        if "length" in data:
            validation.setdefault("max_length", data.pop("length"))
        length = validation.pop("length", None)
        if isinstance(length, dict):
            if "min" in length:
                validation.setdefault("min_length", length["min"])
            if "max" in length:
                validation.setdefault("max_length", length["max"])
        for alias, canonical in _VALIDATION_ALIASES:
            if alias in validation:
                validation.setdefault(canonical, validation.pop(alias))
        if validation or "validation" in data:
            data["validation"] = validation

        # Lift UI hints out of a nested ui block
        ui = data.get("ui")
        if isinstance(ui, dict):
            for key in ("label", "show_in", "sortable", "filterable"):
                if key in ui and key not in data:
                    data[key] = ui[key]
            if ui.get("type") == "lookup" and data.get("type", "integer") == "integer":
                data["type"] = "smartlookup"
            widget = ui.get("widget")
            if widget:
                data["ui"] = widget
            else:
                data.pop("ui")

        return data

    def normalize_boolean_type(self, field_data: dict[str, Any]) -> dict[str, Any]:
        """Rewrite `boolean-tgl` style types to `boolean` plus a UI hint."""
        data = dict(field_data)
        field_type = data.get("type", "string")
        match = _BOOLEAN_UI_PATTERN.match(str(field_type))
        if match:
            data["type"] = "boolean"
            data.setdefault("ui", _BOOLEAN_UI_TYPES[match.group(1)])
        elif field_type == "boolean":
            data.setdefault("ui", "checkbox")
        return data

    def normalize_visibility(self, field_data: dict[str, Any]) -> dict[str, Any]:
        """Produce a canonical `show_in` list and drop legacy boolean flags.

        An explicit show_in always wins over legacy flags. Without one, the
        listable/editable/viewable booleans (each defaulting to true) decide.
        Password fields never appear in the detail context.
        """
        data = dict(field_data)
        legacy = {flag: data.pop(flag) for flag in LEGACY_VISIBILITY_FLAGS if flag in data}
        is_password = data.get("type") == "password"

        show_in = data.get("show_in")
        if isinstance(show_in, str):
            show_in = [part.strip() for part in show_in.split(",")]

        if isinstance(show_in, (list, tuple, set, frozenset)):
            contexts = set()
            for name in show_in:
                name = str(name)
                if name in CONTEXT_ALIASES:
                    contexts.add(CONTEXT_ALIASES[name].value)
                elif name in CONTEXT_ORDER:
                    contexts.add(name)
                else:
                    logger.warning("Dropping unknown show_in context '%s'", name)
        else:
            contexts = set()
            if legacy.get("listable", True):
                contexts.add(Context.LIST.value)
            if legacy.get("editable", True):
                contexts.add(Context.FORM.value)
            if legacy.get("viewable", True):
                contexts.add(Context.DETAIL.value)
            # A field hidden from forms by the legacy flag must stay out of writes
            if legacy.get("editable", True) is False:
                data.setdefault("readonly", True)

        if is_password:
            contexts.discard(Context.DETAIL.value)

        data["show_in"] = [c for c in CONTEXT_ORDER if c in contexts]
        return data

    # ------------------------------------------------------------------
    # Relationships and overrides
    # ------------------------------------------------------------------

    def normalize_relationships(self, relationships: Any) -> list[dict[str, Any]]:
        """Canonicalize relationship type names; accept a name-keyed mapping."""
        if isinstance(relationships, dict):
            items = []
            for name, rel in relationships.items():
                if isinstance(rel, dict):
                    items.append({"name": name, **rel})
            relationships = items
        if not isinstance(relationships, list):
            return []

        result = []
        for rel in relationships:
            if not isinstance(rel, dict):
                continue
            rel = dict(rel)
            rel_type = rel.get("type")
            if rel_type is None:
                if "first_pivot_table" in rel or "through" in rel:
                    rel_type = "many_to_many_through"
                elif "pivot_table" in rel:
                    rel_type = "many_to_many"
                else:
                    rel_type = "one_to_many"
            rel["type"] = RELATIONSHIP_TYPE_ALIASES.get(rel_type, rel_type)
            result.append(rel)
        return result

    def normalize_context_overrides(self, contexts: Any) -> dict[str, Any]:
        """Key overrides by canonical context; normalize their field attributes."""
        if not isinstance(contexts, dict):
            return {}
        result: dict[str, Any] = {}
        for name, override in contexts.items():
            canonical = CONTEXT_ALIASES[name].value if name in CONTEXT_ALIASES else name
            if canonical not in CONTEXT_ORDER or not isinstance(override, dict):
                logger.warning("Dropping override for unknown context '%s'", name)
                continue
            fields = fields_as_mapping(override.get("fields", {}))
            normalized = {
                field_name: self.normalize_field_attributes(attrs or {})
                for field_name, attrs in fields.items()
                if isinstance(attrs, dict) or attrs is None
            }
            for attrs in normalized.values():
                for flag in LEGACY_VISIBILITY_FLAGS:
                    attrs.pop(flag, None)
                attrs.pop("show_in", None)
            existing = result.setdefault(canonical, {"fields": {}})
            existing["fields"].update(normalized)
        return result
