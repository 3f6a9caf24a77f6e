"""Convert normalized schema dicts into SchemaDocument objects."""

from __future__ import annotations

from typing import Any

from entityforge.schema.types import (
    ActionDefinition,
    Context,
    DetailDefinition,
    FieldDefinition,
    ManyToMany,
    ManyToManyThrough,
    OneToMany,
    RelationshipDefinition,
    RelationshipKind,
    SchemaDocument,
    ValidationRules,
)

_ACTION_KEYS = {
    "key", "label", "type", "field", "value", "toggle",
    "handler", "permission", "scope", "confirm",
}


def parse_document(data: dict[str, Any]) -> SchemaDocument:
    """Build a SchemaDocument from a normalized, validated dict."""
    model = data["model"]

    fields = {
        name: parse_field(name, field_data)
        for name, field_data in data["fields"].items()
    }

    # Primary key: explicit setting, then a field flagged primary, then "id"
    primary_key = data.get("primary_key")
    if not primary_key:
        primary_key = next((f.name for f in fields.values() if f.primary), "id")
    if primary_key in fields:
        fields[primary_key].primary = True

    title = data.get("title") or model.replace("_", " ").title()

    return SchemaDocument(
        model=model,
        table=data["table"],
        fields=fields,
        primary_key=primary_key,
        title=title,
        singular_title=data.get("singular_title") or title,
        description=data.get("description"),
        title_field=data.get("title_field"),
        relationships=[_parse_relationship(r) for r in data.get("relationships", [])],
        details=[_parse_detail(d) for d in data.get("details", [])],
        actions=[_parse_action(a) for a in data.get("actions", [])],
        permissions=dict(data.get("permissions") or {}),
        default_sort={
            name: str(direction).lower()
            for name, direction in (data.get("default_sort") or {}).items()
        },
        sortable=data.get("sortable"),
        filterable=data.get("filterable"),
        listable=data.get("listable"),
        soft_delete=bool(data.get("soft_delete", False)),
        timestamps=bool(data.get("timestamps", False)),
        connection=data.get("connection"),
        default_actions=data.get("default_actions", True) is not False,
        context_overrides={
            Context(name): dict(override.get("fields", {}))
            for name, override in (data.get("contexts") or {}).items()
        },
    )


def parse_field(name: str, data: dict[str, Any]) -> FieldDefinition:
    """Convert a normalized field dict to a FieldDefinition."""
    validation_data = data.get("validation") or {}
    required = bool(data.get("required", validation_data.get("required", False)))
    validation = ValidationRules(
        required=required,
        min=validation_data.get("min"),
        max=validation_data.get("max"),
        min_length=validation_data.get("min_length"),
        max_length=validation_data.get("max_length"),
        pattern=validation_data.get("pattern"),
        unique=bool(validation_data.get("unique", False)),
    )

    return FieldDefinition(
        name=name,
        type=data.get("type", "string"),
        label=data.get("label") or _to_label(name),
        required=required,
        default=data.get("default"),
        validation=validation,
        show_in=frozenset(Context(c) for c in data.get("show_in", [])),
        sortable=bool(data.get("sortable", False)),
        filterable=bool(data.get("filterable", False)),
        readonly=bool(data.get("readonly", False)),
        auto_increment=bool(data.get("auto_increment", False)),
        computed=bool(data.get("computed", False)),
        primary=bool(data.get("primary", False)),
        description=data.get("description"),
        width=data.get("width"),
        ui=data.get("ui") if isinstance(data.get("ui"), str) else None,
    )


def _parse_relationship(data: dict[str, Any]) -> RelationshipDefinition:
    """Build the variant matching the relationship kind."""
    name = data["name"]
    target = data.get("target") or data.get("model") or name
    kind = RelationshipKind(data["type"])
    common = {
        "name": name,
        "target": target,
        "local_key": data.get("local_key"),
        "title": data.get("title"),
    }

    if kind is RelationshipKind.ONE_TO_MANY:
        return OneToMany(foreign_key=data["foreign_key"], **common)
    if kind is RelationshipKind.MANY_TO_MANY:
        return ManyToMany(
            pivot_table=data["pivot_table"],
            foreign_key=data["foreign_key"],
            related_key=data["related_key"],
            **common,
        )
    return ManyToManyThrough(
        first_pivot_table=data["first_pivot_table"],
        first_foreign_key=data["first_foreign_key"],
        first_related_key=data["first_related_key"],
        second_pivot_table=data["second_pivot_table"],
        second_foreign_key=data["second_foreign_key"],
        second_related_key=data["second_related_key"],
        through=data.get("through"),
        **common,
    )


def _parse_detail(data: dict[str, Any]) -> DetailDefinition:
    return DetailDefinition(
        model=data["model"],
        foreign_key=data.get("foreign_key"),
        list_fields=data.get("list_fields"),
        title=data.get("title"),
    )


def _parse_action(data: dict[str, Any]) -> ActionDefinition:
    scope = data.get("scope") or []
    if isinstance(scope, str):
        scope = [scope]
    return ActionDefinition(
        key=data["key"],
        label=data.get("label", data["key"]),
        type=data.get("type", "field_update"),
        field=data.get("field"),
        value=data.get("value"),
        toggle=bool(data.get("toggle", False)),
        handler=data.get("handler"),
        permission=data.get("permission"),
        scope=list(scope),
        confirm=data.get("confirm"),
        extra={k: v for k, v in data.items() if k not in _ACTION_KEYS},
    )


def _to_label(name: str) -> str:
    """Convert snake_case or camelCase to Title Case."""
    result = []
    for i, char in enumerate(name):
        if char == "_":
            result.append(" ")
            continue
        if char.isupper() and i > 0 and name[i - 1] != "_":
            result.append(" ")
        result.append(char)
    return "".join(result).title()
