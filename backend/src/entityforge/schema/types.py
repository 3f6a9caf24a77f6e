"""Schema document types.

A SchemaDocument is the parsed, normalized description of one entity. A
ResolvedSchema is that document filtered for a set of contexts and is what
the binder, resolver and pager consume.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

logger = logging.getLogger(__name__)


class Context(str, Enum):
    LIST = "list"
    FORM = "form"
    DETAIL = "detail"


ALL_CONTEXTS: frozenset[Context] = frozenset(Context)

# Older documents split the form context into create/edit
CONTEXT_ALIASES: dict[str, Context] = {
    "create": Context.FORM,
    "edit": Context.FORM,
}


def parse_contexts(value: str | Iterable[str] | None) -> frozenset[Context]:
    """Parse a context request into a canonical context set.

    Accepts a comma-separated string, an iterable of names, or None.
    None, an empty request and "full" all mean every context. Unknown
    names are dropped with a warning; if nothing survives the full set
    is returned.
    """
    if value is None:
        return ALL_CONTEXTS
    if isinstance(value, str):
        names = [part.strip() for part in value.split(",")]
    else:
        names = [str(part).strip() for part in value]
    names = [n for n in names if n]
    if not names or "full" in names:
        return ALL_CONTEXTS

    contexts: set[Context] = set()
    unknown: list[str] = []
    for name in names:
        if name in CONTEXT_ALIASES:
            contexts.add(CONTEXT_ALIASES[name])
            continue
        try:
            contexts.add(Context(name))
        except ValueError:
            unknown.append(name)

    if unknown:
        logger.warning("Ignoring unknown schema context(s): %s", ", ".join(unknown))
    return frozenset(contexts) if contexts else ALL_CONTEXTS


def context_key(contexts: Iterable[Context]) -> str:
    """Stable string key for a context set, e.g. "detail,form"."""
    return ",".join(sorted(c.value for c in contexts))


def parse_model_ref(value: str) -> tuple[str, str | None]:
    """Split "users@archive" into ("users", "archive").

    Without an "@" suffix the connection is None (the schema decides).
    """
    name, _, connection = value.partition("@")
    return name, connection or None


@dataclass
class ValidationRules:
    required: bool = False
    min: float | None = None
    max: float | None = None
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None
    unique: bool = False


@dataclass
class FieldDefinition:
    name: str
    type: str
    label: str
    required: bool = False
    default: Any = None
    validation: ValidationRules = field(default_factory=ValidationRules)
    show_in: frozenset[Context] = ALL_CONTEXTS
    sortable: bool = False
    filterable: bool = False
    readonly: bool = False
    auto_increment: bool = False
    computed: bool = False
    primary: bool = False
    description: str | None = None
    width: str | None = None
    ui: str | None = None

    @property
    def editable(self) -> bool:
        """Editability is inferred: anything not readonly, auto or computed."""
        return not (self.readonly or self.auto_increment or self.computed)

    def visible_in(self, context: Context) -> bool:
        return context in self.show_in

    def to_dict(self) -> dict[str, Any]:
        """Convert to API response dict."""
        return {
            "name": self.name,
            "type": self.type,
            "label": self.label,
            "required": self.required,
            "default": self.default,
            "readonly": self.readonly,
            "editable": self.editable,
            "sortable": self.sortable,
            "filterable": self.filterable,
            "show_in": sorted(c.value for c in self.show_in),
            "validation": {
                "required": self.validation.required,
                "min": self.validation.min,
                "max": self.validation.max,
                "minLength": self.validation.min_length,
                "maxLength": self.validation.max_length,
                "pattern": self.validation.pattern,
                "unique": self.validation.unique,
            },
            "description": self.description,
            "width": self.width,
            "ui": self.ui,
        }


# ---------------------------------------------------------------------------
# Relationships: a closed set of variants, one resolver per variant
# ---------------------------------------------------------------------------


class RelationshipKind(str, Enum):
    ONE_TO_MANY = "one_to_many"
    MANY_TO_MANY = "many_to_many"
    MANY_TO_MANY_THROUGH = "many_to_many_through"


@dataclass(frozen=True)
class OneToMany:
    """Related rows carry a foreign key pointing at the source row."""

    name: str
    target: str
    foreign_key: str
    local_key: str | None = None  # Source column; defaults to its primary key
    title: str | None = None

    kind: ClassVar[RelationshipKind] = RelationshipKind.ONE_TO_MANY


@dataclass(frozen=True)
class ManyToMany:
    """Source and related rows linked through one pivot table."""

    name: str
    target: str
    pivot_table: str
    foreign_key: str  # Pivot column pointing at the source row
    related_key: str  # Pivot column pointing at the related row
    local_key: str | None = None
    title: str | None = None

    kind: ClassVar[RelationshipKind] = RelationshipKind.MANY_TO_MANY


@dataclass(frozen=True)
class ManyToManyThrough:
    """Source → intermediate → related across two pivot tables.

    first_* keys describe the source↔intermediate pivot, second_* keys the
    intermediate↔related pivot.
    """

    name: str
    target: str
    first_pivot_table: str
    first_foreign_key: str
    first_related_key: str
    second_pivot_table: str
    second_foreign_key: str
    second_related_key: str
    through: str | None = None  # Intermediate entity name
    local_key: str | None = None
    title: str | None = None

    kind: ClassVar[RelationshipKind] = RelationshipKind.MANY_TO_MANY_THROUGH


RelationshipDefinition = OneToMany | ManyToMany | ManyToManyThrough


@dataclass
class DetailDefinition:
    """A secondary related table surfaced on the detail view."""

    model: str
    foreign_key: str | None = None
    list_fields: list[str] | None = None
    title: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "foreign_key": self.foreign_key,
            "list_fields": self.list_fields,
            "title": self.title,
        }


@dataclass
class ActionDefinition:
    """A custom record action declared in the schema."""

    key: str
    label: str = ""
    type: str = "field_update"  # "field_update" | "handler" | "form" | "delete" | ...
    field: str | None = None
    value: Any = None
    toggle: bool = False
    handler: str | None = None
    permission: str | None = None
    # The `field` attribute above shadows dataclasses.field in this body
    scope: list[str] = dataclasses.field(default_factory=list)
    confirm: str | None = None
    extra: dict[str, Any] = dataclasses.field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        data.update({
            "key": self.key,
            "label": self.label,
            "type": self.type,
            "field": self.field,
            "value": self.value,
            "toggle": self.toggle,
            "handler": self.handler,
            "permission": self.permission,
            "scope": list(self.scope),
            "confirm": self.confirm,
        })
        return data


@dataclass
class SchemaDocument:
    model: str
    table: str
    fields: dict[str, FieldDefinition]
    primary_key: str = "id"
    title: str = ""
    singular_title: str = ""
    description: str | None = None
    title_field: str | None = None
    relationships: list[RelationshipDefinition] = field(default_factory=list)
    details: list[DetailDefinition] = field(default_factory=list)
    actions: list[ActionDefinition] = field(default_factory=list)
    permissions: dict[str, str] = field(default_factory=dict)
    default_sort: dict[str, str] = field(default_factory=dict)
    # Explicit field lists; entries are kept raw and sanitized by the pager
    sortable: list[Any] | None = None
    filterable: list[Any] | None = None
    listable: list[Any] | None = None
    soft_delete: bool = False
    timestamps: bool = False
    connection: str | None = None
    default_actions: bool = True
    # Context-scoped field overrides: {context: {field_name: {attr: value}}}
    context_overrides: dict[Context, dict[str, dict[str, Any]]] = field(default_factory=dict)

    def get_field(self, name: str) -> FieldDefinition | None:
        return self.fields.get(name)

    def get_relationship(self, name: str) -> RelationshipDefinition | None:
        for rel in self.relationships:
            if rel.name == name:
                return rel
        return None

    def get_detail(self, name: str) -> DetailDefinition | None:
        for detail in self.details:
            if detail.model == name:
                return detail
        return None

    def get_action(self, key: str) -> ActionDefinition | None:
        for action in self.actions:
            if action.key == key:
                return action
        return None


@dataclass
class ResolvedSchema:
    """A SchemaDocument materialized for a set of contexts.

    context_fields holds, per requested context, the fields visible there
    with that context's overrides applied. `fields` is their union; a field
    only ever shows up under the contexts that were requested.
    """

    document: SchemaDocument
    contexts: frozenset[Context]
    context_fields: dict[Context, dict[str, FieldDefinition]]

    @property
    def model(self) -> str:
        return self.document.model

    @property
    def table(self) -> str:
        return self.document.table

    @property
    def primary_key(self) -> str:
        return self.document.primary_key

    @property
    def permissions(self) -> dict[str, str]:
        return self.document.permissions

    @property
    def relationships(self) -> list[RelationshipDefinition]:
        return self.document.relationships

    @property
    def details(self) -> list[DetailDefinition]:
        return self.document.details

    @property
    def actions(self) -> list[ActionDefinition]:
        return self.document.actions

    @property
    def default_sort(self) -> dict[str, str]:
        return self.document.default_sort

    @property
    def fields(self) -> dict[str, FieldDefinition]:
        merged: dict[str, FieldDefinition] = {}
        for context in sorted(self.context_fields, key=lambda c: c.value):
            for name, f in self.context_fields[context].items():
                merged.setdefault(name, f)
        # Document order first, then fields introduced by context overrides
        ordered = {name: merged[name] for name in self.document.fields if name in merged}
        for name, f in merged.items():
            ordered.setdefault(name, f)
        return ordered

    def column_names(self) -> set[str]:
        """Every column the entity's table declares, visible here or not."""
        return set(self.document.fields)

    def _effective(self, name: str) -> FieldDefinition:
        for context in (Context.LIST, Context.DETAIL, Context.FORM):
            f = self.context_fields.get(context, {}).get(name)
            if f is not None:
                return f
        return self.document.fields[name]

    @property
    def sortable_fields(self) -> list[Any]:
        if self.document.sortable is not None:
            return list(self.document.sortable)
        return [name for name in self.document.fields if self._effective(name).sortable]

    @property
    def filterable_fields(self) -> list[Any]:
        if self.document.filterable is not None:
            return list(self.document.filterable)
        return [name for name in self.document.fields if self._effective(name).filterable]

    @property
    def listable_fields(self) -> list[Any]:
        if self.document.listable is not None:
            return list(self.document.listable)
        if Context.LIST in self.context_fields:
            return list(self.context_fields[Context.LIST])
        return [name for name, f in self.document.fields.items() if f.visible_in(Context.LIST)]

    def fields_for(self, context: Context) -> list[FieldDefinition]:
        return list(self.context_fields.get(context, {}).values())

    def to_dict(self) -> dict[str, Any]:
        """Convert to API response dict."""
        doc = self.document
        data: dict[str, Any] = {
            "model": doc.model,
            "title": doc.title,
            "singular_title": doc.singular_title,
            "primary_key": doc.primary_key,
            "connection": doc.connection,
            "description": doc.description,
            "title_field": doc.title_field,
            "permissions": dict(doc.permissions),
            "actions": [a.to_dict() for a in doc.actions],
            "contexts": {},
        }
        for context in sorted(self.contexts, key=lambda c: c.value):
            ctx_data: dict[str, Any] = {
                "fields": {f.name: f.to_dict() for f in self.fields_for(context)},
            }
            if context == Context.LIST:
                ctx_data["default_sort"] = dict(doc.default_sort)
            if context == Context.DETAIL:
                ctx_data["details"] = [d.to_dict() for d in doc.details]
                ctx_data["relationships"] = [
                    {"name": r.name, "type": r.kind.value, "target": r.target}
                    for r in doc.relationships
                ]
            data["contexts"][context.value] = ctx_data
        return data
