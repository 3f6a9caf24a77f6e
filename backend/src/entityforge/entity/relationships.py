"""Relationship resolution: one query strategy per relationship kind.

Every entity taking part in a join (source, related, and the optional
intermediate "through" entity) must be a bound EntityRecord instance.
Passing the class itself, or an instance that was never bound, fails
immediately with TypeError instead of producing a query against the
UNBOUND_TABLE sentinel.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import sqlalchemy as sa

from entityforge.core.errors import ConfigurationError, NotFoundError
from entityforge.entity.binder import SOFT_DELETE_COLUMN, EntityBinder, EntityRecord
from entityforge.schema.types import (
    DetailDefinition,
    ManyToMany,
    ManyToManyThrough,
    OneToMany,
    RelationshipDefinition,
    RelationshipKind,
    SchemaDocument,
)

logger = logging.getLogger(__name__)


@dataclass
class QueryRoot:
    """A bound entity plus the base SELECT the pager builds on.

    Attributes:
        record: Bound instance of the entity whose rows are selected
        statement: Base SELECT (soft-delete and relationship filters applied)
        relationship: Name of the relationship this root was resolved for
        projection: Columns to return instead of the listable set (detail list_fields)
    """

    record: EntityRecord
    statement: sa.Select
    relationship: str | None = None
    projection: list[str] | None = None

    @classmethod
    def for_record(cls, record: EntityRecord) -> QueryRoot:
        """Top-level root: every (non-deleted) row of the entity."""
        _require_bound_instance(record, "record")
        return cls(record=record, statement=record.select())

    @property
    def table_name(self) -> str:
        return self.record.table_name


def _require_bound_instance(value: Any, role: str) -> EntityRecord:
    if isinstance(value, type):
        raise TypeError(
            f"{role} must be a bound EntityRecord instance, got the class {value.__name__}"
        )
    if not isinstance(value, EntityRecord):
        raise TypeError(f"{role} must be a bound EntityRecord instance, got {type(value).__name__}")
    if not value.is_bound:
        raise TypeError(f"{role} EntityRecord is not bound to a table; call EntityBinder.bind() first")
    return value


def _require_key(relationship: RelationshipDefinition, attr: str) -> str:
    value = getattr(relationship, attr)
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(
            f"Relationship '{relationship.name}' has an empty '{attr}'"
        )
    return value


class RelationshipResolver:
    """Builds the QueryRoot for a relationship of a source row."""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self._strategies: dict[RelationshipKind, Callable[..., sa.Select]] = {
            RelationshipKind.ONE_TO_MANY: self._one_to_many,
            RelationshipKind.MANY_TO_MANY: self._many_to_many,
            RelationshipKind.MANY_TO_MANY_THROUGH: self._many_to_many_through,
        }

    def resolve(
        self,
        source: EntityRecord,
        source_id: Any,
        relationship: RelationshipDefinition,
        related: EntityRecord,
        through: EntityRecord | None = None,
    ) -> QueryRoot:
        """Select the related rows of one source row.

        Args:
            source: Bound source entity; when it holds the source row's
                attributes, a non-primary local_key is read from them
            source_id: Value of the source row's primary key
            relationship: The relationship definition to follow
            related: Bound instance of the relationship's target entity
            through: Bound intermediate entity (many_to_many_through only)

        Raises:
            TypeError: An entity argument is a class or an unbound instance
            ConfigurationError: A join key is empty or missing from a table
        """
        _require_bound_instance(source, "source")
        _require_bound_instance(related, "related")
        if through is not None:
            _require_bound_instance(through, "through")

        value = source_id
        local_key = relationship.local_key
        if local_key and local_key != source.primary_key and local_key in source.attributes:
            value = source.attributes[local_key]

        strategy = self._strategies[relationship.kind]
        if relationship.kind is RelationshipKind.MANY_TO_MANY_THROUGH:
            statement = strategy(relationship, value, related, through)
        else:
            statement = strategy(relationship, value, related)

        if self.debug:
            logger.debug(
                "Resolved %s '%s' of %s=%r onto table '%s'",
                relationship.kind.value, relationship.name, source.model, value, related.table_name,
            )
        return QueryRoot(record=related, statement=statement, relationship=relationship.name)

    def _one_to_many(self, rel: OneToMany, value: Any, related: EntityRecord) -> sa.Select:
        foreign_key = related.column(_require_key(rel, "foreign_key"))
        return related.select().where(foreign_key == value)

    def _many_to_many(self, rel: ManyToMany, value: Any, related: EntityRecord) -> sa.Select:
        foreign_key = _require_key(rel, "foreign_key")
        related_key = _require_key(rel, "related_key")
        pivot = sa.table(_require_key(rel, "pivot_table"), sa.column(foreign_key), sa.column(related_key))

        return (
            related.select()
            .join(pivot, pivot.c[related_key] == related.column(related.primary_key))
            .where(pivot.c[foreign_key] == value)
        )

    def _many_to_many_through(
        self,
        rel: ManyToManyThrough,
        value: Any,
        related: EntityRecord,
        through: EntityRecord | None,
    ) -> sa.Select:
        first_fk = _require_key(rel, "first_foreign_key")
        first_rk = _require_key(rel, "first_related_key")
        second_fk = _require_key(rel, "second_foreign_key")
        second_rk = _require_key(rel, "second_related_key")
        first = sa.table(_require_key(rel, "first_pivot_table"), sa.column(first_fk), sa.column(first_rk))
        second = sa.table(_require_key(rel, "second_pivot_table"), sa.column(second_fk), sa.column(second_rk))

        stmt = related.select().join(
            second, second.c[second_rk] == related.column(related.primary_key)
        )
        if through is not None:
            # Join the intermediate table itself so its own filters apply
            through_pk = through.column(through.primary_key)
            stmt = stmt.join(through.table, second.c[second_fk] == through_pk)
            if through.soft_delete:
                stmt = stmt.where(through.column(SOFT_DELETE_COLUMN).is_(None))
            stmt = stmt.join(first, first.c[first_rk] == through_pk)
        else:
            stmt = stmt.join(first, first.c[first_rk] == second.c[second_fk])

        return stmt.where(first.c[first_fk] == value).distinct()


class RelationshipService:
    """Resolves relationships by name against the schema store.

    Target entities are looked up lazily, so a relationship pointing at an
    unregistered entity only fails when it is actually requested.
    """

    def __init__(self, store: Any, binder: EntityBinder, resolver: RelationshipResolver):
        self.store = store
        self.binder = binder
        self.resolver = resolver

    def find(
        self, document: SchemaDocument, name: str
    ) -> tuple[RelationshipDefinition, DetailDefinition | None]:
        """Find the join definition for a relationship name.

        A `relationships` entry always decides the join. A `details` entry
        with the same name only contributes list_fields; on its own it
        resolves as one_to_many over its foreign_key.
        """
        relationship = document.get_relationship(name)
        detail = document.get_detail(name)

        if relationship is not None:
            return relationship, detail

        if detail is not None:
            if not detail.foreign_key:
                raise ConfigurationError(
                    f"Detail '{name}' on '{document.model}' has no foreign_key and no relationship",
                    entity=document.model,
                )
            return OneToMany(name=name, target=detail.model, foreign_key=detail.foreign_key), detail

        raise NotFoundError(
            f"Relationship '{name}' not found on model '{document.model}'",
            kind="relationship",
            name=name,
        )

    def resolve_named(self, source: EntityRecord, source_id: Any, name: str) -> QueryRoot:
        """Build the QueryRoot for `<source>/<source_id>/<name>`."""
        _require_bound_instance(source, "source")
        if source.schema is not None:
            document = source.schema.document
        else:
            document = self.store.get_document(source.model, source.connection)
        relationship, detail = self.find(document, name)

        related = self.binder.bind(self._target_schema(document, relationship.name, relationship.target))

        through = None
        if isinstance(relationship, ManyToManyThrough) and relationship.through:
            through = self.binder.bind(
                self._target_schema(document, relationship.name, relationship.through)
            )

        root = self.resolver.resolve(source, source_id, relationship, related, through)
        if detail is not None and detail.list_fields:
            root.projection = list(detail.list_fields)
        return root

    def _target_schema(self, document: SchemaDocument, relationship: str, target: str):
        try:
            return self.store.resolve(target, "list")
        except NotFoundError as e:
            logger.error(
                "Relationship '%s' on '%s' references unregistered entity '%s'",
                relationship, document.model, target,
            )
            raise ConfigurationError(
                f"Relationship '{relationship}' on '{document.model}' references "
                f"unregistered entity '{target}'",
                entity=document.model,
            ) from e
