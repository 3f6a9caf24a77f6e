"""CRUD and pivot maintenance for bound entities via SQLAlchemy Core."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import sqlalchemy as sa

from entityforge.core.errors import ConfigurationError, NotFoundError, RecordValidationError
from entityforge.entity.binder import (
    CREATED_AT_COLUMN,
    SOFT_DELETE_COLUMN,
    UPDATED_AT_COLUMN,
    EntityRecord,
)
from entityforge.entity.relationships import QueryRoot
from entityforge.persistence.config import ConnectionManager
from entityforge.persistence.validation import FieldIssue, validate_record
from entityforge.query.pager import EntityPager, ListParams, ListResult
from entityforge.schema.types import ManyToMany

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(UTC).isoformat()


class EntityRepository:
    """Reads and writes rows of any bound entity."""

    def __init__(self, connections: ConnectionManager, pager: EntityPager | None = None):
        self.connections = connections
        self.pager = pager or EntityPager()

    def _engine(self, record: EntityRecord) -> sa.Engine:
        return self.connections.engine_for(record.connection)

    def _document(self, record: EntityRecord):
        if record.schema is None:
            raise ConfigurationError(f"EntityRecord for '{record.model}' carries no schema")
        return record.schema.document

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list(self, root: QueryRoot, params: ListParams) -> ListResult:
        with self._engine(root.record).connect() as conn:
            return self.pager.query(root, root.record.schema, params, conn)

    def find(self, record: EntityRecord, record_id: Any, *, with_trashed: bool = False) -> EntityRecord | None:
        """Hydrated record for a primary key, or None."""
        pk = record.column(record.primary_key)
        stmt = record.select(with_trashed=with_trashed).where(pk == record.cast_value(record.primary_key, record_id))
        with self._engine(record).connect() as conn:
            row = conn.execute(stmt).mappings().fetchone()
        return record.hydrate(row) if row is not None else None

    def get(self, record: EntityRecord, record_id: Any, *, with_trashed: bool = False) -> EntityRecord:
        """Like find(), but a missing row raises NotFoundError."""
        found = self.find(record, record_id, with_trashed=with_trashed)
        if found is None:
            raise NotFoundError(
                f"{record.model} record '{record_id}' not found", kind="record", name=str(record_id)
            )
        return found

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, record: EntityRecord, data: dict[str, Any]) -> EntityRecord:
        """Insert a row from client input; non-fillable keys are ignored."""
        document = self._document(record)
        values = record.fill(data)
        for name in record.fillable:
            f = document.get_field(name)
            if name not in values and f is not None and f.default is not None:
                values[name] = f.default

        issues = validate_record(document, values) or self._unique_issues(record, values)
        if issues:
            raise RecordValidationError(issues)

        if record.timestamps:
            now = _now()
            values[CREATED_AT_COLUMN] = now
            values[UPDATED_AT_COLUMN] = now

        row = {name: record.serialize_value(name, value) for name, value in values.items()}
        with self._engine(record).begin() as conn:
            result = conn.execute(sa.insert(record.table).values(**row))
            record_id = values.get(record.primary_key)
            if record_id is None and result.inserted_primary_key:
                record_id = result.inserted_primary_key[0]

        logger.info("Created %s '%s'", record.model, record_id)
        return self.get(record, record_id)

    def update(self, record: EntityRecord, record_id: Any, data: dict[str, Any]) -> EntityRecord:
        """Partial update from client input; non-fillable keys are ignored."""
        self.get(record, record_id)
        document = self._document(record)
        values = record.fill(data)

        issues = (
            validate_record(document, values, partial=True)
            or self._unique_issues(record, values, record_id)
        )
        if issues:
            raise RecordValidationError(issues)

        return self._write(record, record_id, values)

    def _unique_issues(
        self, record: EntityRecord, values: dict[str, Any], record_id: Any = None
    ) -> list[FieldIssue]:
        """UNIQUE issues for values already present in another row (trashed rows count)."""
        document = self._document(record)
        pk = record.column(record.primary_key)
        issues: list[FieldIssue] = []
        with self._engine(record).connect() as conn:
            for name, value in values.items():
                f = document.get_field(name)
                if f is None or not f.validation.unique or value is None or value == "":
                    continue
                stmt = sa.select(pk).where(record.column(name) == record.serialize_value(name, value))
                if record_id is not None:
                    stmt = stmt.where(pk != record.cast_value(record.primary_key, record_id))
                if conn.execute(stmt.limit(1)).first() is not None:
                    issues.append(FieldIssue(f"{f.label} must be unique", "UNIQUE", name))
        return issues

    def set_field(self, record: EntityRecord, record_id: Any, name: str, value: Any) -> EntityRecord:
        """Write one declared column, bypassing fillable (schema-declared actions only)."""
        if name == record.primary_key:
            raise ConfigurationError(f"Cannot update primary key '{name}' of '{record.model}'")
        record.column(name)
        self.get(record, record_id)
        return self._write(record, record_id, {name: value})

    def _write(self, record: EntityRecord, record_id: Any, values: dict[str, Any]) -> EntityRecord:
        if record.timestamps:
            values[UPDATED_AT_COLUMN] = _now()
        if values:
            row = {name: record.serialize_value(name, value) for name, value in values.items()}
            pk = record.column(record.primary_key)
            with self._engine(record).begin() as conn:
                conn.execute(
                    sa.update(record.table)
                    .where(pk == record.cast_value(record.primary_key, record_id))
                    .values(**row)
                )
            logger.info("Updated %s '%s': %s", record.model, record_id, sorted(values))
        return self.get(record, record_id)

    def delete(self, record: EntityRecord, record_id: Any) -> None:
        """Delete a row, or mark it deleted when the entity uses soft delete."""
        self.get(record, record_id)
        pk = record.column(record.primary_key)
        key = record.cast_value(record.primary_key, record_id)
        with self._engine(record).begin() as conn:
            if record.soft_delete:
                conn.execute(
                    sa.update(record.table).where(pk == key).values({SOFT_DELETE_COLUMN: _now()})
                )
            else:
                conn.execute(sa.delete(record.table).where(pk == key))
        logger.info("Deleted %s '%s'", record.model, record_id)

    def restore(self, record: EntityRecord, record_id: Any) -> EntityRecord:
        """Undo a soft delete."""
        if not record.soft_delete:
            raise ConfigurationError(f"'{record.model}' does not use soft delete", entity=record.model)
        self.get(record, record_id, with_trashed=True)
        pk = record.column(record.primary_key)
        with self._engine(record).begin() as conn:
            conn.execute(
                sa.update(record.table)
                .where(pk == record.cast_value(record.primary_key, record_id))
                .values({SOFT_DELETE_COLUMN: None})
            )
        logger.info("Restored %s '%s'", record.model, record_id)
        return self.get(record, record_id)

    # ------------------------------------------------------------------
    # Pivot maintenance (many_to_many only)
    # ------------------------------------------------------------------

    def _pivot(self, relationship: ManyToMany) -> sa.TableClause:
        if not isinstance(relationship, ManyToMany):
            raise ConfigurationError(
                f"Relationship '{relationship.name}' is not many_to_many; pivot rows cannot be edited"
            )
        return sa.table(
            relationship.pivot_table,
            sa.column(relationship.foreign_key),
            sa.column(relationship.related_key),
        )

    def _linked_ids(self, conn: sa.Connection, relationship: ManyToMany, record_id: Any) -> set[Any]:
        pivot = self._pivot(relationship)
        rows = conn.execute(
            sa.select(pivot.c[relationship.related_key])
            .where(pivot.c[relationship.foreign_key] == record_id)
        )
        return {row[0] for row in rows}

    def attach(
        self, record: EntityRecord, record_id: Any, relationship: ManyToMany, related_ids: list[Any]
    ) -> list[Any]:
        """Link related rows; already-linked ids are skipped. Returns the ids added."""
        self.get(record, record_id)
        pivot = self._pivot(relationship)
        key = record.cast_value(record.primary_key, record_id)
        with self._engine(record).begin() as conn:
            existing = self._linked_ids(conn, relationship, key)
            added = []
            for related_id in related_ids:
                if related_id in existing or related_id in added:
                    continue
                conn.execute(sa.insert(pivot).values({
                    relationship.foreign_key: key,
                    relationship.related_key: related_id,
                }))
                added.append(related_id)
        logger.info("Attached %s %s to %s '%s'", relationship.name, added, record.model, record_id)
        return added

    def detach(
        self,
        record: EntityRecord,
        record_id: Any,
        relationship: ManyToMany,
        related_ids: list[Any] | None = None,
    ) -> int:
        """Unlink related rows (all of them when related_ids is None). Returns rows removed."""
        self.get(record, record_id)
        pivot = self._pivot(relationship)
        key = record.cast_value(record.primary_key, record_id)
        stmt = sa.delete(pivot).where(pivot.c[relationship.foreign_key] == key)
        if related_ids is not None:
            stmt = stmt.where(pivot.c[relationship.related_key].in_(related_ids))
        with self._engine(record).begin() as conn:
            removed = conn.execute(stmt).rowcount
        logger.info("Detached %d %s from %s '%s'", removed, relationship.name, record.model, record_id)
        return removed

    def sync(
        self, record: EntityRecord, record_id: Any, relationship: ManyToMany, related_ids: list[Any]
    ) -> dict[str, list[Any]]:
        """Make the linked set exactly related_ids."""
        self.get(record, record_id)
        pivot = self._pivot(relationship)
        key = record.cast_value(record.primary_key, record_id)
        wanted = list(dict.fromkeys(related_ids))
        with self._engine(record).begin() as conn:
            existing = self._linked_ids(conn, relationship, key)
            attached = [i for i in wanted if i not in existing]
            detached = sorted(i for i in existing if i not in set(wanted))
            if detached:
                conn.execute(
                    sa.delete(pivot)
                    .where(pivot.c[relationship.foreign_key] == key)
                    .where(pivot.c[relationship.related_key].in_(detached))
                )
            for related_id in attached:
                conn.execute(sa.insert(pivot).values({
                    relationship.foreign_key: key,
                    relationship.related_key: related_id,
                }))
        logger.info(
            "Synced %s of %s '%s': +%s -%s", relationship.name, record.model, record_id, attached, detached
        )
        return {"attached": attached, "detached": detached}
