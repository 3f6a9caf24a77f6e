"""Runtime binding of the generic EntityRecord to one entity's schema.

EntityRecord is a single generic type. An instance knows nothing about any
table until EntityBinder.bind() configures it from a ResolvedSchema; until
then it carries the UNBOUND_TABLE sentinel and refuses to build queries.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from typing import Any

import sqlalchemy as sa

from entityforge.core.errors import ConfigurationError
from entityforge.core.types import get_cast, get_field_type
from entityforge.schema.types import ResolvedSchema

logger = logging.getLogger(__name__)

UNBOUND_TABLE = "ENTITYFORGE_NOT_SET"

SOFT_DELETE_COLUMN = "deleted_at"
CREATED_AT_COLUMN = "created_at"
UPDATED_AT_COLUMN = "updated_at"

_FALSE_STRINGS = {"0", "false", "no", "off", ""}


class EntityRecord:
    """Generic record type configured at runtime for one entity.

    Attributes:
        model: Entity name
        table_name: Backing table, UNBOUND_TABLE until bound
        primary_key: Primary key column name
        fillable: Columns accepted from client input
        guarded: Declared columns never accepted from client input
        casts: Column name -> cast tag applied when reading rows
        soft_delete: Deletes set deleted_at instead of removing the row
        timestamps: created_at/updated_at are maintained on write
        connection: Named database connection, None for the default
        table: SQLAlchemy Table, None until bound
        attributes: Column values of the current row (empty for a query root)
    """

    def __init__(self) -> None:
        self.model: str = ""
        self.table_name: str = UNBOUND_TABLE
        self.primary_key: str = "id"
        self.fillable: frozenset[str] = frozenset()
        self.guarded: frozenset[str] = frozenset()
        self.casts: dict[str, str] = {}
        self.soft_delete: bool = False
        self.timestamps: bool = False
        self.connection: str | None = None
        self.table: sa.Table | None = None
        self.schema: ResolvedSchema | None = None
        self.attributes: dict[str, Any] = {}

    def __repr__(self) -> str:
        return f"<EntityRecord {self.model or '?'} table={self.table_name!r}>"

    @property
    def is_bound(self) -> bool:
        return self.table is not None and self.table_name != UNBOUND_TABLE

    @property
    def key(self) -> Any:
        """Primary key value of the current row."""
        return self.attributes.get(self.primary_key)

    def _require_bound(self) -> sa.Table:
        if not self.is_bound:
            raise ConfigurationError(
                f"EntityRecord is not bound to a table (table is {self.table_name!r})",
                entity=self.model or None,
            )
        return self.table  # type: ignore[return-value]

    def column(self, name: Any) -> sa.Column:
        """Look up a column, refusing empty or undeclared names."""
        table = self._require_bound()
        if not isinstance(name, str) or not name.strip():
            raise ConfigurationError(
                f"Empty column name requested on '{self.model}'", entity=self.model
            )
        if name not in table.c:
            raise ConfigurationError(
                f"Column '{name}' does not exist on table '{self.table_name}'",
                entity=self.model,
            )
        return table.c[name]

    def has_column(self, name: Any) -> bool:
        return self.is_bound and isinstance(name, str) and bool(name) and name in self.table.c  # type: ignore[union-attr]

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self._require_bound().columns]

    def select(self, *, with_trashed: bool = False) -> sa.Select:
        """Base SELECT over the table, excluding soft-deleted rows."""
        table = self._require_bound()
        stmt = sa.select(table)
        if self.soft_delete and not with_trashed:
            stmt = stmt.where(table.c[SOFT_DELETE_COLUMN].is_(None))
        return stmt

    def fill(self, data: dict[str, Any]) -> dict[str, Any]:
        """Keep only fillable keys from client input."""
        dropped = [k for k in data if k not in self.fillable]
        if dropped:
            logger.debug("Ignoring non-fillable input for '%s': %s", self.model, dropped)
        return {k: v for k, v in data.items() if k in self.fillable}

    def cast_value(self, name: str, value: Any) -> Any:
        cast = self.casts.get(name)
        if value is None or cast is None:
            return value
        try:
            if cast == "integer":
                return int(value)
            if cast == "float":
                return float(value)
            if cast == "boolean":
                if isinstance(value, str):
                    return value.strip().lower() not in _FALSE_STRINGS
                return bool(value)
            if cast == "json":
                return json.loads(value) if isinstance(value, (str, bytes)) else value
            if cast == "date":
                if isinstance(value, datetime):
                    return value.date()
                return date.fromisoformat(value) if isinstance(value, str) else value
            if cast == "datetime":
                return datetime.fromisoformat(value) if isinstance(value, str) else value
        except (TypeError, ValueError) as e:
            logger.warning("Cannot cast %s.%s value %r to %s: %s", self.model, name, value, cast, e)
        return value

    def cast_row(self, row: Any) -> dict[str, Any]:
        """Convert a result row (Row or Mapping) to a dict with casts applied."""
        data = dict(row._mapping) if hasattr(row, "_mapping") else dict(row)
        return {name: self.cast_value(name, value) for name, value in data.items()}

    def serialize_value(self, name: str, value: Any) -> Any:
        """Storage form of a value: cast first, then JSON to text and dates to ISO strings.

        Writes and equality filters both go through here, so a filter value
        compares against exactly what was stored.
        """
        cast = self.casts.get(name)
        value = self.cast_value(name, value)
        if value is None:
            return None
        if cast == "json" and not isinstance(value, str):
            return json.dumps(value)
        if isinstance(value, (date, datetime)):
            return value.isoformat()
        return value

    def hydrate(self, row: Any) -> EntityRecord:
        """A new bound instance holding one row's values."""
        record = self._copy()
        record.attributes = self.cast_row(row)
        return record

    def _copy(self) -> EntityRecord:
        record = EntityRecord()
        record.__dict__.update(self.__dict__)
        record.attributes = {}
        return record


class EntityBinder:
    """Configures EntityRecord instances from resolved schemas.

    bind() is pure: the same schema always yields the same configuration,
    and each call builds a fresh Table on its own MetaData.
    """

    def __init__(self, debug: bool = False):
        self.debug = debug

    def bind(self, schema: ResolvedSchema) -> EntityRecord:
        document = schema.document
        record = EntityRecord()
        record.model = document.model
        record.table_name = document.table
        record.primary_key = document.primary_key
        record.soft_delete = document.soft_delete
        record.timestamps = document.timestamps
        record.connection = document.connection
        record.schema = schema

        columns: list[sa.Column] = []
        casts: dict[str, str] = {}
        fillable: set[str] = set()
        guarded: set[str] = set()

        for name, f in document.fields.items():
            if f.computed:
                # Computed values are not stored
                guarded.add(name)
                continue
            field_type = get_field_type(f.type)
            is_pk = name == document.primary_key
            columns.append(sa.Column(
                name,
                field_type.storage_type(),
                primary_key=is_pk,
                autoincrement=f.auto_increment if is_pk else False,
            ))
            cast = get_cast(f.type)
            if cast:
                casts[name] = cast
            if f.editable:
                fillable.add(name)
            else:
                guarded.add(name)

        if document.primary_key not in document.fields:
            columns.insert(0, sa.Column(document.primary_key, sa.Integer, primary_key=True))
            casts[document.primary_key] = "integer"
            guarded.add(document.primary_key)

        declared = {c.name for c in columns}
        if document.timestamps:
            for name in (CREATED_AT_COLUMN, UPDATED_AT_COLUMN):
                if name not in declared:
                    columns.append(sa.Column(name, sa.String))
                fillable.discard(name)
                guarded.add(name)
        if document.soft_delete:
            if SOFT_DELETE_COLUMN not in declared:
                columns.append(sa.Column(SOFT_DELETE_COLUMN, sa.String, nullable=True))
            fillable.discard(SOFT_DELETE_COLUMN)
            guarded.add(SOFT_DELETE_COLUMN)

        record.table = sa.Table(document.table, sa.MetaData(), *columns)
        record.casts = casts
        record.fillable = frozenset(fillable)
        record.guarded = frozenset(guarded)

        if self.debug:
            logger.debug(
                "Bound '%s' to table '%s' (fillable=%s)",
                document.model, document.table, sorted(record.fillable),
            )
        return record
