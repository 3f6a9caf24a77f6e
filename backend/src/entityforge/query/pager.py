"""Generic list query: filter, search, sort and paginate any entity.

The same pager serves top-level listings (`/widgets`) and relationship
listings (`/widgets/5/tags`): both hand it a QueryRoot, and both get back
the same {rows, count, count_filtered} envelope.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import sqlalchemy as sa

from entityforge.core.config import EngineConfig
from entityforge.core.types import get_field_type
from entityforge.entity.relationships import QueryRoot
from entityforge.query.fields import sanitize_field_list
from entityforge.schema.types import ResolvedSchema

logger = logging.getLogger(__name__)

OR_SEPARATOR = "||"

_PARAM_PATTERN = re.compile(r"^(sorts|filters)\[([^\]]*)\]$")


@dataclass
class ListParams:
    """Client-supplied list options.

    Attributes:
        sorts: Field -> "asc"/"desc", in priority order
        filters: Field -> value; "a||b" matches either a or b
        search: Global search term, matched across filterable fields
        page: 1-indexed page number
        size: Requested page size (clamped by the pager)
    """

    sorts: dict[str, str] = field(default_factory=dict)
    filters: dict[str, Any] = field(default_factory=dict)
    search: str | None = None
    page: Any = 1
    size: Any = None

    @classmethod
    def from_query_params(cls, params: Mapping[str, Any]) -> ListParams:
        """Parse `sorts[name]=asc`, `filters[name]=x`, `search`, `page`, `size`."""
        sorts: dict[str, str] = {}
        filters: dict[str, Any] = {}
        for key, value in params.items():
            match = _PARAM_PATTERN.match(key)
            if match is None:
                continue
            kind, name = match.groups()
            if kind == "sorts":
                sorts[name] = str(value)
            else:
                filters[name] = value

        return cls(
            sorts=sorts,
            filters=filters,
            search=params.get("search") or None,
            page=params.get("page", 1),
            size=params.get("size"),
        )


@dataclass
class ListResult:
    rows: list[dict[str, Any]]
    count: int
    count_filtered: int
    page: int = 1
    size: int = 25

    @property
    def pages(self) -> int:
        return math.ceil(self.count_filtered / self.size) if self.size else 0

    def to_envelope(self) -> dict[str, Any]:
        """The list response wire format."""
        return {
            "rows": self.rows,
            "count": self.count,
            "count_filtered": self.count_filtered,
        }


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class EntityPager:
    """Builds and runs list queries from a QueryRoot and a ResolvedSchema."""

    def __init__(self, config: EngineConfig | None = None):
        self.config = config or EngineConfig()

    def query(
        self,
        root: QueryRoot,
        schema: ResolvedSchema | None,
        params: ListParams,
        connection: sa.Connection,
    ) -> ListResult:
        record = root.record
        schema = schema or record.schema
        if schema is None:
            raise ValueError("EntityPager.query needs the schema of the listed entity")
        entity = schema.model
        columns = set(record.column_names)

        sortable = sanitize_field_list(entity, "sortable", schema.sortable_fields, columns)
        filterable = sanitize_field_list(entity, "filterable", schema.filterable_fields, columns)
        if root.projection is not None:
            listable = sanitize_field_list(entity, "list_fields", root.projection, columns)
        else:
            listable = sanitize_field_list(entity, "listable", schema.listable_fields, columns)
        if record.primary_key not in listable:
            listable.insert(0, record.primary_key)

        base = root.statement
        total = self._count(connection, base)

        stmt = self._apply_filters(base, root, schema, params.filters, filterable)
        stmt = self._apply_search(stmt, root, params.search, filterable)
        filtered = self._count(connection, stmt) if stmt is not base else total

        stmt = self._apply_sorts(stmt, root, schema, params.sorts, sortable)

        size = self._page_size(params.size)
        page = self._page_number(params.page)
        stmt = stmt.limit(size).offset((page - 1) * size)

        if self.config.debug_mode:
            logger.debug("List query for '%s': %s", entity, stmt)

        rows = []
        for row in connection.execute(stmt).mappings():
            data = record.cast_row(row)
            rows.append({name: data.get(name) for name in listable})

        return ListResult(rows=rows, count=total, count_filtered=filtered, page=page, size=size)

    # ------------------------------------------------------------------
    # Query pieces
    # ------------------------------------------------------------------

    def _count(self, connection: sa.Connection, stmt: sa.Select) -> int:
        count_stmt = sa.select(sa.func.count()).select_from(stmt.order_by(None).subquery())
        return connection.execute(count_stmt).scalar_one()

    def _match(self, root: QueryRoot, schema: ResolvedSchema, name: str, value: Any) -> sa.ColumnElement:
        """Condition for one filter value: partial match on text, equality otherwise."""
        column = root.record.column(name)
        field_def = schema.document.get_field(name)
        field_type = get_field_type(field_def.type if field_def else "string")
        if "contains" in field_type.query_operators:
            return column.ilike(f"%{_escape_like(str(value))}%", escape="\\")
        return column == root.record.serialize_value(name, value)

    def _apply_filters(
        self,
        stmt: sa.Select,
        root: QueryRoot,
        schema: ResolvedSchema,
        filters: dict[str, Any],
        filterable: list[str],
    ) -> sa.Select:
        ignored = []
        for name, value in filters.items():
            if name not in filterable:
                ignored.append(name)
                continue
            parts = [p for p in str(value).split(OR_SEPARATOR) if p != ""]
            if not parts:
                continue
            stmt = stmt.where(sa.or_(*(self._match(root, schema, name, p) for p in parts)))
        if ignored:
            logger.warning("Ignoring filters on non-filterable fields of '%s': %s", schema.model, ignored)
        return stmt

    def _apply_search(
        self, stmt: sa.Select, root: QueryRoot, search: str | None, filterable: list[str]
    ) -> sa.Select:
        if search is None or not str(search).strip():
            return stmt
        if not filterable:
            # Nothing is searchable, so nothing matches
            return stmt.where(sa.false())
        pattern = f"%{_escape_like(str(search).strip())}%"
        conditions = [
            sa.cast(root.record.column(name), sa.String).ilike(pattern, escape="\\")
            for name in filterable
        ]
        return stmt.where(sa.or_(*conditions))

    def _apply_sorts(
        self,
        stmt: sa.Select,
        root: QueryRoot,
        schema: ResolvedSchema,
        sorts: Mapping[str, str] | list[Any],
        sortable: list[str],
    ) -> sa.Select:
        record = root.record
        order: list[tuple[str, str]] = []
        ignored = []
        for name, direction in _sort_items(sorts):
            direction = str(direction).lower()
            if name in sortable and direction in ("asc", "desc"):
                order.append((name, direction))
            else:
                ignored.append(name)
        if ignored:
            logger.warning("Ignoring invalid sorts on '%s': %s", schema.model, ignored)

        if not order:
            for name, direction in schema.default_sort.items():
                if record.has_column(name) and direction in ("asc", "desc"):
                    order.append((name, direction))

        # Primary key last keeps page boundaries stable
        if record.primary_key not in {name for name, _ in order}:
            order.append((record.primary_key, "asc"))

        clauses = []
        for name, direction in order:
            column = record.column(name)
            clauses.append(column.desc() if direction == "desc" else column.asc())
        return stmt.order_by(*clauses)

    def _page_size(self, size: Any) -> int:
        try:
            value = int(size)
        except (TypeError, ValueError):
            return self.config.default_page_size
        if value < 1:
            return self.config.default_page_size
        return min(value, self.config.max_page_size)

    def _page_number(self, page: Any) -> int:
        try:
            value = int(page)
        except (TypeError, ValueError):
            return 1
        return max(value, 1)


def _sort_items(sorts: Mapping[str, str] | list[Any]) -> list[tuple[Any, Any]]:
    """Accept {"name": "asc"}, ["name", "-created_at"] or [("name", "asc")]."""
    if isinstance(sorts, Mapping):
        return list(sorts.items())
    items = []
    for entry in sorts or []:
        if isinstance(entry, (tuple, list)) and len(entry) == 2:
            items.append((entry[0], entry[1]))
        elif isinstance(entry, str) and entry.startswith("-"):
            items.append((entry[1:], "desc"))
        else:
            items.append((entry, "asc"))
    return items
