"""Field type registry with storage and cast defaults."""

from dataclasses import dataclass

import sqlalchemy as sa


@dataclass
class FieldType:
    name: str
    storage_type: type[sa.types.TypeEngine]
    cast: str | None
    query_operators: list[str]


_TEXT_OPERATORS = ["eq", "neq", "contains", "startsWith", "in", "isNull"]
_RANGE_OPERATORS = ["eq", "gt", "gte", "lt", "lte", "between", "isNull"]


# Built-in field types
FIELD_TYPES: dict[str, FieldType] = {
    "string": FieldType(
        name="string",
        storage_type=sa.String,
        cast=None,
        query_operators=_TEXT_OPERATORS,
    ),
    "text": FieldType(
        name="text",
        storage_type=sa.Text,
        cast=None,
        query_operators=["contains", "isNull"],
    ),
    "email": FieldType(
        name="email",
        storage_type=sa.String,
        cast=None,
        query_operators=["eq", "contains", "isNull"],
    ),
    "password": FieldType(
        name="password",
        storage_type=sa.String,
        cast=None,
        query_operators=[],
    ),
    "enum": FieldType(
        name="enum",
        storage_type=sa.String,
        cast=None,
        query_operators=["eq", "in", "notIn", "isNull"],
    ),
    "integer": FieldType(
        name="integer",
        storage_type=sa.Integer,
        cast="integer",
        query_operators=_RANGE_OPERATORS,
    ),
    "smartlookup": FieldType(
        name="smartlookup",
        storage_type=sa.Integer,
        cast="integer",
        query_operators=["eq", "in", "isNull"],
    ),
    "float": FieldType(
        name="float",
        storage_type=sa.Float,
        cast="float",
        query_operators=_RANGE_OPERATORS,
    ),
    "decimal": FieldType(
        name="decimal",
        storage_type=sa.Numeric,
        cast="float",
        query_operators=_RANGE_OPERATORS,
    ),
    "boolean": FieldType(
        name="boolean",
        storage_type=sa.Boolean,
        cast="boolean",
        query_operators=["eq", "isNull"],
    ),
    "date": FieldType(
        name="date",
        storage_type=sa.String,  # ISO format
        cast="date",
        query_operators=_RANGE_OPERATORS,
    ),
    "datetime": FieldType(
        name="datetime",
        storage_type=sa.String,  # ISO format
        cast="datetime",
        query_operators=_RANGE_OPERATORS,
    ),
    "json": FieldType(
        name="json",
        storage_type=sa.Text,  # JSON stored as text
        cast="json",
        query_operators=["isNull"],
    ),
}


def get_field_type(type_name: str) -> FieldType:
    """Get field type definition, defaulting to string if unknown."""
    return FIELD_TYPES.get(type_name, FIELD_TYPES["string"])


def get_cast(type_name: str) -> str | None:
    """Get the value cast applied to a field of this type when reading rows."""
    return get_field_type(type_name).cast
