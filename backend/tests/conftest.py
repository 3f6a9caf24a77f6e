"""Shared fixtures: schema documents and a seeded in-memory SQLite database."""

import copy

import pytest
from sqlalchemy import text

from entityforge.core.config import EngineConfig
from entityforge.engine import EntityEngine
from entityforge.persistence.config import ConnectionManager, create_engine
from entityforge.schema.cache import SchemaCache
from entityforge.schema.sources import MappingSource
from entityforge.schema.store import SchemaStore


WIDGETS = {
    "model": "widgets",
    "table": "widgets",
    "title": "Widgets",
    "singular_title": "Widget",
    "soft_delete": True,
    "permissions": {
        "read": "view_widgets",
        "update": "update_widget_field",
        "custom_action": "update_widget_field",
    },
    "default_sort": {"name": "asc"},
    "fields": {
        "id": {
            "type": "integer",
            "auto_increment": True,
            "readonly": True,
            "sortable": True,
            "show_in": ["list", "detail"],
        },
        "name": {
            "type": "string",
            "required": True,
            "sortable": True,
            "filterable": True,
            "validation": {"max_length": 100},
        },
        "status": {"type": "enum", "sortable": True, "filterable": True, "default": "draft"},
        # Legacy flag: hidden from the list, still in form and detail
        "secret": {"type": "string", "listable": False},
        "active": {"type": "boolean", "default": True},
    },
    "contexts": {
        "form": {
            "fields": {
                "name": {"description": "Shown on the widget card"},
                "name_confirmation": {"type": "string", "label": "Repeat name"},
            },
        },
    },
    "relationships": [
        {
            "name": "tags",
            "type": "many_to_many",
            "target": "tags",
            "pivot_table": "widget_tag",
            "foreign_key": "widget_id",
            "related_key": "tag_id",
        },
        {
            "name": "categories",
            "type": "many_to_many_through",
            "target": "categories",
            "through": "tags",
            "first_pivot_table": "widget_tag",
            "first_foreign_key": "widget_id",
            "first_related_key": "tag_id",
            "second_pivot_table": "tag_category",
            "second_foreign_key": "tag_id",
            "second_related_key": "category_id",
        },
    ],
    "details": [{"model": "tags", "list_fields": ["name"]}],
    "actions": [
        {"key": "toggle_active", "label": "Toggle active", "type": "field_update",
         "field": "active", "toggle": True, "scope": ["list", "detail"]},
        {"key": "publish", "label": "Publish", "type": "field_update",
         "field": "status", "value": "published", "scope": "detail",
         "permission": "publish_widgets"},
        {"key": "notify", "label": "Notify", "type": "handler", "handler": "notify_owner"},
    ],
}

TAGS = {
    "model": "tags",
    "table": "tags",
    "fields": {
        "id": {"type": "integer", "auto_increment": True, "readonly": True, "sortable": True},
        "name": {"type": "string", "required": True, "sortable": True, "filterable": True},
    },
}

CATEGORIES = {
    "model": "categories",
    "table": "categories",
    "fields": [
        {"name": "id", "type": "integer", "autoIncrement": True, "primaryKey": True, "editable": False},
        {"name": "name", "type": "string", "nullable": False, "sortable": True, "filterable": True},
        {"name": "notes", "type": "text", "listable": False},
    ],
}


SCHEMA_DDL = [
    """CREATE TABLE widgets (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        status TEXT,
        secret TEXT,
        active BOOLEAN,
        deleted_at TEXT
    )""",
    "CREATE TABLE tags (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT NOT NULL)",
    "CREATE TABLE categories (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT NOT NULL, notes TEXT)",
    "CREATE TABLE widget_tag (widget_id INTEGER, tag_id INTEGER, PRIMARY KEY (widget_id, tag_id))",
    "CREATE TABLE tag_category (tag_id INTEGER, category_id INTEGER, PRIMARY KEY (tag_id, category_id))",
]

SEED = [
    """INSERT INTO widgets (id, name, status, secret, active) VALUES
        (1, 'foo widget', 'active', 's1', 1),
        (2, 'Foobar', 'draft', 's2', 1),
        (3, 'bar', 'active', 's3', 0),
        (4, 'baz', 'archived', 's4', 1),
        (5, 'Gizmo', 'active', 's5', 1),
        (6, 'food processor', 'draft', 's6', 0)""",
    "INSERT INTO tags (id, name) VALUES (1, 'red'), (2, 'blue'), (3, 'green')",
    "INSERT INTO categories (id, name) VALUES (1, 'warm'), (2, 'cool'), (3, 'nature')",
    "INSERT INTO widget_tag (widget_id, tag_id) VALUES (5, 1), (5, 2), (1, 1), (3, 3)",
    "INSERT INTO tag_category (tag_id, category_id) VALUES (1, 1), (1, 2), (2, 2), (3, 3)",
]


def schema_documents() -> dict:
    """Fresh copies of the sample documents, safe to modify per test."""
    return {
        "widgets": copy.deepcopy(WIDGETS),
        "tags": copy.deepcopy(TAGS),
        "categories": copy.deepcopy(CATEGORIES),
    }


@pytest.fixture
def documents():
    return schema_documents()


@pytest.fixture
def source(documents):
    return MappingSource(documents)


@pytest.fixture
def store(source):
    return SchemaStore([source], cache=SchemaCache())


@pytest.fixture
def db():
    """In-memory SQLite engine with the sample tables and rows."""
    engine = create_engine("sqlite://")
    with engine.begin() as conn:
        for statement in SCHEMA_DDL + SEED:
            conn.execute(text(statement))
    yield engine
    engine.dispose()


@pytest.fixture
def config():
    return EngineConfig(default_page_size=25, max_page_size=100)


@pytest.fixture
def engine(store, db, config):
    return EntityEngine(store, ConnectionManager(db), config)
