"""Tests for SchemaNormalizer."""

import copy

import pytest

from entityforge.schema.normalizer import SchemaNormalizer

from conftest import schema_documents


@pytest.fixture
def normalizer():
    return SchemaNormalizer()


LEGACY = {
    "model": "users",
    "table": "users",
    "detail": {"model": "activities", "foreign_key": "user_id"},
    "fields": [
        {"name": "id", "type": "integer", "autoIncrement": True, "primaryKey": True},
        {"name": "user_name", "type": "string", "nullable": False, "unique": True, "length": 50},
        {"name": "email", "type": "email", "listable": False, "editable": True},
        {"name": "password", "type": "password", "listable": False},
        {"name": "flag_enabled", "type": "boolean-tgl"},
        {"name": "group_id", "type": "integer", "ui": {"type": "lookup", "widget": "select"}},
        {"name": "created", "type": "datetime", "editable": False},
    ],
    "relationships": {
        "roles": {"type": "belongs_to_many", "pivot_table": "role_users",
                  "foreign_key": "user_id", "related_key": "role_id"},
        "activities": {"type": "has_many", "foreign_key": "user_id"},
    },
    "contexts": {
        "edit": {"fields": {"user_name": {"readOnly": True, "viewable": False}}},
    },
}


class TestIdempotence:
    """normalize(normalize(x)) == normalize(x)."""

    def test_legacy_document_twice_equals_once(self, normalizer):
        once = normalizer.normalize(LEGACY)
        twice = normalizer.normalize(once)
        assert twice == once

    def test_canonical_document_is_unchanged(self, normalizer):
        canonical = normalizer.normalize(schema_documents()["widgets"])
        assert normalizer.normalize(canonical) == canonical

    def test_input_is_not_mutated(self, normalizer):
        original = copy.deepcopy(LEGACY)
        normalizer.normalize(LEGACY)
        assert LEGACY == original

    @pytest.mark.parametrize("name", ["widgets", "tags", "categories"])
    def test_sample_documents_are_idempotent(self, normalizer, name):
        once = normalizer.normalize(schema_documents()[name])
        assert normalizer.normalize(once) == once


class TestVisibility:
    def test_legacy_flags_become_show_in(self, normalizer):
        fields = normalizer.normalize(LEGACY)["fields"]
        assert fields["email"]["show_in"] == ["form", "detail"]
        assert fields["user_name"]["show_in"] == ["list", "form", "detail"]

    def test_legacy_flags_are_removed(self, normalizer):
        fields = normalizer.normalize(LEGACY)["fields"]
        for field_data in fields.values():
            for flag in ("listable", "editable", "viewable"):
                assert flag not in field_data

    def test_legacy_not_editable_marks_readonly(self, normalizer):
        created = normalizer.normalize(LEGACY)["fields"]["created"]
        assert created["show_in"] == ["list", "detail"]
        assert created["readonly"] is True

    def test_password_never_in_detail(self, normalizer):
        doc = {"model": "m", "table": "m", "fields": {
            "password": {"type": "password", "show_in": ["form", "detail"]},
        }}
        assert normalizer.normalize(doc)["fields"]["password"]["show_in"] == ["form"]

    def test_create_and_edit_fold_into_form(self, normalizer):
        doc = {"model": "m", "table": "m", "fields": {
            "name": {"show_in": ["create", "edit", "list"]},
        }}
        assert normalizer.normalize(doc)["fields"]["name"]["show_in"] == ["list", "form"]

    def test_comma_separated_show_in(self, normalizer):
        doc = {"model": "m", "table": "m", "fields": {"name": {"show_in": "detail, list"}}}
        assert normalizer.normalize(doc)["fields"]["name"]["show_in"] == ["list", "detail"]

    def test_unknown_show_in_context_dropped(self, normalizer, caplog):
        doc = {"model": "m", "table": "m", "fields": {"name": {"show_in": ["list", "sidebar"]}}}
        assert normalizer.normalize(doc)["fields"]["name"]["show_in"] == ["list"]
        assert "sidebar" in caplog.text

    def test_explicit_show_in_wins_over_legacy_flags(self, normalizer):
        doc = {"model": "m", "table": "m", "fields": {
            "name": {"show_in": ["detail"], "listable": True},
        }}
        assert normalizer.normalize(doc)["fields"]["name"]["show_in"] == ["detail"]

    def test_ui_show_in_is_lifted(self, normalizer):
        doc = {"model": "m", "table": "m", "fields": {
            "name": {"ui": {"show_in": ["list"], "label": "Title", "sortable": True}},
        }}
        name = normalizer.normalize(doc)["fields"]["name"]
        assert name["show_in"] == ["list"]
        assert name["label"] == "Title"
        assert name["sortable"] is True
        assert "ui" not in name


class TestFieldAttributes:
    def test_orm_aliases(self, normalizer):
        fields = normalizer.normalize(LEGACY)["fields"]
        assert fields["id"]["auto_increment"] is True
        assert fields["id"]["primary"] is True
        assert "autoIncrement" not in fields["id"]
        assert fields["user_name"]["required"] is True
        assert fields["user_name"]["validation"] == {"unique": True, "max_length": 50}

    def test_length_block(self, normalizer):
        doc = {"model": "m", "table": "m", "fields": {
            "code": {"validate": {"length": {"min": 2, "max": 8}}},
        }}
        validation = normalizer.normalize(doc)["fields"]["code"]["validation"]
        assert validation == {"min_length": 2, "max_length": 8}

    def test_boolean_ui_suffix(self, normalizer):
        flag = normalizer.normalize(LEGACY)["fields"]["flag_enabled"]
        assert flag["type"] == "boolean"
        assert flag["ui"] == "toggle"

    def test_plain_boolean_gets_checkbox(self, normalizer):
        doc = {"model": "m", "table": "m", "fields": {"on": {"type": "boolean"}}}
        assert normalizer.normalize(doc)["fields"]["on"]["ui"] == "checkbox"

    def test_lookup_hint_becomes_smartlookup(self, normalizer):
        group = normalizer.normalize(LEGACY)["fields"]["group_id"]
        assert group["type"] == "smartlookup"
        assert group["ui"] == "select"

    def test_string_field_shorthand(self, normalizer):
        doc = {"model": "m", "table": "m", "fields": {"name": "text"}}
        assert normalizer.normalize(doc)["fields"]["name"]["type"] == "text"


class TestStructure:
    def test_field_list_becomes_ordered_mapping(self, normalizer):
        fields = normalizer.normalize(LEGACY)["fields"]
        assert list(fields) == [
            "id", "user_name", "email", "password", "flag_enabled", "group_id", "created",
        ]

    def test_relationship_mapping_and_aliases(self, normalizer):
        rels = normalizer.normalize(LEGACY)["relationships"]
        by_name = {r["name"]: r for r in rels}
        assert by_name["roles"]["type"] == "many_to_many"
        assert by_name["activities"]["type"] == "one_to_many"

    def test_relationship_type_inferred(self, normalizer):
        doc = {"model": "m", "table": "m", "fields": {"id": {}}, "relationships": [
            {"name": "a", "pivot_table": "p", "foreign_key": "x", "related_key": "y"},
            {"name": "b", "foreign_key": "m_id"},
        ]}
        rels = normalizer.normalize(doc)["relationships"]
        assert [r["type"] for r in rels] == ["many_to_many", "one_to_many"]

    def test_singular_detail_moves_into_details(self, normalizer):
        result = normalizer.normalize(LEGACY)
        assert "detail" not in result
        assert result["details"] == [{"model": "activities", "foreign_key": "user_id"}]

    def test_context_overrides_are_canonicalized(self, normalizer):
        contexts = normalizer.normalize(LEGACY)["contexts"]
        assert list(contexts) == ["form"]
        override = contexts["form"]["fields"]["user_name"]
        assert override == {"readonly": True}

    def test_unknown_override_context_dropped(self, normalizer):
        doc = {"model": "m", "table": "m", "fields": {"id": {}},
               "contexts": {"sidebar": {"fields": {"id": {"label": "X"}}}}}
        assert normalizer.normalize(doc)["contexts"] == {}
