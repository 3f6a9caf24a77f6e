"""Tests for permission resolution and the authorizer collaborators."""

import pytest

from entityforge.auth import AllowAllAuthorizer, PermissionSetAuthorizer, Principal
from entityforge.auth.permissions import require_permission, resolve_permission
from entityforge.core.errors import AuthorizationDenied


class TestResolvePermission:
    def test_declared_permission_wins(self, store):
        schema = store.resolve("widgets", "list")
        assert resolve_permission(schema, "custom_action") == "update_widget_field"

    def test_fallback_combines_namespace_model_and_action(self, store):
        schema = store.resolve("widgets", "list")
        assert resolve_permission(schema, "export") == "entityforge.widgets.export"

    def test_custom_namespace(self, store):
        schema = store.resolve("widgets", "list")
        assert resolve_permission(schema, "create", "acme") == "acme.widgets.create"

    def test_works_on_documents(self, store):
        document = store.get_document("widgets")
        assert resolve_permission(document, "read") == "view_widgets"

    def test_empty_declaration_falls_back(self, store):
        document = store.get_document("tags")
        assert document.permissions == {}
        assert resolve_permission(document, "delete") == "entityforge.tags.delete"

    def test_is_pure(self, store):
        schema = store.resolve("widgets", "list")
        before = dict(schema.permissions)
        results = {resolve_permission(schema, "custom_action") for _ in range(3)}
        assert results == {"update_widget_field"}
        assert schema.permissions == before


class TestAuthorizers:
    def test_allow_all(self):
        assert AllowAllAuthorizer().check_access(None, "anything")

    @pytest.mark.parametrize("principal, expected", [
        (None, False),
        (Principal(user_id="u1"), False),
        (Principal(user_id="u1", permissions=frozenset({"view_widgets"})), True),
        (Principal(user_id="root", superuser=True), True),
        ({"permissions": ["view_widgets"]}, True),
        ({"permissions": []}, False),
        ({"superuser": True}, True),
    ])
    def test_permission_set(self, principal, expected):
        assert PermissionSetAuthorizer().check_access(principal, "view_widgets") is expected

    def test_require_permission_raises(self, caplog):
        with pytest.raises(AuthorizationDenied) as exc:
            require_permission(PermissionSetAuthorizer(), None, "view_widgets")
        assert exc.value.permission == "view_widgets"
        assert "Access denied" in caplog.text

    def test_require_permission_passes(self):
        require_permission(AllowAllAuthorizer(), None, "view_widgets")
