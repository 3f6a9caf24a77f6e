"""Integration tests for the CRUD API."""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import text

from entityforge.api import create_app
from entityforge.auth import PermissionSetAuthorizer, Principal
from entityforge.engine import EntityEngine
from entityforge.persistence.config import ConnectionManager, create_engine
from entityforge.schema.sources import MappingSource
from entityforge.schema.store import SchemaStore

from conftest import SCHEMA_DDL, schema_documents


_SCHEMA_DIR = Path(__file__).resolve().parents[2] / "metadata" / "schemas"


@pytest.fixture
def client(engine):
    with TestClient(create_app(engine)) as client:
        yield client


def _principal_from_header(request):
    """Test principal: comma-separated permissions in X-Permissions."""
    header = request.headers.get("X-Permissions")
    if header is None:
        return None
    return Principal(user_id="tester", permissions=frozenset(p for p in header.split(",") if p))


class TestListing:
    def test_models(self, client):
        assert client.get("/api/crud").json() == {"models": ["categories", "tags", "widgets"]}

    def test_search(self, client):
        """Global search matches only the filterable fields and never returns hidden ones."""
        response = client.get("/api/crud/widgets", params={"search": "foo"})
        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 6
        assert body["count_filtered"] == 3
        assert all("secret" not in row for row in body["rows"])

    def test_invalid_sort_is_ignored(self, client):
        response = client.get("/api/crud/widgets", params={"sorts[notareal_field]": "asc"})
        assert response.status_code == 200
        assert [r["id"] for r in response.json()["rows"]] == [2, 5, 3, 4, 1, 6]

    def test_or_filter(self, client):
        response = client.get("/api/crud/widgets", params={"filters[status]": "draft||archived"})
        assert sorted(r["id"] for r in response.json()["rows"]) == [2, 4, 6]

    def test_pagination(self, client):
        response = client.get("/api/crud/widgets", params={"sorts[id]": "desc", "page": 2, "size": 2})
        assert [r["id"] for r in response.json()["rows"]] == [4, 3]

    def test_garbled_paging_uses_defaults(self, client):
        response = client.get("/api/crud/widgets", params={"page": "x", "size": "y"})
        assert response.status_code == 200
        assert len(response.json()["rows"]) == 6

    def test_unknown_model(self, client):
        assert client.get("/api/crud/gadgets").status_code == 404


class TestSchemaEndpoint:
    def test_context_filter(self, client):
        body = client.get("/api/crud/widgets/schema", params={"context": "list"}).json()
        assert list(body["contexts"]) == ["list"]
        assert "secret" not in body["contexts"]["list"]["fields"]
        assert body["contexts"]["list"]["default_sort"] == {"name": "asc"}

    def test_form_overrides(self, client):
        body = client.get("/api/crud/widgets/schema", params={"context": "form"}).json()
        fields = body["contexts"]["form"]["fields"]
        assert fields["name"]["description"] == "Shown on the widget card"
        assert "name_confirmation" in fields

    def test_all_contexts_by_default(self, client):
        body = client.get("/api/crud/widgets/schema").json()
        assert sorted(body["contexts"]) == ["detail", "form", "list"]

    def test_actions_for_scope(self, client):
        body = client.get("/api/crud/widgets/schema", params={"scope": "list"}).json()
        assert [a["key"] for a in body["actions"]] == ["toggle_active"]
        body = client.get("/api/crud/widgets/schema", params={"scope": "detail"}).json()
        assert [a["key"] for a in body["actions"]] == ["toggle_active", "publish"]

    def test_every_action_without_scope(self, client):
        body = client.get("/api/crud/widgets/schema").json()
        keys = [a["key"] for a in body["actions"]]
        assert keys == ["edit_action", "toggle_active", "publish", "notify"]


class TestRecords:
    def test_read(self, client):
        response = client.get("/api/crud/widgets/5")
        assert response.status_code == 200
        assert response.json()["data"]["name"] == "Gizmo"

    def test_read_missing(self, client):
        assert client.get("/api/crud/widgets/99").status_code == 404

    def test_create(self, client):
        response = client.post("/api/crud/widgets", json={"data": {"name": "Sprocket"}})
        assert response.status_code == 201
        body = response.json()
        assert body["data"]["status"] == "draft"
        assert client.get(f"/api/crud/widgets/{body['data']['id']}").status_code == 200

    def test_create_invalid(self, client):
        """Constraint violations come back as 422 with one entry per issue."""
        response = client.post("/api/crud/widgets", json={"data": {"name": ""}})
        assert response.status_code == 422
        errors = response.json()["detail"]["errors"]
        assert errors == [{"message": "Name is required", "code": "REQUIRED", "field": "name"}]

    def test_update(self, client):
        response = client.put("/api/crud/widgets/1", json={"data": {"status": "archived"}})
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "archived"

    def test_delete(self, client):
        assert client.delete("/api/crud/widgets/1").status_code == 200
        assert client.get("/api/crud/widgets/1").status_code == 404


class TestActions:
    def test_toggle(self, client):
        response = client.post("/api/crud/widgets/1/a/toggle_active")
        assert response.status_code == 200
        assert response.json()["record"]["active"] is False

    def test_unknown_action(self, client):
        assert client.post("/api/crud/widgets/1/a/explode").status_code == 404

    def test_unregistered_handler_is_server_error(self, client):
        assert client.post("/api/crud/widgets/1/a/notify", json={"payload": {}}).status_code == 500


class TestRelationships:
    def test_list_related(self, client):
        body = client.get("/api/crud/widgets/5/tags").json()
        assert body["count"] == 2
        assert sorted(r["name"] for r in body["rows"]) == ["blue", "red"]
        assert all(set(r) == {"id", "name"} for r in body["rows"])

    def test_list_related_accepts_list_params(self, client):
        body = client.get("/api/crud/widgets/5/tags", params={"sorts[name]": "asc"}).json()
        assert [r["name"] for r in body["rows"]] == ["blue", "red"]

    def test_through(self, client):
        body = client.get("/api/crud/widgets/5/categories").json()
        assert sorted(r["name"] for r in body["rows"]) == ["cool", "warm"]

    def test_unknown_relation(self, client):
        assert client.get("/api/crud/widgets/5/owners").status_code == 404

    def test_attach(self, client):
        response = client.post("/api/crud/widgets/2/tags", json={"ids": [1, 3]})
        assert response.json()["attached"] == [1, 3]

    def test_attach_requires_ids(self, client):
        assert client.post("/api/crud/widgets/2/tags", json={"ids": []}).status_code == 422

    def test_sync(self, client):
        body = client.put("/api/crud/widgets/5/tags", json={"ids": [3]}).json()
        assert body["attached"] == [3]
        assert body["detached"] == [1, 2]

    def test_detach(self, client):
        response = client.request("DELETE", "/api/crud/widgets/5/tags", json={"ids": [1]})
        assert response.json()["detached"] == 1
        assert client.get("/api/crud/widgets/5/tags").json()["count"] == 1

    def test_unregistered_target_is_server_error(self, db, config):
        store = SchemaStore([MappingSource({"widgets": schema_documents()["widgets"]})])
        engine = EntityEngine(store, ConnectionManager(db), config)
        with TestClient(create_app(engine)) as client:
            assert client.get("/api/crud/widgets/5/tags").status_code == 500


class TestConnectionSelection:
    """`{model}@{connection}` reads and writes through the named database."""

    @pytest.fixture
    def archive_client(self, store, db, config):
        archive = create_engine("sqlite://")
        with archive.begin() as conn:
            conn.execute(text(SCHEMA_DDL[0]))
            conn.execute(text(
                "INSERT INTO widgets (id, name, status, secret, active) "
                "VALUES (1, 'old widget', 'archived', 's', 1)"
            ))
        engine = EntityEngine(store, ConnectionManager(db, {"archive": archive}), config)
        with TestClient(create_app(engine)) as client:
            yield client
        archive.dispose()

    def test_list_from_named_connection(self, archive_client):
        body = archive_client.get("/api/crud/widgets@archive").json()
        assert body["count"] == 1
        assert body["rows"][0]["name"] == "old widget"
        assert archive_client.get("/api/crud/widgets").json()["count"] == 6

    def test_read_and_write_named_connection(self, archive_client):
        assert archive_client.get("/api/crud/widgets@archive/1").json()["data"]["name"] == "old widget"
        response = archive_client.post("/api/crud/widgets@archive", json={"data": {"name": "Cog"}})
        assert response.status_code == 201
        assert archive_client.get("/api/crud/widgets@archive").json()["count"] == 2
        assert archive_client.get("/api/crud/widgets").json()["count"] == 6

    def test_schema_reports_connection(self, archive_client):
        body = archive_client.get("/api/crud/widgets@archive/schema").json()
        assert body["model"] == "widgets"
        assert body["connection"] == "archive"

    def test_unknown_connection_is_server_error(self, archive_client):
        assert archive_client.get("/api/crud/widgets@missing").status_code == 500


class TestAuthorization:
    @pytest.fixture
    def guarded(self, store, db, config):
        engine = EntityEngine(store, ConnectionManager(db), config, PermissionSetAuthorizer())
        with TestClient(create_app(engine, get_principal=_principal_from_header)) as client:
            yield client

    def test_anonymous_is_denied(self, guarded):
        assert guarded.get("/api/crud/widgets").status_code == 403

    def test_declared_permission(self, guarded):
        response = guarded.get("/api/crud/widgets", headers={"X-Permissions": "view_widgets"})
        assert response.status_code == 200

    def test_action_permission(self, guarded):
        headers = {"X-Permissions": "view_widgets,update_widget_field"}
        assert guarded.post("/api/crud/widgets/2/a/publish", headers=headers).status_code == 403
        headers = {"X-Permissions": "publish_widgets"}
        assert guarded.post("/api/crud/widgets/2/a/publish", headers=headers).status_code == 200


class TestAppFromEnvironment:
    def test_engine_built_on_startup(self, tmp_path, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.setenv("ENTITYFORGE_SCHEMA_PATH", str(_SCHEMA_DIR))
        monkeypatch.setenv("ENTITYFORGE_DB_PATH", str(tmp_path / "data" / "test.db"))

        with TestClient(create_app()) as client:
            assert client.get("/api/crud").json() == {"models": ["categories", "tags", "widgets"]}
            body = client.get("/api/crud/widgets/schema", params={"context": "detail"}).json()
            keys = [a["key"] for a in body["actions"]]
            assert keys[:3] == ["create_action", "edit_action", "delete_action"]
        assert (tmp_path / "data").is_dir()
