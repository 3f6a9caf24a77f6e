"""EntityEngine: one entry point wiring the store, binder, resolver and pager.

Every public method follows the same flow: resolve the schema for the
needed context, ask the authorizer for the resolved permission, bind a
fresh EntityRecord, then read or write through the repository.
"""

from __future__ import annotations

import logging
from typing import Any

from entityforge.actions.manager import ActionManager
from entityforge.actions.service import ActionService
from entityforge.auth.permissions import (
    AllowAllAuthorizer,
    Authorizer,
    require_permission,
    resolve_permission,
)
from entityforge.core.config import EngineConfig
from entityforge.core.errors import NotFoundError
from entityforge.entity.binder import EntityBinder, EntityRecord
from entityforge.entity.relationships import QueryRoot, RelationshipResolver, RelationshipService
from entityforge.persistence.config import ConnectionManager, DatabaseConfig
from entityforge.persistence.repository import EntityRepository
from entityforge.query.pager import EntityPager, ListParams, ListResult
from entityforge.schema.store import SchemaStore
from entityforge.schema.types import Context, ManyToMany, ResolvedSchema

logger = logging.getLogger(__name__)


class EntityEngine:
    def __init__(
        self,
        store: SchemaStore,
        connections: ConnectionManager,
        config: EngineConfig | None = None,
        authorizer: Authorizer | None = None,
    ):
        self.config = config or EngineConfig()
        self.store = store
        self.connections = connections
        self.authorizer = authorizer or AllowAllAuthorizer()
        self.binder = EntityBinder(debug=self.config.debug_mode)
        self.resolver = RelationshipResolver(debug=self.config.debug_mode)
        self.relationships = RelationshipService(store, self.binder, self.resolver)
        self.pager = EntityPager(self.config)
        self.repository = EntityRepository(connections, self.pager)
        self.action_manager = ActionManager(self.config.permission_namespace)
        self.actions = ActionService(self.repository, self.authorizer, self.action_manager, services=self)

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        db_config: DatabaseConfig,
        authorizer: Authorizer | None = None,
    ) -> EntityEngine:
        store = SchemaStore.from_config(config, db_config.sqlalchemy_url)
        return cls(store, ConnectionManager.from_config(db_config), config, authorizer)

    def close(self) -> None:
        self.connections.dispose()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def permission(self, schema: ResolvedSchema, action: str) -> str:
        return resolve_permission(schema, action, self.config.permission_namespace)

    def authorize(self, schema: ResolvedSchema, action: str, principal: Any) -> None:
        require_permission(self.authorizer, principal, self.permission(schema, action))

    def bind(self, model: str, contexts: Any = Context.LIST.value) -> tuple[ResolvedSchema, EntityRecord]:
        schema = self.store.resolve(model, contexts)
        return schema, self.binder.bind(schema)

    def _present(self, detail: ResolvedSchema, record: EntityRecord) -> dict[str, Any]:
        """Row values restricted to the detail context (plus the primary key)."""
        names = [record.primary_key] + [
            f.name for f in detail.fields_for(Context.DETAIL) if f.name != record.primary_key
        ]
        return {name: record.attributes.get(name) for name in names if name in record.attributes}

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def schema_for(
        self, model: str, contexts: Any = None, principal: Any = None, scope: str | None = None
    ) -> dict[str, Any]:
        """Context-filtered schema as an API dict.

        With a scope ("list", "detail", ...) only the actions declared for
        that scope are included.
        """
        schema = self.store.resolve(model, contexts)
        self.authorize(schema, "read", principal)
        actions = schema.actions
        if scope:
            actions = self.action_manager.filter_by_scope(actions, scope)
        data = schema.to_dict()
        data["actions"] = [
            {**a.to_dict(), "permission": self.action_manager.action_permission(schema, a)}
            for a in actions
        ]
        return data

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list(self, model: str, params: ListParams | None = None, principal: Any = None) -> ListResult:
        schema, record = self.bind(model, Context.LIST.value)
        self.authorize(schema, "read", principal)
        return self.repository.list(QueryRoot.for_record(record), params or ListParams())

    def list_related(
        self,
        model: str,
        record_id: Any,
        relation: str,
        params: ListParams | None = None,
        principal: Any = None,
    ) -> ListResult:
        """List the rows reachable from one record through a named relationship."""
        schema, record = self.bind(model, Context.DETAIL.value)
        self.authorize(schema, "read", principal)
        source = self.repository.get(record, record_id)
        root = self.relationships.resolve_named(source, source.key, relation)
        return self.repository.list(root, params or ListParams())

    def read(self, model: str, record_id: Any, principal: Any = None) -> dict[str, Any]:
        schema, record = self.bind(model, Context.DETAIL.value)
        self.authorize(schema, "read", principal)
        return self._present(schema, self.repository.get(record, record_id))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, model: str, data: dict[str, Any], principal: Any = None) -> dict[str, Any]:
        schema, record = self.bind(model, "form,detail")
        self.authorize(schema, "create", principal)
        return self._present(schema, self.repository.create(record, data))

    def update(self, model: str, record_id: Any, data: dict[str, Any], principal: Any = None) -> dict[str, Any]:
        schema, record = self.bind(model, "form,detail")
        self.authorize(schema, "update", principal)
        return self._present(schema, self.repository.update(record, record_id, data))

    def delete(self, model: str, record_id: Any, principal: Any = None) -> None:
        schema, record = self.bind(model, Context.DETAIL.value)
        self.authorize(schema, "delete", principal)
        self.repository.delete(record, record_id)

    def run_action(
        self,
        model: str,
        record_id: Any,
        key: str,
        principal: Any = None,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        schema, record = self.bind(model, Context.DETAIL.value)
        result = self.actions.execute(schema, record, record_id, key, principal, payload)
        if result["record"] is not None:
            result["record"] = {
                k: v for k, v in result["record"].items()
                if k == record.primary_key or k in schema.fields
            }
        return result

    # ------------------------------------------------------------------
    # Pivot maintenance
    # ------------------------------------------------------------------

    def _pivot_relationship(self, schema: ResolvedSchema, relation: str) -> ManyToMany:
        relationship = schema.document.get_relationship(relation)
        if not isinstance(relationship, ManyToMany):
            raise NotFoundError(
                f"Many-to-many relationship '{relation}' not found for model '{schema.model}'",
                kind="relationship",
                name=relation,
            )
        return relationship

    def attach(
        self, model: str, record_id: Any, relation: str, ids: list[Any], principal: Any = None
    ) -> list[Any]:
        schema, record = self.bind(model, Context.DETAIL.value)
        self.authorize(schema, "update", principal)
        return self.repository.attach(record, record_id, self._pivot_relationship(schema, relation), ids)

    def detach(
        self, model: str, record_id: Any, relation: str, ids: list[Any] | None, principal: Any = None
    ) -> int:
        schema, record = self.bind(model, Context.DETAIL.value)
        self.authorize(schema, "update", principal)
        return self.repository.detach(record, record_id, self._pivot_relationship(schema, relation), ids)

    def sync(
        self, model: str, record_id: Any, relation: str, ids: list[Any], principal: Any = None
    ) -> dict[str, list[Any]]:
        schema, record = self.bind(model, Context.DETAIL.value)
        self.authorize(schema, "update", principal)
        return self.repository.sync(record, record_id, self._pivot_relationship(schema, relation), ids)
