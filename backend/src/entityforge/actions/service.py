"""Execution of schema-declared record actions."""

from __future__ import annotations

import logging
from typing import Any

from entityforge.actions.manager import ActionManager
from entityforge.actions.registry import ActionContext, ActionHandlerRegistry
from entityforge.auth.permissions import Authorizer, require_permission
from entityforge.core.errors import ConfigurationError, NotFoundError
from entityforge.entity.binder import EntityRecord
from entityforge.persistence.repository import EntityRepository
from entityforge.schema.types import ActionDefinition, ResolvedSchema

logger = logging.getLogger(__name__)


class ActionService:
    """Looks up, authorizes and runs a custom action on one record."""

    def __init__(
        self,
        repository: EntityRepository,
        authorizer: Authorizer,
        manager: ActionManager | None = None,
        services: Any = None,
    ):
        self.repository = repository
        self.authorizer = authorizer
        self.manager = manager or ActionManager()
        self.services = services

    def execute(
        self,
        schema: ResolvedSchema,
        record: EntityRecord,
        record_id: Any,
        key: str,
        principal: Any = None,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Run action `key` on a record.

        Raises:
            NotFoundError: Unknown action key or record
            AuthorizationDenied: The authorizer refused the action's permission
            ConfigurationError: The action cannot run server-side
        """
        action = schema.document.get_action(key)
        if action is None:
            logger.error(
                "Action '%s' not found for '%s' (available: %s)",
                key, schema.model, [a.key for a in schema.actions],
            )
            raise NotFoundError(
                f"Action '{key}' not found for model '{schema.model}'", kind="action", name=key
            )

        require_permission(self.authorizer, principal, self.manager.action_permission(schema, action))
        current = self.repository.get(record, record_id)

        result: dict[str, Any] | None = None
        if action.type == "field_update":
            current = self._field_update(action, record, record_id, current)
        elif action.type == "handler":
            result = self._run_handler(action, schema, current, principal, payload)
            current = self.repository.get(record, record_id)
        elif action.type == "delete":
            self.repository.delete(record, record_id)
        else:
            raise ConfigurationError(
                f"Action '{key}' of type '{action.type}' is handled client-side",
                entity=schema.model,
            )

        logger.info("Executed action '%s' on %s '%s'", key, schema.model, record_id)
        return {
            "action": key,
            "message": f"{action.label or key} completed",
            "record": None if action.type == "delete" else current.attributes,
            "result": result,
        }

    def _field_update(
        self, action: ActionDefinition, record: EntityRecord, record_id: Any, current: EntityRecord
    ) -> EntityRecord:
        if not action.field:
            raise ConfigurationError(f"Action '{action.key}' has no target field")
        if action.toggle:
            value = not bool(current.attributes.get(action.field))
        else:
            value = action.value
        return self.repository.set_field(record, record_id, action.field, value)

    def _run_handler(
        self,
        action: ActionDefinition,
        schema: ResolvedSchema,
        current: EntityRecord,
        principal: Any,
        payload: dict[str, Any] | None,
    ) -> dict[str, Any] | None:
        name = action.handler or action.key
        try:
            handler = ActionHandlerRegistry.get(name)
        except ValueError as e:
            raise ConfigurationError(str(e), entity=schema.model) from e
        return handler(ActionContext(
            entity_name=schema.model,
            record=dict(current.attributes),
            action=action,
            principal=principal,
            payload=payload,
            services=self.services,
        ))
