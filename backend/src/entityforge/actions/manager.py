"""Default and derived schema actions.

Runs once per parsed SchemaDocument, before the document is cached, so every
consumer sees the same action list.
"""

from __future__ import annotations

import logging

from entityforge.auth.permissions import resolve_permission
from entityforge.schema.types import ActionDefinition, ResolvedSchema, SchemaDocument

logger = logging.getLogger(__name__)

# (action key, permission action, type, label)
_DEFAULT_ACTIONS = [
    ("create_action", "create", "form", "Create"),
    ("edit_action", "update", "form", "Edit"),
    ("delete_action", "delete", "delete", "Delete"),
]


class ActionManager:
    """Adds default CRUD actions and fills in toggle action defaults."""

    def __init__(self, namespace: str = "entityforge"):
        self.namespace = namespace

    def add_default_actions(self, document: SchemaDocument) -> SchemaDocument:
        """Prepend create/edit/delete actions for declared permissions.

        A default is only added when the schema declares the matching
        permission and no action with that key exists. `default_actions:
        false` in the document disables this entirely.
        """
        if not document.default_actions:
            logger.debug("Default actions disabled for '%s'", document.model)
            return document

        document.actions = self.normalize_toggle_actions(document)
        existing = {a.key for a in document.actions}

        defaults = []
        for key, permission_action, action_type, label in _DEFAULT_ACTIONS:
            if key in existing or permission_action not in document.permissions:
                continue
            defaults.append(ActionDefinition(
                key=key,
                label=label,
                type=action_type,
                permission=document.permissions[permission_action],
                confirm=f"Delete this {document.singular_title}?" if action_type == "delete" else None,
            ))

        if defaults:
            document.actions = defaults + document.actions
            logger.debug(
                "Added default actions %s to '%s'",
                [a.key for a in defaults], document.model,
            )
        return document

    def normalize_toggle_actions(self, document: SchemaDocument) -> list[ActionDefinition]:
        """Give toggle field_update actions a confirmation prompt."""
        for action in document.actions:
            if action.type != "field_update" or not action.toggle or not action.field:
                continue
            if action.confirm is None:
                target = document.get_field(action.field)
                label = target.label if target else action.field.replace("_", " ").capitalize()
                action.confirm = f"Toggle {label}?"
                action.extra.setdefault("field_label", label)
        return document.actions

    def filter_by_scope(self, actions: list[ActionDefinition], scope: str) -> list[ActionDefinition]:
        """Actions declared for a scope (e.g. "list" or "detail"). Unscoped actions are excluded."""
        return [a for a in actions if scope in a.scope]

    def action_permission(self, schema: SchemaDocument | ResolvedSchema, action: ActionDefinition) -> str:
        """Permission guarding a custom action: its own, else the entity's update permission."""
        if action.permission:
            return action.permission
        return resolve_permission(schema, "update", self.namespace)
