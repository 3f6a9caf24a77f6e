"""Permission resolution for entity actions.

The engine only ever produces a permission string. Whether that string
grants access is decided by an injected Authorizer; the engine never
inspects principals itself.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from entityforge.core.errors import AuthorizationDenied

if TYPE_CHECKING:
    from entityforge.schema.types import ResolvedSchema, SchemaDocument

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "entityforge"


def resolve_permission(
    schema: "SchemaDocument | ResolvedSchema",
    action: str,
    namespace: str = DEFAULT_NAMESPACE,
) -> str:
    """Map a logical action name to a permission string.

    Uses the schema's `permissions[action]` when declared, otherwise
    "<namespace>.<model>.<action>". Pure; never raises.
    """
    permissions = getattr(schema, "permissions", None) or {}
    declared = permissions.get(action)
    if isinstance(declared, str) and declared:
        return declared
    return f"{namespace}.{getattr(schema, 'model', '')}.{action}"


@runtime_checkable
class Authorizer(Protocol):
    """Authorization collaborator: decides whether a principal holds a permission."""

    def check_access(self, principal: Any, permission: str) -> bool: ...


class AllowAllAuthorizer:
    """Grants everything. For development setups with auth handled upstream."""

    def check_access(self, principal: Any, permission: str) -> bool:
        return True


class PermissionSetAuthorizer:
    """Grants a permission when the principal carries it.

    The principal is either an object with a `permissions` collection (and
    optionally a truthy `superuser` attribute), or a mapping with the same
    keys, or None (which is denied everything).
    """

    def check_access(self, principal: Any, permission: str) -> bool:
        if principal is None:
            return False
        if isinstance(principal, dict):
            superuser = principal.get("superuser", False)
            granted = principal.get("permissions") or ()
        else:
            superuser = getattr(principal, "superuser", False)
            granted = getattr(principal, "permissions", None) or ()
        return bool(superuser) or permission in granted


def require_permission(authorizer: Authorizer, principal: Any, permission: str) -> None:
    """Ask the authorizer and raise AuthorizationDenied on refusal."""
    if not authorizer.check_access(principal, permission):
        logger.warning("Access denied: permission '%s'", permission)
        raise AuthorizationDenied(permission)
