"""Permission resolution and the authorization collaborator interface."""

from entityforge.auth.permissions import (
    DEFAULT_NAMESPACE,
    AllowAllAuthorizer,
    Authorizer,
    PermissionSetAuthorizer,
    require_permission,
    resolve_permission,
)
from entityforge.auth.types import Principal

__all__ = [
    "DEFAULT_NAMESPACE",
    "AllowAllAuthorizer",
    "Authorizer",
    "PermissionSetAuthorizer",
    "Principal",
    "require_permission",
    "resolve_permission",
]
