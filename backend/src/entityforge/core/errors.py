"""Exception taxonomy for the entity engine.

NotFoundError and AuthorizationDenied are surfaced to callers as-is.
ConfigurationError means the schema for an entity is unusable until fixed.
Bad sort/filter entries are never raised; they are stripped and logged.
"""


class EntityForgeError(Exception):
    """Base class for all engine errors."""


class NotFoundError(EntityForgeError):
    """Unknown entity, relationship, detail, action or record."""

    def __init__(self, message: str, *, kind: str = "entity", name: str | None = None):
        super().__init__(message)
        self.kind = kind
        self.name = name


class ConfigurationError(EntityForgeError):
    """Malformed schema or a relationship that cannot be resolved."""

    def __init__(self, message: str, *, entity: str | None = None):
        super().__init__(message)
        self.entity = entity


class AuthorizationDenied(EntityForgeError):
    """The authorization collaborator refused a permission."""

    def __init__(self, permission: str, message: str | None = None):
        super().__init__(message or f"Access denied: '{permission}' required")
        self.permission = permission


class RecordValidationError(EntityForgeError):
    """Input for a create or update violates field constraints."""

    def __init__(self, issues: list):
        super().__init__("; ".join(i.message for i in issues) or "Invalid record")
        self.issues = issues
