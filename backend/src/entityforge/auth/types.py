"""Principal type passed to the authorization collaborator."""

from dataclasses import dataclass, field


@dataclass
class Principal:
    """The caller an operation runs on behalf of.

    Attributes:
        user_id: Identifier of the authenticated user (None if anonymous)
        permissions: Permission strings granted to the user
        superuser: Grants every permission
    """

    user_id: str | None = None
    permissions: frozenset[str] = field(default_factory=frozenset)
    superuser: bool = False
