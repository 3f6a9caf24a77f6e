"""Runtime entity binding and relationship resolution."""

from entityforge.entity.binder import UNBOUND_TABLE, EntityBinder, EntityRecord
from entityforge.entity.relationships import QueryRoot, RelationshipResolver, RelationshipService

__all__ = [
    "UNBOUND_TABLE",
    "EntityBinder",
    "EntityRecord",
    "QueryRoot",
    "RelationshipResolver",
    "RelationshipService",
]
