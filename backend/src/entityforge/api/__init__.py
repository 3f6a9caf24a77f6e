"""HTTP adapter."""

from entityforge.api.app import create_app
from entityforge.api.router import create_entity_router

__all__ = ["create_app", "create_entity_router"]
