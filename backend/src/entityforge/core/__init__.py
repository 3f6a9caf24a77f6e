"""Core types, errors and configuration shared by every engine layer."""

from entityforge.core.config import EngineConfig
from entityforge.core.errors import (
    AuthorizationDenied,
    ConfigurationError,
    EntityForgeError,
    NotFoundError,
    RecordValidationError,
)
from entityforge.core.types import FIELD_TYPES, FieldType, get_cast, get_field_type

__all__ = [
    "EngineConfig",
    "AuthorizationDenied",
    "ConfigurationError",
    "EntityForgeError",
    "NotFoundError",
    "RecordValidationError",
    "FIELD_TYPES",
    "FieldType",
    "get_cast",
    "get_field_type",
]
