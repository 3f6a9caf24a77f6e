"""Persistence layer - database configuration, CRUD and pivot maintenance."""

from entityforge.persistence.config import ConnectionManager, DatabaseConfig, create_engine
from entityforge.persistence.repository import EntityRepository
from entityforge.persistence.validation import FieldIssue, validate_record

__all__ = [
    "ConnectionManager",
    "DatabaseConfig",
    "EntityRepository",
    "FieldIssue",
    "create_engine",
    "validate_record",
]
