"""Schema loading, normalization, caching and context resolution.

Import SchemaStore from entityforge.schema.store.
"""

from entityforge.schema.cache import CacheBackend, SchemaCache, SqlCacheBackend
from entityforge.schema.filter import filter_for_contexts
from entityforge.schema.normalizer import SchemaNormalizer
from entityforge.schema.parser import parse_document
from entityforge.schema.sources import MappingSource, SchemaSource, YamlFileSource
from entityforge.schema.types import (
    ALL_CONTEXTS,
    ActionDefinition,
    Context,
    DetailDefinition,
    FieldDefinition,
    ManyToMany,
    ManyToManyThrough,
    OneToMany,
    RelationshipDefinition,
    RelationshipKind,
    ResolvedSchema,
    SchemaDocument,
    parse_contexts,
)
from entityforge.schema.validator import SchemaIssue, validate_document, validate_schema_dir

__all__ = [
    "ALL_CONTEXTS",
    "ActionDefinition",
    "CacheBackend",
    "Context",
    "DetailDefinition",
    "FieldDefinition",
    "ManyToMany",
    "ManyToManyThrough",
    "MappingSource",
    "OneToMany",
    "RelationshipDefinition",
    "RelationshipKind",
    "ResolvedSchema",
    "SchemaCache",
    "SchemaDocument",
    "SchemaIssue",
    "SchemaNormalizer",
    "SchemaSource",
    "SqlCacheBackend",
    "YamlFileSource",
    "filter_for_contexts",
    "parse_contexts",
    "parse_document",
    "validate_document",
    "validate_schema_dir",
]
