"""Schema store: load, normalize, validate, parse, cache and resolve.

Caching policy:

* ("document", entity, connection) holds the parsed SchemaDocument. Loading
  it is single-flight per entity and connection, so however many context
  sets are requested concurrently, the sources are read once.
* ("resolved", entity, "<sorted contexts>", connection) holds a
  ResolvedSchema built from that shared document. It is single-flight per
  exact context set.

A request for {detail} while {detail, form} is loading therefore waits on
the same in-flight document load and then materializes its own view. It
never triggers a second upstream load.

Entity names may carry a connection as "users@archive". The connection
selects `<path>/archive/users.*` ahead of the default document and
overrides the connection the document declares. The connection is None
for a plain name.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from entityforge.actions.manager import ActionManager
from entityforge.core.config import EngineConfig
from entityforge.core.errors import NotFoundError
from entityforge.schema.cache import SchemaCache, SqlCacheBackend
from entityforge.schema.filter import filter_for_contexts
from entityforge.schema.normalizer import SchemaNormalizer
from entityforge.schema.parser import parse_document
from entityforge.schema.sources import SchemaSource, YamlFileSource, load_from_sources
from entityforge.schema.types import (
    Context,
    ResolvedSchema,
    SchemaDocument,
    context_key,
    parse_contexts,
    parse_model_ref,
)
from entityforge.schema.translator import SchemaTranslator
from entityforge.schema.validator import validate_document

logger = logging.getLogger(__name__)


class SchemaStore:
    """Resolves entity names to cached, context-filtered schemas."""

    def __init__(
        self,
        sources: list[SchemaSource],
        cache: SchemaCache | None = None,
        normalizer: SchemaNormalizer | None = None,
        action_manager: ActionManager | None = None,
        translator: SchemaTranslator | None = None,
    ):
        if not sources:
            raise ValueError("SchemaStore needs at least one schema source")
        self.sources = list(sources)
        # SchemaCache defines __len__, so an empty one is falsy
        self.cache = cache if cache is not None else SchemaCache()
        self.normalizer = normalizer or SchemaNormalizer()
        self.action_manager = action_manager or ActionManager()
        self.translator = translator

    @classmethod
    def from_config(cls, config: EngineConfig, database_url: str | None = None) -> SchemaStore:
        """Build a store reading YAML documents from config.schema_path.

        The external cache tier is used when config.cache_enabled is set and
        a database URL is given.
        """
        backend = None
        if config.cache_enabled and database_url:
            backend = SqlCacheBackend(database_url)
        cache = SchemaCache(backend=backend, ttl=config.cache_ttl, debug=config.debug_mode)
        return cls(
            [YamlFileSource(config.schema_path)],
            cache=cache,
            action_manager=ActionManager(config.permission_namespace),
        )

    def resolve(
        self,
        entity_name: str,
        contexts: str | Iterable[str] | frozenset[Context] | None = None,
        connection: str | None = None,
    ) -> ResolvedSchema:
        """Return the schema for an entity filtered to the requested contexts.

        Raises:
            NotFoundError: No source has a document for the entity
            ConfigurationError: The document is malformed
        """
        entity_name, connection = _split_ref(entity_name, connection)
        context_set = parse_contexts(contexts)
        key = ("resolved", entity_name, context_key(context_set), connection)
        return self.cache.get_or_load(
            key,
            lambda: filter_for_contexts(self.get_document(entity_name, connection), context_set),
        )

    def get_document(self, entity_name: str, connection: str | None = None) -> SchemaDocument:
        """Return the full parsed document (single-flight per entity and connection)."""
        entity_name, connection = _split_ref(entity_name, connection)
        return self.cache.get_or_load(
            ("document", entity_name, connection), lambda: self._load(entity_name, connection)
        )

    def has_entity(self, entity_name: str) -> bool:
        try:
            self.get_document(entity_name)
        except NotFoundError:
            return False
        return True

    def list_entities(self) -> list[str]:
        names: set[str] = set()
        for source in self.sources:
            names.update(source.list_entities())
        return sorted(names)

    def clear(self, entity_name: str | None = None) -> None:
        """Invalidate one entity (every connection), or everything when no name is given."""
        if entity_name is None:
            self.cache.clear_all()
        else:
            self.cache.clear(parse_model_ref(entity_name)[0])

    def _load(self, entity_name: str, connection: str | None) -> SchemaDocument:
        backend = self.cache.backend
        backend_key = entity_name if connection is None else f"{entity_name}@{connection}"
        normalized = backend.get(backend_key) if backend is not None else None

        if normalized is None:
            raw = load_from_sources(self.sources, entity_name, connection)
            if raw is None:
                raise NotFoundError(
                    f"Schema not found for model '{entity_name}'",
                    kind="entity",
                    name=entity_name,
                )
            normalized = self.normalizer.normalize(raw)
            validate_document(normalized, entity_name)
            if backend is not None:
                backend.set(backend_key, normalized, self.cache.ttl)

        if self.translator is not None:
            normalized = self.translator.translate(normalized)
        document = parse_document(normalized)
        if connection is not None:
            document.connection = connection
        self.action_manager.add_default_actions(document)
        logger.info(
            "Loaded schema for '%s' (table '%s', connection '%s')",
            entity_name, document.table, document.connection or "default",
        )
        return document


def _split_ref(entity_name: str, connection: str | None) -> tuple[str, str | None]:
    """An explicit connection wins over an "@connection" suffix."""
    name, suffix = parse_model_ref(entity_name)
    return name, connection or suffix
