"""Translate message keys found in schema documents.

Labels, titles and action text may be written as translation keys such as
`WIDGET.NAME` or `ACTION.PUBLISH.CONFIRM`. A translator resolves them
against a catalog before the document is parsed:

    translator = SchemaTranslator({"WIDGET.NAME": "Widget name"})
    store = SchemaStore([YamlFileSource("metadata/schemas")], translator=translator)

Strings that do not look like keys are left alone. A key the catalog does
not know, or whose template came back with empty placeholders, stays a key
so a client with more context can translate it.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from typing import Any

logger = logging.getLogger(__name__)

# Upper-case words joined by dots, with at least one dot
TRANSLATION_KEY = re.compile(r"^[A-Z][A-Z0-9_.]+\.[A-Z0-9_.]+$")

# Signs that a placeholder was interpolated with nothing
_EMPTY_PLACEHOLDER = re.compile(r"\(\s*\)|<strong>\s+\(|>\s{2,}<|\s{2,}")


class SchemaTranslator:
    """Resolves translation keys in a normalized schema dict.

    Args:
        catalog: A key -> text mapping, or a callable returning the text
                 for a key (returning the key itself when unknown)
    """

    def __init__(self, catalog: Mapping[str, str] | Callable[[str], str]):
        if callable(catalog):
            self._lookup = catalog
        else:
            self._lookup = lambda key: catalog.get(key, key)

    def translate(self, schema: dict[str, Any]) -> dict[str, Any]:
        """Return a copy of the document with every translatable string resolved."""
        return self._translate(schema)

    def _translate(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: self._translate(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._translate(v) for v in value]
        if isinstance(value, str):
            return self.translate_value(value)
        return value

    def translate_value(self, value: str) -> str:
        if not TRANSLATION_KEY.match(value):
            return value

        translated = self._lookup(value)
        if translated == value:
            logger.debug("Translation key not found: %s", value)
            return value
        if _EMPTY_PLACEHOLDER.search(translated):
            logger.debug("Translation of %s has empty placeholders, keeping the key", value)
            return value
        return translated
