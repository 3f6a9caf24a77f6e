"""Engine configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got '{value}'") from None


@dataclass
class EngineConfig:
    """Runtime settings for the schema store, pager and permission resolver.

    Attributes:
        debug_mode: Emit debug-level tracing for cache, binder and resolver
        default_page_size: Page size used when a request omits or garbles it
        max_page_size: Upper bound for any requested page size
        schema_path: Directory holding schema documents
        cache_enabled: Use the external cache tier in addition to memory
        cache_ttl: External cache TTL in seconds
        permission_namespace: Prefix of generated fallback permission strings
    """

    debug_mode: bool = False
    default_page_size: int = 25
    max_page_size: int = 100
    schema_path: Path = Path("metadata/schemas")
    cache_enabled: bool = False
    cache_ttl: int = 3600
    permission_namespace: str = "entityforge"

    def __post_init__(self) -> None:
        if self.max_page_size < 1:
            raise ValueError("max_page_size must be at least 1")
        if self.default_page_size < 1:
            raise ValueError("default_page_size must be at least 1")
        # A default above the ceiling would be clamped on every request
        self.default_page_size = min(self.default_page_size, self.max_page_size)
        self.schema_path = Path(self.schema_path)

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> EngineConfig:
        """Create config from ENTITYFORGE_* environment variables.

        The schema path resolves in this order:
        1. ENTITYFORGE_SCHEMA_PATH env var
        2. {base_path}/metadata/schemas
        3. metadata/schemas relative to the working directory
        """
        schema_path = os.environ.get("ENTITYFORGE_SCHEMA_PATH")
        if schema_path:
            path = Path(schema_path)
        elif base_path:
            path = base_path / "metadata" / "schemas"
        else:
            path = Path("metadata/schemas")

        return cls(
            debug_mode=_env_bool("ENTITYFORGE_DEBUG_MODE", False),
            default_page_size=_env_int("ENTITYFORGE_DEFAULT_PAGE_SIZE", 25),
            max_page_size=_env_int("ENTITYFORGE_MAX_PAGE_SIZE", 100),
            schema_path=path,
            cache_enabled=_env_bool("ENTITYFORGE_CACHE_ENABLED", False),
            cache_ttl=_env_int("ENTITYFORGE_CACHE_TTL", 3600),
            permission_namespace=os.environ.get(
                "ENTITYFORGE_PERMISSION_NAMESPACE", "entityforge"
            ),
        )
