"""EntityForge: schema-driven dynamic entity and query engine."""

from entityforge.core.config import EngineConfig
from entityforge.engine import EntityEngine
from entityforge.schema.store import SchemaStore

__version__ = "0.1.0"

__all__ = ["EngineConfig", "EntityEngine", "SchemaStore", "__version__"]
