"""FastAPI application factory.

Authentication is handled by the host application: whatever middleware it
installs is expected to put the caller on `request.state.principal`.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Callable

from fastapi import FastAPI, Request

from entityforge.api.router import create_entity_router
from entityforge.core.config import EngineConfig
from entityforge.engine import EntityEngine
from entityforge.persistence.config import DatabaseConfig
from entityforge.schema.validator import validate_schema_dir

logger = logging.getLogger(__name__)


def _principal_from_state(request: Request) -> Any:
    return getattr(request.state, "principal", None)


def create_app(
    engine: EntityEngine | None = None,
    get_principal: Callable[[Request], Any] | None = None,
) -> FastAPI:
    """Build the API. Without an engine, one is created from the environment on startup."""
    state: dict[str, EntityEngine | None] = {"engine": engine}

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize on startup, cleanup on shutdown."""
        owned = state["engine"] is None
        if owned:
            cwd = Path.cwd()
            base_path = cwd.parent if cwd.name == "backend" else cwd
            config = EngineConfig.from_env(base_path)

            # Report schema problems without blocking startup
            issues = validate_schema_dir(config.schema_path)
            for issue in issues:
                if issue.severity == "error":
                    logger.error("Schema error: %s", issue)
                else:
                    logger.warning("Schema warning: %s", issue)
            if issues:
                logger.warning(
                    "Schema validation: %d issue(s). Run 'entityforge schema validate' for details.",
                    len(issues),
                )

            db_config = DatabaseConfig.from_env(base_path)
            if db_config.is_sqlite:
                sqlite_path = db_config.url.replace("sqlite:///", "")
                if sqlite_path and sqlite_path != ":memory:":
                    Path(sqlite_path).parent.mkdir(parents=True, exist_ok=True)
            state["engine"] = EntityEngine.from_config(config, db_config)

        yield

        if owned and state["engine"] is not None:
            state["engine"].close()
            state["engine"] = None

    app = FastAPI(title="EntityForge API", lifespan=lifespan)
    app.include_router(create_entity_router(
        get_engine=lambda: state["engine"],
        get_principal=get_principal or _principal_from_state,
    ))

    @app.get("/api/crud")
    def list_models() -> dict[str, Any]:
        """Entity names with a schema document."""
        current = state["engine"]
        return {"models": current.store.list_entities() if current else []}

    return app
