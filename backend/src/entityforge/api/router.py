"""Generic CRUD endpoints for every schema-described entity.

The `{model}` path segment may select a database connection as
`users@archive`; the connection overrides the one the schema declares.
"""

import logging
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from entityforge.core.errors import (
    AuthorizationDenied,
    ConfigurationError,
    NotFoundError,
    RecordValidationError,
)
from entityforge.engine import EntityEngine
from entityforge.query.pager import ListParams

logger = logging.getLogger(__name__)


class RecordRequest(BaseModel):
    """Request body for create and update operations."""
    data: dict[str, Any]


class RelatedIdsRequest(BaseModel):
    """Request body for attaching or syncing related records."""
    ids: list[Any] = Field(min_length=1)


class SyncRequest(BaseModel):
    """Request body for replacing the linked set (empty list unlinks everything)."""
    ids: list[Any] = Field(default_factory=list)


class DetachRequest(BaseModel):
    """Request body for detaching related records (all when ids is omitted)."""
    ids: list[Any] | None = None


class ActionRequest(BaseModel):
    """Optional payload forwarded to an action handler."""
    payload: dict[str, Any] | None = None


def _call(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run an engine call, translating engine errors to HTTP errors."""
    try:
        return fn(*args, **kwargs)
    except NotFoundError as e:
        raise HTTPException(404, str(e)) from e
    except AuthorizationDenied as e:
        raise HTTPException(403, str(e)) from e
    except RecordValidationError as e:
        raise HTTPException(422, {"message": str(e), "errors": [i.to_dict() for i in e.issues]}) from e
    except ConfigurationError as e:
        logger.error("Configuration error (entity=%s): %s", e.entity, e)
        raise HTTPException(500, str(e)) from e


def create_entity_router(
    get_engine: Callable[[], EntityEngine | None],
    get_principal: Callable[[Request], Any],
) -> APIRouter:
    """Create the CRUD router with injected dependencies."""
    router = APIRouter(prefix="/api/crud", tags=["crud"])

    def engine() -> EntityEngine:
        current = get_engine()
        if current is None:
            raise HTTPException(500, "Engine not initialized")
        return current

    @router.get("/{model}")
    def list_records(model: str, http_request: Request) -> dict[str, Any]:
        """List records: sorts[field], filters[field], search, page, size."""
        params = ListParams.from_query_params(http_request.query_params)
        result = _call(engine().list, model, params, get_principal(http_request))
        return result.to_envelope()

    @router.get("/{model}/schema")
    def get_schema(
        model: str, http_request: Request, context: str | None = None, scope: str | None = None
    ) -> dict[str, Any]:
        """Schema filtered to a comma-separated context list (default: all).

        `scope` keeps only the actions declared for that scope.
        """
        return _call(engine().schema_for, model, context, get_principal(http_request), scope)

    @router.post("/{model}", status_code=201)
    def create_record(model: str, request: RecordRequest, http_request: Request) -> dict[str, Any]:
        data = _call(engine().create, model, request.data, get_principal(http_request))
        return {"message": f"Created {model} record", "data": data}

    @router.get("/{model}/{record_id}")
    def read_record(model: str, record_id: str, http_request: Request) -> dict[str, Any]:
        return {"data": _call(engine().read, model, record_id, get_principal(http_request))}

    @router.put("/{model}/{record_id}")
    def update_record(
        model: str, record_id: str, request: RecordRequest, http_request: Request
    ) -> dict[str, Any]:
        data = _call(engine().update, model, record_id, request.data, get_principal(http_request))
        return {"message": f"Updated {model} record", "data": data}

    @router.delete("/{model}/{record_id}")
    def delete_record(model: str, record_id: str, http_request: Request) -> dict[str, Any]:
        _call(engine().delete, model, record_id, get_principal(http_request))
        return {"message": f"Deleted {model} record"}

    @router.post("/{model}/{record_id}/a/{action}")
    def run_action(
        model: str,
        record_id: str,
        action: str,
        http_request: Request,
        request: ActionRequest | None = None,
    ) -> dict[str, Any]:
        payload = request.payload if request else None
        return _call(
            engine().run_action, model, record_id, action, get_principal(http_request), payload
        )

    @router.get("/{model}/{record_id}/{relation}")
    def list_related(model: str, record_id: str, relation: str, http_request: Request) -> dict[str, Any]:
        """List records related to one record; same parameters and envelope as list."""
        params = ListParams.from_query_params(http_request.query_params)
        result = _call(
            engine().list_related, model, record_id, relation, params, get_principal(http_request)
        )
        return result.to_envelope()

    @router.post("/{model}/{record_id}/{relation}")
    def attach_related(
        model: str, record_id: str, relation: str, request: RelatedIdsRequest, http_request: Request
    ) -> dict[str, Any]:
        added = _call(
            engine().attach, model, record_id, relation, request.ids, get_principal(http_request)
        )
        return {"message": f"Attached {len(added)} {relation}", "attached": added}

    @router.put("/{model}/{record_id}/{relation}")
    def sync_related(
        model: str, record_id: str, relation: str, request: SyncRequest, http_request: Request
    ) -> dict[str, Any]:
        changes = _call(
            engine().sync, model, record_id, relation, request.ids, get_principal(http_request)
        )
        return {"message": f"Synced {relation}", **changes}

    @router.delete("/{model}/{record_id}/{relation}")
    def detach_related(
        model: str,
        record_id: str,
        relation: str,
        http_request: Request,
        request: DetachRequest | None = None,
    ) -> dict[str, Any]:
        ids = request.ids if request else None
        removed = _call(
            engine().detach, model, record_id, relation, ids, get_principal(http_request)
        )
        return {"message": f"Detached {removed} {relation}", "detached": removed}

    return router
