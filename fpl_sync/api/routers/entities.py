"""Read and sync endpoints, one router per entity kind.

    GET  /{entity}                 collection (optional scope / secondary_scope)
    GET  /{entity}/{pointer}       singular pointers, e.g. /events/current
    GET  /{entity}/{id}            one record (scoped kinds need ?scope=)
    POST /{entity}/sync            enqueue a sync job, 202 with the job handle
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Path, Query

from fpl_sync.api.deps import ContainerDep, SchedulerDep
from fpl_sync.api.errors import not_found, validation_error
from fpl_sync.api.schemas import DataResponse, JobAccepted, SyncRequest
from fpl_sync.entities import REGISTRY, EntitySpec
from fpl_sync.jobs import COORDINATOR_TAG, JobSource
from fpl_sync.sync import SyncOperation

# No upstream "all tournaments" listing exists.
_SYNC_REQUIRES_SCOPE = {"tournament_entries"}

ScopeQuery = Annotated[str | None, Query(max_length=32, description="Event id, tournament id or ISO date")]
SecondaryQuery = Annotated[str | None, Query(max_length=32, description="Tournament id")]


def coerce_scopes(
    spec: EntitySpec,
    scope: Any,
    secondary_scope: Any,
    allow_secondary_only: bool = False,
) -> tuple[Any, Any]:
    """Validate and convert raw scope parameters for one kind.

    Raises:
        APIError: kind VALIDATION (400) on unsupported or malformed scopes
    """
    if scope is not None and not spec.scope_field:
        raise validation_error(f"{spec.path} does not accept a scope")
    if secondary_scope is not None and not spec.secondary_scope_field:
        raise validation_error(f"{spec.path} does not accept a secondary_scope")
    if secondary_scope is not None and scope is None and not allow_secondary_only:
        raise validation_error("secondary_scope requires scope")
    try:
        scope_value = spec.coerce(spec.scope_field, scope) if scope is not None else None
        secondary_value = (
            spec.coerce(spec.secondary_scope_field, secondary_scope) if secondary_scope is not None else None
        )
    except ValueError as e:
        raise validation_error(f"Invalid scope for {spec.path}: {e}") from e
    return scope_value, secondary_value


def build_entity_router(spec: EntitySpec) -> APIRouter:
    router = APIRouter(prefix=f"/{spec.path}", tags=[spec.path])

    def get_operation(container: ContainerDep) -> SyncOperation:
        return container.operations[spec.kind]

    OperationDep = Annotated[SyncOperation, Depends(get_operation)]

    @router.get("", response_model=DataResponse, response_model_exclude_none=True)
    async def list_records(op: OperationDep, scope: ScopeQuery = None, secondary_scope: SecondaryQuery = None):
        scope_value, secondary_value = coerce_scopes(spec, scope, secondary_scope)
        records = await op.read(scope_value, secondary_value)
        return {"data": [spec.to_dict(r) for r in records], "count": len(records)}

    @router.post("/sync", status_code=202, response_model=JobAccepted)
    async def trigger_sync(scheduler: SchedulerDep, body: SyncRequest | None = None):
        """Enqueue a sync; an equivalent pending or recent job is returned instead of a new one."""
        body = body or SyncRequest()
        scope, secondary = coerce_scopes(spec, body.scope, body.secondary_scope, allow_secondary_only=True)
        if scope is None and spec.kind in _SYNC_REQUIRES_SCOPE:
            raise validation_error(f"scope is required to sync {spec.path}")

        tag = COORDINATOR_TAG if spec.secondary_scope_field and secondary is None else None
        handle = scheduler.enqueue(spec.kind, scope, secondary, source=JobSource.MANUAL, tag=tag)
        status = scheduler.status(handle.id)
        return {
            "data": {
                "id": handle.id,
                "kind": handle.kind,
                "deduplicated": handle.deduplicated,
                "status": status.value if status else None,
            }
        }

    for name in spec.pointers:
        _add_pointer_route(router, spec, name, OperationDep)

    @router.get("/{member_id}", response_model=DataResponse, response_model_exclude_none=True)
    async def get_record(
        op: OperationDep,
        member_id: str = Path(..., max_length=64),
        scope: ScopeQuery = None,
        secondary_scope: SecondaryQuery = None,
    ):
        scope_value, secondary_value = coerce_scopes(spec, scope, secondary_scope)
        try:
            key = spec.build_key(member_id, scope_value, secondary_value)
        except ValueError as e:
            raise validation_error(str(e)) from e
        record = await op.read_one(key)
        return {"data": spec.to_dict(record)}

    return router


def _add_pointer_route(router: APIRouter, spec: EntitySpec, name: str, operation_dep: Any) -> None:
    @router.get(f"/{name}", response_model=DataResponse, response_model_exclude_none=True, name=f"{spec.kind}_{name}")
    async def get_pointer(op: operation_dep):
        record = await op.read_pointer(name)
        if record is None:
            raise not_found(f"No {name} {spec.kind.rstrip('s')}")
        return {"data": spec.to_dict(record)}


routers = [build_entity_router(spec) for spec in REGISTRY.values()]
