"""
FastAPI endpoints over the filter engine.
"""

from typing import Any, Dict, List, Optional

import jsonschema
from fastapi import APIRouter, Body, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from ..engine import FilterEngine
from ..errors import FilterValidationError, StoreError
from ..filters import parse_definition_json, parse_filter_json, parse_instance_json
from ..predicates import Predicate, generate_predicate
from ..settings import Settings
from ..store import publish_filter, to_query_string
from ..validation import validate_filter

router = APIRouter(tags=["filters"])


def get_engine(request: Request) -> FilterEngine:
    return request.app.state.engine


def get_store(request: Request):
    return request.app.state.store


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


class PredicateRequest(BaseModel):
    """Request model for compiling one definition against a value."""

    definition: Dict[str, Any]
    value: Any = None
    rows: Optional[List[Any]] = None


class ValueRequest(BaseModel):
    value: Any = None


class RowsRequest(BaseModel):
    rows: List[Any]


class ActivationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_active: bool = Field(alias="isActive")


def _store_error(e: StoreError) -> HTTPException:
    status = 404 if e.status_code == 404 else 502
    return HTTPException(status_code=status, detail=e.message)


def _describe(predicate: Predicate) -> Dict[str, Any]:
    return {
        "serverParams": predicate.server_params,
        "queryString": to_query_string(predicate.server_params),
        "hasClientPredicate": predicate.client_predicate is not None,
    }


@router.get("/healthz")
def health(engine: FilterEngine = Depends(get_engine)):
    return {
        "ok": True,
        "instances": len(engine.registered_instances),
        "targets": len(engine.targets),
    }


@router.post("/validate")
def validate(
    payload: Dict[str, Any] = Body(..., description="Filter JSON"),
    settings: Settings = Depends(get_settings),
):
    try:
        flt = parse_filter_json(payload, validate=True)
    except jsonschema.ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    errors = validate_filter(flt, max_depth=settings.max_tree_depth)
    return {"valid": not errors, "errors": [e.to_dict() for e in errors]}


@router.post("/predicate")
def compile_predicate(request: PredicateRequest):
    """
    Compile a definition against a value and return its server params.
    When rows are supplied they are filtered with the client predicate.
    """
    try:
        definition = parse_definition_json(request.definition, validate=True)
    except jsonschema.ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    predicate = generate_predicate(definition, request.value)
    out = _describe(predicate)
    if request.rows is not None:
        out["rows"] = predicate.filter_rows(request.rows)
    return out


@router.post("/instances", status_code=201)
def register_instance(
    payload: Dict[str, Any] = Body(..., description="FilterInstance JSON"),
    engine: FilterEngine = Depends(get_engine),
):
    try:
        instance = parse_instance_json(payload, validate=True)
        engine.register_instance(instance)
    except jsonschema.ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return instance.to_dict()


@router.patch("/instances/{instance_id}")
async def set_instance_active(
    instance_id: str,
    request: ActivationRequest,
    engine: FilterEngine = Depends(get_engine),
):
    try:
        refreshed = await engine.set_instance_active(instance_id, request.is_active)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown instance: {instance_id}")
    except StoreError as e:
        raise _store_error(e)
    return {"id": instance_id, "isActive": request.is_active, "affectedTargets": refreshed}


@router.put("/values/{filter_id}")
async def set_value(
    filter_id: str,
    request: ValueRequest,
    engine: FilterEngine = Depends(get_engine),
):
    try:
        refreshed = await engine.set_value(filter_id, request.value)
    except StoreError as e:
        raise _store_error(e)
    return {"filterId": filter_id, "affectedTargets": refreshed}


@router.get("/targets/{target_ref}/predicate")
def get_target_predicate(target_ref: str, engine: FilterEngine = Depends(get_engine)):
    return {"targetRef": target_ref, **_describe(engine.get_predicate_for_target(target_ref))}


@router.post("/targets/{target_ref}/evaluate")
def evaluate_rows(
    target_ref: str,
    request: RowsRequest,
    engine: FilterEngine = Depends(get_engine),
):
    predicate = engine.get_predicate_for_target(target_ref)
    rows = predicate.filter_rows(request.rows)
    return {"targetRef": target_ref, "rows": rows, "matched": len(rows), "total": len(request.rows)}


@router.post("/scopes/{scope_id}/clear")
async def clear_scope(scope_id: str, engine: FilterEngine = Depends(get_engine)):
    try:
        refreshed = await engine.clear_scope(scope_id)
    except StoreError as e:
        raise _store_error(e)
    return {"scopeId": scope_id, "affectedTargets": refreshed}


@router.post("/filters/{filter_id}/publish")
async def publish(
    filter_id: str,
    payload: Dict[str, Any] = Body(..., description="Filter JSON"),
    store=Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    try:
        flt = parse_filter_json(payload, validate=True)
    except jsonschema.ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    if flt.id is not None and flt.id != filter_id:
        raise HTTPException(status_code=400, detail="Filter id does not match the URL")
    flt.id = filter_id

    try:
        result = await publish_filter(store, flt, max_depth=settings.max_tree_depth)
    except FilterValidationError as e:
        raise HTTPException(status_code=422, detail=[err.to_dict() for err in e.errors])
    except StoreError as e:
        raise _store_error(e)
    return {"ok": result.ok, **result.to_dict()}
