from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from flowerpots.auth.deps import Principal, require_principal
from flowerpots.context import AppContext, get_ctx
from flowerpots.db import connect
from flowerpots.resources import care_records, pots, schedules, timelines
from flowerpots.resources.images import schedule_blob_cleanup

from .common import ok
from .schemas import PotCreate, PotUpdate, ReorderRequest


router = APIRouter(prefix="/pots", tags=["pots"])


@router.get("")
def list_pots(principal: Principal = Depends(require_principal), ctx: AppContext = Depends(get_ctx)) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        return ok(pots.list_pots(conn, principal.user_id))


@router.post("", status_code=201)
def create_pot(
    payload: PotCreate,
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        pot = pots.create_pot(conn, ctx.cfg, principal.user_id, payload.supplied())
    return ok(pot)


# Declared before /{pot_id} so "reorder" is never taken for an id.
@router.put("/reorder")
def reorder_pots(
    payload: ReorderRequest,
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        moved = pots.reorder_pots(conn, principal.user_id, payload.pot_ids)
    return ok(message="Pots reordered", updated=moved)


@router.get("/{pot_id}")
def get_pot(
    pot_id: str,
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        return ok(pots.get_pot(conn, pot_id, principal.user_id))


@router.put("/{pot_id}")
def update_pot(
    pot_id: str,
    payload: PotUpdate,
    background: BackgroundTasks,
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        pot, replaced = pots.update_pot(conn, pot_id, principal.user_id, payload.supplied())
    if replaced:
        schedule_blob_cleanup(background, ctx.blobs, [replaced], owner_id=principal.user_id, op="replace_pot_image")
    return ok(pot)


@router.delete("/{pot_id}")
def delete_pot(
    pot_id: str,
    background: BackgroundTasks,
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        summary, urls = pots.delete_pot(conn, pot_id, principal.user_id, blobs=ctx.blobs)
    # Only after the rows are gone: a failed transaction must not lose images.
    keys = schedule_blob_cleanup(background, ctx.blobs, urls, owner_id=principal.user_id, op="delete_pot")
    return ok(message="Pot deleted", deleted={**summary, "imagesScheduled": len(keys)})


@router.get("/{pot_id}/stats")
def pot_stats(
    pot_id: str,
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        return ok(pots.pot_stats(conn, pot_id, principal.user_id))


@router.get("/{pot_id}/care-records")
def pot_care_records(
    pot_id: str,
    limit: Optional[int] = Query(None, ge=1, le=500),
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        return ok(care_records.list_care_records(conn, pot_id, principal.user_id, limit=limit))


@router.get("/{pot_id}/timelines")
def pot_timelines(
    pot_id: str,
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        return ok(timelines.list_timelines(conn, pot_id, principal.user_id))


@router.get("/{pot_id}/care-schedules")
def pot_schedules(
    pot_id: str,
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        return ok(schedules.list_pot_schedules(conn, pot_id, principal.user_id))
