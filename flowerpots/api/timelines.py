from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends

from flowerpots.auth.deps import Principal, require_principal
from flowerpots.context import AppContext, get_ctx
from flowerpots.db import connect
from flowerpots.resources import timelines
from flowerpots.resources.images import schedule_blob_cleanup

from .common import ok
from .schemas import TimelineCreate, TimelineUpdate


router = APIRouter(prefix="/timelines", tags=["timelines"])


@router.post("", status_code=201)
def create_timeline(
    payload: TimelineCreate,
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        return ok(timelines.create_timeline(conn, principal.user_id, payload.supplied()))


@router.get("/{timeline_id}")
def get_timeline(
    timeline_id: str,
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        return ok(timelines.get_timeline(conn, timeline_id, principal.user_id))


@router.put("/{timeline_id}")
def update_timeline(
    timeline_id: str,
    payload: TimelineUpdate,
    background: BackgroundTasks,
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        entry, freed = timelines.update_timeline(conn, timeline_id, principal.user_id, payload.supplied())
    schedule_blob_cleanup(background, ctx.blobs, freed, owner_id=principal.user_id, op="update_timeline")
    return ok(entry)


@router.delete("/{timeline_id}")
def delete_timeline(
    timeline_id: str,
    background: BackgroundTasks,
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        freed = timelines.delete_timeline(conn, timeline_id, principal.user_id)
    schedule_blob_cleanup(background, ctx.blobs, freed, owner_id=principal.user_id, op="delete_timeline")
    return ok(message="Timeline entry deleted")
