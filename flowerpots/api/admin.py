"""Admin-gated routes: catalog management and user administration.

Every route depends on `require_admin`, which checks the allow-list and the verified
email against the database on each request. Batch routes are declared before the
`/{id}` routes they would otherwise collide with.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query

from flowerpots.admin import plants, users
from flowerpots.auth.deps import Principal, require_admin
from flowerpots.context import AppContext, get_ctx
from flowerpots.db import connect
from flowerpots.errors import ValidationError

from .common import ok
from .schemas import AdminUserUpdate, IdsRequest, PlantUpdate


router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/check")
def check(principal: Principal = Depends(require_admin)) -> Dict[str, Any]:
    return ok(isAdmin=True, userId=principal.user_id, email=principal.email)


# -----------------------------
# Catalog
# -----------------------------


@router.get("/plants")
def list_plants(
    page: int = Query(1),
    page_size: int = Query(20, alias="pageSize"),
    search: Optional[str] = Query(None),
    _: Principal = Depends(require_admin),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        result = plants.list_plants(conn, page=page, page_size=page_size, search=search)
    return ok(result["items"], pagination=result["pagination"])


@router.post("/plants/batch")
def import_plants(
    body: Any = Body(...),
    _: Principal = Depends(require_admin),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    # Either a bare array or {"plants": [...]}.
    items = body.get("plants") if isinstance(body, dict) else body
    with connect(ctx.cfg.DB_DSN) as conn:
        report = plants.import_plants(conn, items)
    return ok(
        report,
        message=f"Import finished: {report['success']} succeeded, {report['failed']} failed",
    )


@router.delete("/plants/batch")
def batch_delete_plants(
    payload: IdsRequest,
    _: Principal = Depends(require_admin),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        deleted = plants.batch_delete_plants(conn, payload.ids)
    return ok(message=f"Deleted {deleted} plants", deleted=deleted)


@router.post("/plants", status_code=201)
def create_plant(
    body: Dict[str, Any] = Body(...),
    _: Principal = Depends(require_admin),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        return ok(plants.create_plant(conn, body))


@router.put("/plants/{plant_id}")
def update_plant(
    plant_id: str,
    payload: PlantUpdate,
    _: Principal = Depends(require_admin),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        return ok(plants.update_plant(conn, plant_id, payload.supplied()))


@router.delete("/plants/{plant_id}")
def delete_plant(
    plant_id: str,
    _: Principal = Depends(require_admin),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        plants.delete_plant(conn, plant_id)
    return ok(message="Plant deleted")


# -----------------------------
# Users
# -----------------------------


@router.get("/users")
def list_users(
    page: int = Query(1),
    page_size: int = Query(20, alias="pageSize"),
    search: Optional[str] = Query(None),
    _: Principal = Depends(require_admin),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        result = users.list_users(conn, ctx.cfg, page=page, page_size=page_size, search=search)
    return ok(result["items"], pagination=result["pagination"])


@router.delete("/users/batch")
def batch_erase_users(
    payload: IdsRequest,
    principal: Principal = Depends(require_admin),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        report = users.batch_erase_users(conn, payload.ids, blobs=ctx.blobs, acting_user_id=principal.user_id)
    return ok(report, message=f"Deleted {report['success']} users, {report['failed']} failed")


@router.get("/users/{user_id}")
def get_user(
    user_id: str,
    _: Principal = Depends(require_admin),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        return ok(users.get_user_detail(conn, ctx.cfg, user_id))


@router.put("/users/{user_id}")
def update_user(
    user_id: str,
    payload: AdminUserUpdate,
    _: Principal = Depends(require_admin),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    fields = payload.supplied()
    if not fields:
        raise ValidationError("No fields to update")
    with connect(ctx.cfg.DB_DSN) as conn:
        return ok(users.update_user(conn, ctx.cfg, user_id, fields))


@router.delete("/users/{user_id}")
def erase_user(
    user_id: str,
    principal: Principal = Depends(require_admin),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        summary = users.erase_user(conn, user_id, blobs=ctx.blobs, acting_user_id=principal.user_id)
    return ok(summary, message="User and all associated data deleted")
