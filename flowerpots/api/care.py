"""Care records and care schedules."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends

from flowerpots.auth.deps import Principal, require_principal
from flowerpots.context import AppContext, get_ctx
from flowerpots.db import connect
from flowerpots.resources import care_records, schedules
from flowerpots.resources.images import schedule_blob_cleanup

from .common import ok
from .schemas import CareRecordCreate, CareRecordUpdate, ScheduleCreate, ScheduleUpdate


router = APIRouter(tags=["care"])


# -----------------------------
# Care records
# -----------------------------


@router.post("/care-records", status_code=201)
def create_care_records(
    payload: CareRecordCreate,
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        result = care_records.create_care_records(conn, principal.user_id, payload.supplied())
    return ok(message="Care record(s) created", **result)


@router.get("/care-records/{record_id}")
def get_care_record(
    record_id: str,
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        return ok(care_records.get_care_record(conn, record_id, principal.user_id))


@router.put("/care-records/{record_id}")
def update_care_record(
    record_id: str,
    payload: CareRecordUpdate,
    background: BackgroundTasks,
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        record, freed = care_records.update_care_record(conn, record_id, principal.user_id, payload.supplied())
    schedule_blob_cleanup(background, ctx.blobs, freed, owner_id=principal.user_id, op="update_care_record")
    return ok(record)


@router.delete("/care-records/{record_id}")
def delete_care_record(
    record_id: str,
    background: BackgroundTasks,
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        freed = care_records.delete_care_record(conn, record_id, principal.user_id)
    schedule_blob_cleanup(background, ctx.blobs, freed, owner_id=principal.user_id, op="delete_care_record")
    return ok(message="Care record deleted")


# -----------------------------
# Care schedules
# -----------------------------


@router.get("/care-schedules")
def list_schedules(
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        return ok(schedules.list_schedules(conn, principal.user_id))


@router.get("/care-schedules/reminders")
def list_reminders(
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        due = schedules.list_reminders(conn, principal.user_id)
    return ok(due, count=len(due))


@router.post("/care-schedules", status_code=201)
def create_schedule(
    payload: ScheduleCreate,
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        return ok(schedules.create_schedule(conn, principal.user_id, payload.supplied()))


@router.put("/care-schedules/{schedule_id}")
def update_schedule(
    schedule_id: str,
    payload: ScheduleUpdate,
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        return ok(schedules.update_schedule(conn, schedule_id, principal.user_id, payload.supplied()))


@router.delete("/care-schedules/{schedule_id}")
def delete_schedule(
    schedule_id: str,
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        schedules.delete_schedule(conn, schedule_id, principal.user_id)
    return ok(message="Schedule deleted")
