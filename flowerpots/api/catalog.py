"""Public endpoints: plant catalog lookup and care advice. No identity required."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from flowerpots import catalog
from flowerpots.advice import care_advice
from flowerpots.context import AppContext, get_ctx
from flowerpots.db import connect

from .common import ok
from .schemas import CareAdviceRequest


router = APIRouter(tags=["catalog"])


@router.get("/plants/search")
def search_plants(q: Optional[str] = Query(None), ctx: AppContext = Depends(get_ctx)) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        results = catalog.search_plants(conn, q)
    return ok(results, count=len(results))


@router.get("/plants/{plant_id}")
def get_plant(plant_id: str, ctx: AppContext = Depends(get_ctx)) -> Dict[str, Any]:
    with connect(ctx.cfg.DB_DSN) as conn:
        return ok(catalog.get_plant(conn, plant_id))


@router.post("/care-advice")
def advice(payload: CareAdviceRequest) -> Dict[str, Any]:
    return ok(care_advice(payload.weather))
