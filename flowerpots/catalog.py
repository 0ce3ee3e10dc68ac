"""Public plant catalog lookups (no authentication needed)."""

from __future__ import annotations

import json
from typing import Any, Dict, List

from flowerpots.db import LIKE_ESCAPE, like_contains
from flowerpots.errors import NotFound, ValidationError


SEARCH_LIMIT = 20
JSON_COLUMNS = ("basic_info", "ornamental_features", "care_guide")


def _decode_json_object(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    try:
        v = json.loads(raw or "{}")
    except (TypeError, ValueError):
        return {}
    return v if isinstance(v, dict) else {}


def plant_synonyms(conn: Any, plant_id: str) -> List[str]:
    rows = conn.execute(
        "SELECT synonym FROM plant_synonyms WHERE plant_id=? ORDER BY synonym",
        (plant_id,),
    ).fetchall()
    return [r["synonym"] for r in rows]


def serialize_plant(conn: Any, row: Any) -> Dict[str, Any]:
    d = dict(row)
    for col in JSON_COLUMNS:
        d[col] = _decode_json_object(d.get(col))
    d["synonyms"] = plant_synonyms(conn, d["id"])
    return d


def search_plants(conn: Any, q: str | None) -> List[Dict[str, Any]]:
    query = (q or "").strip()
    if not query:
        return []
    like = like_contains(query)
    rows = conn.execute(
        f"""
        SELECT DISTINCT p.id, p.name, p.category, p.care_difficulty
        FROM plants p
        LEFT JOIN plant_synonyms ps ON ps.plant_id = p.id
        WHERE LOWER(p.name) LIKE ? {LIKE_ESCAPE}
           OR LOWER(p.id) LIKE ? {LIKE_ESCAPE}
           OR LOWER(ps.synonym) LIKE ? {LIKE_ESCAPE}
        ORDER BY p.name
        LIMIT ?
        """,
        (like, like, like, SEARCH_LIMIT),
    ).fetchall()
    return [dict(r) for r in rows]


def get_plant(conn: Any, plant_id: str) -> Dict[str, Any]:
    pid = (plant_id or "").strip()
    if not pid:
        raise ValidationError("Plant id is required")
    row = conn.execute("SELECT * FROM plants WHERE id=?", (pid,)).fetchone()
    if row is None:
        raise NotFound("Plant not found")
    return serialize_plant(conn, row)
