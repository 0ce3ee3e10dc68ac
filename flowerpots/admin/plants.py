"""Catalog administration: CRUD, batch import and batch delete.

Batch import tolerates per-item failures: each item runs in its own savepoint, and
the call reports a success/failure tally instead of aborting on the first bad item.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional, Sequence

from flowerpots.catalog import serialize_plant
from flowerpots.db import placeholders, run_batch, savepoint
from flowerpots.errors import Conflict, NotFound, ValidationError
from flowerpots.util.time import utcnow_iso

from .listing import clamp_paging, paged_query, search_clause


def _debug(msg: str) -> None:
    print(f"[admin.plants] {msg}")


def _as_dict(v: Any) -> Dict[str, Any]:
    return v if isinstance(v, dict) else {}


def _clean_synonyms(values: Any) -> List[str]:
    if not isinstance(values, (list, tuple)):
        return []
    out = [str(v).strip() for v in values if v is not None and str(v).strip()]
    return list(dict.fromkeys(out))


def normalize_plant(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Map either import shape (snake_case export or camelCase source data) to columns.

    Raises ValueError when id or name is missing.
    """
    if not isinstance(data, Mapping):
        raise ValueError("Plant entry must be an object")

    basic_info = _as_dict(data.get("basicInfo") or data.get("basic_info"))
    ornamental = _as_dict(data.get("ornamentalFeatures") or data.get("ornamental_features"))
    care_guide = _as_dict(data.get("careGuide") or data.get("care_guide"))

    pid = str(data.get("id") or data.get("_id") or "").strip()
    name = str(basic_info.get("name") or data.get("name") or "").strip()
    if not pid or not name:
        raise ValueError("Missing ID or Name for a plant")

    synonyms = basic_info.get("synonyms") or data.get("synonyms")

    return {
        "id": pid,
        "name": name,
        "category": ornamental.get("category") or data.get("category") or None,
        "care_difficulty": care_guide.get("careDifficulty") or data.get("care_difficulty") or None,
        "basic_info": basic_info,
        "ornamental_features": ornamental,
        "care_guide": care_guide,
        "image_url": data.get("image_url") or data.get("imageUrl") or None,
        "synonyms": _clean_synonyms(synonyms),
    }


def _replace_synonyms(conn: Any, plant_id: str, synonyms: Sequence[str]) -> None:
    statements = [("DELETE FROM plant_synonyms WHERE plant_id=?", (plant_id,))]
    statements.extend(
        ("INSERT INTO plant_synonyms (plant_id, synonym) VALUES (?, ?)", (plant_id, s)) for s in synonyms
    )
    run_batch(conn, statements)


def upsert_plant(conn: Any, plant: Mapping[str, Any]) -> None:
    """Insert or overwrite one normalized plant and replace its synonym set."""
    now = utcnow_iso()
    conn.execute(
        """
        INSERT INTO plants (
            id, name, category, care_difficulty, basic_info, ornamental_features,
            care_guide, image_url, created_at, updated_at
        ) VALUES (?,?,?,?,?,?,?,?,?,?)
        ON CONFLICT (id) DO UPDATE SET
            name=excluded.name,
            category=excluded.category,
            care_difficulty=excluded.care_difficulty,
            basic_info=excluded.basic_info,
            ornamental_features=excluded.ornamental_features,
            care_guide=excluded.care_guide,
            image_url=excluded.image_url,
            updated_at=excluded.updated_at
        """,
        (
            plant["id"],
            plant["name"],
            plant.get("category"),
            plant.get("care_difficulty"),
            json.dumps(plant.get("basic_info") or {}),
            json.dumps(plant.get("ornamental_features") or {}),
            json.dumps(plant.get("care_guide") or {}),
            plant.get("image_url"),
            now,
            now,
        ),
    )
    _replace_synonyms(conn, plant["id"], plant.get("synonyms") or [])


# -----------------------------
# CRUD
# -----------------------------


def list_plants(conn: Any, *, page: Any = 1, page_size: Any = 20, search: str | None = None) -> Dict[str, Any]:
    p, ps, offset = clamp_paging(page, page_size)
    where_sql, params = search_clause(["name", "id"], search)
    rows, pagination = paged_query(
        conn,
        select_sql="SELECT *",
        from_sql="FROM plants",
        where_sql=where_sql,
        params=params,
        order_sql="ORDER BY created_at DESC, id ASC",
        page=p,
        page_size=ps,
        offset=offset,
    )
    return {"items": [serialize_plant(conn, r) for r in rows], "pagination": pagination}


def _get_plant_row(conn: Any, plant_id: str) -> Optional[Any]:
    return conn.execute("SELECT * FROM plants WHERE id=?", (plant_id,)).fetchone()


def create_plant(conn: Any, data: Mapping[str, Any]) -> Dict[str, Any]:
    try:
        plant = normalize_plant(data)
    except ValueError:
        raise ValidationError("ID and Name are required")
    if _get_plant_row(conn, plant["id"]) is not None:
        raise Conflict("Plant ID already exists")

    upsert_plant(conn, plant)
    row = _get_plant_row(conn, plant["id"])
    return serialize_plant(conn, row)


def update_plant(conn: Any, plant_id: str, fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Partial update of the supplied fields. `synonyms`, when given, replaces the set."""
    if _get_plant_row(conn, plant_id) is None:
        raise NotFound("Plant not found")

    updates: list[tuple[str, Any]] = []
    if "name" in fields:
        name = (fields["name"] or "").strip()
        if not name:
            raise ValidationError("Plant name cannot be empty")
        updates.append(("name", name))
    for col in ("category", "care_difficulty", "image_url"):
        if col in fields:
            updates.append((col, fields[col] or None))
    for col in ("basic_info", "ornamental_features", "care_guide"):
        if col in fields:
            updates.append((col, json.dumps(_as_dict(fields[col]))))

    if not updates and "synonyms" not in fields:
        raise ValidationError("No fields to update")

    if updates:
        updates.append(("updated_at", utcnow_iso()))
        sets = ", ".join([f"{k}=?" for k, _ in updates])
        params = [v for _, v in updates] + [plant_id]
        conn.execute(f"UPDATE plants SET {sets} WHERE id=?", params)
    if "synonyms" in fields:
        _replace_synonyms(conn, plant_id, _clean_synonyms(fields["synonyms"]))

    return serialize_plant(conn, _get_plant_row(conn, plant_id))


def delete_plant(conn: Any, plant_id: str) -> None:
    counts = run_batch(
        conn,
        [
            ("DELETE FROM plant_synonyms WHERE plant_id=?", (plant_id,)),
            ("DELETE FROM plants WHERE id=?", (plant_id,)),
        ],
    )
    if counts[-1] == 0:
        raise NotFound("Plant not found")


# -----------------------------
# Batch
# -----------------------------


def import_plants(conn: Any, items: Any) -> Dict[str, Any]:
    """Upsert each entry independently. Returns {success, failed, errors}."""
    if not isinstance(items, list):
        raise ValidationError("Invalid data format, expected an array")

    report: Dict[str, Any] = {"success": 0, "failed": 0, "errors": []}
    for idx, data in enumerate(items):
        try:
            plant = normalize_plant(data)
        except ValueError as e:
            report["failed"] += 1
            report["errors"].append(f"Item {idx + 1}: {e}")
            continue

        try:
            with savepoint(conn, "import_item"):
                upsert_plant(conn, plant)
        except Exception as e:
            report["failed"] += 1
            report["errors"].append(f"Error importing {plant['id']}: {e}")
            continue
        report["success"] += 1

    _debug(f"import success={report['success']} failed={report['failed']}")
    return report


def batch_delete_plants(conn: Any, ids: Any) -> int:
    """Delete many catalog entries in one statement. Returns the number deleted."""
    if not isinstance(ids, list) or not ids:
        raise ValidationError("Invalid IDs")
    clean = list(dict.fromkeys(str(i).strip() for i in ids if str(i or "").strip()))
    if not clean:
        raise ValidationError("Invalid IDs")

    marks = placeholders(len(clean))
    counts = run_batch(
        conn,
        [
            (f"DELETE FROM plant_synonyms WHERE plant_id IN ({marks})", clean),
            (f"DELETE FROM plants WHERE id IN ({marks})", clean),
        ],
    )
    return counts[-1]
