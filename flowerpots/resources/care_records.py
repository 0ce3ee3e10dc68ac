"""Care records.

One logged care action ("watered and fertilized") becomes one row per care type.
The sibling rows share description, date and image list. When images are attached, a
timeline entry summarizing the action is written in the same batch.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from flowerpots.auth.gate import owned_care_record, owned_pot
from flowerpots.db import run_batch
from flowerpots.errors import ValidationError
from flowerpots.util.time import utcnow_iso

from .images import dump_image_list, parse_image_list, unreferenced_images


def serialize_care_record(row: Any) -> Dict[str, Any]:
    d = dict(row)
    return {
        "id": d["id"],
        "potId": d["pot_id"],
        "type": d["type"],
        "action": d["action"],
        "description": d.get("description"),
        "imageUrls": parse_image_list(d.get("image_url")),
        "date": d["care_date"],
        "createdAt": d.get("created_at"),
    }


def _image_list_from_fields(fields: Dict[str, Any]) -> Optional[List[str]]:
    """Images named by the request, or None when neither field was supplied."""
    if "image_urls" in fields:
        return [u for u in (fields["image_urls"] or []) if u]
    if "image_url" in fields:
        return [fields["image_url"]] if fields["image_url"] else []
    return None


def list_care_records(conn: Any, pot_id: str, user_id: str, *, limit: int | None = None) -> List[Dict[str, Any]]:
    owned_pot(conn, pot_id, user_id)
    sql = "SELECT * FROM care_records WHERE pot_id=? ORDER BY care_date DESC, id DESC"
    params: List[Any] = [str(pot_id)]
    if limit is not None:
        sql += " LIMIT ?"
        params.append(int(limit))
    rows = conn.execute(sql, tuple(params)).fetchall()
    return [serialize_care_record(r) for r in rows]


def get_care_record(conn: Any, record_id: int | str, user_id: str) -> Dict[str, Any]:
    return serialize_care_record(owned_care_record(conn, record_id, user_id))


def create_care_records(conn: Any, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    pot_id = str(fields.get("pot_id") or "").strip()
    care_date = str(fields.get("care_date") or "").strip()
    if not pot_id or not care_date:
        raise ValidationError("potId and careDate are required")

    owned_pot(conn, pot_id, user_id)

    types = [t for t in (fields.get("types") or ([fields["type"]] if fields.get("type") else [])) if t]
    if not types:
        raise ValidationError("At least one type is required")
    given_actions = list(fields.get("actions") or ([fields["action"]] if fields.get("action") else []))
    actions = [
        (given_actions[i] if i < len(given_actions) and given_actions[i] else t)
        for i, t in enumerate(types)
    ]

    images = _image_list_from_fields(fields) or []
    stored_images = dump_image_list(images)
    description = fields.get("description") or None
    now = utcnow_iso()

    statements: List[Tuple[str, Any]] = [
        (
            """
            INSERT INTO care_records (pot_id, type, action, care_date, description, image_url, created_at)
            VALUES (?,?,?,?,?,?,?)
            """,
            (pot_id, t, a, care_date, description, stored_images, now),
        )
        for t, a in zip(types, actions)
    ]

    last_action = ", ".join(actions)
    statements.append(
        ("UPDATE pots SET last_care=?, last_care_action=? WHERE id=?", (care_date, last_action, pot_id))
    )

    if images:
        summary = f"[{last_action}] {description or ''}".rstrip()
        statements.append(
            (
                "INSERT INTO timelines (pot_id, date, description, images, created_at) VALUES (?,?,?,?,?)",
                (pot_id, care_date, summary, stored_images, now),
            )
        )

    run_batch(conn, statements)
    return {"count": len(types), "timelineCreated": bool(images)}


def update_care_record(
    conn: Any,
    record_id: int | str,
    user_id: str,
    fields: Dict[str, Any],
) -> Tuple[Dict[str, Any], List[str]]:
    """Partial update. Returns (record, image_urls no longer referenced by the pot)."""
    existing = owned_care_record(conn, record_id, user_id)

    updates: list[tuple[str, Any]] = []
    for col in ("type", "action", "care_date", "description"):
        if col in fields:
            updates.append((col, fields[col]))

    new_images = _image_list_from_fields(fields)
    if new_images is not None:
        updates.append(("image_url", dump_image_list(new_images)))

    if not updates:
        raise ValidationError("No fields to update")
    for col in ("type", "action", "care_date"):
        if col in fields and not fields[col]:
            raise ValidationError(f"{col} cannot be empty")

    sets = ", ".join([f"{k}=?" for k, _ in updates])
    params = [v for _, v in updates] + [int(record_id)]
    conn.execute(f"UPDATE care_records SET {sets} WHERE id=?", params)

    freed: List[str] = []
    if new_images is not None:
        removed = [u for u in parse_image_list(existing["image_url"]) if u not in new_images]
        freed = unreferenced_images(conn, existing["pot_id"], removed)

    return get_care_record(conn, record_id, user_id), freed


def delete_care_record(conn: Any, record_id: int | str, user_id: str) -> List[str]:
    """Delete one record. Returns image_urls no longer referenced by the pot."""
    existing = owned_care_record(conn, record_id, user_id)
    conn.execute("DELETE FROM care_records WHERE id=?", (int(record_id),))
    return unreferenced_images(conn, existing["pot_id"], parse_image_list(existing["image_url"]))
