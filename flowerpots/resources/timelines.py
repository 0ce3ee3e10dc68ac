from __future__ import annotations

from typing import Any, Dict, List, Tuple

from flowerpots.auth.gate import owned_pot, owned_timeline
from flowerpots.db import insert_returning_id
from flowerpots.errors import ValidationError
from flowerpots.util.time import utcnow_iso

from .images import dump_image_list, parse_image_list, unreferenced_images


def serialize_timeline(row: Any) -> Dict[str, Any]:
    d = dict(row)
    d.pop("owner_id", None)
    d["images"] = parse_image_list(d.get("images"))
    return d


def list_timelines(conn: Any, pot_id: str, user_id: str) -> List[Dict[str, Any]]:
    owned_pot(conn, pot_id, user_id)
    rows = conn.execute(
        """
        SELECT id, pot_id, date, description, images, video, created_at
        FROM timelines
        WHERE pot_id=?
        ORDER BY date DESC, id DESC
        """,
        (str(pot_id),),
    ).fetchall()
    return [serialize_timeline(r) for r in rows]


def get_timeline(conn: Any, timeline_id: int | str, user_id: str) -> Dict[str, Any]:
    return serialize_timeline(owned_timeline(conn, timeline_id, user_id))


def create_timeline(conn: Any, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    pot_id = str(fields.get("pot_id") or "").strip()
    date = str(fields.get("date") or "").strip()
    if not pot_id or not date:
        raise ValidationError("potId and date are required")

    owned_pot(conn, pot_id, user_id)

    new_id = insert_returning_id(
        conn,
        """
        INSERT INTO timelines (pot_id, date, description, images, video, created_at)
        VALUES (?,?,?,?,?,?)
        """,
        (
            pot_id,
            date,
            fields.get("description") or None,
            dump_image_list(parse_image_list(fields.get("images"))),
            fields.get("video") or None,
            fields.get("created_at") or utcnow_iso(),
        ),
    )
    return get_timeline(conn, new_id, user_id)


def update_timeline(
    conn: Any,
    timeline_id: int | str,
    user_id: str,
    fields: Dict[str, Any],
) -> Tuple[Dict[str, Any], List[str]]:
    """Partial update. Returns (timeline, removed image_urls no longer referenced by the pot)."""
    existing = owned_timeline(conn, timeline_id, user_id)

    updates: list[tuple[str, Any]] = []
    if "date" in fields:
        if not fields["date"]:
            raise ValidationError("date cannot be empty")
        updates.append(("date", fields["date"]))
    if "description" in fields:
        updates.append(("description", fields["description"]))
    new_images = None
    if "images" in fields:
        new_images = parse_image_list(fields["images"])
        updates.append(("images", dump_image_list(new_images)))
    if "video" in fields:
        updates.append(("video", fields["video"] or None))

    if not updates:
        raise ValidationError("No fields to update")

    sets = ", ".join([f"{k}=?" for k, _ in updates])
    params = [v for _, v in updates] + [int(timeline_id)]
    conn.execute(f"UPDATE timelines SET {sets} WHERE id=?", params)

    freed: List[str] = []
    if new_images is not None:
        removed = [u for u in parse_image_list(existing["images"]) if u not in new_images]
        freed = unreferenced_images(conn, existing["pot_id"], removed)

    return get_timeline(conn, timeline_id, user_id), freed


def delete_timeline(conn: Any, timeline_id: int | str, user_id: str) -> List[str]:
    """Delete one entry. Returns its image_urls no longer referenced by the pot."""
    existing = owned_timeline(conn, timeline_id, user_id)
    conn.execute("DELETE FROM timelines WHERE id=?", (int(timeline_id),))
    return unreferenced_images(conn, existing["pot_id"], parse_image_list(existing["images"]))
