from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional, Sequence, Tuple

from flowerpots.auth.gate import ensure_can_create_pot, owned_pot
from flowerpots.config import Config
from flowerpots.db import is_unique_violation, run_batch
from flowerpots.errors import Conflict, Forbidden, ValidationError
from flowerpots.storage.blobs import BlobStore, delete_blobs, is_default_image
from flowerpots.util.time import days_since, utcnow_iso

from .images import blob_keys, parse_image_list, unreferenced_images


def _debug(msg: str) -> None:
    print(f"[pots] {msg}")


POT_COLUMNS = """
    id, user_id, name, plant_type, note, plant_date, image_url,
    last_care, last_care_action, sort_order, created_at
"""

# Request field -> column, for partial updates.
UPDATABLE_FIELDS = ("name", "plant_type", "note", "plant_date", "image_url", "last_care")


def serialize_pot(row: Any) -> Dict[str, Any]:
    return dict(row)


def list_pots(conn: Any, user_id: str) -> List[Dict[str, Any]]:
    rows = conn.execute(
        f"""
        SELECT {POT_COLUMNS}
        FROM pots
        WHERE user_id=?
        ORDER BY sort_order ASC, plant_date DESC, created_at ASC
        """,
        (str(user_id),),
    ).fetchall()
    return [serialize_pot(r) for r in rows]


def get_pot(conn: Any, pot_id: str, user_id: str) -> Dict[str, Any]:
    return serialize_pot(owned_pot(conn, pot_id, user_id))


def create_pot(conn: Any, cfg: Config, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    """Create a pot owned by `user_id`.

    `fields` may name an owner (`user_id`), which must be the caller. Disabled
    accounts and full quotas are rejected before anything is written.
    """
    name = (fields.get("name") or "").strip()
    if not name:
        raise ValidationError("Pot name is required")

    owner = fields.get("user_id")
    if owner is not None and str(owner) != str(user_id):
        raise Forbidden("Cannot create a pot for another user")

    ensure_can_create_pot(conn, user_id, cfg)

    pot_id = str(fields.get("id") or "").strip() or str(uuid.uuid4())
    r = conn.execute(
        "SELECT COALESCE(MAX(sort_order), -1) AS m FROM pots WHERE user_id=?",
        (str(user_id),),
    ).fetchone()
    sort_order = int(r["m"]) + 1

    try:
        conn.execute(
            """
            INSERT INTO pots (
                id, user_id, name, plant_type, note, plant_date, image_url,
                last_care, sort_order, created_at
            ) VALUES (?,?,?,?,?,?,?,?,?,?)
            """,
            (
                pot_id,
                str(user_id),
                name,
                fields.get("plant_type") or None,
                fields.get("note") or None,
                fields.get("plant_date") or None,
                fields.get("image_url") or None,
                fields.get("last_care") or None,
                sort_order,
                utcnow_iso(),
            ),
        )
    except Exception as e:
        if is_unique_violation(e):
            raise Conflict("Pot already exists")
        raise

    return get_pot(conn, pot_id, user_id)


def update_pot(
    conn: Any,
    pot_id: str,
    user_id: str,
    fields: Dict[str, Any],
) -> Tuple[Dict[str, Any], Optional[str]]:
    """Write only the supplied fields.

    Returns (pot, replaced_image_url). The replaced image is the old non-default
    image when `image_url` changed and no care record or timeline of the pot still
    shows it, for the caller to clean up after responding.
    """
    existing = owned_pot(conn, pot_id, user_id)

    updates: list[tuple[str, Any]] = []
    for col in UPDATABLE_FIELDS:
        if col in fields:
            updates.append((col, fields[col]))
    if not updates:
        raise ValidationError("No fields to update")
    if "name" in fields and not (fields["name"] or "").strip():
        raise ValidationError("Pot name is required")

    sets = ", ".join([f"{k}=?" for k, _ in updates])
    params = [v for _, v in updates] + [str(pot_id), str(user_id)]
    conn.execute(f"UPDATE pots SET {sets} WHERE id=? AND user_id=?", params)

    replaced: Optional[str] = None
    old_image = existing["image_url"]
    if "image_url" in fields and old_image and old_image != fields["image_url"] and not is_default_image(old_image):
        if unreferenced_images(conn, pot_id, [old_image]):
            replaced = old_image

    return get_pot(conn, pot_id, user_id), replaced


def reorder_pots(conn: Any, user_id: str, pot_ids: Sequence[str]) -> int:
    """Assign sort positions in list order. Ids the caller does not own are ignored.

    Returns the number of pots actually moved.
    """
    if not isinstance(pot_ids, (list, tuple)):
        raise ValidationError("Invalid potIds, expected array")

    statements = [
        ("UPDATE pots SET sort_order=? WHERE id=? AND user_id=?", (idx, str(pid), str(user_id)))
        for idx, pid in enumerate(pot_ids)
    ]
    if not statements:
        return 0
    counts = run_batch(conn, statements)
    return sum(counts)


def delete_pot(
    conn: Any,
    pot_id: str,
    user_id: str,
    *,
    blobs: Optional[BlobStore],
) -> Tuple[Dict[str, Any], List[str]]:
    """Delete a pot and everything that hangs off it.

    The pot's own image is deleted right away (best effort). Child rows and the pot
    go in one batch, children first. Returns (summary, image_urls) where image_urls
    are the care record and timeline images to clean up after responding.
    """
    pot = owned_pot(conn, pot_id, user_id)

    image_deleted = False
    keys = blob_keys([pot["image_url"]], owner_id=user_id)
    if keys:
        deleted, _failed = delete_blobs(blobs, keys, op="delete_pot_image")
        image_deleted = deleted > 0

    timelines = conn.execute("SELECT id, images FROM timelines WHERE pot_id=?", (str(pot_id),)).fetchall()
    records = conn.execute("SELECT id, image_url FROM care_records WHERE pot_id=?", (str(pot_id),)).fetchall()

    urls: List[str] = []
    for t in timelines:
        urls.extend(parse_image_list(t["images"]))
    for r in records:
        urls.extend(parse_image_list(r["image_url"]))

    run_batch(
        conn,
        [
            ("DELETE FROM care_schedules WHERE pot_id=?", (str(pot_id),)),
            ("DELETE FROM care_records WHERE pot_id=?", (str(pot_id),)),
            ("DELETE FROM timelines WHERE pot_id=?", (str(pot_id),)),
            ("DELETE FROM pots WHERE id=? AND user_id=?", (str(pot_id), str(user_id))),
        ],
    )
    _debug(f"deleted pot_id={pot_id} care_records={len(records)} timelines={len(timelines)}")

    summary = {
        "imageDeleted": image_deleted,
        "careRecordCount": len(records),
        "timelineCount": len(timelines),
    }
    return summary, list(dict.fromkeys(urls))


def pot_stats(conn: Any, pot_id: str, user_id: str) -> Dict[str, Any]:
    pot = owned_pot(conn, pot_id, user_id)

    by_type: Dict[str, int] = {}
    total = 0
    for r in conn.execute(
        "SELECT type, COUNT(*) AS n FROM care_records WHERE pot_id=? GROUP BY type ORDER BY type",
        (str(pot_id),),
    ).fetchall():
        by_type[str(r["type"])] = int(r["n"])
        total += int(r["n"])

    t = conn.execute("SELECT COUNT(*) AS n FROM timelines WHERE pot_id=?", (str(pot_id),)).fetchone()

    return {
        "potId": pot["id"],
        "careCounts": by_type,
        "careRecordCount": total,
        "timelineCount": int(t["n"] or 0),
        "lastCare": pot["last_care"],
        "lastCareAction": pot["last_care_action"],
        "daysSinceLastCare": days_since(pot["last_care"]),
        "daysSincePlanting": days_since(pot["plant_date"]),
    }
