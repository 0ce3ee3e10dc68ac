"""User administration and full user erasure.

Erasure cascades by hand in dependency order (schedules, care records, timelines,
pots, then the user) inside one batch, after a best-effort sweep of every blob the
user's pots reference.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from flowerpots.auth.crud import public_user
from flowerpots.auth.gate import pot_quota, user_is_admin
from flowerpots.config import Config
from flowerpots.db import placeholders, run_batch, savepoint
from flowerpots.errors import ApiError, Forbidden, NotFound, ValidationError
from flowerpots.resources.images import blob_keys, parse_image_list
from flowerpots.storage.blobs import BlobStore, delete_blobs

from .listing import clamp_paging, paged_query, search_clause


def _debug(msg: str) -> None:
    print(f"[admin.users] {msg}")


def _admin_view(row: Any, cfg: Config) -> Dict[str, Any]:
    u = public_user(row)
    limit, tier = pot_quota(row, cfg)
    u["potCount"] = int(row["pot_count"] or 0)
    u["potLimit"] = limit
    u["quotaTier"] = tier
    u["isAdmin"] = user_is_admin(row, cfg.admin_emails)
    return u


_USER_SELECT = "SELECT u.*, (SELECT COUNT(*) FROM pots p WHERE p.user_id = u.id) AS pot_count"


def list_users(
    conn: Any,
    cfg: Config,
    *,
    page: Any = 1,
    page_size: Any = 20,
    search: str | None = None,
) -> Dict[str, Any]:
    p, ps, offset = clamp_paging(page, page_size)
    where_sql, params = search_clause(["u.id", "u.email", "u.display_name"], search)
    rows, pagination = paged_query(
        conn,
        select_sql=_USER_SELECT,
        from_sql="FROM users u",
        where_sql=where_sql,
        params=params,
        order_sql="ORDER BY u.created_at DESC, u.id ASC",
        page=p,
        page_size=ps,
        offset=offset,
    )
    return {"items": [_admin_view(r, cfg) for r in rows], "pagination": pagination}


def _get_user_row(conn: Any, user_id: str) -> Optional[Any]:
    return conn.execute(f"{_USER_SELECT} FROM users u WHERE u.id=?", (str(user_id),)).fetchone()


def get_user_detail(conn: Any, cfg: Config, user_id: str) -> Dict[str, Any]:
    row = _get_user_row(conn, user_id)
    if row is None:
        raise NotFound("User not found")
    return _admin_view(row, cfg)


def update_user(conn: Any, cfg: Config, user_id: str, fields: Mapping[str, Any]) -> Dict[str, Any]:
    row = _get_user_row(conn, user_id)
    if row is None:
        raise NotFound("User not found")

    updates: list[tuple[str, Any]] = []
    if "is_disabled" in fields:
        updates.append(("is_disabled", 1 if fields["is_disabled"] else 0))
    if "max_pots" in fields:
        mp = fields["max_pots"]
        if mp is not None and (isinstance(mp, bool) or not isinstance(mp, int) or mp < 0):
            raise ValidationError("maxPots must be a non-negative integer or null")
        updates.append(("max_pots", mp))
    if "display_name" in fields:
        updates.append(("display_name", (fields["display_name"] or "").strip() or None))
    if "email_verified" in fields:
        if row["user_type"] != "email":
            raise ValidationError("Only email accounts can be verified")
        updates.append(("email_verified", 1 if fields["email_verified"] else 0))
        if fields["email_verified"]:
            updates.append(("verification_token", None))
    if not updates:
        raise ValidationError("No fields to update")

    sets = ", ".join([f"{k}=?" for k, _ in updates])
    params = [v for _, v in updates] + [str(user_id)]
    conn.execute(f"UPDATE users SET {sets} WHERE id=?", params)
    _debug(f"updated user_id={user_id} fields={[k for k, _ in updates]}")
    return get_user_detail(conn, cfg, user_id)


# -----------------------------
# Erasure
# -----------------------------


def user_image_urls(conn: Any, user_id: str) -> List[str]:
    """Every image referenced by the user's pots, care records and timelines."""
    urls: List[str] = []
    for r in conn.execute("SELECT image_url FROM pots WHERE user_id=?", (user_id,)).fetchall():
        if r["image_url"]:
            urls.append(r["image_url"])
    for r in conn.execute(
        "SELECT cr.image_url FROM care_records cr JOIN pots p ON p.id = cr.pot_id WHERE p.user_id=?",
        (user_id,),
    ).fetchall():
        urls.extend(parse_image_list(r["image_url"]))
    for r in conn.execute(
        "SELECT t.images FROM timelines t JOIN pots p ON p.id = t.pot_id WHERE p.user_id=?",
        (user_id,),
    ).fetchall():
        urls.extend(parse_image_list(r["images"]))
    return list(dict.fromkeys(urls))


def erase_user(
    conn: Any,
    user_id: str,
    *,
    blobs: Optional[BlobStore],
    acting_user_id: str | None = None,
) -> Dict[str, Any]:
    uid = str(user_id or "").strip()
    if not uid:
        raise ValidationError("User id is required")
    if acting_user_id is not None and uid == str(acting_user_id):
        raise Forbidden("Admins cannot erase their own account")

    user = conn.execute("SELECT id FROM users WHERE id=?", (uid,)).fetchone()
    if user is None:
        raise NotFound("User not found")

    pot_ids = [r["id"] for r in conn.execute("SELECT id FROM pots WHERE user_id=?", (uid,)).fetchall()]
    keys = blob_keys(user_image_urls(conn, uid), owner_id=uid)
    deleted, failed = delete_blobs(blobs, keys, op="erase_user")

    statements = []
    if pot_ids:
        marks = placeholders(len(pot_ids))
        statements.extend(
            [
                (f"DELETE FROM care_schedules WHERE pot_id IN ({marks})", pot_ids),
                (f"DELETE FROM care_records WHERE pot_id IN ({marks})", pot_ids),
                (f"DELETE FROM timelines WHERE pot_id IN ({marks})", pot_ids),
            ]
        )
    statements.append(("DELETE FROM pots WHERE user_id=?", (uid,)))
    statements.append(("DELETE FROM users WHERE id=?", (uid,)))
    run_batch(conn, statements)

    _debug(f"erased user_id={uid} pots={len(pot_ids)} blobs_deleted={deleted} blobs_failed={failed}")
    return {
        "userId": uid,
        "potCount": len(pot_ids),
        "blobsDeleted": deleted,
        "blobsFailed": failed,
    }


def batch_erase_users(
    conn: Any,
    ids: Any,
    *,
    blobs: Optional[BlobStore],
    acting_user_id: str | None = None,
) -> Dict[str, Any]:
    """Erase each user independently. Returns {success, failed, errors}."""
    if not isinstance(ids, list) or not ids:
        raise ValidationError("Invalid IDs")

    report: Dict[str, Any] = {"success": 0, "failed": 0, "errors": []}
    for uid in dict.fromkeys(str(i) for i in ids):
        try:
            with savepoint(conn, "erase_item"):
                erase_user(conn, uid, blobs=blobs, acting_user_id=acting_user_id)
        except Exception as e:
            report["failed"] += 1
            report["errors"].append(f"{uid}: {e.message if isinstance(e, ApiError) else e}")
            continue
        report["success"] += 1
    return report
