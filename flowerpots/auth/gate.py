"""Authorization checks applied before any data-mutating operation.

Ownership is always proven through pots.user_id with a single read. A missing row and
a row owned by someone else are indistinguishable to the caller (both `NotFound`).
"""

from __future__ import annotations

from typing import Any, Iterable, Tuple

from flowerpots.config import Config
from flowerpots.errors import Forbidden, NotFound


def _row_id(value: Any, message: str) -> int:
    """Integer row id from a path value. Anything unparseable is simply not found."""
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise NotFound(message)


def owned_pot(conn: Any, pot_id: str, user_id: str) -> Any:
    row = conn.execute(
        "SELECT * FROM pots WHERE id=? AND user_id=?",
        (str(pot_id), str(user_id)),
    ).fetchone()
    if row is None:
        raise NotFound("Pot not found")
    return row


def owned_care_record(conn: Any, record_id: Any, user_id: str) -> Any:
    row = conn.execute(
        """
        SELECT cr.*, p.user_id AS owner_id
        FROM care_records cr
        JOIN pots p ON p.id = cr.pot_id
        WHERE cr.id=? AND p.user_id=?
        """,
        (_row_id(record_id, "Care record not found"), str(user_id)),
    ).fetchone()
    if row is None:
        raise NotFound("Care record not found")
    return row


def owned_timeline(conn: Any, timeline_id: Any, user_id: str) -> Any:
    row = conn.execute(
        """
        SELECT t.*, p.user_id AS owner_id
        FROM timelines t
        JOIN pots p ON p.id = t.pot_id
        WHERE t.id=? AND p.user_id=?
        """,
        (_row_id(timeline_id, "Timeline not found"), str(user_id)),
    ).fetchone()
    if row is None:
        raise NotFound("Timeline not found")
    return row


def owned_schedule(conn: Any, schedule_id: Any, user_id: str) -> Any:
    row = conn.execute(
        """
        SELECT s.*, p.user_id AS owner_id, p.name AS pot_name
        FROM care_schedules s
        JOIN pots p ON p.id = s.pot_id
        WHERE s.id=? AND p.user_id=?
        """,
        (_row_id(schedule_id, "Care schedule not found"), str(user_id)),
    ).fetchone()
    if row is None:
        raise NotFound("Care schedule not found")
    return row


# -----------------------------
# Admin
# -----------------------------


def user_is_admin(row: Any, admin_emails: Iterable[str]) -> bool:
    """Allow-listed email AND verified. Either condition alone is not enough."""
    if row is None:
        return False
    email = (row["email"] or "").strip().lower()
    if not email:
        return False
    allowed = {e.strip().lower() for e in admin_emails if e and e.strip()}
    return email in allowed and int(row["email_verified"] or 0) == 1


def is_admin(conn: Any, user_id: str, admin_emails: Iterable[str]) -> bool:
    row = conn.execute(
        "SELECT email, email_verified FROM users WHERE id=?",
        (str(user_id),),
    ).fetchone()
    return user_is_admin(row, admin_emails)


def ensure_admin(conn: Any, user_id: str, admin_emails: Iterable[str]) -> None:
    if not is_admin(conn, user_id, admin_emails):
        raise Forbidden("Admin access required")


# -----------------------------
# Quota
# -----------------------------


def pot_quota(user_row: Any, cfg: Config) -> Tuple[int, str]:
    """Effective pot limit for a user and the tier it came from."""
    override = user_row["max_pots"]
    if override is not None:
        return int(override), "custom"
    if user_row["user_type"] != "email":
        return int(cfg.QUOTA_ANONYMOUS), "anonymous"
    if int(user_row["email_verified"] or 0) != 1:
        return int(cfg.QUOTA_EMAIL_UNVERIFIED), "email_unverified"
    return int(cfg.QUOTA_EMAIL_VERIFIED), "email_verified"


def _quota_message(tier: str, limit: int, cfg: Config) -> str:
    if tier == "anonymous":
        return (
            f"Anonymous users can create up to {limit} pots. "
            f"Register with email to create up to {cfg.QUOTA_EMAIL_UNVERIFIED} pots."
        )
    if tier == "email_unverified":
        return (
            f"Unverified accounts can create up to {limit} pots. "
            f"Verify your email to create up to {cfg.QUOTA_EMAIL_VERIFIED} pots."
        )
    return f"You have reached the maximum of {limit} pots."


def count_pots(conn: Any, user_id: str) -> int:
    r = conn.execute("SELECT COUNT(*) AS n FROM pots WHERE user_id=?", (str(user_id),)).fetchone()
    return int(r["n"] or 0)


def ensure_can_create_pot(conn: Any, user_id: str, cfg: Config) -> Tuple[int, int]:
    """Raise unless `user_id` may create one more pot. Returns (current_count, limit)."""
    user = conn.execute("SELECT * FROM users WHERE id=?", (str(user_id),)).fetchone()
    if user is None:
        raise NotFound("User not found")
    if int(user["is_disabled"] or 0) == 1:
        raise Forbidden("Account is disabled")

    limit, tier = pot_quota(user, cfg)
    n = count_pots(conn, user_id)
    if n >= limit:
        raise Forbidden(_quota_message(tier, limit, cfg))
    return n, limit
