"""Recurring care schedules and the reminders derived from them.

Reminder status is computed on read from the pot's last care date, never stored. A
schedule is due when the pot was never cared for, or when the days since its last
care reach the schedule's interval.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from flowerpots.auth.gate import owned_pot, owned_schedule
from flowerpots.db import insert_returning_id, is_unique_violation
from flowerpots.errors import Conflict, ValidationError
from flowerpots.util.time import days_since, utcnow_iso


def serialize_schedule(row: Any) -> Dict[str, Any]:
    d = dict(row)
    out = {
        "id": d["id"],
        "potId": d["pot_id"],
        "careType": d["care_type"],
        "intervalDays": int(d["interval_days"]),
        "customAction": d.get("custom_action"),
        "enabled": int(d.get("enabled") or 0) == 1,
        "createdAt": d.get("created_at"),
        "updatedAt": d.get("updated_at"),
    }
    if "pot_name" in d:
        out["potName"] = d["pot_name"]
    if "pot_image" in d:
        out["potImage"] = d["pot_image"]
    return out


def _validate_interval(value: Any) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise ValidationError("intervalDays must be a whole number of days")
    if isinstance(value, float) and value != n:
        raise ValidationError("intervalDays must be a whole number of days")
    if n < 1:
        raise ValidationError("intervalDays must be at least 1")
    return n


def list_schedules(conn: Any, user_id: str) -> List[Dict[str, Any]]:
    rows = conn.execute(
        """
        SELECT s.*, p.name AS pot_name, p.image_url AS pot_image
        FROM care_schedules s
        JOIN pots p ON p.id = s.pot_id
        WHERE p.user_id=?
        ORDER BY p.sort_order ASC, p.name ASC, s.care_type ASC
        """,
        (str(user_id),),
    ).fetchall()
    return [serialize_schedule(r) for r in rows]


def list_pot_schedules(conn: Any, pot_id: str, user_id: str) -> List[Dict[str, Any]]:
    owned_pot(conn, pot_id, user_id)
    rows = conn.execute(
        "SELECT * FROM care_schedules WHERE pot_id=? ORDER BY care_type ASC",
        (str(pot_id),),
    ).fetchall()
    return [serialize_schedule(r) for r in rows]


def create_schedule(conn: Any, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    pot_id = str(fields.get("pot_id") or "").strip()
    care_type = str(fields.get("care_type") or "").strip()
    if not pot_id or not care_type or fields.get("interval_days") is None:
        raise ValidationError("Missing required fields: potId, careType, intervalDays")
    interval = _validate_interval(fields["interval_days"])

    owned_pot(conn, pot_id, user_id)

    dup = conn.execute(
        "SELECT 1 FROM care_schedules WHERE pot_id=? AND care_type=?",
        (pot_id, care_type),
    ).fetchone()
    if dup is not None:
        raise Conflict("Schedule for this care type already exists")

    now = utcnow_iso()
    enabled = fields.get("enabled")
    try:
        new_id = insert_returning_id(
            conn,
            """
            INSERT INTO care_schedules (pot_id, care_type, interval_days, custom_action, enabled, created_at, updated_at)
            VALUES (?,?,?,?,?,?,?)
            """,
            (
                pot_id,
                care_type,
                interval,
                fields.get("custom_action") or None,
                0 if enabled is False else 1,
                now,
                now,
            ),
        )
    except Exception as e:
        if is_unique_violation(e):
            raise Conflict("Schedule for this care type already exists")
        raise

    return serialize_schedule(owned_schedule(conn, new_id, user_id))


def update_schedule(conn: Any, schedule_id: int | str, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    owned_schedule(conn, schedule_id, user_id)

    updates: list[tuple[str, Any]] = []
    if "interval_days" in fields:
        updates.append(("interval_days", _validate_interval(fields["interval_days"])))
    if "custom_action" in fields:
        updates.append(("custom_action", fields["custom_action"] or None))
    if "enabled" in fields:
        updates.append(("enabled", 1 if fields["enabled"] else 0))
    if not updates:
        raise ValidationError("No fields to update")

    updates.append(("updated_at", utcnow_iso()))
    sets = ", ".join([f"{k}=?" for k, _ in updates])
    params = [v for _, v in updates] + [int(schedule_id)]
    conn.execute(f"UPDATE care_schedules SET {sets} WHERE id=?", params)
    return serialize_schedule(owned_schedule(conn, schedule_id, user_id))


def delete_schedule(conn: Any, schedule_id: int | str, user_id: str) -> None:
    owned_schedule(conn, schedule_id, user_id)
    conn.execute("DELETE FROM care_schedules WHERE id=?", (int(schedule_id),))


def list_reminders(conn: Any, user_id: str, *, today: Optional[date] = None) -> List[Dict[str, Any]]:
    """Enabled schedules that are due, most overdue first."""
    rows = conn.execute(
        """
        SELECT s.id, s.pot_id, s.care_type, s.interval_days, s.custom_action,
               p.name AS pot_name, p.image_url AS pot_image, p.last_care
        FROM care_schedules s
        JOIN pots p ON p.id = s.pot_id
        WHERE p.user_id=? AND s.enabled=1
        """,
        (str(user_id),),
    ).fetchall()

    due: List[Dict[str, Any]] = []
    for r in rows:
        interval = int(r["interval_days"])
        days = days_since(r["last_care"], today)
        if days is not None and days < interval:
            continue
        due.append(
            {
                "scheduleId": r["id"],
                "potId": r["pot_id"],
                "potName": r["pot_name"],
                "potImage": r["pot_image"],
                "careType": r["care_type"],
                "action": r["custom_action"] or r["care_type"],
                "intervalDays": interval,
                "lastCare": r["last_care"],
                "daysSinceCare": days,
                "overdueDays": None if days is None else days - interval,
            }
        )

    # Never-cared-for pots first, then by how overdue they are.
    due.sort(key=lambda d: (d["daysSinceCare"] is not None, -(d["overdueDays"] or 0)))
    return due
