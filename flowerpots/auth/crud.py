from __future__ import annotations

import re
import uuid
from typing import Any, Dict, Optional, Tuple

from flowerpots.config import Config
from flowerpots.db import is_unique_violation, run_batch
from flowerpots.errors import Conflict, Forbidden, NotFound, TooManyRequests, Unauthenticated, ValidationError
from flowerpots.util.hashing import client_fingerprint
from flowerpots.util.time import hour_bucket, iso_in, utcnow_iso

from .gate import count_pots, pot_quota, user_is_admin
from .security import generate_token, hash_password, password_needs_rehash, sign_token, verify_password


_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8
EMAIL_TOKEN_TTL_HOURS = 24


def _debug(msg: str) -> None:
    print(f"[auth] {msg}")


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def validate_email(email: str | None) -> str:
    e = normalize_email(email)
    if not e:
        raise ValidationError("Email is required")
    if not _EMAIL_RE.match(e):
        raise ValidationError("Invalid email format")
    return e


def validate_password(password: str | None) -> str:
    p = password or ""
    if not p:
        raise ValidationError("Password is required")
    if len(p) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    return p


def public_user(row: Any | Dict[str, Any]) -> Dict[str, Any]:
    d = dict(row)
    return {
        "id": d.get("id"),
        "userType": d.get("user_type"),
        "email": d.get("email"),
        "displayName": d.get("display_name"),
        "avatarUrl": d.get("avatar_url"),
        "emailVerified": int(d.get("email_verified") or 0) == 1,
        "isDisabled": int(d.get("is_disabled") or 0) == 1,
        "maxPots": d.get("max_pots"),
        "createdAt": d.get("created_at"),
        "lastLoginAt": d.get("last_login_at"),
    }


def issue_token(cfg: Config, row: Any) -> str:
    claims: Dict[str, Any] = {"userId": row["id"], "type": row["user_type"]}
    if row["user_type"] == "email":
        claims["email"] = row["email"]
    return sign_token(claims, cfg.AUTH_JWT_SECRET)


def get_user_by_id(conn: Any, user_id: str) -> Optional[Any]:
    return conn.execute("SELECT * FROM users WHERE id=?", (str(user_id),)).fetchone()


def _require_user(conn: Any, user_id: str) -> Any:
    row = get_user_by_id(conn, user_id)
    if row is None:
        raise NotFound("User not found")
    return row


def _email_taken(conn: Any, email: str, *, exclude_user_id: str | None = None) -> bool:
    if exclude_user_id is None:
        r = conn.execute("SELECT 1 FROM users WHERE email=?", (email,)).fetchone()
    else:
        r = conn.execute("SELECT 1 FROM users WHERE email=? AND id<>?", (email, exclude_user_id)).fetchone()
    return r is not None


# -----------------------------
# Registration / login
# -----------------------------


def register_user(
    conn: Any,
    *,
    email: str,
    password: str,
    display_name: str | None = None,
) -> Tuple[Any, str]:
    """Create an email account. Returns (user_row, verification_token)."""
    e = validate_email(email)
    p = validate_password(password)

    if _email_taken(conn, e):
        raise Conflict("Email already registered")

    user_id = str(uuid.uuid4())
    verification_token = generate_token()
    try:
        conn.execute(
            """
            INSERT INTO users (
                id, user_type, email, password_hash, display_name,
                email_verified, verification_token, created_at
            ) VALUES (?, 'email', ?, ?, ?, 0, ?, ?)
            """,
            (user_id, e, hash_password(p), (display_name or "").strip() or None, verification_token, utcnow_iso()),
        )
    except Exception as ex:
        if is_unique_violation(ex):
            raise Conflict("Email already registered")
        raise

    row = get_user_by_id(conn, user_id)
    assert row is not None
    _debug(f"registered user_id={user_id}")
    return row, verification_token


def authenticate(conn: Any, *, email: str, password: str) -> Any:
    e = normalize_email(email)
    if not e or not password:
        raise ValidationError("Email and password are required")

    row = conn.execute(
        "SELECT * FROM users WHERE email=? AND user_type='email'",
        (e,),
    ).fetchone()
    if row is None:
        raise Unauthenticated("Invalid email or password")
    if int(row["is_disabled"] or 0) == 1:
        raise Forbidden("Account disabled. Please contact support.")
    if not verify_password(password, str(row["password_hash"] or "")):
        raise Unauthenticated("Invalid email or password")

    now = utcnow_iso()
    if password_needs_rehash(str(row["password_hash"])):
        conn.execute(
            "UPDATE users SET password_hash=?, last_login_at=? WHERE id=?",
            (hash_password(password), now, row["id"]),
        )
    else:
        conn.execute("UPDATE users SET last_login_at=? WHERE id=?", (now, row["id"]))
    return get_user_by_id(conn, row["id"])


# -----------------------------
# Anonymous identities
# -----------------------------


def check_identify_throttle(conn: Any, cfg: Config, client_address: str | None) -> int:
    """Count one anonymous identity issuance for this client in the current hour.

    Raises TooManyRequests past IDENTIFY_MAX_PER_HOUR. A limit of 0 disables the check.
    """
    limit = int(cfg.IDENTIFY_MAX_PER_HOUR)
    if limit <= 0:
        return 0

    client_hash = client_fingerprint(client_address, cfg.AUTH_JWT_SECRET)
    bucket = hour_bucket()

    conn.execute("DELETE FROM identify_throttle WHERE hour_bucket < ?", (bucket,))
    conn.execute(
        """
        INSERT INTO identify_throttle (client_hash, hour_bucket, request_count)
        VALUES (?, ?, 1)
        ON CONFLICT (client_hash, hour_bucket)
        DO UPDATE SET request_count = identify_throttle.request_count + 1
        """,
        (client_hash, bucket),
    )
    r = conn.execute(
        "SELECT request_count FROM identify_throttle WHERE client_hash=? AND hour_bucket=?",
        (client_hash, bucket),
    ).fetchone()
    n = int(r["request_count"] or 0)
    if n > limit:
        _debug(f"identify throttled client={client_hash[:12]} count={n} limit={limit}")
        raise TooManyRequests("Too many requests")
    return n


def create_anonymous_user(conn: Any) -> Any:
    user_id = str(uuid.uuid4())
    conn.execute(
        "INSERT INTO users (id, user_type, created_at) VALUES (?, 'anonymous', ?)",
        (user_id, utcnow_iso()),
    )
    row = get_user_by_id(conn, user_id)
    assert row is not None
    return row


def upgrade_anonymous_user(
    conn: Any,
    *,
    principal_user_id: str,
    anonymous_user_id: str | None,
    email: str,
    password: str,
    display_name: str | None = None,
) -> Tuple[Any, str]:
    """Turn an anonymous identity into a new email account.

    All pots move to the new account and the anonymous row is deleted, in one batch.
    Returns (new_user_row, verification_token).
    """
    anon_id = (anonymous_user_id or principal_user_id or "").strip()
    if not anon_id:
        raise ValidationError("Anonymous user ID is required")
    if anon_id != principal_user_id:
        raise Forbidden("Cannot upgrade another user's account")

    e = validate_email(email)
    p = validate_password(password)

    anon = conn.execute(
        "SELECT * FROM users WHERE id=? AND user_type='anonymous'",
        (anon_id,),
    ).fetchone()
    if anon is None:
        raise ValidationError("Invalid anonymous user")
    if _email_taken(conn, e):
        raise Conflict("Email already registered")

    new_id = str(uuid.uuid4())
    verification_token = generate_token()
    try:
        run_batch(
            conn,
            [
                (
                    """
                    INSERT INTO users (
                        id, user_type, email, password_hash, display_name,
                        email_verified, verification_token, max_pots, created_at
                    ) VALUES (?, 'email', ?, ?, ?, 0, ?, ?, ?)
                    """,
                    (
                        new_id,
                        e,
                        hash_password(p),
                        (display_name or "").strip() or None,
                        verification_token,
                        anon["max_pots"],
                        utcnow_iso(),
                    ),
                ),
                ("UPDATE pots SET user_id=? WHERE user_id=?", (new_id, anon_id)),
                ("DELETE FROM users WHERE id=?", (anon_id,)),
            ],
        )
    except Exception as ex:
        if is_unique_violation(ex):
            raise Conflict("Email already registered")
        raise

    row = get_user_by_id(conn, new_id)
    assert row is not None
    _debug(f"upgraded anonymous user_id={anon_id} -> {new_id}")
    return row, verification_token


# -----------------------------
# Password reset
# -----------------------------


def request_password_reset(conn: Any, email: str) -> Optional[Tuple[str, str]]:
    """Create a reset token if the account exists. Returns (email, token) or None."""
    e = normalize_email(email)
    if not e:
        raise ValidationError("Email is required")

    row = conn.execute(
        "SELECT id FROM users WHERE email=? AND user_type='email'",
        (e,),
    ).fetchone()
    if row is None:
        return None

    token = generate_token()
    conn.execute(
        "UPDATE users SET reset_token=?, reset_token_expires=? WHERE id=?",
        (token, iso_in(hours=EMAIL_TOKEN_TTL_HOURS), row["id"]),
    )
    return e, token


def reset_password(conn: Any, *, token: str, new_password: str) -> None:
    if not token or not new_password:
        raise ValidationError("Token and new password are required")
    p = validate_password(new_password)

    row = conn.execute(
        "SELECT id FROM users WHERE reset_token=? AND reset_token_expires > ?",
        (token, utcnow_iso()),
    ).fetchone()
    if row is None:
        raise ValidationError("Invalid or expired reset token")

    conn.execute(
        "UPDATE users SET password_hash=?, reset_token=NULL, reset_token_expires=NULL WHERE id=?",
        (hash_password(p), row["id"]),
    )


def change_password(conn: Any, user_id: str, *, current_password: str, new_password: str) -> None:
    if not current_password or not new_password:
        raise ValidationError("Current password and new password are required")

    row = _require_user(conn, user_id)
    if not row["password_hash"]:
        raise ValidationError("User does not have a password set")
    if not verify_password(current_password, str(row["password_hash"])):
        raise Unauthenticated("Current password is incorrect")
    p = validate_password(new_password)

    conn.execute("UPDATE users SET password_hash=? WHERE id=?", (hash_password(p), row["id"]))


# -----------------------------
# Email verification / email change
# -----------------------------


def verify_email(conn: Any, token: str) -> Any:
    if not token:
        raise ValidationError("Verification token is required")
    row = conn.execute("SELECT * FROM users WHERE verification_token=?", (token,)).fetchone()
    if row is None:
        raise ValidationError("Invalid or expired verification token")

    conn.execute(
        "UPDATE users SET email_verified=1, verification_token=NULL WHERE id=?",
        (row["id"],),
    )
    return get_user_by_id(conn, row["id"])


def new_verification_token(conn: Any, user_id: str) -> Tuple[str, str]:
    """Rotate the verification token of an unverified email account. Returns (email, token)."""
    row = _require_user(conn, user_id)
    if row["user_type"] != "email" or not row["email"]:
        raise ValidationError("Only email accounts can be verified")
    if int(row["email_verified"] or 0) == 1:
        raise ValidationError("Email already verified")

    token = generate_token()
    conn.execute("UPDATE users SET verification_token=? WHERE id=?", (token, row["id"]))
    return str(row["email"]), token


def request_email_change(conn: Any, user_id: str, new_email: str) -> Tuple[Optional[str], str, str]:
    """Store a pending email change. Returns (current_email, new_email, token)."""
    if not (new_email or "").strip():
        raise ValidationError("New email is required")
    e = validate_email(new_email)

    row = _require_user(conn, user_id)
    if row["user_type"] != "email":
        raise ValidationError("Only email accounts can change email")
    if e == normalize_email(row["email"]):
        raise ValidationError("New email is the same as current email")
    if _email_taken(conn, e, exclude_user_id=row["id"]):
        raise Conflict("Email already registered by another user")

    token = generate_token()
    conn.execute(
        """
        UPDATE users
        SET new_email=?, new_email_verification_token=?, new_email_verification_expires=?
        WHERE id=?
        """,
        (e, token, iso_in(hours=EMAIL_TOKEN_TTL_HOURS), row["id"]),
    )
    return row["email"], e, token


def confirm_email_change(conn: Any, token: str) -> Any:
    if not token:
        raise ValidationError("Verification token is required")
    row = conn.execute(
        "SELECT * FROM users WHERE new_email_verification_token=? AND new_email IS NOT NULL",
        (token,),
    ).fetchone()
    if row is None:
        raise ValidationError("Invalid or expired verification token")
    if str(row["new_email_verification_expires"] or "") <= utcnow_iso():
        raise ValidationError("Verification token has expired")
    if _email_taken(conn, row["new_email"], exclude_user_id=row["id"]):
        raise Conflict("Email already registered by another user")

    conn.execute(
        """
        UPDATE users
        SET email=?, email_verified=1, new_email=NULL,
            new_email_verification_token=NULL, new_email_verification_expires=NULL
        WHERE id=?
        """,
        (row["new_email"], row["id"]),
    )
    return get_user_by_id(conn, row["id"])


# -----------------------------
# Profile
# -----------------------------


def get_me(conn: Any, cfg: Config, user_id: str) -> Dict[str, Any]:
    row = _require_user(conn, user_id)
    limit, tier = pot_quota(row, cfg)
    u = public_user(row)
    u["isAdmin"] = user_is_admin(row, cfg.admin_emails)
    u["potCount"] = count_pots(conn, user_id)
    u["potLimit"] = limit
    u["quotaTier"] = tier
    return u


def update_profile(conn: Any, user_id: str, fields: Dict[str, Any]) -> Any:
    """Partial profile update. `fields` holds only what the client supplied."""
    _require_user(conn, user_id)

    updates: list[tuple[str, Any]] = []
    if "display_name" in fields:
        updates.append(("display_name", (fields["display_name"] or "").strip() or None))
    if "avatar_url" in fields:
        updates.append(("avatar_url", fields["avatar_url"] or None))
    if not updates:
        raise ValidationError("No fields to update")

    sets = ", ".join([f"{k}=?" for k, _ in updates])
    params = [v for _, v in updates] + [str(user_id)]
    conn.execute(f"UPDATE users SET {sets} WHERE id=?", params)
    return get_user_by_id(conn, user_id)
