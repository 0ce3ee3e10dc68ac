"""Database schema for the flowerpots backend.

Timestamps are ISO-8601 TEXT (UTC, with 'Z') for portability across SQLite and
Postgres; ISO strings sort lexicographically in time order. Care and timeline dates
are client-supplied ISO dates (YYYY-MM-DD or full timestamps).

Foreign keys are declared without ON DELETE CASCADE for user-owned data: deletes of
pots and users run an explicit, ordered cascade in application code
(`flowerpots.resources.pots.delete_pot`, `flowerpots.admin.users.erase_user`).

NOTE: The Postgres schema is generated from the SQLite schema with a small set of
transformations (types + autoincrement).
"""

from __future__ import annotations

import re


SCHEMA_SQLITE = r"""
PRAGMA foreign_keys = ON;

-- Users / Auth
-- anonymous accounts carry no email/password, email accounts must have a password hash.
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    user_type TEXT NOT NULL CHECK (user_type IN ('anonymous','email')),
    email TEXT UNIQUE,
    password_hash TEXT,
    display_name TEXT,
    avatar_url TEXT,
    email_verified INTEGER NOT NULL DEFAULT 0,
    verification_token TEXT,
    reset_token TEXT,
    reset_token_expires TEXT,
    new_email TEXT,
    new_email_verification_token TEXT,
    new_email_verification_expires TEXT,
    max_pots INTEGER,
    is_disabled INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    last_login_at TEXT,
    CHECK (
        (user_type = 'email' AND email IS NOT NULL AND password_hash IS NOT NULL)
        OR (user_type = 'anonymous' AND email IS NULL AND password_hash IS NULL)
    )
);
CREATE INDEX IF NOT EXISTS idx_users_verification_token ON users (verification_token);
CREATE INDEX IF NOT EXISTS idx_users_reset_token ON users (reset_token);
CREATE INDEX IF NOT EXISTS idx_users_new_email_token ON users (new_email_verification_token);

-- Anonymous identity issuance throttle (client address hash x hour bucket)
CREATE TABLE IF NOT EXISTS identify_throttle (
    client_hash TEXT NOT NULL,
    hour_bucket TEXT NOT NULL,
    request_count INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (client_hash, hour_bucket)
);

CREATE TABLE IF NOT EXISTS pots (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    plant_type TEXT,
    note TEXT,
    plant_date TEXT,
    image_url TEXT,
    last_care TEXT,
    last_care_action TEXT,
    sort_order INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    FOREIGN KEY (user_id) REFERENCES users(id)
);
CREATE INDEX IF NOT EXISTS idx_pots_user_order ON pots (user_id, sort_order);

-- image_url holds a JSON array of image URLs (shared by rows logged together)
CREATE TABLE IF NOT EXISTS care_records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    pot_id TEXT NOT NULL,
    type TEXT NOT NULL,
    action TEXT NOT NULL,
    description TEXT,
    image_url TEXT,
    care_date TEXT NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY (pot_id) REFERENCES pots(id)
);
CREATE INDEX IF NOT EXISTS idx_care_records_pot_date ON care_records (pot_id, care_date);

-- images holds a JSON array of image URLs
CREATE TABLE IF NOT EXISTS timelines (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    pot_id TEXT NOT NULL,
    date TEXT NOT NULL,
    description TEXT,
    images TEXT,
    video TEXT,
    created_at TEXT NOT NULL,
    FOREIGN KEY (pot_id) REFERENCES pots(id)
);
CREATE INDEX IF NOT EXISTS idx_timelines_pot_date ON timelines (pot_id, date);

CREATE TABLE IF NOT EXISTS care_schedules (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    pot_id TEXT NOT NULL,
    care_type TEXT NOT NULL,
    interval_days INTEGER NOT NULL,
    custom_action TEXT,
    enabled INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (pot_id, care_type),
    FOREIGN KEY (pot_id) REFERENCES pots(id)
);

-- Plant catalog (admin-managed reference data)
CREATE TABLE IF NOT EXISTS plants (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    category TEXT,
    care_difficulty TEXT,
    basic_info TEXT NOT NULL DEFAULT '{}',
    ornamental_features TEXT NOT NULL DEFAULT '{}',
    care_guide TEXT NOT NULL DEFAULT '{}',
    image_url TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_plants_name ON plants (name);

CREATE TABLE IF NOT EXISTS plant_synonyms (
    plant_id TEXT NOT NULL,
    synonym TEXT NOT NULL,
    PRIMARY KEY (plant_id, synonym),
    FOREIGN KEY (plant_id) REFERENCES plants(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_plant_synonyms_synonym ON plant_synonyms (synonym);
"""


def _sqlite_to_postgres(ddl: str) -> str:
    # Remove SQLite pragmas
    lines: list[str] = []
    for line in ddl.splitlines():
        if line.strip().upper().startswith("PRAGMA "):
            continue
        lines.append(line)
    out = "\n".join(lines)

    # Types
    out = re.sub(r"\bREAL\b", "DOUBLE PRECISION", out)

    # AUTOINCREMENT primary keys
    out = re.sub(
        r"INTEGER\s+PRIMARY\s+KEY\s+AUTOINCREMENT",
        "BIGSERIAL PRIMARY KEY",
        out,
        flags=re.IGNORECASE,
    )
    out = re.sub(r"\bAUTOINCREMENT\b", "", out, flags=re.IGNORECASE)

    return out


SCHEMA_POSTGRES = _sqlite_to_postgres(SCHEMA_SQLITE)


def get_schema_sql(dialect: str) -> str:
    d = (dialect or "").lower()
    if d.startswith("post"):
        return SCHEMA_POSTGRES
    return SCHEMA_SQLITE
