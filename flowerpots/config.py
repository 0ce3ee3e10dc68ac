import os
from dataclasses import dataclass
from typing import List, Optional

# Optional: load a local .env file if present.
try:
    from dotenv import load_dotenv

    load_dotenv()
except Exception:
    # If python-dotenv isn't installed or .env isn't present, that's fine.
    pass


def _env_bool(name: str, default: Optional[bool] = None) -> Optional[bool]:
    """Parse a boolean environment variable.

    Accepted truthy: 1, true, yes, y, on
    Accepted falsy:  0, false, no, n, off
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in ("1", "true", "yes", "y", "on"):
        return True
    if v in ("0", "false", "no", "n", "off"):
        return False
    return default


def _split_csv(raw: str | None) -> List[str]:
    return [s.strip() for s in (raw or "").split(",") if s.strip()]


@dataclass(frozen=True)
class Config:
    """Runtime configuration.

    IMPORTANT: Provide secrets via environment variables or a .env file.
    Do not hardcode secrets in source code.
    """

    # -----------------
    # Core
    # -----------------
    # Preferred: set FLOWERPOTS_DATABASE_URL (or DATABASE_URL) to use Postgres.
    # Fallback: FLOWERPOTS_DB_PATH for SQLite.
    DB_DSN: str = (
        os.environ.get("FLOWERPOTS_DATABASE_URL")
        or os.environ.get("DATABASE_URL")
        or os.environ.get("FLOWERPOTS_DB_PATH", "./flowerpots.sqlite")
    )

    # Public base URL of the app, used in email links.
    APP_BASE_URL: str = os.environ.get("APP_BASE_URL", "http://localhost:8000")

    # -----------------
    # Auth (JWT)
    # -----------------
    # NOTE: In dev, this defaults to a fixed string so you can get started.
    # In production, you MUST set AUTH_JWT_SECRET to a strong random value.
    AUTH_JWT_SECRET: str = os.environ.get("AUTH_JWT_SECRET", "dev_change_me_flowerpots_secret_key")

    # Comma-separated admin allow-list. Admins must also have a verified email.
    ADMIN_EMAILS: str = os.environ.get("ADMIN_EMAILS", "")

    # Anonymous identities issued per client address per hour (0 = unlimited).
    IDENTIFY_MAX_PER_HOUR: int = int(os.environ.get("IDENTIFY_MAX_PER_HOUR", "30"))

    # -----------------
    # Pot quotas (tier defaults; a per-user override wins)
    # -----------------
    QUOTA_ANONYMOUS: int = int(os.environ.get("QUOTA_ANONYMOUS", "3"))
    QUOTA_EMAIL_UNVERIFIED: int = int(os.environ.get("QUOTA_EMAIL_UNVERIFIED", "10"))
    QUOTA_EMAIL_VERIFIED: int = int(os.environ.get("QUOTA_EMAIL_VERIFIED", "50"))

    # -----------------
    # Blob storage
    # -----------------
    # s3 (any S3-compatible endpoint, e.g. Cloudflare R2) | local | "" (no store)
    BLOB_BACKEND: str = os.environ.get("BLOB_BACKEND", "").strip().lower()
    BLOB_BUCKET: str = os.environ.get("BLOB_BUCKET", "flowerpots")
    BLOB_ENDPOINT_URL: str | None = (os.environ.get("BLOB_ENDPOINT_URL") or "").strip() or None
    BLOB_ACCESS_KEY_ID: str | None = os.environ.get("BLOB_ACCESS_KEY_ID")
    BLOB_SECRET_ACCESS_KEY: str | None = os.environ.get("BLOB_SECRET_ACCESS_KEY")
    BLOB_LOCAL_DIR: str = os.environ.get("BLOB_LOCAL_DIR", "./blobs")
    # Uploaded images are addressed as f"{BLOB_PUBLIC_BASE_URL}/{object_key}".
    BLOB_PUBLIC_BASE_URL: str = os.environ.get("BLOB_PUBLIC_BASE_URL", "http://localhost:8000/blobs")

    UPLOAD_MAX_BYTES: int = int(os.environ.get("UPLOAD_MAX_BYTES", str(5 * 1024 * 1024)))

    # -----------------
    # Email (Resend). Without an API key emails are only logged.
    # -----------------
    RESEND_API_KEY: str | None = os.environ.get("RESEND_API_KEY")
    EMAIL_FROM: str = os.environ.get("EMAIL_FROM", "noreply@flowerpots.local")
    EMAIL_TIMEOUT_SECONDS: float = float(os.environ.get("EMAIL_TIMEOUT_SECONDS", "10"))

    # -----------------
    # CORS (development)
    # -----------------
    CORS_ALLOW_ORIGINS: str = os.environ.get(
        "CORS_ALLOW_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:8000",
    )

    # Expose interactive docs (/docs). Handy locally, usually off in production.
    ENABLE_DOCS: bool = _env_bool("ENABLE_DOCS", True) is True

    @property
    def admin_emails(self) -> List[str]:
        return [e.lower() for e in _split_csv(self.ADMIN_EMAILS)]

    @property
    def cors_origins(self) -> List[str]:
        return _split_csv(self.CORS_ALLOW_ORIGINS)


def load_config() -> Config:
    return Config()
