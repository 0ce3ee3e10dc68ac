from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from flowerpots.api.server import create_app
from flowerpots.config import Config
from flowerpots.db import connect, init_db
from flowerpots.mail import Email


ADMIN_EMAIL = "admin@example.com"
PASSWORD = "correct-horse-1"


class InMemoryBlobStore:
    """Blob store double recording every call."""

    def __init__(self) -> None:
        self.objects: Dict[str, bytes] = {}
        self.puts: List[str] = []
        self.deleted: List[str] = []
        self.fail_deletes = False

    def put(self, key: str, data: bytes, content_type: str) -> None:
        self.objects[key] = data
        self.puts.append(key)

    def get(self, key: str) -> Optional[bytes]:
        return self.objects.get(key)

    def delete(self, key: str) -> None:
        if self.fail_deletes:
            raise RuntimeError("blob store unavailable")
        self.objects.pop(key, None)
        self.deleted.append(key)


class Outbox:
    def __init__(self) -> None:
        self.sent: List[Email] = []

    def send(self, email: Email) -> bool:
        self.sent.append(email)
        return True

    def to(self, address: str) -> List[Email]:
        return [m for m in self.sent if m.to == address]


@pytest.fixture
def cfg(tmp_path) -> Config:
    return Config(
        DB_DSN=str(tmp_path / "flowerpots.sqlite"),
        AUTH_JWT_SECRET="test-secret-0123456789abcdef0123456789abcdef",
        ADMIN_EMAILS=ADMIN_EMAIL,
        IDENTIFY_MAX_PER_HOUR=0,
        QUOTA_ANONYMOUS=3,
        QUOTA_EMAIL_UNVERIFIED=10,
        QUOTA_EMAIL_VERIFIED=50,
        BLOB_BACKEND="",
        BLOB_PUBLIC_BASE_URL="https://blobs.example.com",
        APP_BASE_URL="https://app.example.com",
        RESEND_API_KEY=None,
        CORS_ALLOW_ORIGINS="",
    )


@pytest.fixture
def db(cfg: Config) -> Config:
    """Config whose database already has the schema, for service-level tests."""
    init_db(cfg.DB_DSN)
    return cfg


@pytest.fixture
def blobs() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def outbox() -> Outbox:
    return Outbox()


@pytest.fixture
def client(cfg: Config, blobs: InMemoryBlobStore, outbox: Outbox):
    app = create_app(cfg, blobs=blobs, mailer=outbox)
    with TestClient(app) as c:
        yield c


def auth(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class Api:
    """Small client-side helpers shared by the API tests."""

    def __init__(self, client: TestClient, cfg: Config):
        self.client = client
        self.cfg = cfg

    def identify(self) -> Dict[str, Any]:
        r = self.client.post("/auth/identify")
        assert r.status_code == 200, r.text
        return r.json()

    def register(self, email: str, password: str = PASSWORD, **extra: Any) -> Dict[str, Any]:
        r = self.client.post("/auth/register", json={"email": email, "password": password, **extra})
        assert r.status_code == 200, r.text
        return r.json()

    def verify(self, email: str) -> None:
        with connect(self.cfg.DB_DSN) as conn:
            row = conn.execute("SELECT verification_token FROM users WHERE email=?", (email,)).fetchone()
        r = self.client.get("/auth/verify-email", params={"token": row["verification_token"]})
        assert r.status_code == 200, r.text

    def verified_user(self, email: str) -> Dict[str, Any]:
        body = self.register(email)
        self.verify(email)
        return body

    def admin(self) -> str:
        return self.verified_user(ADMIN_EMAIL)["token"]

    def create_pot(self, token: str, name: str = "Monstera", **fields: Any) -> Dict[str, Any]:
        r = self.client.post("/pots", json={"name": name, **fields}, headers=auth(token))
        assert r.status_code == 201, r.text
        return r.json()["data"]

    def sql(self, query: str, params: tuple = ()) -> List[Dict[str, Any]]:
        with connect(self.cfg.DB_DSN) as conn:
            return [dict(r) for r in conn.execute(query, params).fetchall()]


@pytest.fixture
def api(client: TestClient, cfg: Config) -> Api:
    return Api(client, cfg)
