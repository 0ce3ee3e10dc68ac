from __future__ import annotations

import re

from fastapi.testclient import TestClient

from flowerpots.api.server import create_app
from flowerpots.config import Config

from conftest import PASSWORD, auth


def _token_from(email) -> str:
    m = re.search(r"token=([A-Za-z0-9]+)", email.text or email.html)
    assert m, email.html
    return m.group(1)


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_register_returns_session_and_sends_emails(api, outbox):
    body = api.register("Alice@Example.com", displayName="Alice")

    assert body["success"] is True
    assert body["email"] == "alice@example.com"
    assert body["displayName"] == "Alice"
    assert body["emailVerified"] is False
    assert body["token"]

    subjects = [m.subject for m in outbox.to("alice@example.com")]
    assert any("Verify" in s for s in subjects)
    assert any("Welcome" in s for s in subjects)


def test_register_rejects_duplicate_and_weak_input(api, client):
    api.register("bob@example.com")

    dup = client.post("/auth/register", json={"email": "BOB@example.com", "password": PASSWORD})
    assert dup.status_code == 409
    assert dup.json() == {"success": False, "error": "Email already registered"}

    short = client.post("/auth/register", json={"email": "c@example.com", "password": "short"})
    assert short.status_code == 400

    bad = client.post("/auth/register", json={"email": "not-an-email", "password": PASSWORD})
    assert bad.status_code == 400


def test_login_success_and_failures(api, client):
    api.register("carol@example.com")

    ok = client.post("/auth/login", json={"email": "carol@example.com", "password": PASSWORD})
    assert ok.status_code == 200
    assert ok.json()["userId"]

    wrong = client.post("/auth/login", json={"email": "carol@example.com", "password": "nope-nope-nope"})
    assert wrong.status_code == 401
    unknown = client.post("/auth/login", json={"email": "nobody@example.com", "password": PASSWORD})
    assert unknown.status_code == 401
    assert wrong.json()["error"] == unknown.json()["error"]


def test_login_rejects_disabled_account(api, client):
    body = api.register("dave@example.com")
    api.sql("UPDATE users SET is_disabled=1 WHERE id=?", (body["userId"],))

    r = client.post("/auth/login", json={"email": "dave@example.com", "password": PASSWORD})
    assert r.status_code == 403


def test_me_requires_identity(client):
    assert client.get("/auth/me").status_code == 401
    assert client.get("/auth/me", headers=auth("garbage")).status_code == 401


def test_me_reports_quota(api, client):
    body = api.register("erin@example.com")
    api.create_pot(body["token"])

    me = client.get("/auth/me", headers=auth(body["token"])).json()["user"]
    assert me["email"] == "erin@example.com"
    assert me["potCount"] == 1
    assert me["potLimit"] == 10
    assert me["quotaTier"] == "email_unverified"
    assert me["isAdmin"] is False


def test_identify_issues_anonymous_identity(api, client):
    body = api.identify()
    assert body["userType"] == "anonymous"

    me = client.get("/auth/me", headers=auth(body["token"])).json()["user"]
    assert me["id"] == body["userId"]
    assert me["userType"] == "anonymous"
    assert me["potLimit"] == 3


def test_identify_is_throttled_per_client(tmp_path, blobs, outbox):
    cfg = Config(
        DB_DSN=str(tmp_path / "throttle.sqlite"),
        AUTH_JWT_SECRET="throttle-secret-0123456789abcdef0123456789",
        IDENTIFY_MAX_PER_HOUR=2,
        CORS_ALLOW_ORIGINS="",
    )
    with TestClient(create_app(cfg, blobs=blobs, mailer=outbox)) as c:
        assert c.post("/auth/identify").status_code == 200
        assert c.post("/auth/identify").status_code == 200
        r = c.post("/auth/identify")
        assert r.status_code == 429
        assert r.json()["success"] is False


def test_upgrade_moves_pots_to_new_account(api, client, outbox):
    anon = api.identify()
    pot = api.create_pot(anon["token"], "Fern")

    r = client.post(
        "/auth/upgrade",
        json={"email": "frank@example.com", "password": PASSWORD, "anonymousUserId": anon["userId"]},
        headers=auth(anon["token"]),
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["userId"] != anon["userId"]
    assert body["email"] == "frank@example.com"

    pots = client.get("/pots", headers=auth(body["token"])).json()["data"]
    assert [p["id"] for p in pots] == [pot["id"]]
    assert api.sql("SELECT id FROM users WHERE id=?", (anon["userId"],)) == []
    assert outbox.to("frank@example.com")


def test_upgrade_requires_own_anonymous_identity(api, client):
    anon = api.identify()
    other = api.identify()
    r = client.post(
        "/auth/upgrade",
        json={"email": "gina@example.com", "password": PASSWORD, "anonymousUserId": other["userId"]},
        headers=auth(anon["token"]),
    )
    assert r.status_code == 403

    member = api.register("hank@example.com")
    r = client.post(
        "/auth/upgrade",
        json={"email": "hank2@example.com", "password": PASSWORD},
        headers=auth(member["token"]),
    )
    assert r.status_code == 400


def test_password_reset_flow(api, client, outbox):
    api.register("ivy@example.com")

    r = client.post("/auth/forgot-password", json={"email": "ivy@example.com"})
    assert r.status_code == 200
    reset_mail = [m for m in outbox.to("ivy@example.com") if "Reset" in m.subject][-1]
    token = _token_from(reset_mail)

    r = client.post("/auth/reset-password", json={"token": token, "newPassword": "brand-new-pass"})
    assert r.status_code == 200

    assert client.post("/auth/login", json={"email": "ivy@example.com", "password": PASSWORD}).status_code == 401
    assert client.post("/auth/login", json={"email": "ivy@example.com", "password": "brand-new-pass"}).status_code == 200

    # Single use.
    again = client.post("/auth/reset-password", json={"token": token, "newPassword": "another-pass-1"})
    assert again.status_code == 400


def test_forgot_password_does_not_reveal_accounts(client, outbox):
    r = client.post("/auth/forgot-password", json={"email": "ghost@example.com"})
    assert r.status_code == 200
    assert r.json()["success"] is True
    assert outbox.sent == []


def test_verify_email_and_resend(api, client, outbox):
    body = api.register("jill@example.com")

    r = client.post("/auth/send-verification-email", headers=auth(body["token"]))
    assert r.status_code == 200
    token = _token_from([m for m in outbox.to("jill@example.com") if "Verify" in m.subject][-1])

    r = client.get("/auth/verify-email", params={"token": token})
    assert r.status_code == 200
    me = client.get("/auth/me", headers=auth(body["token"])).json()["user"]
    assert me["emailVerified"] is True
    assert me["potLimit"] == 50

    assert client.get("/auth/verify-email", params={"token": "nope"}).status_code == 400


def test_change_email_flow(api, client, outbox):
    body = api.register("kim@example.com")
    api.register("taken@example.com")

    taken = client.post("/auth/change-email", json={"newEmail": "taken@example.com"}, headers=auth(body["token"]))
    assert taken.status_code == 409

    r = client.post("/auth/change-email", json={"newEmail": "kim.new@example.com"}, headers=auth(body["token"]))
    assert r.status_code == 200
    token = _token_from(outbox.to("kim.new@example.com")[-1])

    r = client.get("/auth/verify-new-email", params={"token": token})
    assert r.status_code == 200
    assert r.json()["email"] == "kim.new@example.com"
    assert client.post("/auth/login", json={"email": "kim.new@example.com", "password": PASSWORD}).status_code == 200


def test_profile_update_is_partial(api, client):
    body = api.register("lee@example.com", displayName="Lee")
    headers = auth(body["token"])

    r = client.put("/auth/profile", json={"avatarUrl": "https://img.example.com/lee.png"}, headers=headers)
    assert r.status_code == 200
    user = r.json()["user"]
    assert user["displayName"] == "Lee"
    assert user["avatarUrl"] == "https://img.example.com/lee.png"

    assert client.put("/auth/profile", json={}, headers=headers).status_code == 400


def test_change_password(api, client):
    body = api.register("max@example.com")
    headers = auth(body["token"])

    wrong = client.put(
        "/auth/password", json={"currentPassword": "not-it-at-all", "newPassword": "next-pass-1"}, headers=headers
    )
    assert wrong.status_code == 401

    r = client.put("/auth/password", json={"currentPassword": PASSWORD, "newPassword": "next-pass-1"}, headers=headers)
    assert r.status_code == 200
    assert client.post("/auth/login", json={"email": "max@example.com", "password": "next-pass-1"}).status_code == 200
