from __future__ import annotations

from fastapi.testclient import TestClient

from flowerpots.api.server import create_app
from flowerpots.storage.uploads import PLACEHOLDER_IMAGE_URL, storage_path

from conftest import auth


PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _upload(client, token, data=PNG, ctype="image/png", **form):
    return client.post(
        "/upload/image",
        files={"image": ("leaf.png", data, ctype)},
        data=form,
        headers=auth(token),
    )


def test_storage_paths():
    assert storage_path("pot", "u1", None, "f.png") == "pots/u1/f.png"
    assert storage_path("timeline", "u1", "p1", "f.png") == "timeline/u1/p1/f.png"
    assert storage_path("care", "u1", "p1", "f.png") == "care/u1/p1/f.png"
    assert storage_path("avatar", "u1", None, "f.png") == "general/u1/f.png"


def test_upload_timeline_image(api, client, blobs):
    user = api.register("up@example.com")
    pot = api.create_pot(user["token"], "Pilea")

    r = _upload(client, user["token"], uploadType="timeline", potId=pot["id"])
    assert r.status_code == 200, r.text
    info = r.json()["data"]
    key = blobs.puts[0]
    assert key.startswith(f"timeline/{user['userId']}/{pot['id']}/image_")
    assert key.endswith(".png")
    assert info["url"] == f"https://blobs.example.com/{key}"
    assert info["size"] == len(PNG)
    assert blobs.objects[key] == PNG


def test_upload_for_foreign_pot_is_not_found(api, client, blobs):
    owner = api.register("owner@example.com")
    pot = api.create_pot(owner["token"], "Mine")
    intruder = api.identify()

    r = _upload(client, intruder["token"], uploadType="care", potId=pot["id"])
    assert r.status_code == 404
    assert blobs.puts == []


def test_upload_validation(api, client, blobs):
    user = api.identify()
    assert _upload(client, user["token"], ctype="application/pdf").status_code == 400
    assert _upload(client, user["token"], uploadType="care").status_code == 400
    big = b"x" * (5 * 1024 * 1024 + 1)
    assert _upload(client, user["token"], data=big).status_code == 400
    assert client.post("/upload/image", data={"uploadType": "pot"}, headers=auth(user["token"])).status_code == 400
    assert blobs.puts == []


def test_upload_requires_identity(client):
    r = client.post("/upload/image", files={"image": ("leaf.png", PNG, "image/png")})
    assert r.status_code == 401


def test_pot_upload_replaces_pot_image(api, client, blobs):
    user = api.register("swap@example.com")
    pot = api.create_pot(user["token"], "Swap", imageUrl=f"https://blobs.example.com/pots/{user['userId']}/old.png")

    r = _upload(client, user["token"], uploadType="pot", potId=pot["id"])
    assert r.status_code == 200
    new_url = r.json()["data"]["url"]

    refreshed = client.get(f"/pots/{pot['id']}", headers=auth(user["token"])).json()["data"]
    assert refreshed["image_url"] == new_url
    assert blobs.deleted == [f"pots/{user['userId']}/old.png"]


def test_pot_upload_keeps_old_cover_still_used_by_timeline(api, client, blobs):
    user = api.register("swap2@example.com")
    h = auth(user["token"])
    pot = api.create_pot(user["token"], "Swap")
    photo = f"https://blobs.example.com/timeline/{user['userId']}/{pot['id']}/t1.png"
    client.post("/timelines", json={"potId": pot["id"], "date": "2024-05-02", "images": [photo]}, headers=h)
    client.put(f"/pots/{pot['id']}", json={"imageUrl": photo}, headers=h)

    r = _upload(client, user["token"], uploadType="pot", potId=pot["id"])
    assert r.status_code == 200
    assert blobs.deleted == []


def test_upload_without_blob_store_returns_placeholder(cfg, outbox):
    with TestClient(create_app(cfg, blobs=None, mailer=outbox)) as c:
        token = c.post("/auth/identify").json()["token"]
        r = _upload(c, token)
    assert r.status_code == 200
    assert r.json()["data"]["url"] == PLACEHOLDER_IMAGE_URL
