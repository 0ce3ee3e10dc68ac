from __future__ import annotations

import pytest

from flowerpots.admin.plants import import_plants, list_plants
from flowerpots.db import connect

from conftest import auth


BLOB = "https://blobs.example.com"


def _plant(pid, name, **extra):
    return {"id": pid, "name": name, **extra}


def test_batch_import_tolerates_bad_items(db):
    items = [
        _plant("p1", "One"),
        _plant("p2", "Two"),
        {"id": "p3"},
        _plant("p4", "Four"),
        _plant("p5", "Five"),
    ]
    with connect(db.DB_DSN) as conn:
        report = import_plants(conn, items)

    assert report["success"] == 4
    assert report["failed"] == 1
    assert report["errors"] == ["Item 3: Missing ID or Name for a plant"]
    with connect(db.DB_DSN) as conn:
        ids = [r["id"] for r in conn.execute("SELECT id FROM plants ORDER BY id").fetchall()]
    assert ids == ["p1", "p2", "p4", "p5"]


def test_import_is_idempotent_and_replaces_synonyms(db):
    with connect(db.DB_DSN) as conn:
        import_plants(conn, [_plant("p1", "Old name", synonyms=["a", "b"])])
        import_plants(conn, [{"_id": "p1", "basicInfo": {"name": "New name", "synonyms": ["c"]}}])
        rows = conn.execute("SELECT name FROM plants WHERE id='p1'").fetchall()
        syns = [r["synonym"] for r in conn.execute("SELECT synonym FROM plant_synonyms WHERE plant_id='p1'")]

    assert [r["name"] for r in rows] == ["New name"]
    assert syns == ["c"]


def test_admin_plant_crud(api, client):
    h = auth(api.admin())

    r = client.post("/admin/plants", json=_plant("rose", "Rose", category="shrub", synonyms=["Rosa"]), headers=h)
    assert r.status_code == 201, r.text
    assert r.json()["data"]["synonyms"] == ["Rosa"]
    assert client.post("/admin/plants", json=_plant("rose", "Rose"), headers=h).status_code == 409
    assert client.post("/admin/plants", json={"name": "No id"}, headers=h).status_code == 400

    r = client.put("/admin/plants/rose", json={"careDifficulty": "easy", "synonyms": []}, headers=h)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["care_difficulty"] == "easy"
    assert data["category"] == "shrub"
    assert data["synonyms"] == []
    assert client.put("/admin/plants/missing", json={"name": "x"}, headers=h).status_code == 404

    assert client.delete("/admin/plants/rose", headers=h).status_code == 200
    assert client.delete("/admin/plants/rose", headers=h).status_code == 404


def test_admin_batch_routes(api, client):
    h = auth(api.admin())
    items = [_plant(f"p{i}", f"Plant {i}", synonyms=[f"alias {i}"]) for i in range(1, 6)]
    items[2] = {"name": "no id"}

    r = client.post("/admin/plants/batch", json=items, headers=h)
    assert r.status_code == 200
    assert (r.json()["data"]["success"], r.json()["data"]["failed"]) == (4, 1)

    r = client.request("DELETE", "/admin/plants/batch", json={"ids": ["p1", "p2", "nope"]}, headers=h)
    assert r.status_code == 200
    assert r.json()["deleted"] == 2
    assert api.sql("SELECT plant_id FROM plant_synonyms WHERE plant_id IN ('p1','p2')") == []

    empty = client.request("DELETE", "/admin/plants/batch", json={"ids": []}, headers=h)
    assert empty.status_code == 400


def test_pagination_and_search_counts(api, client):
    h = auth(api.admin())
    items = [_plant(f"fern-{i:02d}", f"Fern {i:02d}") for i in range(25)]
    items += [_plant(f"cactus-{i}", f"Cactus {i}") for i in range(3)]
    client.post("/admin/plants/batch", json={"plants": items}, headers=h)

    page1 = client.get("/admin/plants", params={"page": 1, "pageSize": 10, "search": "fern"}, headers=h).json()
    assert len(page1["data"]) == 10
    assert page1["pagination"] == {"page": 1, "pageSize": 10, "total": 25, "totalPages": 3}

    page3 = client.get("/admin/plants", params={"page": 3, "pageSize": 10, "search": "FERN"}, headers=h).json()
    assert len(page3["data"]) == 5

    clamped = client.get("/admin/plants", params={"pageSize": 1000}, headers=h).json()
    assert clamped["pagination"]["pageSize"] == 100
    assert clamped["pagination"]["total"] == 28


@pytest.mark.parametrize(
    "term,expected",
    [("_", ["x_1"]), ("%", ["p50"]), ("\\", []), ("x_1", ["x_1"]), ("50%", ["p50"]), ("f%n", [])],
)
def test_search_treats_wildcards_literally(db, term, expected):
    with connect(db.DB_DSN) as conn:
        import_plants(
            conn,
            [_plant("p1", "Fern"), _plant("p2", "Aloe"), _plant("x_1", "Xeric"), _plant("p50", "Half 50% shade")],
        )
        listed = list_plants(conn, search=term)

    assert sorted(p["id"] for p in listed["items"]) == expected
    assert listed["pagination"]["total"] == len(expected)


def test_admin_user_listing_and_update(api, client):
    h = auth(api.admin())
    target = api.register("target@example.com", displayName="Target Person")
    api.identify()

    r = client.get("/admin/users", params={"search": "target person"}, headers=h).json()
    assert [u["id"] for u in r["data"]] == [target["userId"]]
    assert r["pagination"]["total"] == 1

    all_users = client.get("/admin/users", headers=h).json()
    assert all_users["pagination"]["total"] == 3

    r = client.put(f"/admin/users/{target['userId']}", json={"maxPots": 1, "emailVerified": True}, headers=h)
    assert r.status_code == 200
    detail = r.json()["data"]
    assert detail["potLimit"] == 1
    assert detail["quotaTier"] == "custom"
    assert detail["emailVerified"] is True

    api.create_pot(target["token"], "only one")
    second = client.post("/pots", json={"name": "two"}, headers=auth(target["token"]))
    assert second.status_code == 403

    client.put(f"/admin/users/{target['userId']}", json={"isDisabled": True}, headers=h)
    assert client.post("/auth/login", json={"email": "target@example.com", "password": "correct-horse-1"}).status_code == 403

    assert client.put(f"/admin/users/{target['userId']}", json={"maxPots": -1}, headers=h).status_code == 400
    assert client.get("/admin/users/missing", headers=h).status_code == 404


def test_erase_user_removes_everything(api, client, blobs):
    h = auth(api.admin())
    bystander = api.register("bystander@example.com")
    keep = api.create_pot(bystander["token"], "Stays")
    bystander_key = f"timeline/{bystander['userId']}/{keep['id']}/b.png"

    victim = api.register("victim@example.com")
    vh = auth(victim["token"])
    vid = victim["userId"]
    pot = api.create_pot(victim["token"], "Gone", imageUrl=f"{BLOB}/pots/{vid}/pot.png")
    client.post(
        "/care-records",
        json={
            "potId": pot["id"],
            "type": "water",
            "careDate": "2024-01-01",
            "imageUrls": [f"{BLOB}/care/{vid}/{pot['id']}/c.png"],
        },
        headers=vh,
    )
    client.post("/timelines", json={"potId": pot["id"], "date": "2024-01-02", "images": [f"{BLOB}/{bystander_key}"]}, headers=vh)
    client.post("/care-schedules", json={"potId": pot["id"], "careType": "water", "intervalDays": 2}, headers=vh)

    r = client.delete(f"/admin/users/{vid}", headers=h)
    assert r.status_code == 200, r.text
    summary = r.json()["data"]
    assert summary["potCount"] == 1
    assert summary["blobsDeleted"] == 2

    assert api.sql("SELECT id FROM users WHERE id=?", (vid,)) == []
    for table in ("care_records", "timelines", "care_schedules"):
        assert api.sql(f"SELECT id FROM {table} WHERE pot_id=?", (pot["id"],)) == []
    assert sorted(blobs.deleted) == [f"care/{vid}/{pot['id']}/c.png", f"pots/{vid}/pot.png"]
    assert bystander_key not in blobs.deleted
    assert api.sql("SELECT id FROM pots WHERE id=?", (keep["id"],)) != []
    assert client.get("/auth/me", headers=vh).status_code == 404


def test_admin_cannot_erase_self_and_batch_reports(api, client):
    admin_token = api.admin()
    h = auth(admin_token)
    admin_id = client.get("/auth/me", headers=h).json()["user"]["id"]
    a = api.identify()
    b = api.identify()

    assert client.delete(f"/admin/users/{admin_id}", headers=h).status_code == 403

    r = client.request("DELETE", "/admin/users/batch", json={"ids": [a["userId"], "missing", b["userId"], admin_id]}, headers=h)
    assert r.status_code == 200
    report = r.json()["data"]
    assert report["success"] == 2
    assert report["failed"] == 2
    assert api.sql("SELECT id FROM users WHERE id IN (?, ?)", (a["userId"], b["userId"])) == []
    assert client.get("/admin/check", headers=h).status_code == 200
