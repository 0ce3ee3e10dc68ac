from __future__ import annotations

from datetime import date, timedelta

from flowerpots.db import connect
from flowerpots.resources.schedules import list_reminders

from conftest import auth


BLOB = "https://blobs.example.com"


def _setup(api):
    user = api.register("care@example.com")
    pot = api.create_pot(user["token"], "Calathea")
    return auth(user["token"]), pot


def _img(pot, kind, name):
    """Key and URL of an upload of the pot's owner."""
    key = f"{kind}/{pot['user_id']}/{pot['id']}/{name}"
    return key, f"{BLOB}/{key}"


def test_multi_type_care_creates_siblings_and_timeline(api, client):
    h, pot = _setup(api)
    images = [_img(pot, "care", "a.png")[1], _img(pot, "care", "b.png")[1]]

    r = client.post(
        "/care-records",
        json={
            "potId": pot["id"],
            "types": ["water", "fertilize"],
            "actions": ["Watered", ""],
            "careDate": "2024-06-01",
            "description": "weekly round",
            "imageUrls": images,
        },
        headers=h,
    )
    assert r.status_code == 201
    assert r.json()["count"] == 2
    assert r.json()["timelineCreated"] is True

    records = client.get(f"/pots/{pot['id']}/care-records", headers=h).json()["data"]
    assert sorted((rec["type"], rec["action"]) for rec in records) == [("fertilize", "fertilize"), ("water", "Watered")]
    assert all(rec["imageUrls"] == images for rec in records)
    assert all(rec["date"] == "2024-06-01" for rec in records)

    timelines = client.get(f"/pots/{pot['id']}/timelines", headers=h).json()["data"]
    assert len(timelines) == 1
    assert timelines[0]["description"] == "[Watered, fertilize] weekly round"
    assert timelines[0]["images"] == images

    refreshed = client.get(f"/pots/{pot['id']}", headers=h).json()["data"]
    assert refreshed["last_care"] == "2024-06-01"
    assert refreshed["last_care_action"] == "Watered, fertilize"


def test_care_without_images_writes_no_timeline(api, client):
    h, pot = _setup(api)
    r = client.post("/care-records", json={"potId": pot["id"], "type": "water", "careDate": "2024-06-01"}, headers=h)
    assert r.json()["timelineCreated"] is False
    assert client.get(f"/pots/{pot['id']}/timelines", headers=h).json()["data"] == []


def test_care_record_validation(api, client):
    h, pot = _setup(api)
    assert client.post("/care-records", json={"potId": pot["id"], "type": "water"}, headers=h).status_code == 400
    assert client.post("/care-records", json={"potId": pot["id"], "careDate": "2024-01-01"}, headers=h).status_code == 400
    assert client.post("/care-records", json={"potId": "missing", "type": "water", "careDate": "2024-01-01"}, headers=h).status_code == 404


def test_shared_image_survives_until_last_reference_goes(api, client, blobs):
    h, pot = _setup(api)
    shared_key, shared = _img(pot, "care", "shared.png")
    client.post(
        "/care-records",
        json={"potId": pot["id"], "types": ["water", "mist"], "careDate": "2024-06-01", "imageUrls": [shared]},
        headers=h,
    )
    records = client.get(f"/pots/{pot['id']}/care-records", headers=h).json()["data"]
    timeline = client.get(f"/pots/{pot['id']}/timelines", headers=h).json()["data"][0]

    assert client.delete(f"/care-records/{records[0]['id']}", headers=h).status_code == 200
    assert blobs.deleted == []

    r = client.put(f"/care-records/{records[1]['id']}", json={"imageUrls": []}, headers=h)
    assert r.status_code == 200
    assert r.json()["data"]["imageUrls"] == []
    assert blobs.deleted == []

    assert client.delete(f"/timelines/{timeline['id']}", headers=h).status_code == 200
    assert blobs.deleted == [shared_key]


def test_update_care_record_is_partial(api, client):
    h, pot = _setup(api)
    client.post(
        "/care-records",
        json={"potId": pot["id"], "type": "water", "careDate": "2024-06-01", "description": "first"},
        headers=h,
    )
    rec = client.get(f"/pots/{pot['id']}/care-records", headers=h).json()["data"][0]

    r = client.put(f"/care-records/{rec['id']}", json={"description": "edited"}, headers=h)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["description"] == "edited"
    assert data["type"] == "water"
    assert data["date"] == "2024-06-01"

    assert client.put(f"/care-records/{rec['id']}", json={}, headers=h).status_code == 400
    assert client.get(f"/care-records/{rec['id']}", headers=h).json()["data"]["description"] == "edited"


# -----------------------------
# Timelines
# -----------------------------


def test_timeline_image_diff_cleanup(api, client, blobs):
    h, pot = _setup(api)
    (ka, a), (kb, b), (kc, c) = (_img(pot, "timeline", f"{n}.png") for n in "abc")

    r = client.post(
        "/timelines",
        json={"potId": pot["id"], "date": "2024-07-01", "description": "new leaf", "images": [a, b]},
        headers=h,
    )
    assert r.status_code == 201
    entry = r.json()["data"]
    assert entry["images"] == [a, b]
    assert entry["pot_id"] == pot["id"]

    r = client.put(f"/timelines/{entry['id']}", json={"images": [b, c]}, headers=h)
    assert r.status_code == 200
    assert r.json()["data"]["images"] == [b, c]
    assert r.json()["data"]["description"] == "new leaf"
    assert blobs.deleted == [ka]

    assert client.delete(f"/timelines/{entry['id']}", headers=h).status_code == 200
    assert sorted(blobs.deleted) == sorted([ka, kb, kc])
    assert client.get(f"/timelines/{entry['id']}", headers=h).status_code == 404


def test_timeline_requires_pot_and_date(api, client):
    h, pot = _setup(api)
    assert client.post("/timelines", json={"potId": pot["id"]}, headers=h).status_code == 400
    assert client.post("/timelines", json={"date": "2024-01-01"}, headers=h).status_code == 400


def test_timeline_of_other_user_is_not_found(api, client):
    h, pot = _setup(api)
    entry = client.post("/timelines", json={"potId": pot["id"], "date": "2024-07-01"}, headers=h).json()["data"]
    intruder = api.identify()
    ih = auth(intruder["token"])
    assert client.get(f"/timelines/{entry['id']}", headers=ih).status_code == 404
    assert client.put(f"/timelines/{entry['id']}", json={"description": "x"}, headers=ih).status_code == 404
    assert client.delete(f"/timelines/{entry['id']}", headers=ih).status_code == 404


def test_malformed_ids_are_not_found(api, client):
    h, _pot = _setup(api)
    for path in ("/care-records/abc", "/timelines/abc", "/care-schedules/abc", "/care-records/1.5"):
        r = client.put(path, json={"description": "x", "enabled": False}, headers=h)
        assert r.status_code == 404, path
        assert r.json()["success"] is False
        assert client.delete(path, headers=h).status_code == 404, path
    assert client.get("/care-records/abc", headers=h).status_code == 404
    assert client.get("/timelines/abc", headers=h).status_code == 404


# -----------------------------
# Schedules and reminders
# -----------------------------


def test_schedule_crud_and_duplicate(api, client):
    h, pot = _setup(api)

    r = client.post(
        "/care-schedules",
        json={"potId": pot["id"], "careType": "water", "intervalDays": 7, "customAction": "Soak"},
        headers=h,
    )
    assert r.status_code == 201
    sched = r.json()["data"]
    assert sched["intervalDays"] == 7
    assert sched["enabled"] is True

    dup = client.post("/care-schedules", json={"potId": pot["id"], "careType": "water", "intervalDays": 3}, headers=h)
    assert dup.status_code == 409

    r = client.put(f"/care-schedules/{sched['id']}", json={"enabled": False}, headers=h)
    assert r.json()["data"]["enabled"] is False
    assert r.json()["data"]["intervalDays"] == 7

    listed = client.get("/care-schedules", headers=h).json()["data"]
    assert [s["id"] for s in listed] == [sched["id"]]
    per_pot = client.get(f"/pots/{pot['id']}/care-schedules", headers=h).json()["data"]
    assert [s["careType"] for s in per_pot] == ["water"]

    assert client.delete(f"/care-schedules/{sched['id']}", headers=h).status_code == 200
    assert client.get("/care-schedules", headers=h).json()["data"] == []


def test_schedule_interval_validation(api, client):
    h, pot = _setup(api)
    for bad in (0, -2, 1.5):
        r = client.post("/care-schedules", json={"potId": pot["id"], "careType": "water", "intervalDays": bad}, headers=h)
        assert r.status_code == 400, bad
    missing = client.post("/care-schedules", json={"potId": pot["id"], "careType": "water"}, headers=h)
    assert missing.status_code == 400


def test_reminders_are_computed_on_read(api, client, cfg):
    user = api.register("reminders@example.com")
    h = auth(user["token"])
    pot = api.create_pot(user["token"], "Calathea")
    never = api.create_pot(user["token"], "Never cared")
    today = date(2024, 8, 10)

    client.post("/care-schedules", json={"potId": pot["id"], "careType": "water", "intervalDays": 3}, headers=h)
    client.post("/care-schedules", json={"potId": pot["id"], "careType": "fertilize", "intervalDays": 30}, headers=h)
    client.post("/care-schedules", json={"potId": never["id"], "careType": "water", "intervalDays": 5}, headers=h)
    off = client.post(
        "/care-schedules", json={"potId": never["id"], "careType": "mist", "intervalDays": 1, "enabled": False}, headers=h
    )
    assert off.json()["data"]["enabled"] is False

    last = (today - timedelta(days=3)).isoformat()
    client.post("/care-records", json={"potId": pot["id"], "type": "water", "careDate": last}, headers=h)

    with connect(cfg.DB_DSN) as conn:
        due = list_reminders(conn, user["userId"], today=today)

    assert [(d["potName"], d["careType"]) for d in due] == [("Never cared", "water"), ("Calathea", "water")]
    assert due[0]["daysSinceCare"] is None
    assert due[1]["daysSinceCare"] == 3
    assert due[1]["overdueDays"] == 0

    r = client.get("/care-schedules/reminders", headers=h)
    assert r.status_code == 200
    assert r.json()["success"] is True
