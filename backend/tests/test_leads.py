from sqlalchemy import select

from backend.app.db.models.models_v1 import LeadCallLog
from backend.tests.factories import make_client


def _lead(client, name="Anita", phone="9800000001", **extra):
    return client.post("/v1/leads", json={"name": name, "phone": phone, "source": "walk-in", **extra})


def test_lead_crud_calls_and_status(client, db_session):
    r = _lead(client)
    assert r.status_code == 201, r.text
    lead = r.json()
    assert (lead["status"], lead["calls"]) == ("new", [])

    assert _lead(client, name="Other").status_code == 409

    r = client.post(f"/v1/leads/{lead['id']}/calls", json={"outcome": "answered", "duration": 95, "note": "wedding in May"})
    assert r.status_code == 201, r.text
    assert [c["outcome"] for c in r.json()["calls"]] == ["answered"]

    r = client.put(f"/v1/leads/{lead['id']}", json={"name": "Anita", "phone": "9800000001", "status": "hot"})
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "hot"

    r = client.put(f"/v1/leads/{lead['id']}", json={"name": "Anita", "phone": "9800000001", "status": "converted"})
    assert r.status_code == 400

    _lead(client, name="Vikram", phone="9800000002")
    hot = client.get("/v1/leads", params={"status": "hot"}).json()
    assert [i["id"] for i in hot["items"]] == [lead["id"]]
    assert client.get("/v1/leads", params={"search": "vik"}).json()["total"] == 1

    assert client.delete(f"/v1/leads/{lead['id']}").status_code == 200
    assert client.get(f"/v1/leads/{lead['id']}").status_code == 404
    assert db_session.execute(select(LeadCallLog)).first() is None


def test_convert_lead_to_client(client, db_session):
    """
    GIVEN
    - a fresh lead, and a lead whose phone already belongs to a client

    THEN
    - the first becomes a new client, the second is linked to the existing one
    - converted leads cannot be converted or edited again
    """
    existing = make_client(db_session, name="Gupta Family", phone="9800000009")
    db_session.commit()

    fresh = _lead(client, email="anita@example.com").json()
    r = client.post(f"/v1/leads/{fresh['id']}/convert")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["lead"]["status"] == "converted"
    created = client.get(f"/v1/clients/{body['client_id']}").json()
    assert (created["name"], created["phone"], created["email"]) == ("Anita", "9800000001", "anita@example.com")

    known = _lead(client, name="Mr Gupta", phone="9800000009").json()
    assert client.post(f"/v1/leads/{known['id']}/convert").json()["client_id"] == existing.id

    assert client.post(f"/v1/leads/{fresh['id']}/convert").status_code == 400
    r = client.put(f"/v1/leads/{fresh['id']}", json={"name": "Anita", "phone": "9800000001", "status": "hot"})
    assert r.status_code == 400
