from decimal import Decimal

from backend.tests.factories import make_client, make_event, make_product


def test_b2b_lot_purchase_flow(client, db_session):
    p = make_product(db_session, name="Shamiana", stock=0)
    db_session.commit()

    r = client.post(
        "/v1/b2b",
        json={"item_name": "Shamiana", "quantity": 4, "price": "300", "supplier_name": "Gupta Traders", "product_id": p.id},
    )
    assert r.status_code == 201, r.text
    lot_id = r.json()["id"]

    r = client.post(f"/v1/b2b/{lot_id}/purchase", json={"quantity": 6, "price": "280", "supplier_name": "Gupta Traders"})
    assert r.status_code == 200
    assert r.json()["quantity_available"] == 10
    assert Decimal(str(r.json()["unit_price"])) == Decimal("280")

    logs = client.get(f"/v1/b2b/{lot_id}/purchases").json()
    assert sorted(log["quantity"] for log in logs) == [4, 6]

    assert [lot["id"] for lot in client.get("/v1/b2b", params={"product_id": p.id}).json()] == [lot_id]


def test_b2b_invalid_product_and_missing_lot(client):
    r = client.post("/v1/b2b", json={"item_name": "X", "quantity": 1, "price": "1", "supplier_name": "S", "product_id": 42})
    assert r.status_code == 400
    assert client.post("/v1/b2b/42/purchase", json={"quantity": 1, "price": "1", "supplier_name": "S"}).status_code == 404


def test_lot_used_by_dispatch_cannot_be_deleted(client, db_session):
    c = make_client(db_session)
    p = make_product(db_session, stock=0)
    ev = make_event(db_session, client=c)
    db_session.commit()

    lot_id = client.post(
        "/v1/b2b",
        json={"item_name": p.name, "quantity": 5, "price": "10", "supplier_name": "S", "product_id": p.id},
    ).json()["id"]

    r = client.post(f"/v1/events/{ev.id}/dispatch", json={"items": [{"product_id": p.id, "qty": 2}]})
    assert r.status_code == 201, r.text
    assert r.json()["lines"][0]["qty_from_b2b"] == 2

    assert client.delete(f"/v1/b2b/{lot_id}").status_code == 409


def test_dispatch_can_refuse_b2b(client, db_session):
    c = make_client(db_session)
    p = make_product(db_session, stock=1)
    ev = make_event(db_session, client=c)
    db_session.commit()
    client.post(
        "/v1/b2b",
        json={"item_name": p.name, "quantity": 5, "price": "10", "supplier_name": "S", "product_id": p.id},
    )

    r = client.post(
        f"/v1/events/{ev.id}/dispatch",
        json={"items": [{"product_id": p.id, "qty": 3}], "allow_b2b": False},
    )
    assert r.status_code == 400
    assert r.json()["shortage"]["available_b2b"] == 0
