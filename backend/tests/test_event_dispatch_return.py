from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from backend.app.api.v1.endpoints import events as events_api
from backend.app.core import config
from backend.app.db.models.models_v1 import B2BStock, EventDispatch, Product, StockLedger
from backend.app.db.models.core_types import LedgerReason
from backend.tests.factories import make_client, make_event, make_lot, make_product, make_worker


class _Conflict(Exception):
    sqlstate = "40001"


def _setup(db_session):
    c = make_client(db_session)
    chair = make_product(db_session, name="Chair", stock=5, sell_price="20")
    lot = make_lot(db_session, chair, 10)
    ev = make_event(db_session, client=c)  # 2026-03-01 10:00 -> 2026-03-03 10:00 UTC
    db_session.commit()
    return c, chair, lot, ev


def _stock(db_session, product_id):
    db_session.expire_all()
    return db_session.get(Product, product_id).stock_qty


def _lot_qty(db_session, lot_id):
    db_session.expire_all()
    return db_session.get(B2BStock, lot_id).quantity_available


def test_dispatch_splits_between_stock_and_b2b(client, db_session):
    """
    GIVEN
    - 5 chairs in stock and a 10-unit B2B lot
    - a dispatch of 8 chairs at the default rate

    THEN
    - 5 from stock, 3 from the lot
    - dispatch total 160, event dispatched
    - ledger: dispatch -5, b2b_dispatch -3
    """
    _, chair, lot, ev = _setup(db_session)

    r = client.post(
        f"/v1/events/{ev.id}/dispatch",
        json={"items": [{"product_id": chair.id, "qty": 8}], "dispatched_by": "Suresh"},
    )
    assert r.status_code == 201, r.text
    body = r.json()
    line = body["lines"][0]
    assert (line["qty_from_stock"], line["qty_from_b2b"]) == (5, 3)
    assert line["allocations"] == [{"b2b_stock_id": lot.id, "quantity": 3, "returned_qty": 0}]
    assert Decimal(str(body["total"])) == Decimal("160")

    assert _stock(db_session, chair.id) == 0
    assert _lot_qty(db_session, lot.id) == 7

    changes = {
        e.reason: e.qty_change
        for e in db_session.execute(select(StockLedger).where(StockLedger.product_id == chair.id)).scalars()
    }
    assert changes == {LedgerReason.dispatch: -5, LedgerReason.b2b_dispatch: -3}

    ev_body = client.get(f"/v1/events/{ev.id}").json()
    assert ev_body["status"] == "dispatched"
    assert ev_body["dispatched_by"] == "Suresh"
    assert ev_body["outstanding_units"] == 8


def test_dispatch_shortage_aborts_everything(client, db_session):
    _, chair, lot, ev = _setup(db_session)
    tent = make_product(db_session, name="Tent", stock=50)
    db_session.commit()

    r = client.post(
        f"/v1/events/{ev.id}/dispatch",
        json={"items": [{"product_id": tent.id, "qty": 10}, {"product_id": chair.id, "qty": 100}]},
    )
    assert r.status_code == 400
    assert r.json()["shortage"]["product_id"] == chair.id

    assert _stock(db_session, tent.id) == 50
    assert _stock(db_session, chair.id) == 5
    assert _lot_qty(db_session, lot.id) == 10
    assert db_session.execute(select(EventDispatch)).first() is None


def test_dispatch_rejects_duplicates_and_empty(client, db_session):
    _, chair, _, ev = _setup(db_session)

    r = client.post(f"/v1/events/{ev.id}/dispatch", json={"items": []})
    assert r.status_code == 400

    r = client.post(
        f"/v1/events/{ev.id}/dispatch",
        json={"items": [{"product_id": chair.id, "qty": 1}, {"product_id": chair.id, "qty": 2}]},
    )
    assert r.status_code == 400

    r = client.post("/v1/events/999/dispatch", json={"items": [{"product_id": chair.id, "qty": 1}]})
    assert r.status_code == 404


def test_partial_then_closing_return(client, db_session):
    """
    GIVEN
    - 8 chairs dispatched (5 stock + 3 B2B), rate 20, event ends 2026-03-03 10:00
    - return #1: 4 back, 1 damaged, before the end date, not closing
    - return #2: 3 back on 2026-03-05 12:00, closing

    THEN
    - #1: 3 good chairs to stock, damages 20, shortage reported but not charged
    - #2: 2 to stock then 1 to the lot, shortage 1 charged 20,
      late fee 3 days * 100, total 320, event closed
    """
    _, chair, lot, ev = _setup(db_session)
    client.post(f"/v1/events/{ev.id}/dispatch", json={"items": [{"product_id": chair.id, "qty": 8}]})

    r = client.post(
        f"/v1/events/{ev.id}/return",
        json={
            "items": [{"product_id": chair.id, "qty": 4, "damaged_qty": 1}],
            "return_date": "2026-03-02T18:00:00Z",
        },
    )
    assert r.status_code == 201, r.text
    first = r.json()
    assert first["closed"] is False
    assert first["shortage_units"] == 4
    assert Decimal(str(first["shortage_charge"])) == 0
    assert Decimal(str(first["damages"])) == Decimal("20")
    assert Decimal(str(first["late_fee"])) == 0
    assert _stock(db_session, chair.id) == 3
    assert _lot_qty(db_session, lot.id) == 7
    assert client.get(f"/v1/events/{ev.id}").json()["status"] == "dispatched"

    r = client.post(
        f"/v1/events/{ev.id}/return",
        json={
            "items": [{"product_id": chair.id, "qty": 3}],
            "return_date": "2026-03-05T12:00:00Z",
            "returned_by": "Suresh",
            "close": True,
        },
    )
    assert r.status_code == 201, r.text
    second = r.json()
    assert second["closed"] is True
    assert second["shortage_units"] == 1
    assert Decimal(str(second["shortage_charge"])) == Decimal("20")
    assert Decimal(str(second["damages"])) == 0
    assert Decimal(str(second["late_fee"])) == Decimal("300")
    assert Decimal(str(second["total_charges"])) == Decimal("320")
    assert _stock(db_session, chair.id) == 5
    assert _lot_qty(db_session, lot.id) == 8

    ev_body = client.get(f"/v1/events/{ev.id}").json()
    assert ev_body["status"] == "returned"
    assert ev_body["return_closed"] is True
    assert ev_body["returned_by"] == "Suresh"

    dispatches = client.get(f"/v1/events/{ev.id}/dispatches").json()
    line = dispatches[0]["lines"][0]
    assert (line["returned_qty"], line["damaged_qty"], line["outstanding"]) == (7, 1, 1)
    assert len(client.get(f"/v1/events/{ev.id}/returns").json()) == 2

    r = client.post(f"/v1/events/{ev.id}/dispatch", json={"items": [{"product_id": chair.id, "qty": 1}]})
    assert r.status_code == 400


def test_full_return_closes_without_flag(client, db_session):
    _, chair, _, ev = _setup(db_session)
    client.post(f"/v1/events/{ev.id}/dispatch", json={"items": [{"product_id": chair.id, "qty": 2}]})

    r = client.post(
        f"/v1/events/{ev.id}/return",
        json={"items": [{"product_id": chair.id, "qty": 2}], "return_date": "2026-03-03T09:00:00Z"},
    )
    body = r.json()
    assert body["closed"] is True
    assert Decimal(str(body["total_charges"])) == 0
    assert _stock(db_session, chair.id) == 5


def test_return_validation(client, db_session):
    _, chair, _, ev = _setup(db_session)
    other = make_product(db_session, name="Table", stock=3)
    db_session.commit()

    r = client.post(f"/v1/events/{ev.id}/return", json={"items": [{"product_id": chair.id, "qty": 1}]})
    assert r.status_code == 400  # nothing dispatched yet

    client.post(f"/v1/events/{ev.id}/dispatch", json={"items": [{"product_id": chair.id, "qty": 2}]})

    r = client.post(f"/v1/events/{ev.id}/return", json={"items": [{"product_id": chair.id, "qty": 3}]})
    assert r.status_code == 400

    r = client.post(f"/v1/events/{ev.id}/return", json={"items": [{"product_id": other.id, "qty": 1}]})
    assert r.status_code == 400

    r = client.post(
        f"/v1/events/{ev.id}/return",
        json={"items": [{"product_id": chair.id, "qty": 1, "damaged_qty": 2}]},
    )
    assert r.status_code == 400


def test_second_dispatch_blocked_while_units_out(client, db_session):
    _, chair, _, ev = _setup(db_session)
    client.post(f"/v1/events/{ev.id}/dispatch", json={"items": [{"product_id": chair.id, "qty": 2}]})

    r = client.post(f"/v1/events/{ev.id}/dispatch", json={"items": [{"product_id": chair.id, "qty": 1}]})
    assert r.status_code == 400
    assert "outstanding" in r.json()["detail"]


def test_delete_event_blocked_while_stock_out(client, db_session):
    _, chair, _, ev = _setup(db_session)
    client.post(f"/v1/events/{ev.id}/dispatch", json={"items": [{"product_id": chair.id, "qty": 2}]})

    assert client.delete(f"/v1/events/{ev.id}").status_code == 400

    client.post(f"/v1/events/{ev.id}/return", json={"items": [{"product_id": chair.id, "qty": 2}]})
    assert client.delete(f"/v1/events/{ev.id}").status_code == 200
    assert client.get(f"/v1/events/{ev.id}").status_code == 404


def test_invoice_from_event_keeps_stock(client, db_session):
    """
    GIVEN
    - 8 chairs dispatched at 20, closing return 3 days late with 1 chair short

    THEN
    - draft invoice: rent 160 + shortage 20 + late fee 300 = 480
    - stock unchanged by the invoice
    """
    _, chair, _, ev = _setup(db_session)
    client.post(f"/v1/events/{ev.id}/dispatch", json={"items": [{"product_id": chair.id, "qty": 8}]})
    client.post(
        f"/v1/events/{ev.id}/return",
        json={
            "items": [{"product_id": chair.id, "qty": 7}],
            "return_date": "2026-03-05T12:00:00Z",
            "close": True,
        },
    )
    before = _stock(db_session, chair.id)

    r = client.post(f"/v1/events/{ev.id}/invoice")
    assert r.status_code == 201, r.text
    inv = r.json()
    assert inv["status"] == "draft"
    assert inv["event_id"] == ev.id
    assert Decimal(str(inv["grand_total"])) == Decimal("480")
    assert sorted(i["description"] for i in inv["items"]) == ["Chair", "Late fee", "Shortage"]
    assert all(i["is_adjustment"] for i in inv["items"])
    assert _stock(db_session, chair.id) == before


def test_agreement_and_summary(client, db_session):
    c, chair, _, ev = _setup(db_session)
    worker = make_worker(db_session, daily="800")
    db_session.commit()

    r = client.put(
        f"/v1/events/{ev.id}/agreement",
        json={
            "selections": [{"product_id": chair.id, "qty_to_send": 10, "rate": "20"}],
            "advance": "50",
            "security": "30",
            "agreement_terms": "Damaged items are charged at rate.",
        },
    )
    assert r.status_code == 200, r.text
    snap = r.json()["agreement_snapshot"]
    assert Decimal(snap["grand_total"]) == Decimal("120")
    assert snap["items"][0]["name"] == "Chair"

    pdf = client.get(f"/v1/events/{ev.id}/agreement/pdf")
    assert pdf.status_code == 200
    assert pdf.content.startswith(b"%PDF")

    client.post(
        f"/v1/events/{ev.id}/expenses",
        json={"category": "travel", "amount": "500", "date": "2026-03-01"},
    )
    client.post(
        "/v1/attendance",
        json={"worker_id": worker.id, "date": "2026-03-01", "shift": "full", "event_id": ev.id},
    )

    s = client.get(f"/v1/events/{ev.id}/summary").json()
    assert Decimal(str(s["total_expenses"])) == Decimal("500")
    assert Decimal(str(s["labour_cost"])) == Decimal("800")
    assert Decimal(str(s["total_spent"])) == Decimal("1300")
    assert s["breakdown"]["labour"]["days_full"] == 1
    assert len(client.get(f"/v1/events/{ev.id}/expenses").json()) == 1


def test_returnable_lists_events_with_units_out(client, db_session):
    _, chair, _, ev = _setup(db_session)
    assert client.get("/v1/stock/returnable").json() == []

    client.post(f"/v1/events/{ev.id}/dispatch", json={"items": [{"product_id": chair.id, "qty": 3}]})
    rows = client.get("/v1/stock/returnable").json()
    assert [(r["id"], r["outstanding_units"]) for r in rows] == [(ev.id, 3)]


def test_return_rate_overrides_dispatched_rate(client, db_session):
    """
    GIVEN
    - 4 chairs dispatched at 20
    - a closing return of 2 chairs (1 damaged) priced at 50, before the end date

    THEN
    - returned value 100, damages 50, shortage 2 * 50 = 100, total 150
    - the return line records rate 50
    """
    _, chair, _, ev = _setup(db_session)
    client.post(f"/v1/events/{ev.id}/dispatch", json={"items": [{"product_id": chair.id, "qty": 4}]})

    r = client.post(
        f"/v1/events/{ev.id}/return",
        json={
            "items": [{"product_id": chair.id, "qty": 2, "damaged_qty": 1, "rate": "50"}],
            "return_date": "2026-03-02T10:00:00Z",
            "close": True,
        },
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert Decimal(str(body["returned_value"])) == Decimal("100")
    assert Decimal(str(body["damages"])) == Decimal("50")
    assert Decimal(str(body["shortage_charge"])) == Decimal("100")
    assert Decimal(str(body["total_charges"])) == Decimal("150")
    assert Decimal(str(body["lines"][0]["rate"])) == Decimal("50")


def test_return_goes_back_to_lots_in_reverse_order(client, db_session):
    """
    GIVEN
    - 2 chairs in stock, an older lot of 3 and a newer lot of 5
    - 7 chairs dispatched: 2 stock, 3 from the older lot, 2 from the newer lot
    - 6 chairs returned, none damaged

    THEN
    - 2 back to stock, then the newer lot is refilled (2) before the older lot (2)
    - one chair still outstanding against the older lot
    """
    chair = make_product(db_session, name="Chair", stock=2, sell_price="20")
    older = make_lot(db_session, chair, 3, supplier="Gupta Traders")
    newer = make_lot(db_session, chair, 5, supplier="Sharma Decor")
    ev = make_event(db_session)
    db_session.commit()

    r = client.post(f"/v1/events/{ev.id}/dispatch", json={"items": [{"product_id": chair.id, "qty": 7}]})
    assert r.status_code == 201, r.text
    assert r.json()["lines"][0]["allocations"] == [
        {"b2b_stock_id": older.id, "quantity": 3, "returned_qty": 0},
        {"b2b_stock_id": newer.id, "quantity": 2, "returned_qty": 0},
    ]

    r = client.post(
        f"/v1/events/{ev.id}/return",
        json={"items": [{"product_id": chair.id, "qty": 6}], "return_date": "2026-03-02T10:00:00Z"},
    )
    assert r.status_code == 201, r.text

    assert _stock(db_session, chair.id) == 2
    assert _lot_qty(db_session, newer.id) == 5
    assert _lot_qty(db_session, older.id) == 2

    line = client.get(f"/v1/events/{ev.id}/dispatches").json()[0]["lines"][0]
    assert line["allocations"] == [
        {"b2b_stock_id": older.id, "quantity": 3, "returned_qty": 2},
        {"b2b_stock_id": newer.id, "quantity": 2, "returned_qty": 2},
    ]
    assert line["outstanding"] == 1

    b2b_returns = db_session.execute(
        select(StockLedger).where(StockLedger.reason == LedgerReason.b2b_return).order_by(StockLedger.id)
    ).scalars().all()
    assert [e.qty_change for e in b2b_returns] == [2, 2]


def test_explicit_damages_and_late_fee_replace_defaults(client, db_session):
    """
    GIVEN
    - 4 chairs dispatched at 20, closing return 2 days late with 1 damaged
    - damages 75 and late fee 150 given on the return

    THEN
    - the given amounts are charged instead of 20 damages and 200 late fee
    """
    _, chair, _, ev = _setup(db_session)
    client.post(f"/v1/events/{ev.id}/dispatch", json={"items": [{"product_id": chair.id, "qty": 4}]})

    r = client.post(
        f"/v1/events/{ev.id}/return",
        json={
            "items": [{"product_id": chair.id, "qty": 4, "damaged_qty": 1}],
            "return_date": "2026-03-05T09:00:00Z",
            "damages": "75",
            "late_fee": "150",
        },
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["closed"] is True
    assert Decimal(str(body["damages"])) == Decimal("75")
    assert Decimal(str(body["late_fee"])) == Decimal("150")
    assert Decimal(str(body["shortage_charge"])) == 0
    assert Decimal(str(body["total_charges"])) == Decimal("225")


def test_late_partial_return_charges_no_late_fee(client, db_session):
    """
    GIVEN
    - 4 chairs dispatched, event ended 2026-03-03 10:00
    - 2 chairs back on 2026-03-06 without closing

    THEN
    - no late fee and no shortage charge until the closing return
    """
    _, chair, _, ev = _setup(db_session)
    client.post(f"/v1/events/{ev.id}/dispatch", json={"items": [{"product_id": chair.id, "qty": 4}]})

    r = client.post(
        f"/v1/events/{ev.id}/return",
        json={"items": [{"product_id": chair.id, "qty": 2}], "return_date": "2026-03-06T10:00:00Z"},
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["closed"] is False
    assert body["shortage_units"] == 2
    assert Decimal(str(body["late_fee"])) == 0
    assert Decimal(str(body["shortage_charge"])) == 0
    assert Decimal(str(body["total_charges"])) == 0


def test_dispatch_and_return_retry_on_write_conflict(client, db_session, monkeypatch):
    """
    GIVEN
    - the first attempt of both the dispatch and the return hits a serialization failure

    THEN
    - each endpoint retries once and succeeds, stock moves exactly once
    """
    _, chair, lot, ev = _setup(db_session)
    monkeypatch.setattr(config, "DB_RETRY_BACKOFF_SECONDS", 0)

    calls = {"dispatch": 0, "return": 0}

    def failing_once(name, real):
        def wrapper(session, **kwargs):
            calls[name] += 1
            if calls[name] == 1:
                raise OperationalError("UPDATE products ...", {}, _Conflict())
            return real(session, **kwargs)

        return wrapper

    monkeypatch.setattr(events_api, "dispatch_event_stock", failing_once("dispatch", events_api.dispatch_event_stock))
    monkeypatch.setattr(events_api, "return_event_stock", failing_once("return", events_api.return_event_stock))

    r = client.post(f"/v1/events/{ev.id}/dispatch", json={"items": [{"product_id": chair.id, "qty": 7}]})
    assert r.status_code == 201, r.text
    assert calls["dispatch"] == 2
    assert _stock(db_session, chair.id) == 0
    assert _lot_qty(db_session, lot.id) == 8
    assert len(db_session.execute(select(EventDispatch)).scalars().all()) == 1

    r = client.post(
        f"/v1/events/{ev.id}/return",
        json={"items": [{"product_id": chair.id, "qty": 7}], "return_date": "2026-03-02T10:00:00Z"},
    )
    assert r.status_code == 201, r.text
    assert calls["return"] == 2
    assert _stock(db_session, chair.id) == 5
    assert _lot_qty(db_session, lot.id) == 10


def test_event_dates_with_mixed_offsets(client, db_session):
    c = make_client(db_session)
    db_session.commit()

    r = client.post(
        "/v1/events",
        json={"name": "Mehendi", "client_id": c.id, "date_from": "2026-03-01T10:00:00Z", "date_to": "2026-03-02T10:00:00"},
    )
    assert r.status_code == 201, r.text

    r = client.post(
        "/v1/events",
        json={"name": "Sangeet", "date_from": "2026-03-05T10:00:00", "date_to": "2026-03-04T10:00:00+05:30"},
    )
    assert r.status_code == 400
    assert "date_to" in r.json()["detail"]


def test_status_flow_states_cannot_be_set_directly(client, db_session):
    _, _, _, ev = _setup(db_session)
    base = {"name": "Wedding", "date_from": "2026-03-01T10:00:00Z", "date_to": "2026-03-03T10:00:00Z"}

    r = client.put(f"/v1/events/{ev.id}", json={**base, "status": "reserved"})
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "reserved"

    for status in ("dispatched", "returned"):
        r = client.put(f"/v1/events/{ev.id}", json={**base, "status": status})
        assert r.status_code == 400

    body = client.get(f"/v1/events/{ev.id}").json()
    assert (body["status"], body["return_closed"]) == ("reserved", False)
