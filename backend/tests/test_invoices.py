from decimal import Decimal

import pytest
from sqlalchemy import select

from backend.app.core.errors import DomainValidationError
from backend.app.db.models.models_v1 import Invoice, IssueRegister, Product, StockLedger
from backend.app.db.models.core_types import LedgerReason, UnitType
from backend.app.schemas.invoices import InvoiceItemIn
from backend.services.billing import compute_totals
from backend.tests.factories import make_client, make_product


def _d(value) -> Decimal:
    return Decimal(str(value))


def _stock(db_session, product_id):
    db_session.expire_all()
    return db_session.get(Product, product_id).stock_qty


def _payload(client_id, chair_id, tent_id, status="draft"):
    return {
        "client_id": client_id,
        "date": "2026-04-01T00:00:00Z",
        "with_gst": True,
        "status": status,
        "discount": "10",
        "items": [
            {"product_id": chair_id, "unit_type": "pcs", "qty": 3, "rate": "100"},
            {"product_id": tent_id, "unit_type": "pcs", "qty": 1, "rate": "55.50", "tax_pct": "12"},
        ],
    }


@pytest.fixture
def catalog(db_session):
    c = make_client(db_session)
    chair = make_product(db_session, name="Chair", stock=10)
    tent = make_product(db_session, name="Tent", stock=5)
    db_session.commit()
    return c, chair, tent


def test_compute_totals_with_gst_and_rounding():
    """
    GIVEN
    - 3 x 100 at the default 18% and 1 x 55.50 at 12%, discount 10

    THEN
    - sub_total 355.50, tax 60.66, grand_total 406, round_off -0.16
    """
    items = [
        InvoiceItemIn(product_id=1, unit_type=UnitType.pcs, qty=3, rate=Decimal("100")),
        InvoiceItemIn(product_id=2, unit_type=UnitType.pcs, qty=1, rate=Decimal("55.50"), tax_pct=Decimal("12")),
    ]
    t = compute_totals(items, with_gst=True, discount=Decimal("10"), default_gst_pct=Decimal("18"))
    assert t.sub_total == Decimal("355.50")
    assert t.tax == Decimal("60.66")
    assert t.grand_total == Decimal("406.00")
    assert t.round_off == Decimal("-0.16")
    assert t.pending == Decimal("406.00")


def test_compute_totals_without_gst_ignores_tax_pct():
    items = [InvoiceItemIn(product_id=1, unit_type=UnitType.pcs, qty=2, rate=Decimal("10"), tax_pct=Decimal("28"))]
    t = compute_totals(items, with_gst=False)
    assert (t.tax, t.grand_total) == (Decimal("0.00"), Decimal("20.00"))


def test_compute_totals_rejects_overpaid_and_over_discount():
    items = [InvoiceItemIn(product_id=1, unit_type=UnitType.pcs, qty=1, rate=Decimal("10"))]
    with pytest.raises(DomainValidationError):
        compute_totals(items, with_gst=False, discount=Decimal("11"))
    with pytest.raises(DomainValidationError):
        compute_totals(items, with_gst=False, paid=Decimal("11"))


def test_draft_invoice_does_not_move_stock(client, db_session, catalog):
    c, chair, tent = catalog

    r = client.post("/v1/invoices", json=_payload(c.id, chair.id, tent.id))
    assert r.status_code == 201, r.text
    inv = r.json()
    assert inv["number"] == "INV-2026-00001"
    assert _d(inv["grand_total"]) == Decimal("406")
    assert _d(inv["round_off"]) == Decimal("-0.16")
    assert _stock(db_session, chair.id) == 10

    second = client.post("/v1/invoices", json=_payload(c.id, chair.id, tent.id)).json()
    assert second["number"] == "INV-2026-00002"


def test_finalise_unfinalise_and_return(client, db_session, catalog):
    """
    GIVEN
    - a draft invoice for 3 chairs and 1 tent

    THEN
    - draft -> final: stock 7 / 4, two `invoice` ledger rows, 3 chairs issued to the client
    - final -> draft: stock back, ledger rows gone
    - final -> returned: stock back with `return` ledger rows, invoice immutable afterwards
    """
    c, chair, tent = catalog
    inv = client.post("/v1/invoices", json=_payload(c.id, chair.id, tent.id)).json()

    r = client.put(f"/v1/invoices/{inv['id']}", json=_payload(c.id, chair.id, tent.id, status="final"))
    assert r.status_code == 200, r.text
    assert (_stock(db_session, chair.id), _stock(db_session, tent.id)) == (7, 4)
    rows = db_session.execute(select(StockLedger).where(StockLedger.ref_id == inv["id"])).scalars().all()
    assert sorted(e.qty_change for e in rows) == [-3, -1]
    reg = db_session.execute(
        select(IssueRegister).where(IssueRegister.product_id == chair.id, IssueRegister.client_id == c.id)
    ).scalar_one()
    assert reg.qty_issued == 3

    r = client.put(f"/v1/invoices/{inv['id']}", json=_payload(c.id, chair.id, tent.id, status="draft"))
    assert r.status_code == 200
    assert (_stock(db_session, chair.id), _stock(db_session, tent.id)) == (10, 5)
    assert db_session.execute(select(StockLedger)).first() is None

    client.put(f"/v1/invoices/{inv['id']}", json=_payload(c.id, chair.id, tent.id, status="final"))
    r = client.post(f"/v1/invoices/{inv['id']}/return")
    assert r.status_code == 200
    assert r.json()["status"] == "returned"
    assert (_stock(db_session, chair.id), _stock(db_session, tent.id)) == (10, 5)
    reasons = {e.reason for e in db_session.execute(select(StockLedger)).scalars()}
    assert reasons == {LedgerReason.invoice, LedgerReason.invoice_return}

    r = client.put(f"/v1/invoices/{inv['id']}", json=_payload(c.id, chair.id, tent.id))
    assert r.status_code == 400
    assert client.post(f"/v1/invoices/{inv['id']}/return").status_code == 400


def test_final_to_final_reapplies_changed_lines(client, db_session, catalog):
    c, chair, tent = catalog
    inv = client.post("/v1/invoices", json=_payload(c.id, chair.id, tent.id, status="final")).json()
    assert _stock(db_session, chair.id) == 7

    changed = _payload(c.id, chair.id, tent.id, status="final")
    changed["items"][0]["qty"] = 5
    r = client.put(f"/v1/invoices/{inv['id']}", json=changed)
    assert r.status_code == 200, r.text
    assert _stock(db_session, chair.id) == 5
    assert _stock(db_session, tent.id) == 4


def test_final_invoice_without_stock_is_rejected(client, db_session, catalog):
    c, chair, tent = catalog
    payload = _payload(c.id, chair.id, tent.id, status="final")
    payload["items"][1]["qty"] = 9

    r = client.post("/v1/invoices", json=payload)
    assert r.status_code == 400
    assert r.json()["shortage"]["product_id"] == tent.id
    assert _stock(db_session, chair.id) == 10
    assert db_session.execute(select(Invoice)).first() is None


def test_delete_final_invoice_restores_stock(client, db_session, catalog):
    c, chair, tent = catalog
    inv = client.post("/v1/invoices", json=_payload(c.id, chair.id, tent.id, status="final")).json()

    r = client.delete(f"/v1/invoices/{inv['id']}")
    assert r.status_code == 200
    assert _stock(db_session, chair.id) == 10
    assert client.get(f"/v1/invoices/{inv['id']}").status_code == 404


def test_adjustment_lines_need_no_product(client, db_session, catalog):
    c, _, _ = catalog
    r = client.post(
        "/v1/invoices",
        json={
            "client_id": c.id,
            "status": "final",
            "items": [{"description": "Damages", "unit_type": "pcs", "qty": 1, "rate": "250", "is_adjustment": True}],
        },
    )
    assert r.status_code == 201, r.text
    assert _d(r.json()["grand_total"]) == Decimal("250")

    r = client.post(
        "/v1/invoices",
        json={"client_id": c.id, "items": [{"unit_type": "pcs", "qty": 1, "rate": "5"}]},
    )
    assert r.status_code == 400


def test_payments_credit_up_to_pending(client, db_session, catalog):
    c, chair, tent = catalog
    inv = client.post("/v1/invoices", json=_payload(c.id, chair.id, tent.id)).json()

    r = client.post("/v1/payments", json={"invoice_id": inv["id"], "amount": "100", "mode": "upi"})
    assert r.status_code == 201, r.text
    assert _d(r.json()["invoice"]["pending"]) == Decimal("306")

    r = client.post("/v1/payments", json={"invoice_id": inv["id"], "amount": "500", "mode": "cash"})
    assert _d(r.json()["payment"]["amount"]) == Decimal("306")
    assert _d(r.json()["invoice"]["pending"]) == 0

    r = client.post("/v1/payments", json={"invoice_id": inv["id"], "amount": "1", "mode": "cash"})
    assert r.status_code == 400

    r = client.post("/v1/payments", json={"invoice_id": inv["id"], "amount": "0", "mode": "cash"})
    assert r.status_code == 400

    assert client.post("/v1/payments", json={"invoice_id": 999, "amount": "1", "mode": "cash"}).status_code == 404
    assert len(client.get(f"/v1/invoices/{inv['id']}/payments").json()) == 2


def test_returned_invoice_takes_no_payments(client, db_session, catalog):
    """
    GIVEN
    - a final invoice that has been returned, with its full amount pending

    THEN
    - a payment against it is rejected and nothing is credited
    """
    c, chair, tent = catalog
    inv = client.post("/v1/invoices", json=_payload(c.id, chair.id, tent.id, status="final")).json()
    assert client.post(f"/v1/invoices/{inv['id']}/return").status_code == 200

    r = client.post("/v1/payments", json={"invoice_id": inv["id"], "amount": "50", "mode": "cash"})
    assert r.status_code == 400
    assert "Returned" in r.json()["detail"]
    assert client.get(f"/v1/invoices/{inv['id']}/payments").json() == []
    assert _d(client.get(f"/v1/invoices/{inv['id']}").json()["paid"]) == 0


def test_invoice_list_filters(client, db_session, catalog):
    c, chair, tent = catalog
    client.post("/v1/invoices", json=_payload(c.id, chair.id, tent.id))
    client.post("/v1/invoices", json=_payload(c.id, chair.id, tent.id, status="final"))

    body = client.get("/v1/invoices", params={"status": "final"}).json()
    assert body["total"] == 1
    assert body["items"][0]["status"] == "final"

    body = client.get("/v1/invoices", params={"search": "Test Client", "limit": 1}).json()
    assert body["total"] == 2
    assert len(body["items"]) == 1


@pytest.mark.parametrize("lang", ["en", "hi"])
def test_invoice_pdf(client, db_session, catalog, lang):
    c, chair, tent = catalog
    inv = client.post("/v1/invoices", json=_payload(c.id, chair.id, tent.id)).json()

    r = client.get(f"/v1/invoices/{inv['id']}/pdf", params={"lang": lang, "gst": "true"})
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/pdf"
    assert r.content.startswith(b"%PDF")
