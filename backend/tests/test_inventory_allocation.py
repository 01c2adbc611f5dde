import pytest
from sqlalchemy import select

from backend.app.core.errors import InsufficientStockError
from backend.app.db.models.models_v1 import B2BStock, Product
from backend.services.inventory import (
    LotTake,
    bump_issue_register,
    consume_product_stock,
    plan_allocation,
    stock_level_bounds,
)
from backend.tests.factories import make_client, make_lot, make_product


def test_plan_uses_primary_stock_first():
    plan = plan_allocation(4, 10, [(1, 50)])
    assert plan.from_stock == 4
    assert plan.lots == ()
    assert plan.from_b2b == 0


def test_plan_overflows_into_lots_in_order():
    """
    GIVEN
    - 5 units in stock, lots #7 (3 units) then #9 (10 units)
    - a request for 10

    THEN
    - 5 from stock, 3 from #7, 2 from #9
    """
    plan = plan_allocation(10, 5, [(7, 3), (9, 10)])
    assert plan.from_stock == 5
    assert plan.lots == (LotTake(7, 3), LotTake(9, 2))
    assert plan.from_b2b == 5


def test_plan_skips_empty_lots_and_reports_shortage():
    assert plan_allocation(6, 2, [(1, 0), (2, 3)]) is None
    plan = plan_allocation(5, 2, [(1, 0), (2, 3)])
    assert plan.lots == (LotTake(2, 3),)


def test_plan_rejects_non_positive_request():
    with pytest.raises(ValueError):
        plan_allocation(0, 10, [])


def test_consume_drains_stock_then_oldest_lot(db_session):
    p = make_product(db_session, stock=5)
    old = make_lot(db_session, p, 3)
    new = make_lot(db_session, p, 10)

    allocation = consume_product_stock(db_session, product=p, quantity=10)
    db_session.flush()

    assert allocation.plan.from_stock == 5
    assert [t.b2b_stock_id for t in allocation.plan.lots] == [old.id, new.id]
    assert p.stock_qty == 0
    assert db_session.get(B2BStock, old.id).quantity_available == 0
    assert db_session.get(B2BStock, new.id).quantity_available == 8


def test_consume_shortage_writes_nothing(db_session):
    """
    GIVEN
    - 2 units in stock and a 3-unit lot
    - a request for 9

    THEN
    - InsufficientStockError with a shortfall of 4
    - stock and lot untouched
    """
    p = make_product(db_session, name="Tent", stock=2)
    lot = make_lot(db_session, p, 3)

    with pytest.raises(InsufficientStockError) as exc:
        consume_product_stock(db_session, product=p, quantity=9)

    err = exc.value
    assert err.shortfall == 4
    assert err.to_dict()["shortage"]["available_b2b"] == 3
    assert "Insufficient stock for Tent" in err.detail
    assert p.stock_qty == 2
    assert lot.quantity_available == 3


def test_consume_without_b2b_ignores_lots(db_session):
    p = make_product(db_session, stock=2)
    make_lot(db_session, p, 30)

    with pytest.raises(InsufficientStockError):
        consume_product_stock(db_session, product=p, quantity=3, allow_b2b=False)


def test_issue_register_accumulates_and_never_goes_negative(db_session):
    c = make_client(db_session)
    p = make_product(db_session)

    bump_issue_register(db_session, product_id=p.id, client_id=c.id, issued=5)
    reg = bump_issue_register(db_session, product_id=p.id, client_id=c.id, returned=2)
    assert (reg.qty_issued, reg.qty_returned) == (5, 2)
    assert reg.last_returned_at is not None

    reg = bump_issue_register(db_session, product_id=p.id, client_id=c.id, issued=-9)
    assert reg.qty_issued == 0


@pytest.mark.parametrize(
    "level,bounds",
    [("out", (0, 0)), ("low", (1, 9)), ("medium", (10, 50)), ("good", (51, None))],
)
def test_stock_level_bounds(level, bounds):
    assert stock_level_bounds(level) == bounds


def test_stock_endpoint_filters_by_level(client, db_session):
    make_product(db_session, name="Empty", stock=0)
    make_product(db_session, name="Few", stock=4)
    make_product(db_session, name="Plenty", stock=80)
    db_session.commit()

    r = client.get("/v1/stock", params={"stock_level": "low"})
    assert r.status_code == 200
    assert [p["name"] for p in r.json()] == ["Few"]


def test_manual_stock_update_in_out_adjustment(client, db_session):
    p = make_product(db_session, stock=3)
    make_lot(db_session, p, 5)
    db_session.commit()

    r = client.post("/v1/stock/update", json={"product_id": p.id, "type": "in", "quantity": 2})
    assert r.status_code == 200
    assert r.json()["product"]["stock_qty"] == 5

    r = client.post("/v1/stock/update", json={"product_id": p.id, "type": "out", "quantity": 7})
    assert r.status_code == 200
    body = r.json()
    assert body["allocation"]["from_stock"] == 5
    assert body["allocation"]["from_b2b"] == 2

    r = client.post("/v1/stock/update", json={"product_id": p.id, "type": "adjustment", "quantity": 12})
    assert r.status_code == 200
    assert r.json()["product"]["stock_qty"] == 12

    ledger = client.get("/v1/stock/ledger", params={"product_id": p.id}).json()
    assert ledger["total"] == 4
    reasons = sorted(e["reason"] for e in ledger["items"])
    assert reasons == ["adjustment", "b2b_dispatch", "manual", "manual"]


def test_manual_stock_out_shortage_is_400_with_detail(client, db_session):
    p = make_product(db_session, stock=1)
    db_session.commit()

    r = client.post("/v1/stock/update", json={"product_id": p.id, "type": "out", "quantity": 4})
    assert r.status_code == 400
    assert r.json()["shortage"]["shortfall"] == 3
    assert db_session.execute(select(Product.stock_qty).where(Product.id == p.id)).scalar_one() == 1
