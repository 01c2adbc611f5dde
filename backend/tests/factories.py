from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from backend.app.db.models.models_v1 import B2BStock, Client, Event, Product, Worker
from backend.app.db.models.core_types import UnitType


def make_client(db, name="Test Client", phone="9000000001") -> Client:
    c = Client(name=name, phone=phone)
    db.add(c)
    db.flush()
    return c


def make_product(db, name="Chair", stock=10, sell_price="20", sku=None, unit=UnitType.pcs) -> Product:
    p = Product(
        name=name,
        sku=sku,
        category="Furniture",
        unit_type=unit,
        buy_price=Decimal("0"),
        sell_price=Decimal(sell_price),
        stock_qty=stock,
    )
    db.add(p)
    db.flush()
    return p


def make_lot(db, product, quantity, price="5", supplier="Gupta Traders") -> B2BStock:
    lot = B2BStock(
        item_name=product.name,
        supplier_name=supplier,
        quantity_available=quantity,
        unit_price=Decimal(price),
        product_id=product.id,
    )
    db.add(lot)
    db.flush()
    return lot


def make_event(db, client=None, days=2, start=None) -> Event:
    start = start or datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
    ev = Event(
        name="Wedding",
        location="Jaipur",
        client_id=client.id if client else None,
        date_from=start,
        date_to=start + timedelta(days=days),
    )
    db.add(ev)
    db.flush()
    return ev


def make_worker(db, name="Ramesh", daily="800", half=None) -> Worker:
    w = Worker(
        name=name,
        phone="9111111111",
        daily_rate=Decimal(daily),
        half_day_rate=Decimal(half) if half is not None else None,
    )
    db.add(w)
    db.flush()
    return w
