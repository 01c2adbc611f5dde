from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select

from backend.app.core.logging import configure_logging
from backend.app.db.session import SessionLocal
from backend.app.db.models.models_v1 import Client, Product, Worker
from backend.app.db.models.core_types import UnitType

logger = logging.getLogger(__name__)

DEMO_PRODUCTS = [
    # sku, name, category, unit, buy, sell, stock
    ("TENT-SHAMIANA", "Shamiana 20x40", "Tents", UnitType.pcs, "18000", "2500", 12),
    ("TENT-PANDAL", "Pandal Cloth", "Tents", UnitType.sqft, "40", "6", 4000),
    ("CHAIR-PLASTIC", "Plastic Chair", "Furniture", UnitType.pcs, "350", "15", 500),
    ("TABLE-ROUND", "Round Table", "Furniture", UnitType.pcs, "2200", "120", 60),
    ("CARPET-RED", "Red Carpet", "Decor", UnitType.meter, "180", "25", 300),
    ("LIGHT-LED", "LED Flood Light", "Lighting", UnitType.pcs, "1500", "200", 40),
]


def run_seed(db=None) -> dict:
    """Idempotent demo data: one client, a small catalog, one worker."""
    own = db is None
    db = db or SessionLocal()
    created = {"clients": 0, "products": 0, "workers": 0}
    try:
        # 1) Demo client
        if not db.scalar(select(Client).where(Client.phone == "9800000001")):
            db.add(Client(name="Sharma Wedding Planners", phone="9800000001", address="Jaipur, Rajasthan"))
            created["clients"] += 1

        # 2) Catalog
        for sku, name, category, unit, buy, sell, stock in DEMO_PRODUCTS:
            if db.scalar(select(Product).where(Product.sku == sku)):
                continue
            db.add(
                Product(
                    sku=sku,
                    name=name,
                    category=category,
                    unit_type=unit,
                    buy_price=Decimal(buy),
                    sell_price=Decimal(sell),
                    stock_qty=stock,
                )
            )
            created["products"] += 1

        # 3) Worker
        if not db.scalar(select(Worker).where(Worker.phone == "9800000099")):
            db.add(Worker(name="Ramesh", phone="9800000099", daily_rate=Decimal("800")))
            created["workers"] += 1

        db.commit()
        logger.info("seed done: %s", created)
        return created
    finally:
        if own:
            db.close()


if __name__ == "__main__":
    configure_logging()
    run_seed()
