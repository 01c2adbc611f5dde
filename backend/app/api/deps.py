from __future__ import annotations

from dataclasses import dataclass
from typing import Generator

from fastapi import Query
from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from backend.app.db.session import SessionLocal

def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@dataclass
class PageParams:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def page_params(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=500),
) -> PageParams:
    return PageParams(page=page, limit=limit)


def paginate(db: Session, stmt: Select, params: PageParams, serialize) -> dict:
    """Run `stmt` for one page; `serialize` turns each row into a dict."""
    total = db.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar_one()
    rows = db.execute(stmt.offset(params.offset).limit(params.limit)).scalars().all()
    return {
        "items": [serialize(r) for r in rows],
        "total": total,
        "page": params.page,
        "limit": params.limit,
    }
