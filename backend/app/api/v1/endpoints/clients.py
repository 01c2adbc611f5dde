from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from backend.app.api.deps import PageParams, get_db, page_params, paginate
from backend.app.db.models.models_v1 import Client, Event, Invoice, IssueRegister

router = APIRouter(prefix="/clients")


class ClientCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    phone: str = Field(min_length=1, max_length=32)
    email: str | None = Field(default=None, max_length=255)
    address: str | None = None
    gst_number: str | None = Field(default=None, max_length=32)


def _client_dict(c: Client) -> dict:
    return {
        "id": c.id,
        "name": c.name,
        "phone": c.phone,
        "email": c.email,
        "address": c.address,
        "gst_number": c.gst_number,
        "created_at": c.created_at,
    }


def _get_client(db: Session, client_id: int) -> Client:
    c = db.get(Client, client_id)
    if not c:
        raise HTTPException(status_code=404, detail="Client not found")
    return c


def _phone_taken(db: Session, phone: str, exclude_id: int | None = None) -> bool:
    stmt = select(Client.id).where(Client.phone == phone)
    if exclude_id is not None:
        stmt = stmt.where(Client.id != exclude_id)
    return db.execute(stmt).first() is not None


@router.get("")
def list_clients(
    search: str | None = None,
    page: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
):
    stmt = select(Client).order_by(Client.name, Client.id)
    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(or_(Client.name.ilike(like), Client.phone.ilike(like), Client.email.ilike(like)))
    return paginate(db, stmt, page, _client_dict)


@router.get("/{client_id}")
def get_client(client_id: int, db: Session = Depends(get_db)):
    return _client_dict(_get_client(db, client_id))


@router.post("", status_code=201)
def create_client(payload: ClientCreate, db: Session = Depends(get_db)):
    if _phone_taken(db, payload.phone):
        raise HTTPException(status_code=409, detail="A client with this phone already exists")

    c = Client(**payload.model_dump())
    db.add(c)
    db.commit()
    db.refresh(c)
    return _client_dict(c)


@router.put("/{client_id}")
def update_client(client_id: int, payload: ClientCreate, db: Session = Depends(get_db)):
    c = _get_client(db, client_id)
    if _phone_taken(db, payload.phone, exclude_id=client_id):
        raise HTTPException(status_code=409, detail="A client with this phone already exists")

    for key, value in payload.model_dump().items():
        setattr(c, key, value)
    db.commit()
    db.refresh(c)
    return _client_dict(c)


@router.delete("/{client_id}")
def delete_client(client_id: int, db: Session = Depends(get_db)):
    c = _get_client(db, client_id)
    for model in (Invoice, Event, IssueRegister):
        if db.execute(select(model.id).where(model.client_id == client_id).limit(1)).first():
            raise HTTPException(status_code=409, detail="Client has invoices, events or issued stock")

    db.delete(c)
    db.commit()
    return {"deleted": True, "id": client_id}
