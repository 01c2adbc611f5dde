from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.core.errors import DomainValidationError
from backend.app.db.models.models_v1 import Client, Lead
from backend.app.db.models.core_types import LeadStatus

logger = logging.getLogger(__name__)


def convert_lead(db: Session, lead: Lead) -> Client:
    """Turn a lead into a client; an existing client with the same phone is reused."""
    if lead.status == LeadStatus.converted:
        raise DomainValidationError("Lead is already converted")

    client = db.execute(select(Client).where(Client.phone == lead.phone)).scalar_one_or_none()
    if client is None:
        client = Client(name=lead.name, phone=lead.phone, email=lead.email)
        db.add(client)
        db.flush()

    lead.client_id = client.id
    lead.status = LeadStatus.converted
    db.flush()

    logger.info("lead %s converted to client %s", lead.id, client.id)
    return client
