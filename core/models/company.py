"""Company model. Only the name matters to the ledger: it seeds document codes."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class Company(BaseModel):
    id: UUID
    name: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
