"""Credit note and credit note allocation models.

balance always equals total_amount - applied_amount. A credit note can be
applied to several invoices; each (credit note, invoice) pair has at most one
allocation row that accumulates repeated applications.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class CreditNoteStatus(str, Enum):
    """Credit note lifecycle status."""

    DRAFT = "draft"
    SENT = "sent"
    APPLIED = "applied"
    CANCELLED = "cancelled"


class CreditNoteCreate(BaseModel):
    """Data required to create a credit note."""

    company_id: UUID
    customer_id: UUID
    invoice_id: UUID | None = None
    subtotal: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
    tax_amount: Decimal = Field(Decimal("0"), ge=0, max_digits=15, decimal_places=2)
    credit_note_date: date | None = None
    reason: str | None = Field(None, max_length=500)
    notes: str | None = Field(None, max_length=2000)

    @property
    def total_amount(self) -> Decimal:
        return self.subtotal + self.tax_amount


class CreditNote(BaseModel):
    """Full credit note entity as stored."""

    id: UUID
    company_id: UUID
    customer_id: UUID
    invoice_id: UUID | None
    credit_note_number: str
    credit_note_date: date
    status: CreditNoteStatus
    reason: str | None
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    applied_amount: Decimal
    balance: Decimal
    notes: str | None
    created_by: UUID | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def available_credit(self) -> Decimal:
        """Credit not yet applied to any invoice."""
        return self.total_amount - self.applied_amount


class CreditNoteAllocation(BaseModel):
    """Accumulated amount of one credit note applied to one invoice."""

    id: UUID
    credit_note_id: UUID
    invoice_id: UUID
    allocated_amount: Decimal
    allocation_date: date
    notes: str | None
    created_by: UUID | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
