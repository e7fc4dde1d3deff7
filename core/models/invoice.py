"""Invoice domain models.

Amounts are Decimal with two decimal places, matching NUMERIC(15,2) columns.
balance_due is stored alongside paid_amount and always equals
total_amount - paid_amount after a committed update.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""

    DRAFT = "draft"
    SENT = "sent"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class InvoiceCreate(BaseModel):
    """Data required to create an invoice."""

    company_id: UUID
    customer_id: UUID
    subtotal: Decimal = Field(..., ge=0, max_digits=15, decimal_places=2)
    tax_amount: Decimal = Field(Decimal("0"), ge=0, max_digits=15, decimal_places=2)
    invoice_date: date | None = None
    due_date: date | None = None
    notes: str | None = Field(None, max_length=2000)

    @model_validator(mode="after")
    def check_due_date(self) -> "InvoiceCreate":
        if self.invoice_date and self.due_date and self.due_date < self.invoice_date:
            raise ValueError("due_date cannot be before invoice_date")
        return self

    @property
    def total_amount(self) -> Decimal:
        return self.subtotal + self.tax_amount


class Invoice(BaseModel):
    """Full invoice entity as stored."""

    id: UUID
    company_id: UUID
    customer_id: UUID
    invoice_number: str
    invoice_date: date
    due_date: date | None
    status: InvoiceStatus
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    balance_due: Decimal
    notes: str | None
    created_by: UUID | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def is_paid(self) -> bool:
        """Whether invoice is fully paid."""
        return self.status == InvoiceStatus.PAID

    @property
    def is_open(self) -> bool:
        """Whether the invoice still accepts payments and credits."""
        return self.status != InvoiceStatus.CANCELLED
