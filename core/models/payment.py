"""Payment and payment allocation models."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class PaymentMethod(str, Enum):
    """How the customer paid."""

    CASH = "cash"
    CHEQUE = "cheque"
    BANK_TRANSFER = "bank_transfer"
    MOBILE_MONEY = "mobile_money"
    CREDIT_CARD = "credit_card"
    OTHER = "other"


class PaymentCreate(BaseModel):
    """
    A receipt to record against one invoice.

    Amount is not range-checked here: zero and negative amounts come back as
    a structured InvalidAmount result from the recorder, not a validation
    error. customer_id defaults to the invoice's customer, payment_number is
    generated when omitted, and reference_number falls back to the payment
    number.
    """

    company_id: UUID
    invoice_id: UUID
    amount: Decimal = Field(..., max_digits=15, decimal_places=2)
    payment_method: PaymentMethod
    customer_id: UUID | None = None
    payment_number: str | None = Field(None, min_length=1, max_length=100)
    payment_date: date | None = None
    reference_number: str | None = Field(None, max_length=255)
    notes: str | None = Field(None, max_length=2000)


class Payment(BaseModel):
    """Full payment entity as stored. Immutable once created."""

    id: UUID
    company_id: UUID
    customer_id: UUID
    payment_number: str
    payment_date: date
    amount: Decimal
    payment_method: PaymentMethod
    reference_number: str | None
    notes: str | None
    created_by: UUID | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PaymentAllocation(BaseModel):
    """How much of a payment went to one invoice."""

    id: UUID
    payment_id: UUID
    invoice_id: UUID
    amount_allocated: Decimal
    allocation_date: date
    created_at: datetime

    model_config = {"from_attributes": True}
