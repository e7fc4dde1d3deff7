"""Structured results returned by the allocation operations.

Expected business failures come back as success=False with a message and an
error kind instead of an exception, so callers handle transport and business
errors the same way and display `error` directly.
"""

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel

from core.exceptions import ErrorKind, LedgerError
from core.models.credit_note import CreditNoteStatus
from core.models.invoice import InvoiceStatus


class LedgerResult(BaseModel):
    """Common shape: success flag, and on failure a message and its kind."""

    success: bool
    error: str | None = None
    error_kind: ErrorKind | None = None

    @classmethod
    def failed(cls, exc: LedgerError):
        return cls(success=False, error=str(exc), error_kind=exc.kind)

    @classmethod
    def unexpected(cls, message: str):
        return cls(success=False, error=message, error_kind=ErrorKind.UNEXPECTED)


class PaymentAllocationResult(LedgerResult):
    """Outcome of recording a payment against an invoice."""

    payment_id: UUID | None = None
    payment_number: str | None = None
    invoice_id: UUID | None = None
    allocated_amount: Decimal | None = None
    paid_amount: Decimal | None = None
    balance_due: Decimal | None = None
    invoice_status: InvoiceStatus | None = None


class CreditNoteApplicationResult(LedgerResult):
    """Outcome of applying credit note balance to an invoice."""

    credit_note_id: UUID | None = None
    invoice_id: UUID | None = None
    applied_amount: Decimal | None = None
    remaining_credit: Decimal | None = None
    invoice_balance: Decimal | None = None
    credit_note_status: CreditNoteStatus | None = None
    invoice_status: InvoiceStatus | None = None
