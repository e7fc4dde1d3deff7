"""Core domain models."""

from core.models.company import Company
from core.models.invoice import Invoice, InvoiceCreate, InvoiceStatus
from core.models.payment import Payment, PaymentCreate, PaymentMethod, PaymentAllocation
from core.models.credit_note import (
    CreditNote, CreditNoteCreate, CreditNoteStatus, CreditNoteAllocation,
)
from core.models.results import (
    LedgerResult, PaymentAllocationResult, CreditNoteApplicationResult,
)

__all__ = [
    # Company
    "Company",
    # Invoice
    "Invoice", "InvoiceCreate", "InvoiceStatus",
    # Payment
    "Payment", "PaymentCreate", "PaymentMethod", "PaymentAllocation",
    # CreditNote
    "CreditNote", "CreditNoteCreate", "CreditNoteStatus", "CreditNoteAllocation",
    # Results
    "LedgerResult", "PaymentAllocationResult", "CreditNoteApplicationResult",
]
