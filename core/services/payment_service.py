"""
Payment service: records customer receipts and allocates them to invoices.

A payment, its allocation row and the invoice's new aggregates are written in
one transaction with the invoice row locked, so concurrent payments on the
same invoice serialize and paid_amount never loses an update.
"""

import logging
from uuid import UUID, uuid4

import psycopg2

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction
from core.config import LedgerConfig
from core.event_bus import EventBus
from core.events import InvoicePaid, PaymentRecorded
from core.exceptions import LedgerError, NotFoundError
from core.ledger import apply_invoice_payment, ensure_positive
from core.models import (
    Invoice,
    InvoiceStatus,
    Payment,
    PaymentAllocation,
    PaymentAllocationResult,
    PaymentCreate,
)
from core.numbering import DocumentNumberGenerator, DocumentType
from utils.timezone import now_utc, today_utc
from utils.user_context import get_acting_user_id

logger = logging.getLogger(__name__)


class PaymentService:
    """Service for payment operations."""

    def __init__(
        self,
        postgres: PostgresClient,
        audit: AuditLogger,
        event_bus: EventBus,
        numbers: DocumentNumberGenerator,
        config: LedgerConfig | None = None
    ):
        self.postgres = postgres
        self.audit = audit
        self.event_bus = event_bus
        self.numbers = numbers
        self.config = config or LedgerConfig()

    def record_payment_with_allocation(self, data: PaymentCreate) -> PaymentAllocationResult:
        """
        Record a payment and allocate all of it to one invoice.

        Either everything is written (payment, allocation, invoice update,
        audit rows) or nothing is. Business-rule failures and database errors
        come back as an unsuccessful result rather than an exception.

        Args:
            data: Payment details; amount must be positive

        Returns:
            PaymentAllocationResult with the payment id and the invoice's new
            paid_amount, balance_due and status, or success=False with the
            error message and kind
        """
        try:
            payment, before, after = self._record(data)
        except LedgerError as e:
            logger.warning("Payment rejected for invoice %s: %s", data.invoice_id, e)
            return PaymentAllocationResult.failed(e)
        except psycopg2.Error as e:
            logger.exception("Payment recording failed for invoice %s", data.invoice_id)
            return PaymentAllocationResult.unexpected(str(e).strip() or type(e).__name__)

        logger.info(
            "Recorded payment %s of %s on invoice %s (%s -> %s)",
            payment.payment_number, payment.amount, after.invoice_number,
            before.status.value, after.status.value
        )

        self.event_bus.publish(PaymentRecorded.create(payment=payment, invoice=after))
        if after.status == InvoiceStatus.PAID and before.status != InvoiceStatus.PAID:
            self.event_bus.publish(InvoicePaid.create(invoice=after))

        return PaymentAllocationResult(
            success=True,
            payment_id=payment.id,
            payment_number=payment.payment_number,
            invoice_id=after.id,
            allocated_amount=payment.amount,
            paid_amount=after.paid_amount,
            balance_due=after.balance_due,
            invoice_status=after.status,
        )

    def _record(self, data: PaymentCreate) -> tuple[Payment, Invoice, Invoice]:
        with self.postgres.transaction() as tx:
            row = tx.execute_single(
                "SELECT * FROM invoices WHERE id = %s AND company_id = %s FOR UPDATE",
                (data.invoice_id, data.company_id)
            )
            if row is None:
                raise NotFoundError("Invoice not found")
            invoice = Invoice.model_validate(row)

            amount = ensure_positive(data.amount, "Payment amount must be greater than zero")
            update = apply_invoice_payment(invoice, amount, self.config.allow_overpayment)

            now = now_utc()
            payment_date = data.payment_date or today_utc()
            customer_id = data.customer_id or invoice.customer_id

            def insert_payment(payment_number: str) -> dict:
                return tx.execute_returning(
                    """
                    INSERT INTO payments (
                        id, company_id, customer_id, payment_number, payment_date,
                        amount, payment_method, reference_number, notes,
                        created_by, created_at, updated_at
                    ) VALUES (
                        %s, %s, %s, %s, %s,
                        %s, %s, %s, %s,
                        %s, %s, %s
                    )
                    RETURNING *
                    """,
                    (
                        uuid4(), data.company_id, customer_id, payment_number, payment_date,
                        amount, data.payment_method.value,
                        data.reference_number or payment_number, data.notes,
                        get_acting_user_id(), now, now
                    )
                )[0]

            if data.payment_number:
                payment_row = insert_payment(data.payment_number)
            else:
                payment_row = self.numbers.insert_numbered(
                    tx, data.company_id, DocumentType.PAYMENT, insert_payment
                )
            payment = Payment.model_validate(payment_row)

            tx.execute(
                """
                INSERT INTO payment_allocations (
                    id, payment_id, invoice_id, amount_allocated, allocation_date, created_at
                ) VALUES (%s, %s, %s, %s, %s, %s)
                """,
                (uuid4(), payment.id, invoice.id, amount, payment_date, now)
            )

            invoice_row = tx.execute_returning(
                """
                UPDATE invoices
                SET paid_amount = %s, balance_due = %s, status = %s, updated_at = %s
                WHERE id = %s
                RETURNING *
                """,
                (update.paid_amount, update.balance_due, update.status.value, now, invoice.id)
            )[0]
            updated = Invoice.model_validate(invoice_row)

            self.audit.log_change(
                entity_type="payment",
                entity_id=payment.id,
                action=AuditAction.CREATE,
                changes={
                    "created": {
                        "payment_number": payment.payment_number,
                        "invoice_id": str(invoice.id),
                        "amount": str(amount),
                        "payment_method": payment.payment_method.value
                    }
                },
                executor=tx
            )
            self.audit.log_change(
                entity_type="invoice",
                entity_id=invoice.id,
                action=AuditAction.UPDATE,
                changes={
                    "paid_amount": {"old": str(invoice.paid_amount), "new": str(updated.paid_amount)},
                    "balance_due": {"old": str(invoice.balance_due), "new": str(updated.balance_due)},
                    "status": {"old": invoice.status.value, "new": updated.status.value},
                    "payment_recorded": str(payment.id)
                },
                executor=tx
            )

        return payment, invoice, updated

    def get_by_id(self, payment_id: UUID) -> Payment | None:
        """
        Get payment by ID.

        Returns:
            Payment if found, None otherwise.
        """
        row = self.postgres.execute_single(
            "SELECT * FROM payments WHERE id = %s",
            (payment_id,)
        )

        if row is None:
            return None

        return Payment.model_validate(row)

    def list_for_company(self, company_id: UUID, limit: int | None = None) -> list[Payment]:
        """List a company's payments, newest first."""
        rows = self.postgres.execute(
            """
            SELECT * FROM payments
            WHERE company_id = %s
            ORDER BY payment_date DESC, created_at DESC
            LIMIT %s
            """,
            (company_id, limit or self.config.default_list_limit)
        )

        return [Payment.model_validate(row) for row in rows]

    def list_for_invoice(self, invoice_id: UUID) -> list[Payment]:
        """Payments allocated to an invoice, oldest first."""
        rows = self.postgres.execute(
            """
            SELECT p.* FROM payments p
            JOIN payment_allocations pa ON pa.payment_id = p.id
            WHERE pa.invoice_id = %s
            ORDER BY p.payment_date ASC, p.created_at ASC
            """,
            (invoice_id,)
        )

        return [Payment.model_validate(row) for row in rows]

    def list_allocations(self, payment_id: UUID) -> list[PaymentAllocation]:
        """Allocation rows for a payment."""
        rows = self.postgres.execute(
            """
            SELECT * FROM payment_allocations
            WHERE payment_id = %s
            ORDER BY created_at ASC
            """,
            (payment_id,)
        )

        return [PaymentAllocation.model_validate(row) for row in rows]
