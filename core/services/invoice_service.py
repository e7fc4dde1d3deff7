"""
Invoice service for billing.

Invoices are numbered per company and carry running paid_amount and
balance_due aggregates. Payments and credit notes change those aggregates
through PaymentService and CreditNoteService; this service owns creation and
the lifecycle transitions that don't move money.
"""

import logging
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction, compute_changes
from core.config import LedgerConfig
from core.event_bus import EventBus
from core.events import InvoiceCancelled, InvoiceCreated, InvoiceSent
from core.exceptions import InvalidStateError, NotFoundError
from core.models import Invoice, InvoiceCreate, InvoiceStatus
from core.numbering import DocumentNumberGenerator, DocumentType
from utils.timezone import now_utc, today_utc
from utils.user_context import get_acting_user_id

logger = logging.getLogger(__name__)


class InvoiceService:
    """Service for invoice operations."""

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

    def create(self, data: InvoiceCreate) -> Invoice:
        """
        Create an invoice in DRAFT status with nothing paid.

        Args:
            data: Invoice details

        Returns:
            Created invoice with a freshly generated number

        Raises:
            NotFoundError: If the customer is not part of the company
        """
        with self.postgres.transaction() as tx:
            customer = tx.execute_single(
                "SELECT id FROM customers WHERE id = %s AND company_id = %s",
                (data.customer_id, data.company_id)
            )
            if customer is None:
                raise NotFoundError("Customer not found")

            now = now_utc()
            total = data.total_amount

            def insert_invoice(number: str) -> dict:
                return tx.execute_returning(
                    """
                    INSERT INTO invoices (
                        id, company_id, customer_id, invoice_number,
                        invoice_date, due_date, status,
                        subtotal, tax_amount, total_amount, paid_amount, balance_due,
                        notes, created_by, created_at, updated_at
                    ) VALUES (
                        %s, %s, %s, %s,
                        %s, %s, %s,
                        %s, %s, %s, %s, %s,
                        %s, %s, %s, %s
                    )
                    RETURNING *
                    """,
                    (
                        uuid4(), data.company_id, data.customer_id, number,
                        data.invoice_date or today_utc(), data.due_date, InvoiceStatus.DRAFT.value,
                        data.subtotal, data.tax_amount, total, Decimal("0.00"), total,
                        data.notes, get_acting_user_id(), now, now
                    )
                )[0]

            row = self.numbers.insert_numbered(
                tx, data.company_id, DocumentType.INVOICE, insert_invoice
            )
            invoice = Invoice.model_validate(row)

            self.audit.log_change(
                entity_type="invoice",
                entity_id=invoice.id,
                action=AuditAction.CREATE,
                changes={"created": invoice.model_dump(mode="json")},
                executor=tx
            )

        logger.info("Created invoice %s for %s", invoice.invoice_number, total)
        self.event_bus.publish(InvoiceCreated.create(invoice=invoice))

        return invoice

    def get_by_id(self, invoice_id: UUID, company_id: UUID | None = None) -> Invoice | None:
        """
        Get invoice by ID.

        Args:
            invoice_id: Invoice UUID
            company_id: When given, only an invoice of this company matches

        Returns:
            Invoice if found, None otherwise.
        """
        if company_id is None:
            row = self.postgres.execute_single(
                "SELECT * FROM invoices WHERE id = %s",
                (invoice_id,)
            )
        else:
            row = self.postgres.execute_single(
                "SELECT * FROM invoices WHERE id = %s AND company_id = %s",
                (invoice_id, company_id)
            )

        if row is None:
            return None

        return Invoice.model_validate(row)

    def send(self, invoice_id: UUID) -> Invoice:
        """
        Send a draft invoice (DRAFT -> SENT).

        Raises:
            NotFoundError: If invoice not found
            InvalidStateError: If the invoice is not a draft
        """
        with self.postgres.transaction() as tx:
            current = self._lock(tx, invoice_id)

            if current.status != InvoiceStatus.DRAFT:
                raise InvalidStateError(
                    f"Invoice {current.invoice_number} is {current.status.value}, not draft"
                )

            updated = self._set_status(tx, current, InvoiceStatus.SENT)

        self.event_bus.publish(InvoiceSent.create(invoice=updated))

        return updated

    def cancel(self, invoice_id: UUID) -> Invoice:
        """
        Cancel an invoice nothing has been paid or credited against.

        The row stays locked from the check to the update, so a payment or
        credit application waiting on the same invoice sees it cancelled.

        Raises:
            NotFoundError: If invoice not found
            InvalidStateError: If already cancelled or partly/fully paid
        """
        with self.postgres.transaction() as tx:
            current = self._lock(tx, invoice_id)

            if current.status == InvoiceStatus.CANCELLED:
                raise InvalidStateError(f"Invoice {current.invoice_number} is already cancelled")

            if current.paid_amount > 0:
                raise InvalidStateError(
                    f"Invoice {current.invoice_number} has payments and cannot be cancelled"
                )

            updated = self._set_status(tx, current, InvoiceStatus.CANCELLED)

        self.event_bus.publish(InvoiceCancelled.create(invoice=updated))

        return updated

    def _lock(self, tx, invoice_id: UUID) -> Invoice:
        row = tx.execute_single(
            "SELECT * FROM invoices WHERE id = %s FOR UPDATE",
            (invoice_id,)
        )
        if row is None:
            raise NotFoundError("Invoice not found")
        return Invoice.model_validate(row)

    def _set_status(self, tx, current: Invoice, status: InvoiceStatus) -> Invoice:
        row = tx.execute_returning(
            """
            UPDATE invoices
            SET status = %s, updated_at = %s
            WHERE id = %s
            RETURNING *
            """,
            (status.value, now_utc(), current.id)
        )[0]
        updated = Invoice.model_validate(row)

        self.audit.log_change(
            entity_type="invoice",
            entity_id=current.id,
            action=AuditAction.UPDATE,
            changes=compute_changes(
                current.model_dump(mode="json"),
                updated.model_dump(mode="json")
            ),
            executor=tx
        )

        return updated

    def mark_overdue(self, company_id: UUID, as_of: date | None = None) -> list[Invoice]:
        """
        Flag open invoices whose due date has passed.

        Sent and partially paid invoices with a balance and a due date before
        `as_of` (default today) become OVERDUE. Each audit entry records the
        status the invoice had before.

        Returns:
            Invoices that changed status
        """
        as_of = as_of or today_utc()

        with self.postgres.transaction() as tx:
            due = tx.execute(
                """
                SELECT * FROM invoices
                WHERE company_id = %s
                  AND status IN ('sent', 'partial')
                  AND balance_due > 0
                  AND due_date IS NOT NULL
                  AND due_date < %s
                ORDER BY due_date
                FOR UPDATE
                """,
                (company_id, as_of)
            )

            invoices = [
                self._set_status(tx, Invoice.model_validate(row), InvoiceStatus.OVERDUE)
                for row in due
            ]

        if invoices:
            logger.info("Marked %d invoices overdue for company %s", len(invoices), company_id)

        return invoices

    def list_for_customer(self, customer_id: UUID, limit: int | None = None) -> list[Invoice]:
        """
        List invoices for a customer.

        Returns:
            List of invoices ordered by creation time DESC
        """
        rows = self.postgres.execute(
            """
            SELECT * FROM invoices
            WHERE customer_id = %s
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (customer_id, limit or self.config.default_list_limit)
        )

        return [Invoice.model_validate(row) for row in rows]

    def list_outstanding(self, company_id: UUID, limit: int | None = None) -> list[Invoice]:
        """
        List invoices still owed (sent, partial or overdue).

        Returns:
            List of outstanding invoices ordered by due date
        """
        rows = self.postgres.execute(
            """
            SELECT * FROM invoices
            WHERE company_id = %s
              AND status IN ('sent', 'partial', 'overdue')
            ORDER BY COALESCE(due_date, invoice_date) ASC
            LIMIT %s
            """,
            (company_id, limit or self.config.default_list_limit)
        )

        return [Invoice.model_validate(row) for row in rows]
