"""
Sequential document numbering.

Numbers look like {COMPANY_CODE}-{TAG}-{YEAR}-{NNNN}, e.g. BIO-INV-2025-0007.
Proforma invoices carry no company code: PF-2025-0012.

The company code is the first three letters of the company name, uppercased.
When the company is missing, unnamed, or the lookup fails, the document tag
stands in for it (INV-INV-2025-0001), so numbering never errors on a bad
company reference.

Three interchangeable strategies compute the sequence part:

- CountStrategy: existing rows for the company + 1. Not year-scoped and racy
  under concurrent creation; kept for data numbered that way.
- ScanStrategy: highest numeric suffix among this year's numbers + 1. If the
  scan fails for any reason, including a missing table, a timestamp-derived
  number is returned instead.
- SequenceStrategy: atomic per (company, type, year) counter row. Concurrent
  callers always receive distinct numbers; run inside the caller's
  transaction, the increment rolls back with the document insert.

Strategies take an executor (PostgresClient or Transaction) so the same code
runs standalone or inside a ledger transaction.
"""

import logging
import re
from enum import Enum
from typing import Callable, TypeVar
from uuid import UUID

import psycopg2
import psycopg2.errors

from clients.postgres_client import PostgresClient
from core.config import LedgerConfig, NumberingStrategyName
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DocumentType(str, Enum):
    """Kinds of numbered documents."""

    QUOTATION = "quotation"
    INVOICE = "invoice"
    LPO = "lpo"
    CREDIT_NOTE = "credit_note"
    PROFORMA = "proforma"
    PAYMENT = "payment"

    @property
    def tag(self) -> str:
        return _DOCUMENT_TABLES[self][0]

    @property
    def table(self) -> str:
        return _DOCUMENT_TABLES[self][1]

    @property
    def number_column(self) -> str:
        return _DOCUMENT_TABLES[self][2]

    @property
    def uses_company_code(self) -> bool:
        return self != DocumentType.PROFORMA


# tag, table, number column
_DOCUMENT_TABLES = {
    DocumentType.QUOTATION: ("QUO", "quotations", "quotation_number"),
    DocumentType.INVOICE: ("INV", "invoices", "invoice_number"),
    DocumentType.LPO: ("LPO", "lpos", "lpo_number"),
    DocumentType.CREDIT_NOTE: ("CN", "credit_notes", "credit_note_number"),
    DocumentType.PROFORMA: ("PF", "proforma_invoices", "proforma_number"),
    DocumentType.PAYMENT: ("PAY", "payments", "payment_number"),
}


def company_code_from_name(name: str | None, fallback: str) -> str:
    """First three characters of the company name, uppercased, or the fallback."""
    if name is None or not name.strip():
        return fallback
    return name.strip()[:3].upper()


def number_prefix(doc_type: DocumentType, year: int, company_code: str | None = None) -> str:
    """Everything before the sequence digits, including the trailing dash."""
    if not doc_type.uses_company_code:
        return f"{doc_type.tag}-{year}-"
    return f"{company_code or doc_type.tag}-{doc_type.tag}-{year}-"


def format_document_number(
    doc_type: DocumentType,
    year: int,
    sequence: int,
    company_code: str | None = None,
    padding: int = 4,
) -> str:
    """
    Format a document number.

    Sequences wider than the padding are written in full rather than truncated.
    """
    return f"{number_prefix(doc_type, year, company_code)}{sequence:0{padding}d}"


def lookup_company_code(executor, company_id: UUID, doc_type: DocumentType) -> str:
    """Company code for a document number. Falls back to the tag on any failure."""
    try:
        with executor.savepoint("company_code"):
            row = executor.execute_single(
                "SELECT name FROM companies WHERE id = %s",
                (company_id,)
            )
    except psycopg2.Error as e:
        logger.warning("Company lookup failed for %s, using default code: %s", company_id, e)
        return doc_type.tag

    if row is None:
        logger.warning("Company %s not found, using default code %s", company_id, doc_type.tag)
        return doc_type.tag

    return company_code_from_name(row["name"], doc_type.tag)


class NumberingStrategy:
    """Computes the next document number for a company, type and year."""

    name: NumberingStrategyName

    def __init__(self, padding: int = 4):
        self.padding = padding

    def next_number(self, executor, company_id: UUID, doc_type: DocumentType, year: int) -> str:
        raise NotImplementedError

    def preview(self, executor, company_id: UUID, doc_type: DocumentType, year: int) -> str:
        """Next number without consuming it. Read-only strategies just compute it."""
        return self.next_number(executor, company_id, doc_type, year)

    def _company_code(self, executor, company_id: UUID, doc_type: DocumentType) -> str | None:
        if not doc_type.uses_company_code:
            return None
        return lookup_company_code(executor, company_id, doc_type)


class CountStrategy(NumberingStrategy):
    """Existing documents of the type for the company, plus one."""

    name = NumberingStrategyName.COUNT

    def next_number(self, executor, company_id: UUID, doc_type: DocumentType, year: int) -> str:
        code = self._company_code(executor, company_id, doc_type)

        count = executor.execute_scalar(
            f"SELECT COUNT(*) FROM {doc_type.table} WHERE company_id = %s",
            (company_id,)
        )

        return format_document_number(doc_type, year, (count or 0) + 1, code, self.padding)


def highest_sequence(executor, company_id: UUID, doc_type: DocumentType, prefix: str) -> int:
    """
    Highest numeric suffix among the company's numbers starting with prefix.

    Numbers that don't match PREFIX + digits exactly are ignored. Returns 0
    when there are none. Database errors propagate.
    """
    rows = executor.execute(
        f"""
        SELECT {doc_type.number_column} AS number FROM {doc_type.table}
        WHERE company_id = %s AND {doc_type.number_column} LIKE %s
        """,
        (company_id, f"{prefix}%")
    )

    pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
    highest = 0
    for row in rows:
        match = pattern.match(row["number"] or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


class ScanStrategy(NumberingStrategy):
    """Highest existing sequence for the year plus one, with a timestamp fallback."""

    name = NumberingStrategyName.SCAN

    def next_number(self, executor, company_id: UUID, doc_type: DocumentType, year: int) -> str:
        code = self._company_code(executor, company_id, doc_type)
        prefix = number_prefix(doc_type, year, code)

        try:
            with executor.savepoint("number_scan"):
                highest = highest_sequence(executor, company_id, doc_type, prefix)
        except psycopg2.Error as e:
            fallback = self.fallback_number(prefix)
            logger.warning(
                "Number scan failed for %s/%s, using fallback %s: %s",
                doc_type.value, company_id, fallback, e
            )
            return fallback

        return f"{prefix}{highest + 1:0{self.padding}d}"

    @staticmethod
    def fallback_number(prefix: str) -> str:
        """Prefix followed by the last six digits of the epoch time in milliseconds."""
        epoch_ms = int(now_utc().timestamp() * 1000)
        return f"{prefix}{epoch_ms % 1_000_000:06d}"


class SequenceStrategy(NumberingStrategy):
    """
    Atomic counter in document_sequences, one row per (company, type, year).

    The first number of a year continues from any numbers already present
    with the same prefix, so switching an existing company to this strategy
    doesn't reissue numbers.
    """

    name = NumberingStrategyName.SEQUENCE

    def next_number(self, executor, company_id: UUID, doc_type: DocumentType, year: int) -> str:
        code = self._company_code(executor, company_id, doc_type)

        current = executor.execute_scalar(
            """
            UPDATE document_sequences
            SET current_number = current_number + 1, updated_at = now()
            WHERE company_id = %s AND document_type = %s AND year = %s
            RETURNING current_number
            """,
            (company_id, doc_type.value, year)
        )

        if current is None:
            seed = highest_sequence(
                executor, company_id, doc_type, number_prefix(doc_type, year, code)
            ) + 1
            # Concurrent first callers: the loser of the insert race increments
            current = executor.execute_scalar(
                """
                INSERT INTO document_sequences (company_id, document_type, year, current_number, updated_at)
                VALUES (%s, %s, %s, %s, now())
                ON CONFLICT (company_id, document_type, year)
                DO UPDATE SET current_number = document_sequences.current_number + 1, updated_at = now()
                RETURNING current_number
                """,
                (company_id, doc_type.value, year, seed)
            )

        return format_document_number(doc_type, year, current, code, self.padding)

    def preview(self, executor, company_id: UUID, doc_type: DocumentType, year: int) -> str:
        code = self._company_code(executor, company_id, doc_type)

        current = executor.execute_scalar(
            """
            SELECT current_number FROM document_sequences
            WHERE company_id = %s AND document_type = %s AND year = %s
            """,
            (company_id, doc_type.value, year)
        )

        if current is None:
            current = highest_sequence(
                executor, company_id, doc_type, number_prefix(doc_type, year, code)
            )

        return format_document_number(doc_type, year, current + 1, code, self.padding)


_STRATEGIES = {
    NumberingStrategyName.COUNT: CountStrategy,
    NumberingStrategyName.SCAN: ScanStrategy,
    NumberingStrategyName.SEQUENCE: SequenceStrategy,
}


class DocumentNumberGenerator:
    """
    Next document number for a company and document type.

    The strategy per document type comes from LedgerConfig. Numbering has no
    side effects other than the sequence counter; callers persist the
    document, and the unique constraint on the number column is the final
    collision backstop.

    Usage:
        numbers = DocumentNumberGenerator(postgres)
        numbers.next_number(company_id, DocumentType.INVOICE)  # "BIO-INV-2025-0007"

        with postgres.transaction() as tx:
            number = numbers.next_number(company_id, DocumentType.PAYMENT, executor=tx)
            ...
    """

    def __init__(self, postgres: PostgresClient, config: LedgerConfig | None = None):
        self.postgres = postgres
        self.config = config or LedgerConfig()

    def strategy_for(self, doc_type: DocumentType) -> NumberingStrategy:
        name = self.config.numbering_strategies.get(
            doc_type.value, NumberingStrategyName.SEQUENCE
        )
        return _STRATEGIES[name](padding=self.config.sequence_padding)

    def next_number(self, company_id: UUID, doc_type: DocumentType, executor=None) -> str:
        """
        Generate the next number.

        Args:
            company_id: Owning company
            doc_type: Kind of document
            executor: Open Transaction to number within; defaults to the client

        Returns:
            Formatted document number for the current year
        """
        executor = executor or self.postgres
        year = now_utc().year
        number = self.strategy_for(doc_type).next_number(executor, company_id, doc_type, year)
        logger.debug("Generated %s number %s for company %s", doc_type.value, number, company_id)
        return number

    def preview(self, company_id: UUID, doc_type: DocumentType) -> str:
        """Number the next document would get, without consuming it."""
        year = now_utc().year
        return self.strategy_for(doc_type).preview(self.postgres, company_id, doc_type, year)

    def insert_numbered(
        self,
        executor,
        company_id: UUID,
        doc_type: DocumentType,
        insert: Callable[[str], T],
    ) -> T:
        """
        Run `insert(number)` with a fresh number, retrying on duplicates.

        Each attempt runs under a savepoint so a unique violation doesn't
        abort the caller's transaction.

        Raises:
            psycopg2.errors.UniqueViolation: If every attempt collides
        """
        attempts = self.config.number_retry_attempts

        for attempt in range(1, attempts + 1):
            number = self.next_number(company_id, doc_type, executor=executor)
            try:
                with executor.savepoint("numbered_insert"):
                    return insert(number)
            except psycopg2.errors.UniqueViolation:
                if attempt == attempts:
                    raise
                logger.warning(
                    "%s number %s already taken (attempt %d/%d), retrying",
                    doc_type.value, number, attempt, attempts
                )

        raise AssertionError("unreachable")
