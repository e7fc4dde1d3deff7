"""Shared test fixtures for the billing ledger test suite."""

import copy
import os
import re
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from pathlib import Path
from uuid import UUID, uuid4

import psycopg2
import psycopg2.errors
import pytest
from dotenv import load_dotenv
from psycopg2.extras import Json

# Load .env file BEFORE any other imports that might use env vars
# override=True ensures .env takes precedence over shell env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from utils.timezone import now_utc, today_utc
from utils.user_context import user_context, clear_current_user_id


# =============================================================================
# TEST USER CONSTANTS
# =============================================================================

# Primary test user - use for single-user tests
TEST_USER_ID = UUID("00000000-0000-0000-0000-000000000001")

# Secondary test user - use for attribution tests
TEST_USER_B_ID = UUID("00000000-0000-0000-0000-000000000002")

# Ledger tables truncated between integration tests, children first
LEDGER_TABLES = (
    "credit_note_allocations", "payment_allocations", "credit_notes", "payments",
    "invoices", "document_sequences", "customers", "companies", "audit_log",
)


# =============================================================================
# USER CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_user_context():
    """Ensure clean user context before and after each test."""
    clear_current_user_id()
    yield
    clear_current_user_id()


@pytest.fixture
def test_user_id() -> UUID:
    """The primary test user's ID."""
    return TEST_USER_ID


@pytest.fixture
def test_user_b_id() -> UUID:
    """The secondary test user's ID."""
    return TEST_USER_B_ID


@pytest.fixture
def as_test_user(test_user_id):
    """Run the test body as the primary test user."""
    with user_context(test_user_id):
        yield test_user_id


# =============================================================================
# DATABASE FIXTURES (integration only; need Vault and a migrated database)
# =============================================================================


@pytest.fixture(scope="session")
def db():
    """Session-scoped PostgresClient for the application role."""
    if not os.getenv("VAULT_ADDR"):
        pytest.skip("VAULT_ADDR not set; skipping database tests")

    from clients.postgres_client import PostgresClient
    from clients.vault_client import get_database_url

    client = PostgresClient(get_database_url())
    yield client
    client.close()


@pytest.fixture(scope="session")
def db_admin():
    """Session-scoped admin PostgresClient, for setup and teardown."""
    if not os.getenv("VAULT_ADDR"):
        pytest.skip("VAULT_ADDR not set; skipping database tests")

    from clients.postgres_client import PostgresClient
    from clients.vault_client import get_admin_database_url

    client = PostgresClient(get_admin_database_url())
    yield client
    client.close()


@pytest.fixture
def clean_db(db_admin):
    """Empty every ledger table before the test."""
    db_admin.execute(f"TRUNCATE {', '.join(LEDGER_TABLES)} CASCADE")
    yield


# =============================================================================
# IN-MEMORY LEDGER DATABASE
#
# FakeLedgerDB understands the statements the ledger services and numbering
# strategies issue, nothing more. transaction() and savepoint() snapshot the
# tables and restore them when the block raises, so tests can assert that a
# rejected operation left no rows behind.
# =============================================================================


_TABLES = (
    "companies", "customers", "invoices", "payments", "payment_allocations",
    "credit_notes", "credit_note_allocations", "audit_log", "document_sequences",
    "quotations", "lpos", "proforma_invoices",
)

# table -> columns that must be unique together
_UNIQUE = {
    "invoices": ("company_id", "invoice_number"),
    "payments": ("payment_number",),
    "credit_notes": ("company_id", "credit_note_number"),
    "quotations": ("company_id", "quotation_number"),
    "lpos": ("company_id", "lpo_number"),
    "proforma_invoices": ("company_id", "proforma_number"),
}

_INSERT = re.compile(r"^INSERT INTO (\w+) \(([^)]*)\) VALUES")
_UPDATE = re.compile(r"^UPDATE (\w+) SET (.+?) WHERE (.+?)(?: RETURNING (.+))?$")
_COUNT = re.compile(r"^SELECT COUNT\(\*\) FROM (\w+) WHERE company_id = %s$")
_NUMBERS = re.compile(r"^SELECT (\w+) AS number FROM (\w+) WHERE company_id = %s AND \w+ LIKE %s$")
_SELECT = re.compile(r"^SELECT ([\w*]+(?:, \w+)*) FROM (\w+) WHERE (.+?)(?: ORDER BY [\w, ]+)?( FOR UPDATE)?$")
_EQUALS = re.compile(r"^(\w+) = %s$")


def _normalize(query: str) -> str:
    return " ".join(query.split())


class FakeLedgerDB:
    """Executor with PostgresClient's query methods over plain dict rows."""

    def __init__(self):
        self.tables = {name: [] for name in _TABLES}
        self.statements: list[str] = []
        self.fail_on: str | None = None
        self.commits = 0
        self.rollbacks = 0

    # -------------------------------------------------------------------------
    # Executor interface
    # -------------------------------------------------------------------------

    def execute(self, query, params=None):
        sql = _normalize(query)
        self.statements.append(sql)

        if self.fail_on and self.fail_on in sql:
            raise psycopg2.OperationalError(f"simulated failure on: {self.fail_on}")

        rows = self._dispatch(sql, list(params or ()))
        return [dict(row) for row in rows]

    def execute_returning(self, query, params=None):
        return self.execute(query, params)

    def execute_single(self, query, params=None):
        rows = self.execute(query, params)
        return rows[0] if rows else None

    def execute_scalar(self, query, params=None):
        row = self.execute_single(query, params)
        return next(iter(row.values())) if row else None

    @contextmanager
    def transaction(self):
        snapshot = copy.deepcopy(self.tables)
        try:
            yield self
        except Exception:
            self.tables = snapshot
            self.rollbacks += 1
            raise
        self.commits += 1

    @contextmanager
    def savepoint(self, name="ledger_sp"):
        snapshot = copy.deepcopy(self.tables)
        try:
            yield self
        except Exception:
            self.tables = snapshot
            raise

    # -------------------------------------------------------------------------
    # Statement handling
    # -------------------------------------------------------------------------

    def _dispatch(self, sql, params):
        match = _INSERT.match(sql)
        if match:
            columns = [c.strip() for c in match.group(2).split(",")]
            rows = self._insert(match.group(1), dict(zip(columns, params)))
            return rows if "RETURNING" in sql else []

        match = _UPDATE.match(sql)
        if match:
            rows = self._update(match.group(1), match.group(2), match.group(3), params)
            return rows if match.group(4) else []

        match = _COUNT.match(sql)
        if match:
            company_id = params[0]
            count = sum(1 for r in self.tables[match.group(1)] if r["company_id"] == company_id)
            return [{"count": count}]

        match = _NUMBERS.match(sql)
        if match:
            column, table = match.group(1), match.group(2)
            company_id, pattern = params
            prefix = pattern.rstrip("%")
            return [
                {"number": r[column]} for r in self.tables[table]
                if r["company_id"] == company_id and (r[column] or "").startswith(prefix)
            ]

        if sql.startswith("SELECT * FROM invoices") and "due_date <" in sql:
            company_id, as_of = params
            due = [
                row for row in self.tables["invoices"]
                if row["company_id"] == company_id
                and row["status"] in ("sent", "partial")
                and row["balance_due"] > 0
                and row["due_date"] is not None
                and row["due_date"] < as_of
            ]
            return sorted(due, key=lambda row: row["due_date"])

        match = _SELECT.match(sql)
        if match:
            rows = self._filter(match.group(2), match.group(3), params)
            if match.group(1) == "*":
                return rows
            columns = match.group(1).split(", ")
            return [{c: r[c] for c in columns} for r in rows]

        raise NotImplementedError(f"FakeLedgerDB does not understand: {sql}")

    def _filter(self, table, where, params):
        conditions = [c.strip() for c in where.split(" AND ")]
        columns = []
        for condition in conditions:
            match = _EQUALS.match(condition)
            if match is None:
                raise NotImplementedError(f"Unsupported condition: {condition}")
            columns.append(match.group(1))

        return [
            row for row in self.tables[table]
            if all(row.get(col) == value for col, value in zip(columns, params))
        ]

    def _insert(self, table, row):
        row = {k: (v.adapted if isinstance(v, Json) else v) for k, v in row.items()}

        if table == "document_sequences":
            return [self._upsert_sequence(row)]
        if table == "credit_note_allocations":
            return [self._upsert_credit_allocation(row)]

        unique = _UNIQUE.get(table)
        if unique:
            key = tuple(row.get(c) for c in unique)
            if any(tuple(r.get(c) for c in unique) == key for r in self.tables[table]):
                raise psycopg2.errors.UniqueViolation(
                    f"duplicate key value violates unique constraint on {table}{unique}"
                )

        self._check(table, row)
        self.tables[table].append(row)
        return [row]

    def _upsert_sequence(self, row):
        key = (row["company_id"], row["document_type"], row["year"])
        for existing in self.tables["document_sequences"]:
            if (existing["company_id"], existing["document_type"], existing["year"]) == key:
                existing["current_number"] += 1
                return {"current_number": existing["current_number"]}

        self.tables["document_sequences"].append(dict(row))
        return {"current_number": row["current_number"]}

    def _upsert_credit_allocation(self, row):
        for existing in self.tables["credit_note_allocations"]:
            if (existing["credit_note_id"], existing["invoice_id"]) == (row["credit_note_id"], row["invoice_id"]):
                existing["allocated_amount"] += row["allocated_amount"]
                existing["allocation_date"] = row["allocation_date"]
                existing["notes"] = row["notes"] if row["notes"] is not None else existing["notes"]
                return existing

        self.tables["credit_note_allocations"].append(row)
        return row

    def _update(self, table, set_clause, where, params):
        if table == "document_sequences":
            company_id, document_type, year = params
            for existing in self.tables["document_sequences"]:
                if (existing["company_id"], existing["document_type"], existing["year"]) == (company_id, document_type, year):
                    existing["current_number"] += 1
                    return [{"current_number": existing["current_number"]}]
            return []

        assignments = [a.strip() for a in set_clause.split(",")]
        columns = []
        for assignment in assignments:
            match = _EQUALS.match(assignment)
            if match is None:
                raise NotImplementedError(f"Unsupported assignment: {assignment}")
            columns.append(match.group(1))

        values = dict(zip(columns, params[:len(columns)]))
        rows = self._filter(table, where, params[len(columns):])
        for row in rows:
            updated = {**row, **values}
            self._check(table, updated)
            row.update(values)
        return rows

    @staticmethod
    def _check(table, row):
        if table == "invoices" and row["balance_due"] != row["total_amount"] - row["paid_amount"]:
            raise psycopg2.errors.CheckViolation("invoices_balance_check")
        if table == "credit_notes" and row["balance"] != row["total_amount"] - row["applied_amount"]:
            raise psycopg2.errors.CheckViolation("credit_notes_balance_check")

    # -------------------------------------------------------------------------
    # Seeding and inspection
    # -------------------------------------------------------------------------

    def add_company(self, name: str | None = "Biolegend Scientific") -> dict:
        now = now_utc()
        row = {"id": uuid4(), "name": name, "created_at": now, "updated_at": now}
        self.tables["companies"].append(row)
        return row

    def add_customer(self, company_id, name: str = "Nairobi Research Lab") -> dict:
        now = now_utc()
        row = {"id": uuid4(), "company_id": company_id, "name": name, "created_at": now, "updated_at": now}
        self.tables["customers"].append(row)
        return row

    def add_invoice(
        self,
        company_id,
        customer_id,
        total: str = "1000.00",
        paid: str = "0.00",
        status: str = "sent",
        number: str | None = None,
        due_date: date | None = None,
    ) -> dict:
        now = now_utc()
        total, paid = Decimal(total), Decimal(paid)
        row = {
            "id": uuid4(),
            "company_id": company_id,
            "customer_id": customer_id,
            "invoice_number": number or f"SEED-INV-{len(self.tables['invoices']) + 1:04d}",
            "invoice_date": today_utc(),
            "due_date": due_date,
            "status": status,
            "subtotal": total,
            "tax_amount": Decimal("0.00"),
            "total_amount": total,
            "paid_amount": paid,
            "balance_due": total - paid,
            "notes": None,
            "created_by": None,
            "created_at": now,
            "updated_at": now,
        }
        self.tables["invoices"].append(row)
        return row

    def add_credit_note(
        self,
        company_id,
        customer_id,
        total: str = "300.00",
        applied: str = "0.00",
        status: str = "sent",
        number: str | None = None,
    ) -> dict:
        now = now_utc()
        total, applied = Decimal(total), Decimal(applied)
        row = {
            "id": uuid4(),
            "company_id": company_id,
            "customer_id": customer_id,
            "invoice_id": None,
            "credit_note_number": number or f"SEED-CN-{len(self.tables['credit_notes']) + 1:04d}",
            "credit_note_date": today_utc(),
            "status": status,
            "reason": "Returned goods",
            "subtotal": total,
            "tax_amount": Decimal("0.00"),
            "total_amount": total,
            "applied_amount": applied,
            "balance": total - applied,
            "notes": None,
            "created_by": None,
            "created_at": now,
            "updated_at": now,
        }
        self.tables["credit_notes"].append(row)
        return row

    def get(self, table: str, row_id) -> dict | None:
        return next((r for r in self.tables[table] if r["id"] == row_id), None)


@pytest.fixture
def ledger_db():
    return FakeLedgerDB()


@pytest.fixture
def company(ledger_db):
    return ledger_db.add_company()


@pytest.fixture
def customer(ledger_db, company):
    return ledger_db.add_customer(company["id"])
