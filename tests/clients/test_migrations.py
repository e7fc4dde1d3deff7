"""Tests for the Alembic revisions under migrations/."""

import io
from pathlib import Path
from unittest.mock import patch

import pytest
from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory

ROOT = Path(__file__).resolve().parents[2]
OFFLINE_URL = "postgresql://ledger@localhost/ledger"


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def alembic_config(output):
    # Built in code rather than from alembic.ini so env.py leaves logging alone
    config = Config(output_buffer=output)
    config.set_main_option("script_location", str(ROOT / "migrations"))
    config.set_main_option("sqlalchemy.url", OFFLINE_URL)
    return config


class TestRevisionChain:

    def test_single_head(self, alembic_config):
        script = ScriptDirectory.from_config(alembic_config)

        assert script.get_heads() == ["002_document_numbering"]

    def test_linear_from_base(self, alembic_config):
        script = ScriptDirectory.from_config(alembic_config)

        chain = [rev.revision for rev in script.walk_revisions("base", "heads")]

        assert list(reversed(chain)) == ["001_billing_ledger", "002_document_numbering"]

    def test_ini_points_at_migrations(self):
        config = Config(str(ROOT / "alembic.ini"))

        assert Path(config.get_main_option("script_location")) == ROOT / "migrations"


class TestOfflineUpgrade:

    def test_emits_ledger_tables(self, alembic_config, output):
        command.upgrade(alembic_config, "head", sql=True)

        sql = output.getvalue()
        for table in (
            "companies", "customers", "invoices", "payments", "payment_allocations",
            "credit_notes", "credit_note_allocations", "audit_log", "document_sequences",
        ):
            assert f"CREATE TABLE {table} (" in sql
        assert "CHECK (balance_due = total_amount - paid_amount)" in sql
        assert "PRIMARY KEY (company_id, document_type, year)" in sql

    def test_tables_created_before_their_references(self, alembic_config, output):
        command.upgrade(alembic_config, "head", sql=True)

        sql = output.getvalue()
        assert sql.index("CREATE TABLE invoices (") < sql.index("CREATE TABLE payment_allocations (")
        assert sql.index("CREATE TABLE credit_notes (") < sql.index("CREATE TABLE credit_note_allocations (")

    def test_records_each_revision(self, alembic_config, output):
        command.upgrade(alembic_config, "head", sql=True)

        sql = output.getvalue()
        assert "alembic_version" in sql
        assert "'001_billing_ledger'" in sql
        assert "'002_document_numbering'" in sql

    def test_upgrade_from_first_revision_only_adds_numbering(self, alembic_config, output):
        command.upgrade(alembic_config, "001_billing_ledger:head", sql=True)

        sql = output.getvalue()
        assert "CREATE TABLE document_sequences (" in sql
        assert "CREATE TABLE invoices (" not in sql


class TestOfflineDowngrade:

    def test_drops_everything(self, alembic_config, output):
        command.downgrade(alembic_config, "002_document_numbering:base", sql=True)

        sql = output.getvalue()
        assert "DROP TABLE document_sequences" in sql
        assert "DROP TABLE companies" in sql
        assert sql.index("DROP TABLE payment_allocations") < sql.index("DROP TABLE invoices")


class TestDatabaseUrl:

    def test_falls_back_to_vault_admin_url(self, output):
        config = Config(output_buffer=output)
        config.set_main_option("script_location", str(ROOT / "migrations"))

        with patch("clients.vault_client.get_admin_database_url", return_value=OFFLINE_URL) as admin_url:
            command.upgrade(config, "head", sql=True)

        admin_url.assert_called_once_with()
        assert "CREATE TABLE invoices (" in output.getvalue()
