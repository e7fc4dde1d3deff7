"""Tests for PostgresClient - pooled connections and explicit transactions."""

import pytest
from unittest.mock import MagicMock, patch
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient, Transaction, _convert_params
from utils.user_context import user_context

# Test user constants (must match conftest.py)
TEST_USER_ID = UUID("00000000-0000-0000-0000-000000000001")


def mock_connection(rows=None):
    """Connection whose cursors return `rows`."""
    conn = MagicMock()
    conn.closed = False
    cur = conn.cursor.return_value.__enter__.return_value
    cur.description = [("col",)] if rows is not None else None
    cur.fetchall.return_value = rows or []
    cur.fetchone.return_value = tuple(rows[0].values()) if rows else None
    return conn, cur


def executed(cur) -> list[str]:
    return [c.args[0] for c in cur.execute.call_args_list]


class TestConvertParams:

    def test_uuids_become_strings(self):
        invoice_id = uuid4()

        assert _convert_params((invoice_id, "sent")) == (str(invoice_id), "sent")

    def test_nested_values(self):
        ids = [uuid4(), uuid4()]

        assert _convert_params({"ids": ids}) == {"ids": [str(i) for i in ids]}

    def test_none(self):
        assert _convert_params(None) is None


class TestTransaction:
    """Query methods bound to one open connection."""

    def test_execute_returns_row_dicts(self):
        conn, _ = mock_connection([{"id": 1, "status": "paid"}])

        assert Transaction(conn).execute("SELECT id, status FROM invoices") == [{"id": 1, "status": "paid"}]
        conn.commit.assert_not_called()

    def test_execute_without_result_set(self):
        conn, _ = mock_connection(None)

        assert Transaction(conn).execute("UPDATE invoices SET status = 'paid'") == []

    def test_execute_single_and_scalar(self):
        conn, _ = mock_connection([{"number": "BIO-INV-2025-0007"}])
        tx = Transaction(conn)

        assert tx.execute_single("SELECT 1") == {"number": "BIO-INV-2025-0007"}
        assert tx.execute_scalar("SELECT 1") == "BIO-INV-2025-0007"

    def test_savepoint_released_on_success(self):
        conn, cur = mock_connection(None)

        with Transaction(conn).savepoint("numbered_insert"):
            pass

        assert executed(cur) == ["SAVEPOINT numbered_insert", "RELEASE SAVEPOINT numbered_insert"]

    def test_savepoint_rolled_back_on_error(self):
        conn, cur = mock_connection(None)

        with pytest.raises(RuntimeError):
            with Transaction(conn).savepoint("numbered_insert"):
                raise RuntimeError("duplicate number")

        assert executed(cur) == ["SAVEPOINT numbered_insert", "ROLLBACK TO SAVEPOINT numbered_insert"]
        conn.rollback.assert_not_called()


class TestPostgresClientTransaction:
    """Commit and rollback around transaction() blocks."""

    @pytest.fixture
    def pooled(self):
        conn, cur = mock_connection(None)
        with patch("clients.postgres_client.psycopg2.pool.ThreadedConnectionPool") as pool_cls, \
                patch("clients.postgres_client.psycopg2.extras.register_default_jsonb"):
            pool = pool_cls.return_value
            pool.getconn.return_value = conn
            client = PostgresClient(f"postgresql://test/{uuid4()}")
            yield client, pool, conn, cur
            client.close()

    def test_commits_on_success(self, pooled):
        client, pool, conn, _ = pooled

        with client.transaction() as tx:
            assert isinstance(tx, Transaction)

        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()
        pool.putconn.assert_called_once_with(conn)

    def test_rolls_back_on_error(self, pooled):
        client, pool, conn, _ = pooled

        with pytest.raises(ValueError):
            with client.transaction():
                raise ValueError("Invoice not found")

        conn.commit.assert_not_called()
        assert conn.rollback.called
        pool.putconn.assert_called_once_with(conn)

    def test_sets_acting_user(self, pooled):
        client, _, _, cur = pooled

        with user_context(TEST_USER_ID):
            with client.transaction():
                pass

        cur.execute.assert_any_call("SET app.current_user_id = %s", (str(TEST_USER_ID),))

    def test_clears_acting_user(self, pooled):
        client, _, _, cur = pooled

        with client.transaction():
            pass

        cur.execute.assert_any_call("SET app.current_user_id = ''")

    def test_client_savepoint_is_passthrough(self, pooled):
        client = pooled[0]

        with client.savepoint() as executor:
            assert executor is client


@pytest.mark.integration
class TestLiveDatabase:
    """Against the database configured in Vault."""

    def test_execute_methods(self, db):
        assert db.execute("SELECT 1 as num, 'hello' as word") == [{"num": 1, "word": "hello"}]
        assert db.execute("SELECT 1 WHERE false") == []
        assert db.execute_single("SELECT 1 WHERE false") is None
        assert db.execute_scalar("SELECT 'test'") == "test"

    def test_sets_user_context_from_contextvar(self, db):
        with user_context(TEST_USER_ID):
            result = db.execute_scalar("SELECT current_setting('app.current_user_id', true)")
        assert result == str(TEST_USER_ID)

    def test_transaction_rolls_back(self, db):
        with pytest.raises(RuntimeError):
            with db.transaction() as tx:
                tx.execute("CREATE TEMP TABLE rollback_check (id int)")
                raise RuntimeError("abort")

        assert db.execute_scalar("SELECT to_regclass('pg_temp.rollback_check')") is None
