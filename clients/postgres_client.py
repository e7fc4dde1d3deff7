"""
PostgreSQL client with connection pooling and explicit transactions.

Uses psycopg2 with ThreadedConnectionPool. Single statements run on a pooled
connection and commit immediately. Ledger mutations that must be applied as
one unit run inside `transaction()`, which pins a single connection, commits on
success and rolls back on any exception.

The acting user (utils.user_context) is written to app.current_user_id on
each connection so row-level policies and triggers can see it.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, List, Tuple
from uuid import UUID

import psycopg2
import psycopg2.extras
import psycopg2.pool

from utils.user_context import _current_user_id

logger = logging.getLogger(__name__)

# Global JSONB registration flag
_jsonb_registered = False


def _convert_params(params: Tuple | Dict | None) -> Tuple | Dict | None:
    """Convert UUID objects to strings."""
    if params is None:
        return None

    def convert(value: Any) -> Any:
        if isinstance(value, UUID):
            return str(value)
        if isinstance(value, list):
            return [convert(v) for v in value]
        if isinstance(value, tuple):
            return tuple(convert(v) for v in value)
        if isinstance(value, dict):
            return {k: convert(v) for k, v in value.items()}
        return value

    return convert(params)


class Transaction:
    """
    Query methods bound to one connection inside an open transaction.

    Nothing is committed until the enclosing `PostgresClient.transaction()`
    block exits cleanly. Exposes the same query methods as PostgresClient so
    helpers can accept either one.
    """

    def __init__(self, conn):
        self._conn = conn

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute query, return list of row dicts. Empty list if no results."""
        with self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute(query, _convert_params(params))
            if cur.description:
                return [dict(row) for row in cur.fetchall()]
            return []

    def execute_single(self, query: str, params: Tuple | Dict | None = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_scalar(self, query: str, params: Tuple | Dict | None = None) -> Any:
        """Execute query, return first value of first row or None."""
        with self._conn.cursor() as cur:
            cur.execute(query, _convert_params(params))
            result = cur.fetchone()
            return result[0] if result else None

    def execute_returning(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute INSERT/UPDATE with RETURNING, return results."""
        return self.execute(query, params)

    @contextmanager
    def savepoint(self, name: str = "ledger_sp"):
        """
        Run a block under a SAVEPOINT.

        A failed statement inside the block is rolled back to the savepoint
        and the error re-raised; the outer transaction stays usable.
        """
        with self._conn.cursor() as cur:
            cur.execute(f"SAVEPOINT {name}")
        try:
            yield self
        except Exception:
            with self._conn.cursor() as cur:
                cur.execute(f"ROLLBACK TO SAVEPOINT {name}")
            raise
        else:
            with self._conn.cursor() as cur:
                cur.execute(f"RELEASE SAVEPOINT {name}")


class PostgresClient:
    """
    PostgreSQL client with pooled connections.

    Usage:
        db = PostgresClient(database_url)

        invoice = db.execute_single("SELECT * FROM invoices WHERE id = %s", (invoice_id,))

        with db.transaction() as tx:
            tx.execute_single("SELECT * FROM invoices WHERE id = %s FOR UPDATE", (invoice_id,))
            tx.execute("UPDATE invoices SET ... WHERE id = %s", (invoice_id,))
    """

    # Class-level connection pools shared across instances
    _connection_pools: Dict[str, psycopg2.pool.ThreadedConnectionPool] = {}
    _pools_lock = threading.RLock()

    def __init__(self, database_url: str):
        self._database_url = database_url
        self._ensure_connection_pool()

    def _ensure_connection_pool(self) -> None:
        """Create connection pool if it doesn't exist."""
        with self._pools_lock:
            if self._database_url not in self._connection_pools:
                pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=2,
                    maxconn=20,
                    dsn=self._database_url,
                    connect_timeout=30,
                )

                global _jsonb_registered
                if not _jsonb_registered:
                    psycopg2.extras.register_default_jsonb(globally=True)
                    _jsonb_registered = True

                self._connection_pools[self._database_url] = pool
                logger.info("Connection pool created")

    @contextmanager
    def get_connection(self):
        """Get connection with the acting user set from the contextvar."""
        if self._database_url not in self._connection_pools:
            self._ensure_connection_pool()

        pool = self._connection_pools[self._database_url]
        conn = None

        try:
            conn = pool.getconn()
            if conn is None:
                raise RuntimeError("Could not get connection from pool")

            user_id = _current_user_id.get()

            with conn.cursor() as cur:
                if user_id is not None:
                    cur.execute("SET app.current_user_id = %s", (str(user_id),))
                else:
                    cur.execute("SET app.current_user_id = ''")

            yield conn

        except Exception:
            # Never hand an aborted transaction back to the pool
            if conn is not None and not conn.closed:
                conn.rollback()
            raise

        finally:
            if conn:
                pool.putconn(conn)

    @contextmanager
    def transaction(self):
        """
        Open an all-or-nothing unit of work.

        Yields a Transaction. Commits when the block exits normally, rolls
        back when it raises.
        """
        with self.get_connection() as conn:
            tx = Transaction(conn)
            try:
                yield tx
            except Exception:
                conn.rollback()
                raise
            conn.commit()

    @contextmanager
    def savepoint(self, name: str = "ledger_sp"):
        """
        Outside a transaction every statement stands alone, so a savepoint
        has nothing to protect. Present so helpers can take either executor.
        """
        yield self

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute query, return list of row dicts. Empty list if no results."""
        params = _convert_params(params)
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query, params)
                rows = [dict(row) for row in cur.fetchall()] if cur.description else []
            conn.commit()
            return rows

    def execute_single(self, query: str, params: Tuple | Dict | None = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_scalar(self, query: str, params: Tuple | Dict | None = None) -> Any:
        """Execute query, return first value of first row or None."""
        params = _convert_params(params)
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                result = cur.fetchone()
            conn.commit()
            return result[0] if result else None

    def execute_returning(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute INSERT/UPDATE with RETURNING, return results."""
        params = _convert_params(params)
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query, params)
                rows = [dict(row) for row in cur.fetchall()]
            conn.commit()
            return rows

    def close(self) -> None:
        """Close connection pool."""
        with self._pools_lock:
            if self._database_url in self._connection_pools:
                self._connection_pools[self._database_url].closeall()
                del self._connection_pools[self._database_url]

    @classmethod
    def close_all_pools(cls) -> None:
        """Close all connection pools."""
        with cls._pools_lock:
            for pool in cls._connection_pools.values():
                pool.closeall()
            cls._connection_pools.clear()
