
from contextlib import contextmanager

import psycopg2
import psycopg2.extras
from psycopg2.pool import ThreadedConnectionPool


def create_pool(dsn: str, *, maxconn: int = 10) -> ThreadedConnectionPool:
    """
    Build the PostgreSQL connection pool.
    Called once when the store is constructed; the pool is owned by the store.
    """
    psycopg2.extras.register_uuid()
    return ThreadedConnectionPool(
        minconn=1,
        maxconn=maxconn,
        dsn=dsn,
        connect_timeout=5,
    )


def close_pool(pool: ThreadedConnectionPool | None) -> None:
    """
    Gracefully close all pooled connections.
    """
    if pool:
        pool.closeall()


@contextmanager
def get_conn(pool: ThreadedConnectionPool, *, statement_timeout_ms: int = 5000):
    """
    Provides a transactional DB connection.
    Auto-commits on success, rolls back on error.
    """
    conn = pool.getconn()

    try:
        # Safety: never allow long-running queries
        with conn.cursor() as cur:
            cur.execute("SET statement_timeout = %s;", (f"{int(statement_timeout_ms)}ms",))
            cur.execute("SET idle_in_transaction_session_timeout = %s;", (f"{int(statement_timeout_ms)}ms",))
            cur.execute("SET application_name = 'paystack_payments';")

        yield conn
        conn.commit()

    except Exception:
        conn.rollback()
        raise

    finally:
        pool.putconn(conn)
