"""
Database client for the budget reports service.
Supports both SQLite (local dev, tests) and PostgreSQL (production).

A ``Database`` is constructed once at process start, opened, shared by every
request and closed at shutdown. With a PostgreSQL URL it owns a fixed-size
psycopg2 ``ThreadedConnectionPool``; otherwise each connection is a fresh
SQLite connection in WAL mode.

SQL is written once in SQLite dialect with ``?`` placeholders and converted
for PostgreSQL on the way through.
"""

import logging
import os
import sqlite3
from contextlib import contextmanager

from config import Config
from errors import QueryError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# SQL Conversion: SQLite → PostgreSQL
# ---------------------------------------------------------------------------

def _convert_sqlite_to_pg(sql):
    """Convert SQLite SQL syntax to PostgreSQL.

    Handles:
    - ? → %s parameter placeholders
    - INTEGER PRIMARY KEY AUTOINCREMENT → SERIAL PRIMARY KEY
    - INSERT ... RETURNING id (for lastrowid support)
    """
    sql = sql.replace('?', '%s')
    sql = sql.replace('INTEGER PRIMARY KEY AUTOINCREMENT', 'SERIAL PRIMARY KEY')

    stripped = sql.strip()
    upper = stripped.upper()
    if (upper.startswith('INSERT') and 'VALUES' in upper
            and 'RETURNING' not in upper
            and 'SELECT' not in upper.split('VALUES')[0]):
        sql = stripped.rstrip(';') + ' RETURNING id'

    return sql


# ---------------------------------------------------------------------------
# PostgreSQL Row/Cursor/Connection Wrappers
# ---------------------------------------------------------------------------

class _PgRowWrapper:
    """Make psycopg2 rows behave like sqlite3.Row (dict-like access)."""

    def __init__(self, cursor, row):
        self._data = {}
        if cursor.description and row:
            for i, col in enumerate(cursor.description):
                self._data[col.name] = row[i]

    def __getitem__(self, key):
        if isinstance(key, int):
            return list(self._data.values())[key]
        return self._data[key]

    def __contains__(self, key):
        return key in self._data

    def get(self, key, default=None):
        return self._data.get(key, default)

    def keys(self):
        return self._data.keys()


class _PgCursorWrapper:
    """Wrap a psycopg2 cursor to return dict-like rows."""

    def __init__(self, cursor):
        self._cursor = cursor

    def execute(self, sql, params=None):
        self._cursor.execute(_convert_sqlite_to_pg(sql), params)
        return self

    def executemany(self, sql, params_list):
        # No RETURNING for executemany
        self._cursor.executemany(sql.replace('?', '%s'), params_list)
        return self

    def fetchone(self):
        row = self._cursor.fetchone()
        if row is None:
            return None
        return _PgRowWrapper(self._cursor, row)

    def fetchall(self):
        return [_PgRowWrapper(self._cursor, r) for r in self._cursor.fetchall()]

    @property
    def lastrowid(self):
        if not self._cursor.description:
            return None
        row = self._cursor.fetchone()
        return row[0] if row else None

    @property
    def rowcount(self):
        return self._cursor.rowcount


class _PgConnWrapper:
    """Wrap a pooled psycopg2 connection with the sqlite3 connection interface."""

    def __init__(self, pool, conn):
        self._pool = pool
        self._conn = conn

    def execute(self, sql, params=None):
        cursor = _PgCursorWrapper(self._conn.cursor())
        # SQLite PRAGMAs have no PostgreSQL meaning
        if sql.strip().upper().startswith('PRAGMA'):
            return cursor
        return cursor.execute(sql, params)

    def executemany(self, sql, params_list):
        return _PgCursorWrapper(self._conn.cursor()).executemany(sql, params_list)

    def cursor(self):
        return _PgCursorWrapper(self._conn.cursor())

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        # Return connection to pool instead of closing
        self._pool.putconn(self._conn)


# ---------------------------------------------------------------------------
# Database client
# ---------------------------------------------------------------------------

class Database:
    """Data-store client with an explicit open/close lifecycle.

    Usage:
        db = Database.from_config()
        db.open()
        with db.connection() as conn:
            conn.execute('UPDATE ...')
        rows = db.fetch_all('SELECT ...', params)
        db.close()
    """

    def __init__(self, url=None, sqlite_path=None, minconn=1, maxconn=10,
                 connect_timeout=10, statement_timeout_ms=None):
        self.url = url
        self.sqlite_path = sqlite_path
        self.minconn = minconn
        self.maxconn = maxconn
        self.connect_timeout = connect_timeout
        self.statement_timeout_ms = statement_timeout_ms
        self._pool = None
        self._driver_errors = (sqlite3.Error,)
        self._integrity_error = sqlite3.IntegrityError
        if not url and not sqlite_path:
            raise ValueError("Database needs either a PostgreSQL url or a SQLite path")

    @classmethod
    def from_config(cls, config=Config):
        return cls(
            url=config.database_url(),
            sqlite_path=config.SQLITE_PATH,
            minconn=config.DB_POOL_MIN,
            maxconn=config.DB_POOL_MAX,
            connect_timeout=config.DB_CONNECT_TIMEOUT,
            statement_timeout_ms=config.DB_STATEMENT_TIMEOUT_MS,
        )

    @property
    def is_postgres(self):
        return bool(self.url)

    @property
    def integrity_error(self):
        """The IntegrityError class raised by the active driver."""
        return self._integrity_error

    def open(self):
        """Create the connection pool. No-op for SQLite beyond creating the data dir."""
        if not self.is_postgres:
            directory = os.path.dirname(self.sqlite_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            logger.info("Using SQLite database at %s", self.sqlite_path)
            return self
        if self._pool is not None:
            return self

        import psycopg2
        from psycopg2 import pool

        kwargs = {'dsn': self.url, 'connect_timeout': self.connect_timeout}
        if self.statement_timeout_ms:
            kwargs['options'] = f'-c statement_timeout={int(self.statement_timeout_ms)}'
        self._pool = pool.ThreadedConnectionPool(self.minconn, self.maxconn, **kwargs)
        self._driver_errors = (psycopg2.Error,)
        self._integrity_error = psycopg2.IntegrityError
        logger.info("PostgreSQL connection pool initialized (%s-%s connections)",
                    self.minconn, self.maxconn)
        return self

    def close(self):
        """Close every pooled connection."""
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
            logger.info("PostgreSQL connection pool closed")

    def _acquire(self):
        if self.is_postgres:
            if self._pool is None:
                raise RuntimeError("Database.open() must be called before use")
            return _PgConnWrapper(self._pool, self._pool.getconn())
        conn = sqlite3.connect(self.sqlite_path, timeout=self.connect_timeout)
        conn.execute('PRAGMA journal_mode=WAL')
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def connection(self):
        """
        Context manager for one transaction.

        Commits when the block exits normally. On any exception the whole
        transaction is rolled back and the original exception re-raised.
        """
        conn = self._acquire()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # -----------------------------------------------------------------------
    # Read helpers
    # -----------------------------------------------------------------------

    def fetch_all(self, sql, params=()):
        """Run a read query and return plain dict rows.

        Raises:
            QueryError: the driver rejected or failed the query.
        """
        with self.connection() as conn:
            try:
                rows = conn.execute(sql, tuple(params)).fetchall()
            except self._driver_errors as e:
                raise QueryError(f"Query failed: {e}") from e
            return [dict(r) for r in rows]

    def fetch_one(self, sql, params=()):
        rows = self.fetch_all(sql, params)
        return rows[0] if rows else None

    # -----------------------------------------------------------------------
    # DDL helpers
    # -----------------------------------------------------------------------

    def add_column(self, conn, table, column, col_type):
        """Add a column to a table if it doesn't exist. Works with both backends."""
        if self.is_postgres:
            conn.execute(f'ALTER TABLE {table} ADD COLUMN IF NOT EXISTS {column} {col_type}')
            return
        existing = [r['name'] for r in conn.execute(f'PRAGMA table_info({table})').fetchall()]
        if column not in existing:
            conn.execute(f'ALTER TABLE {table} ADD COLUMN {column} {col_type}')
