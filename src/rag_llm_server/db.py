"""PostgreSQL connection handling shared by the metadata, vector and chat memory stores."""

import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import psycopg2
from pgvector.psycopg2 import register_vector
from psycopg2.pool import ThreadedConnectionPool

from .config import DEFAULT_DATABASE_URL
from .logger import logger


class PostgresDatabase:
    """Thread-safe connection pool.

    Every store borrows a connection per operation via ``connection()`` and
    commits its own work, so the stores never share a transaction.
    """

    def __init__(
        self,
        connection_string: str | None = None,
        min_connections: int = 1,
        max_connections: int = 10,
    ):
        self.connection_string = connection_string or DEFAULT_DATABASE_URL
        self.min_connections = min_connections
        self.max_connections = max_connections
        self.pool: ThreadedConnectionPool | None = None
        self._vector_registered: set[int] = set()

    def connect(self):
        if self.pool is not None:
            return
        start = time.perf_counter()
        self.pool = ThreadedConnectionPool(
            self.min_connections, self.max_connections, self.connection_string
        )
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info("connected to database", duration_ms=round(duration_ms, 2))

    def disconnect(self):
        if self.pool is not None:
            self.pool.closeall()
            self.pool = None
            self._vector_registered.clear()
            logger.info("disconnected from database")

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()

    @contextmanager
    def connection(self, vector: bool = False) -> Iterator["psycopg2.extensions.connection"]:
        """Borrow a pooled connection; rolls back on error and returns it to the pool.

        Args:
            vector: Register the pgvector type adapters on the connection first.
        """
        if self.pool is None:
            raise RuntimeError("database not connected; call connect() first")
        conn = self.pool.getconn()
        try:
            if vector and id(conn) not in self._vector_registered:
                register_vector(conn)
                self._vector_registered.add(id(conn))
            yield conn
        except Exception:
            conn.rollback()
            raise
        finally:
            self.pool.putconn(conn)

    def ping(self) -> bool:
        """Return True if the database answers ``SELECT 1``."""
        try:
            with self.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
                    cur.fetchone()
                conn.rollback()
            return True
        except (psycopg2.Error, RuntimeError) as e:
            logger.warning("database ping failed", error=str(e))
            return False

    def run_migrations(self, migrations_dir: str | Path) -> int:
        """Run database migrations from the specified directory.

        Applies every ``*.up.sql`` file in name order inside one transaction.

        Args:
            migrations_dir: Path to the directory containing migration files.

        Returns:
            Number of migration files applied.
        """
        migrations_dir = Path(migrations_dir)
        migration_files = sorted(migrations_dir.glob("*.up.sql"))
        start = time.perf_counter()
        try:
            with self.connection() as conn:
                with conn.cursor() as cur:
                    for migration_file in migration_files:
                        cur.execute(migration_file.read_text())
                conn.commit()
        except psycopg2.Error as e:
            logger.error("migrations failed", error=str(e))
            raise
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "migrations completed",
            migrations_count=len(migration_files),
            duration_ms=round(duration_ms, 2),
        )
        return len(migration_files)

    def truncate_tables(self, *tables: str) -> None:
        """Truncate the given tables. Use only in tests for isolation between test runs."""
        with self.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"TRUNCATE TABLE {', '.join(tables)}")
            conn.commit()
