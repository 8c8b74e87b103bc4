# db.py
# Two privilege-separated MySQL connection pools:
#   * WritePool    - content database, trusted server code only
#   * ReadOnlyPool - sandbox database, the only pool untrusted SQL ever touches

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass

import mysql.connector
from mysql.connector import pooling

from config import ConfigurationError, Settings

logger = logging.getLogger(__name__)


class DatabaseUnavailableError(RuntimeError):
    """Infrastructure failure: the database or a pool slot could not be reached."""


def _connection_config(host, port, user, password, database, settings: Settings) -> dict:
    return {
        "host": host,
        "port": port,
        "user": user,
        "password": password,
        "database": database,
        "ssl_disabled": settings.ssl_disabled,
        # mysql-connector takes whole seconds here
        "connection_timeout": max(1, settings.connect_timeout_ms // 1000),
        "autocommit": False,
    }


def _close_idle_connections(pool, pool_name):
    # MySQLConnectionPool has no public close; _remove_connections is the
    # driver's own shutdown path. Say so loudly if an upgrade drops it.
    remove = getattr(pool, "_remove_connections", None)
    if remove is None:
        logger.warning("Pool %s cannot close idle connections with this driver version", pool_name)
        return
    remove()


class _LazyPool:
    """Creates the underlying MySQLConnectionPool on first use.

    A database that is down at boot does not take the process with it;
    checkouts fail with DatabaseUnavailableError until it comes back.
    """

    def __init__(self, pool_name, pool_size, db_config, acquire_timeout_ms, pool_factory=None):
        self.pool_name = pool_name
        self.pool_size = pool_size
        self._db_config = db_config
        self._acquire_timeout = acquire_timeout_ms / 1000
        self._pool_factory = pool_factory or pooling.MySQLConnectionPool
        self._pool = None
        self._lock = threading.Lock()
        # mysql-connector raises immediately on an exhausted pool; the
        # semaphore makes callers wait for a free slot instead.
        self._slots = threading.BoundedSemaphore(pool_size)
        self._closed = False

    def _get_pool(self):
        with self._lock:
            if self._closed:
                raise DatabaseUnavailableError(f"Pool {self.pool_name} is closed")
            if self._pool is None:
                try:
                    self._pool = self._pool_factory(
                        pool_name=self.pool_name,
                        pool_size=self.pool_size,
                        pool_reset_session=True,
                        **self._db_config,
                    )
                except mysql.connector.Error as e:
                    raise DatabaseUnavailableError(f"Database connection failed: {e}") from e
                logger.info("Connection pool %s ready (size=%d)", self.pool_name, self.pool_size)
            return self._pool

    def _prepare(self, conn):
        """Hook run on every checkout before the connection is handed out."""

    @contextmanager
    def connection(self):
        if not self._slots.acquire(timeout=self._acquire_timeout):
            raise DatabaseUnavailableError(
                f"Timed out waiting for a connection from pool {self.pool_name}"
            )
        conn = None
        try:
            pool = self._get_pool()
            try:
                conn = pool.get_connection()
                self._prepare(conn)
            except mysql.connector.Error as e:
                raise DatabaseUnavailableError(f"Database connection failed: {e}") from e
            yield conn
        finally:
            if conn is not None:
                try:
                    conn.close()  # returns it to the pool
                except mysql.connector.Error:
                    logger.warning("Failed to return connection to pool %s", self.pool_name, exc_info=True)
            self._slots.release()

    def ping(self) -> bool:
        try:
            with self.connection() as conn:
                cursor = conn.cursor()
                try:
                    cursor.execute("SELECT 1")
                    cursor.fetchall()
                finally:
                    cursor.close()
            return True
        except DatabaseUnavailableError as e:
            logger.warning("Health check failed for pool %s: %s", self.pool_name, e)
            return False

    def close(self):
        with self._lock:
            self._closed = True
            pool = self._pool
            self._pool = None
        if pool is not None:
            try:
                _close_idle_connections(pool, self.pool_name)
            except mysql.connector.Error:
                logger.warning("Error while closing pool %s", self.pool_name, exc_info=True)
            logger.info("Connection pool %s closed", self.pool_name)


class WritePool(_LazyPool):
    def __init__(self, settings: Settings, pool_factory=None):
        super().__init__(
            pool_name="sqlstudio_write",
            pool_size=settings.db_pool_size,
            db_config=_connection_config(
                settings.db_host,
                settings.db_port,
                settings.db_user,
                settings.db_password,
                settings.db_name,
                settings,
            ),
            acquire_timeout_ms=settings.pool_acquire_timeout_ms,
            pool_factory=pool_factory,
        )


class ReadOnlyPool(_LazyPool):
    """Restricted identity pool; every session is pinned read-only with a statement timeout."""

    def __init__(self, settings: Settings, pool_factory=None):
        super().__init__(
            pool_name="sqlstudio_sandbox_ro",
            pool_size=settings.readonly_pool_size,
            db_config=_connection_config(
                settings.readonly_db_host,
                settings.readonly_db_port,
                settings.readonly_user,
                settings.readonly_password,
                settings.sandbox_db_name,
                settings,
            ),
            acquire_timeout_ms=settings.pool_acquire_timeout_ms,
            pool_factory=pool_factory,
        )
        self.statement_timeout_ms = settings.query_timeout_ms

    def _prepare(self, conn):
        # Pooled sessions are reset on return, so pin on every checkout.
        cursor = conn.cursor()
        try:
            cursor.execute("SET SESSION TRANSACTION READ ONLY")
            cursor.execute("SET SESSION max_execution_time = %s", (int(self.statement_timeout_ms),))
            cursor.execute("SELECT @@session.transaction_read_only")
            row = cursor.fetchone()
        finally:
            cursor.close()

        if not row or int(row[0]) != 1:
            # Fail closed: never hand out a session that could write.
            raise DatabaseUnavailableError("Sandbox session could not be pinned read-only")


@dataclass
class DatabasePools:
    write: WritePool
    read_only: ReadOnlyPool

    def close(self):
        self.read_only.close()
        self.write.close()


def create_pools(settings: Settings, pool_factory=None) -> DatabasePools:
    if not settings.readonly_user:
        raise ConfigurationError("DB_READONLY_USER must be set; the sandbox never runs on the write identity")
    if settings.readonly_user == settings.db_user:
        raise ConfigurationError("DB_READONLY_USER must differ from DB_USER")

    return DatabasePools(
        write=WritePool(settings, pool_factory=pool_factory),
        read_only=ReadOnlyPool(settings, pool_factory=pool_factory),
    )
