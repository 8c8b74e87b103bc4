# Bounded SQL execution layer for the sandbox
# Runs guard-approved SELECT text on the restricted read-only pool,
# with a row cap, a server-enforced timeout and a read-only transaction.

import logging
import time
from dataclasses import dataclass

import mysql.connector
from mysql.connector import errorcode, errors

from config import ExecutionLimits
from db import DatabaseUnavailableError, ReadOnlyPool
from error_translator import EngineError, engine_error_from, is_timeout_error
from result_normalizer import RawResult

logger = logging.getLogger(__name__)


@dataclass
class ExecutionSuccess:
    result: RawResult
    elapsed_ms: int


@dataclass
class ExecutionFailure:
    error: EngineError
    elapsed_ms: int


@dataclass
class ExecutionTimedOut:
    error: EngineError
    elapsed_ms: int


ExecutionOutcome = ExecutionSuccess | ExecutionFailure | ExecutionTimedOut

_DRAIN_BATCH = 500


def _statement_body(sql: str) -> str:
    body = sql.strip()
    if body.endswith(";"):
        body = body[:-1].rstrip()
    return body


def build_bounded_query(sql: str, limits: ExecutionLimits) -> str:
    """Wrap the statement in a derived table so the cap and timeout apply to it as a whole."""
    body = _statement_body(sql)
    return (
        f"SELECT /*+ MAX_EXECUTION_TIME({int(limits.timeout_ms)}) */ * "
        f"FROM ({body}) AS bounded LIMIT {int(limits.max_rows)}"
    )


def _is_infrastructure_error(exc: mysql.connector.Error) -> bool:
    if isinstance(exc, (errors.PoolError, errors.InterfaceError)):
        return True
    # 2xxx are client-side errors: lost connection, server gone, ...
    return exc.errno is None or 2000 <= exc.errno < 3000


class BoundedExecutor:
    def __init__(self, pool: ReadOnlyPool, limits: ExecutionLimits | None = None):
        if not isinstance(pool, ReadOnlyPool):
            raise TypeError("BoundedExecutor only runs on the read-only sandbox pool")
        self.pool = pool
        self.limits = limits or ExecutionLimits()

    def execute(self, sql: str, limits: ExecutionLimits | None = None) -> ExecutionOutcome:
        """
        Executes a guard-approved SELECT under the configured limits.
        Engine errors come back as outcomes; infrastructure errors raise
        DatabaseUnavailableError.
        """
        limits = limits or self.limits
        started = time.perf_counter()

        def elapsed() -> int:
            return int((time.perf_counter() - started) * 1000)

        with self.pool.connection() as conn:
            cursor = None
            try:
                cursor = conn.cursor()
                cursor.execute("SET SESSION max_execution_time = %s", (int(limits.timeout_ms),))
                if conn.in_transaction:
                    conn.rollback()
                conn.start_transaction(readonly=True)
                return ExecutionSuccess(
                    result=self._fetch_bounded(cursor, sql, limits),
                    elapsed_ms=elapsed(),
                )

            except mysql.connector.Error as e:
                if _is_infrastructure_error(e):
                    logger.error("Sandbox database failure during execution: %s", e)
                    raise DatabaseUnavailableError(f"Sandbox execution failed: {e}") from e

                engine_error = engine_error_from(e)
                if is_timeout_error(e):
                    logger.info("Sandbox query timed out after %d ms", elapsed())
                    return ExecutionTimedOut(error=engine_error, elapsed_ms=elapsed())

                logger.debug("Sandbox query failed: %s", engine_error.raw_message)
                return ExecutionFailure(error=engine_error, elapsed_ms=elapsed())

            finally:
                if cursor is not None:
                    cursor.close()
                self._end_transaction(conn)

    def _fetch_bounded(self, cursor, sql: str, limits: ExecutionLimits) -> RawResult:
        try:
            cursor.execute(build_bounded_query(sql, limits))
            rows = cursor.fetchall()
            return RawResult(description=list(cursor.description or []), rows=list(rows))
        except mysql.connector.Error as e:
            if e.errno != errorcode.ER_DUP_FIELDNAME:
                raise

        # A derived table cannot carry repeated column names (a plain
        # "SELECT * FROM a JOIN b"). Run the statement as written with the
        # cap on the session; the session max_execution_time still applies.
        logger.debug("Repeated column names; running sandbox query unwrapped")
        cursor.execute("SET SESSION sql_select_limit = %s", (int(limits.max_rows),))
        cursor.execute(_statement_body(sql))
        description = list(cursor.description or [])
        rows = cursor.fetchmany(limits.max_rows)
        # An explicit LIMIT in the statement outranks sql_select_limit
        while cursor.fetchmany(_DRAIN_BATCH):
            pass
        cursor.execute("SET SESSION sql_select_limit = DEFAULT")
        return RawResult(description=description, rows=list(rows))

    @staticmethod
    def _end_transaction(conn):
        try:
            if conn.in_transaction:
                conn.rollback()
        except mysql.connector.Error:
            logger.warning("Rollback of sandbox transaction failed", exc_info=True)
