# Query sandbox pipeline: Guard → Bounded execution → Normalize / Translate
# The only entry point the HTTP layer and the answer checker call

import logging
from dataclasses import dataclass

from error_translator import EngineError, PublicError, translate
from result_normalizer import RowSet, normalize
from sql_executor import BoundedExecutor, ExecutionSuccess, ExecutionTimedOut
from sql_guardrails import ForbiddenReason, check_statement

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("sandbox.audit")

AUDIT_SQL_PREVIEW = 200


@dataclass(frozen=True)
class RawQueryRequest:
    text: str
    # Metadata only, never interpolated into SQL
    context_id: str | None = None
    user_id: str | None = None


@dataclass
class QuerySucceeded:
    row_set: RowSet


@dataclass
class QueryRejected:
    reason: ForbiddenReason

    @property
    def message(self) -> str:
        return self.reason.message


@dataclass
class QueryFailed:
    error: EngineError
    public: PublicError

    @property
    def timed_out(self) -> bool:
        return self.error.is_timeout


QueryOutcome = QuerySucceeded | QueryRejected | QueryFailed


def _preview(sql: str) -> str:
    sql = " ".join(sql.split())
    return (sql[:AUDIT_SQL_PREVIEW] + "...") if len(sql) > AUDIT_SQL_PREVIEW else sql


class SandboxGateway:
    def __init__(self, executor: BoundedExecutor, guard=check_statement):
        self.executor = executor
        self.guard = guard

    @property
    def max_rows(self) -> int:
        return self.executor.limits.max_rows

    def run(self, request: RawQueryRequest) -> QueryOutcome:
        # -------------------------------
        # STEP 1: Statement guard
        # -------------------------------
        verdict = self.guard(request.text)
        if not verdict.allowed:
            self._audit(request, "rejected", detail=verdict.reason.value)
            return QueryRejected(reason=verdict.reason)

        # -------------------------------
        # STEP 2: Bounded execution
        # (DatabaseUnavailableError propagates to the caller)
        # -------------------------------
        outcome = self.executor.execute(request.text)

        # -------------------------------
        # STEP 3: Normalize or translate
        # -------------------------------
        if isinstance(outcome, ExecutionSuccess):
            row_set = normalize(outcome.result, outcome.elapsed_ms, self.max_rows)
            self._audit(
                request, "success",
                detail=f"rows={row_set.row_count} truncated={row_set.truncated}",
                elapsed_ms=row_set.execution_time_ms,
            )
            return QuerySucceeded(row_set=row_set)

        status = "timed_out" if isinstance(outcome, ExecutionTimedOut) else "failed"
        self._audit(
            request, status,
            detail=f"code={outcome.error.code} category={outcome.error.category}",
            elapsed_ms=outcome.elapsed_ms,
        )
        logger.debug("Engine error for context %s: %s", request.context_id, outcome.error.raw_message)
        return QueryFailed(error=outcome.error, public=translate(outcome.error))

    def _audit(self, request: RawQueryRequest, status: str, detail: str = "", elapsed_ms: int | None = None):
        audit_logger.info(
            "sandbox_query status=%s context=%s user=%s elapsed_ms=%s %s sql=%r",
            status,
            request.context_id,
            request.user_id,
            elapsed_ms,
            detail,
            _preview(request.text),
        )
