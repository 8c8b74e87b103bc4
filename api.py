# FastAPI backend for the SQL practice sandbox

import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from answer_checker import AnswerChecker, SolutionExecutionError, SolutionNotFoundError
from assignment_store import AssignmentStore
from config import Settings
from db import DatabasePools, DatabaseUnavailableError, create_pools
from extract_schema import extract_schema
from sandbox_gateway import (
    QueryFailed,
    QueryOutcome,
    QueryRejected,
    QuerySucceeded,
    RawQueryRequest,
    SandboxGateway,
)
from sql_executor import BoundedExecutor

logger = logging.getLogger(__name__)


# ---------- API MODELS ----------
class QueryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str
    context_id: str | None = Field(None, alias="contextId")


class CheckRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str
    context_id: str = Field(alias="contextId")


class ColumnOut(BaseModel):
    name: str
    dataType: int
    kind: str


class QueryResponse(BaseModel):
    success: bool = True
    data: list[dict]
    rows: list[list]
    columns: list[ColumnOut]
    rowCount: int
    executionTime: int
    truncated: bool


class CheckResponse(BaseModel):
    success: bool = True
    correct: bool
    message: str
    result: QueryResponse | None = None


def _error(status_code: int, error: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error, **extra})


def _success_body(outcome: QuerySucceeded) -> QueryResponse:
    row_set = outcome.row_set
    return QueryResponse(
        data=row_set.records(),
        rows=[list(r) for r in row_set.rows],
        columns=[
            ColumnOut(name=c.name, dataType=c.engine_type_id, kind=c.kind.value)
            for c in row_set.columns
        ],
        rowCount=row_set.row_count,
        executionTime=row_set.execution_time_ms,
        truncated=row_set.truncated,
    )


def _failure_response(outcome: QueryOutcome) -> JSONResponse:
    if isinstance(outcome, QueryRejected):
        return _error(403, outcome.message, reason=outcome.reason.value)
    return _query_failed_response(outcome)


def _query_failed_response(outcome: QueryFailed) -> JSONResponse:
    return _error(
        outcome.public.http_status,
        # the engine's own diagnostic; the driver rendering stays in the logs
        outcome.error.engine_message,
        userMessage=outcome.public.user_message,
        code=outcome.public.code,
        category=outcome.public.category,
    )


def _validate_query_text(text: str, settings: Settings) -> JSONResponse | None:
    if not text.strip():
        return _error(400, "Query cannot be empty")
    if len(text) > settings.max_query_length:
        return _error(400, f"Query exceeds the maximum length of {settings.max_query_length} characters")
    return None


def create_app(settings: Settings | None = None, pools: DatabasePools | None = None) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_pools = pools or create_pools(settings)
        gateway = SandboxGateway(BoundedExecutor(app_pools.read_only, settings.execution_limits))
        app.state.pools = app_pools
        app.state.gateway = gateway
        app.state.checker = AnswerChecker(gateway, AssignmentStore(app_pools.write))
        logger.info(
            "Sandbox ready: max_rows=%d timeout_ms=%d",
            settings.max_rows, settings.query_timeout_ms,
        )
        try:
            yield
        finally:
            app_pools.close()

    app = FastAPI(title="SQL Studio Sandbox API", lifespan=lifespan)
    app.state.settings = settings

    # ---------- ERROR HANDLERS ----------
    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return _error(400, "Invalid request", errors=[e.get("msg") for e in exc.errors()])

    @app.exception_handler(DatabaseUnavailableError)
    async def database_unavailable(request: Request, exc: DatabaseUnavailableError):
        logger.error("Infrastructure failure on %s: %s", request.url.path, exc)
        return _error(503, "Query sandbox is temporarily unavailable. Please try again later.")

    @app.exception_handler(SolutionNotFoundError)
    async def solution_not_found(request: Request, exc: SolutionNotFoundError):
        return _error(404, "Assignment not found")

    @app.exception_handler(SolutionExecutionError)
    async def solution_failed(request: Request, exc: SolutionExecutionError):
        logger.error("%s", exc)
        return _error(500, "This assignment cannot be checked right now.")

    @app.exception_handler(Exception)
    async def unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        extra = {}
        if settings.is_development:
            extra["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return _error(500, "Internal server error", **extra)

    # ---------- API ENDPOINTS ----------
    @app.post("/api/query/execute", response_model=QueryResponse)
    def execute_query(req: QueryRequest, request: Request, x_user_id: str | None = Header(None)):
        invalid = _validate_query_text(req.query, settings)
        if invalid is not None:
            return invalid

        outcome = request.app.state.gateway.run(
            RawQueryRequest(text=req.query, context_id=req.context_id, user_id=x_user_id)
        )
        if isinstance(outcome, QuerySucceeded):
            return _success_body(outcome)
        return _failure_response(outcome)

    @app.post("/api/query/check", response_model=CheckResponse)
    def check_answer(req: CheckRequest, request: Request, x_user_id: str | None = Header(None)):
        invalid = _validate_query_text(req.query, settings)
        if invalid is not None:
            return invalid

        verdict = request.app.state.checker.check(req.query, req.context_id, user_id=x_user_id)
        if isinstance(verdict.outcome, QuerySucceeded):
            return CheckResponse(
                correct=verdict.correct,
                message=verdict.message,
                result=_success_body(verdict.outcome),
            )
        return _failure_response(verdict.outcome)

    @app.get("/api/schema")
    def sandbox_schema(request: Request):
        schema = extract_schema(request.app.state.pools.read_only, settings.sandbox_db_name)
        return {"success": True, "database": settings.sandbox_db_name, "tables": schema}

    @app.get("/health")
    def health(request: Request):
        app_pools = request.app.state.pools
        databases = {
            "write": "connected" if app_pools.write.ping() else "unavailable",
            "readOnly": "connected" if app_pools.read_only.ping() else "unavailable",
        }
        healthy = all(v == "connected" for v in databases.values())
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={"status": "ok" if healthy else "degraded", "databases": databases},
        )

    return app
