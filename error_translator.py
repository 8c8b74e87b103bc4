# Translates MySQL engine errors into a closed set of user-facing categories.
#
# EngineError is the internal model (full detail, safe to log).
# PublicError is the only thing that may be serialized back to the caller.

import logging
from dataclasses import dataclass

import mysql.connector
from mysql.connector import errorcode

logger = logging.getLogger(__name__)

TIMEOUT_ERRNOS = frozenset({
    errorcode.ER_QUERY_TIMEOUT,
    errorcode.ER_QUERY_INTERRUPTED,
})

PERMISSION_ERRNOS = frozenset({
    errorcode.ER_TABLEACCESS_DENIED_ERROR,
    errorcode.ER_COLUMNACCESS_DENIED_ERROR,
    errorcode.ER_DBACCESS_DENIED_ERROR,
    errorcode.ER_SPECIFIC_ACCESS_DENIED_ERROR,
    errorcode.ER_CANT_EXECUTE_IN_READ_ONLY_TRANSACTION,
    errorcode.ER_OPTION_PREVENTS_STATEMENT,
})

# errno -> (category, user message)
ERROR_CATEGORIES = {
    errorcode.ER_PARSE_ERROR: ("syntax_error", "There is a syntax error in your SQL query."),
    errorcode.ER_SYNTAX_ERROR: ("syntax_error", "There is a syntax error in your SQL query."),
    errorcode.ER_NO_SUCH_TABLE: ("undefined_table", "Table does not exist. Check the table name."),
    errorcode.ER_BAD_TABLE_ERROR: ("undefined_table", "Table does not exist. Check the table name."),
    errorcode.ER_UNKNOWN_TABLE: ("undefined_table", "Table does not exist. Check the table name."),
    errorcode.ER_BAD_FIELD_ERROR: ("undefined_column", "Column does not exist. Check column names."),
    errorcode.ER_DUP_FIELDNAME: (
        "duplicate_column",
        "Your query returns two columns with the same name. Alias the duplicated columns.",
    ),
}
for _errno in TIMEOUT_ERRNOS:
    ERROR_CATEGORIES[_errno] = ("timeout", "Query took too long to execute. Please optimize your query.")
for _errno in PERMISSION_ERRNOS:
    ERROR_CATEGORIES[_errno] = ("permission_denied", "Permission denied.")

UNMAPPED_CATEGORY = "engine_error"


@dataclass(frozen=True)
class EngineError:
    code: str
    sqlstate: str | None
    raw_message: str        # full driver rendering, logs only
    engine_message: str     # the server's own diagnostic text
    user_message: str
    category: str

    @property
    def is_timeout(self) -> bool:
        return self.category == "timeout"


@dataclass(frozen=True)
class PublicError:
    http_status: int
    user_message: str
    code: str
    category: str


def is_timeout_error(exc: mysql.connector.Error) -> bool:
    return exc.errno in TIMEOUT_ERRNOS


def engine_error_from(exc: mysql.connector.Error) -> EngineError:
    """Build the internal error record for a failed execution."""
    engine_message = exc.msg or str(exc)
    category, user_message = ERROR_CATEGORIES.get(
        exc.errno, (UNMAPPED_CATEGORY, engine_message)
    )

    if category == "permission_denied":
        # The read-only grants should make this unreachable from a SELECT.
        logger.error(
            "Privilege-separation alarm: sandbox identity hit a permission error (%s)",
            exc,
        )

    return EngineError(
        code=str(exc.errno) if exc.errno is not None else "unknown",
        sqlstate=exc.sqlstate,
        raw_message=str(exc),
        engine_message=engine_message,
        user_message=user_message,
        category=category,
    )


def translate(error: EngineError) -> PublicError:
    return PublicError(
        http_status=400,
        user_message=error.user_message,
        code=error.code,
        category=error.category,
    )
