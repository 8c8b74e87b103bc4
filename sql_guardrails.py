# SQL safety layer for the query sandbox
# Fast-fail pattern checks in front of the read-only database identity.
# The database grants are the real boundary; this only rejects early.
#
# Known limitation: comment markers are rejected anywhere in the text, so a
# string literal such as '--' or '#' is rejected as well.

import re
from dataclasses import dataclass
from enum import Enum

import sqlparse
from sqlparse.exceptions import SQLParseError


class ForbiddenReason(str, Enum):
    NOT_A_SELECT = "not_a_select"
    CONTAINS_MUTATING_KEYWORD = "contains_mutating_keyword"
    CONTAINS_MULTI_STATEMENT_MARKER = "contains_multi_statement_marker"
    CONTAINS_COMMENT_INJECTION = "contains_comment_injection"
    CONTAINS_PRIVILEGE_KEYWORD = "contains_privilege_keyword"

    @property
    def message(self) -> str:
        if self is ForbiddenReason.NOT_A_SELECT:
            return "Only SELECT queries are allowed for security reasons."
        return "Query contains forbidden operations. Only SELECT queries are allowed."


@dataclass(frozen=True)
class GuardVerdict:
    reason: ForbiddenReason | None = None

    @property
    def allowed(self) -> bool:
        return self.reason is None

    @classmethod
    def allow(cls) -> "GuardVerdict":
        return cls()

    @classmethod
    def reject(cls, reason: ForbiddenReason) -> "GuardVerdict":
        return cls(reason=reason)


_FLAGS = re.IGNORECASE | re.DOTALL

MUTATING_PATTERNS = [
    re.compile(p, _FLAGS)
    for p in (
        r"\bdrop\s+table\b",
        r"\btruncate\s+table\b",
        r"\bdelete\s+from\b",
        r"\bupdate\s+\S+\s+set\b",
        r"\binsert\s+into\b",
        r"\breplace\s+into\b",
        r"\bcreate\s+table\b",
        r"\balter\s+table\b",
        r"\brename\s+table\b",
        r"\b(create|drop)\s+(database|schema)\b",
        r"\binto\s+(outfile|dumpfile)\b",
        r"\bload\s+data\b",
        r"\bfor\s+update\b",
        r"\block\s+in\s+share\s+mode\b",
    )
]

PRIVILEGE_PATTERNS = [
    re.compile(p, _FLAGS)
    for p in (
        r"\bgrant\s+",
        r"\brevoke\s+",
        r"\b(create|drop|alter)\s+user\b",
        r"\bset\s+password\b",
        r"\bload_file\s*\(",
    )
]

STATEMENT_KEYWORDS = (
    "select", "insert", "update", "delete", "replace", "drop", "create",
    "alter", "truncate", "rename", "grant", "revoke", "set", "call", "do",
    "handler", "load", "lock", "unlock", "use", "show", "describe", "explain",
    "with", "prepare", "execute", "deallocate", "kill", "flush", "install",
    "table", "values",
)

MULTI_STATEMENT_PATTERN = re.compile(
    r";[\s(]*(" + "|".join(STATEMENT_KEYWORDS) + r")\b", _FLAGS
)

COMMENT_PATTERN = re.compile(r"--|/\*|\*/|#")

_SELECT_PREFIX = re.compile(r"select\b", re.IGNORECASE)

# Only the statement head decides the SELECT check; sqlparse refuses
# inputs past its token limit.
_HEAD_CHARS = 1000


def _strip_leading(sql: str) -> str:
    """Drop comments and surrounding whitespace so only the statement head is inspected."""
    return sqlparse.format(sql[:_HEAD_CHARS], strip_comments=True).strip()


def check_statement(sql: str) -> GuardVerdict:
    """Classify raw query text as allowed or rejected.

    Pure and deterministic; never cached, the text is attacker-controlled.
    """
    if not sql or not sql.strip():
        return GuardVerdict.reject(ForbiddenReason.NOT_A_SELECT)

    # 1. Must be a SELECT
    try:
        head = _strip_leading(sql)
    except SQLParseError:
        return GuardVerdict.reject(ForbiddenReason.NOT_A_SELECT)
    if not _SELECT_PREFIX.match(head):
        return GuardVerdict.reject(ForbiddenReason.NOT_A_SELECT)

    # 2. Mutating and privilege operations anywhere in the text
    for pattern in MUTATING_PATTERNS:
        if pattern.search(sql):
            return GuardVerdict.reject(ForbiddenReason.CONTAINS_MUTATING_KEYWORD)

    for pattern in PRIVILEGE_PATTERNS:
        if pattern.search(sql):
            return GuardVerdict.reject(ForbiddenReason.CONTAINS_PRIVILEGE_KEYWORD)

    # 3. A second statement smuggled after a separator
    if MULTI_STATEMENT_PATTERN.search(sql):
        return GuardVerdict.reject(ForbiddenReason.CONTAINS_MULTI_STATEMENT_MARKER)

    # 4. Comments of any kind
    if COMMENT_PATTERN.search(sql):
        return GuardVerdict.reject(ForbiddenReason.CONTAINS_COMMENT_INJECTION)

    return GuardVerdict.allow()
