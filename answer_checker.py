# Checks a student's query against the stored solution
# Both statements go through the same sandbox gateway and are compared as result sets

import logging
import re
from collections import Counter
from dataclasses import dataclass

from sandbox_gateway import QueryOutcome, QuerySucceeded, RawQueryRequest, SandboxGateway

logger = logging.getLogger(__name__)

_ORDER_BY = re.compile(r"\border\s+by\b", re.IGNORECASE)


class SolutionNotFoundError(LookupError):
    pass


class SolutionExecutionError(RuntimeError):
    """The stored solution itself does not run; a content defect, not a user error."""


@dataclass
class AnswerVerdict:
    correct: bool
    outcome: QueryOutcome
    message: str


def rows_match(expected, actual, ordered: bool) -> bool:
    """Compare two RowSets positionally; column names are ignored since aliases may differ."""
    if len(expected.columns) != len(actual.columns):
        return False
    if ordered:
        return list(expected.rows) == list(actual.rows)
    return Counter(expected.rows) == Counter(actual.rows)


class AnswerChecker:
    def __init__(self, gateway: SandboxGateway, solutions):
        self.gateway = gateway
        self.solutions = solutions

    def check(self, sql: str, context_id: str, user_id: str | None = None) -> AnswerVerdict:
        solution_sql = self.solutions.get_solution(context_id)
        if solution_sql is None:
            raise SolutionNotFoundError(f"No assignment with id {context_id!r}")

        submitted = self.gateway.run(RawQueryRequest(text=sql, context_id=context_id, user_id=user_id))
        if not isinstance(submitted, QuerySucceeded):
            return AnswerVerdict(correct=False, outcome=submitted, message="Your query did not run successfully.")

        expected = self.gateway.run(RawQueryRequest(text=solution_sql, context_id=context_id))
        if not isinstance(expected, QuerySucceeded):
            logger.error("Stored solution for assignment %s failed to run: %r", context_id, expected)
            raise SolutionExecutionError(f"Solution for assignment {context_id!r} could not be executed")

        ordered = bool(_ORDER_BY.search(solution_sql))
        if rows_match(expected.row_set, submitted.row_set, ordered=ordered):
            return AnswerVerdict(correct=True, outcome=submitted, message="Correct! Your result matches the expected output.")

        if len(expected.row_set.columns) != len(submitted.row_set.columns):
            message = (
                f"Expected {len(expected.row_set.columns)} columns "
                f"but your query returned {len(submitted.row_set.columns)}."
            )
        elif expected.row_set.row_count != submitted.row_set.row_count:
            message = (
                f"Expected {expected.row_set.row_count} rows "
                f"but your query returned {submitted.row_set.row_count}."
            )
        elif ordered and rows_match(expected.row_set, submitted.row_set, ordered=False):
            message = "The rows match but not in the expected order."
        else:
            message = "Your result does not match the expected output."
        return AnswerVerdict(correct=False, outcome=submitted, message=message)
