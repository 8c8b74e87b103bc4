# Converts raw cursor output into a transport-safe, typed RowSet
# Pure shape transform: no I/O, no business validation

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any

from mysql.connector import FieldType


class ScalarKind(str, Enum):
    NULL = "null"
    INTEGER = "integer"
    FLOAT = "float"
    TEXT = "text"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"


_INTEGER_TYPES = {
    FieldType.TINY, FieldType.SHORT, FieldType.LONG,
    FieldType.LONGLONG, FieldType.INT24, FieldType.YEAR,
}
_FLOAT_TYPES = {FieldType.FLOAT, FieldType.DOUBLE, FieldType.DECIMAL, FieldType.NEWDECIMAL}
_TIMESTAMP_TYPES = {FieldType.DATE, FieldType.NEWDATE, FieldType.DATETIME, FieldType.TIMESTAMP}


@dataclass(frozen=True)
class ColumnDescriptor:
    name: str
    engine_type_id: int
    kind: ScalarKind


@dataclass
class RawResult:
    """What the executor hands over: cursor.description plus fetched rows."""

    description: list
    rows: list


@dataclass
class RowSet:
    columns: list[ColumnDescriptor]
    rows: list[tuple]
    row_count: int
    truncated: bool
    execution_time_ms: int
    # Column names may repeat; rows are positional and authoritative.
    column_names: list[str] = field(init=False)

    def __post_init__(self):
        self.column_names = [c.name for c in self.columns]

    def records(self) -> list[dict]:
        """Name-keyed view of the rows. A repeated column name keeps its last value."""
        return [dict(zip(self.column_names, row)) for row in self.rows]


def kind_for(type_code: int) -> ScalarKind:
    if type_code == FieldType.NULL:
        return ScalarKind.NULL
    if type_code in _INTEGER_TYPES:
        return ScalarKind.INTEGER
    if type_code in _FLOAT_TYPES:
        return ScalarKind.FLOAT
    if type_code in _TIMESTAMP_TYPES:
        return ScalarKind.TIMESTAMP
    # BIT columns are used as flags in practice
    if type_code == FieldType.BIT:
        return ScalarKind.BOOLEAN
    return ScalarKind.TEXT


def coerce_value(value: Any, kind: ScalarKind) -> Any:
    """Turn a driver value into a JSON-safe scalar of the column's kind."""
    if value is None:
        return None

    if kind is ScalarKind.INTEGER:
        return int(value)

    if kind is ScalarKind.FLOAT:
        return float(value)

    if kind is ScalarKind.BOOLEAN:
        if isinstance(value, (bytes, bytearray)):
            return any(value)
        return bool(value)

    if kind is ScalarKind.TIMESTAMP:
        if isinstance(value, (date, datetime)):
            return value.isoformat()
        return str(value)

    # TEXT and anything the driver could not type
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, (set, frozenset)):
        return ",".join(sorted(value))
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime, time)):
        return value.isoformat()
    if isinstance(value, timedelta):
        return str(value)
    if isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


def normalize(raw: RawResult, elapsed_ms: int, max_rows: int) -> RowSet:
    columns = []
    for desc in raw.description or []:
        name, type_code = desc[0], desc[1]
        columns.append(ColumnDescriptor(
            name=name if isinstance(name, str) else bytes(name).decode("utf-8", errors="replace"),
            engine_type_id=int(type_code),
            kind=kind_for(type_code),
        ))

    kinds = [c.kind for c in columns]
    rows = [
        tuple(coerce_value(value, kind) for value, kind in zip(row, kinds))
        for row in raw.rows
    ]

    return RowSet(
        columns=columns,
        rows=rows,
        row_count=len(rows),
        truncated=len(rows) >= max_rows,
        execution_time_ms=int(elapsed_ms),
    )
