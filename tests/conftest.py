"""Shared fixtures: an in-process stand-in for mysql-connector pools."""

import re

import pytest
from mysql.connector import FieldType

from config import Settings
from db import ReadOnlyPool, WritePool, create_pools

_BOUNDED = re.compile(r"FROM \((?P<inner>.*)\) AS bounded LIMIT (?P<limit>\d+)$", re.DOTALL)
_EXPLICIT_LIMIT = re.compile(r"\blimit\b", re.IGNORECASE)


def col(name, type_code=FieldType.LONGLONG):
    """A cursor.description entry the way mysql-connector shapes it."""
    return (name, type_code, None, None, None, None, 1, 0, 63)


class FakeCursor:
    def __init__(self, db, dictionary=False):
        self.db = db
        self.dictionary = dictionary
        self.description = None
        self._rows = []
        self.lastrowid = 0
        self.closed = False

    def execute(self, sql, params=None):
        self.db.executed.append((sql, params))
        self.description = None
        self._rows = []

        if sql.startswith("SELECT @@session.transaction_read_only"):
            self._rows = [(self.db.read_only_flag,)]
            return

        if sql.startswith("SET SESSION sql_select_limit"):
            self.db.select_limit = params[0] if params else None
            return

        if sql in self.db.unwrapped_results:
            result = self.db.unwrapped_results[sql]
            if isinstance(result, Exception):
                raise result
            description, rows = result
            rows = list(rows)
            # like MySQL, an explicit LIMIT outranks sql_select_limit
            if self.db.select_limit is not None and not _EXPLICIT_LIMIT.search(sql):
                rows = rows[: self.db.select_limit]
            self.description = description
            self._rows = rows
            return

        match = _BOUNDED.search(sql)
        if match:
            inner, limit = match.group("inner"), int(match.group("limit"))
            self.db.bounded_queries.append(inner)
            result = self.db.results.get(inner, self.db.default_result)
            if isinstance(result, Exception):
                raise result
            description, rows = result
            self.description = description
            self._rows = list(rows)[:limit]
            return

        for prefix, result in self.db.lookups.items():
            if sql.lstrip().startswith(prefix):
                if isinstance(result, Exception):
                    raise result
                description, rows = result
                self.description = description
                self._rows = list(rows)
                return

        if sql.lstrip().upper().startswith("INSERT"):
            self.db.next_id += 1
            self.lastrowid = self.db.next_id

    def fetchall(self):
        rows, self._rows = self._rows, []
        if self.dictionary and self.description:
            names = [d[0] for d in self.description]
            return [dict(zip(names, r)) for r in rows]
        return rows

    def fetchmany(self, size=1):
        rows, self._rows = self._rows[:size], self._rows[size:]
        return rows

    def fetchone(self):
        rows = self.fetchall()
        return rows[0] if rows else None

    def close(self):
        self.closed = True


class FakeConnection:
    def __init__(self, db):
        self.db = db
        self.in_transaction = False
        self.committed = False

    def cursor(self, dictionary=False):
        return FakeCursor(self.db, dictionary=dictionary)

    def start_transaction(self, readonly=None):
        self.db.transactions.append({"readonly": readonly})
        self.in_transaction = True

    def rollback(self):
        self.db.rollbacks += 1
        self.in_transaction = False

    def commit(self):
        self.committed = True
        self.in_transaction = False

    def close(self):
        self.db.returned += 1


class FakeMySQLPool:
    def __init__(self, db, **kwargs):
        self.db = db
        self.kwargs = kwargs
        self.removed = False

    def get_connection(self):
        if self.db.checkout_error is not None:
            raise self.db.checkout_error
        self.db.checkouts += 1
        return FakeConnection(self.db)

    def _remove_connections(self):
        self.removed = True


class FakeDatabase:
    """Records everything sent to it; results are keyed by the inner SELECT text.

    `unwrapped_results` holds statements run as written, keyed by their text.
    """

    def __init__(self):
        self.executed = []
        self.bounded_queries = []
        self.results = {}
        self.lookups = {}
        self.unwrapped_results = {}
        self.select_limit = None
        self.default_result = ([col("a")], [(1,)])
        self.read_only_flag = 1
        self.checkout_error = None
        self.create_error = None
        self.transactions = []
        self.rollbacks = 0
        self.checkouts = 0
        self.returned = 0
        self.next_id = 0
        self.pools = []

    def factory(self, **kwargs):
        if self.create_error is not None:
            raise self.create_error
        pool = FakeMySQLPool(self, **kwargs)
        self.pools.append(pool)
        return pool

    def statements(self):
        return [sql for sql, _ in self.executed]


@pytest.fixture()
def settings():
    return Settings(
        db_user="sqlstudio_admin",
        db_password="admin-secret",
        readonly_user="sqlstudio_sandbox",
        readonly_password="sandbox-secret",
        max_rows=1000,
        query_timeout_ms=5000,
        readonly_pool_size=2,
        pool_acquire_timeout_ms=200,
    )


@pytest.fixture()
def fake_db():
    return FakeDatabase()


@pytest.fixture()
def read_only_pool(settings, fake_db):
    return ReadOnlyPool(settings, pool_factory=fake_db.factory)


@pytest.fixture()
def write_pool(settings, fake_db):
    return WritePool(settings, pool_factory=fake_db.factory)


@pytest.fixture()
def pools(settings, fake_db):
    return create_pools(settings, pool_factory=fake_db.factory)
