"""Tests for fixture seeding."""

from faker import Faker

from conftest import FakeDatabase
from seed import SAMPLE_ASSIGNMENTS, run_seed, seed_assignments, seed_sandbox
from sql_guardrails import check_statement


def test_seed_sandbox_counts():
    db = FakeDatabase()
    cursor = db.factory().get_connection().cursor()
    counts = seed_sandbox(cursor, "sqlstudio_sandbox", Faker(), employees=5, customers=3, orders=7)
    assert counts == {"departments": 5, "employees": 5, "customers": 3, "orders": 7}
    inserts = [s for s in db.statements() if "INSERT INTO" in s]
    assert len(inserts) == 5 + 5 + 3 + 7
    assert all("`sqlstudio_sandbox`." in s for s in inserts)


def test_seed_assignments_upserts():
    db = FakeDatabase()
    cursor = db.factory().get_connection().cursor()
    assert seed_assignments(cursor) == len(SAMPLE_ASSIGNMENTS)
    assert sum("ON DUPLICATE KEY UPDATE" in s for s in db.statements()) == len(SAMPLE_ASSIGNMENTS)


def test_sample_solutions_pass_the_guard():
    for assignment in SAMPLE_ASSIGNMENTS:
        assert check_statement(assignment["solution_sql"]).allowed, assignment["id"]


def test_run_seed_commits(write_pool, settings, fake_db):
    counts = run_seed(write_pool, settings, seed=7)
    assert counts["assignments"] == len(SAMPLE_ASSIGNMENTS)
    assert counts["orders"] == 500
