"""HTTP-level tests for the sandbox API."""

import pytest
from fastapi.testclient import TestClient
from mysql.connector import FieldType, errors

from api import create_app
from conftest import col


@pytest.fixture()
def client(settings, pools):
    app = create_app(settings, pools=pools)
    with TestClient(app) as c:
        yield c


def execute(client, query, **extra):
    return client.post("/api/query/execute", json={"query": query, **extra})


class TestExecute:
    def test_success_shape(self, client):
        resp = execute(client, "SELECT 1 AS a", contextId="select-basics")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["data"] == [{"a": 1}]
        assert body["rows"] == [[1]]
        assert body["columns"] == [{"name": "a", "dataType": FieldType.LONGLONG, "kind": "integer"}]
        assert body["rowCount"] == 1
        assert body["truncated"] is False
        assert isinstance(body["executionTime"], int)

    def test_rejected_is_403(self, client, fake_db):
        resp = execute(client, "SELECT 1; DROP TABLE employees")
        assert resp.status_code == 403
        body = resp.json()
        assert body["success"] is False
        assert body["error"].startswith("Query contains forbidden operations")
        assert fake_db.bounded_queries == []

    def test_engine_error_is_400(self, client, fake_db):
        fake_db.results["SELECT * FROM ghosts"] = errors.ProgrammingError(
            msg="Table 'sqlstudio_sandbox.ghosts' doesn't exist", errno=1146, sqlstate="42S02"
        )
        resp = execute(client, "SELECT * FROM ghosts")
        assert resp.status_code == 400
        body = resp.json()
        assert body["error"] == "Table 'sqlstudio_sandbox.ghosts' doesn't exist"
        assert body["userMessage"] == "Table does not exist. Check the table name."
        assert body["category"] == "undefined_table"

    def test_timeout_is_400(self, client, fake_db):
        fake_db.results["SELECT slow"] = errors.DatabaseError(msg="max time exceeded", errno=3024)
        resp = execute(client, "SELECT slow")
        assert resp.status_code == 400
        assert resp.json()["category"] == "timeout"

    def test_infrastructure_failure_is_503(self, client, fake_db):
        fake_db.checkout_error = errors.InterfaceError(msg="Can't connect", errno=2003)
        resp = execute(client, "SELECT 1")
        assert resp.status_code == 503
        assert "unavailable" in resp.json()["error"]

    @pytest.mark.parametrize("body", [{"query": "   "}, {}, {"query": "x" * 20001}])
    def test_bad_requests_are_400(self, client, body):
        resp = client.post("/api/query/execute", json=body)
        assert resp.status_code == 400
        assert resp.json()["success"] is False

    def test_join_with_repeated_column_names(self, client, fake_db):
        sql = "SELECT * FROM employees e JOIN departments d ON e.department_id = d.id"
        fake_db.results[sql] = errors.ProgrammingError(msg="Duplicate column name 'id'", errno=1060)
        fake_db.unwrapped_results[sql] = ([col("id"), col("id")], [(7, 1)])
        resp = execute(client, sql)
        assert resp.status_code == 200
        body = resp.json()
        assert body["rows"] == [[7, 1]]
        assert [c["name"] for c in body["columns"]] == ["id", "id"]

    def test_many_token_query_is_not_a_server_error(self, client):
        resp = execute(client, "SELECT " + ",".join(["1"] * 6000))
        assert resp.status_code == 200
        assert resp.json()["success"] is True

    def test_payload_cannot_raise_limits(self, client, fake_db):
        execute(client, "SELECT 1 AS a", maxRows=999999, timeoutMs=999999)
        bounded = [s for s in fake_db.statements() if "AS bounded" in s][0]
        assert bounded.endswith("LIMIT 1000")


class TestCheck:
    def test_correct_answer(self, client, fake_db):
        fake_db.lookups["SELECT solution_sql"] = ([col("solution_sql", FieldType.BLOB)], [("SELECT 1 AS a",)])
        resp = client.post("/api/query/check", json={"query": "SELECT 1 AS a", "contextId": "a1"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["correct"] is True
        assert body["result"]["rows"] == [[1]]

    def test_unknown_assignment_is_404(self, client, fake_db):
        fake_db.lookups["SELECT solution_sql"] = ([col("solution_sql", FieldType.BLOB)], [])
        resp = client.post("/api/query/check", json={"query": "SELECT 1", "contextId": "nope"})
        assert resp.status_code == 404

    def test_rejected_answer_is_403(self, client, fake_db):
        fake_db.lookups["SELECT solution_sql"] = ([col("solution_sql", FieldType.BLOB)], [("SELECT 1 AS a",)])
        resp = client.post("/api/query/check", json={"query": "DELETE FROM t", "contextId": "a1"})
        assert resp.status_code == 403


class TestSchemaAndHealth:
    def test_schema(self, client, fake_db):
        fake_db.lookups["SELECT table_name"] = (
            [col("TABLE_NAME", FieldType.VAR_STRING), col("COLUMN_NAME", FieldType.VAR_STRING), col("DATA_TYPE", FieldType.VAR_STRING)],
            [("employees", "id", "int"), ("employees", "name", "varchar")],
        )
        resp = client.get("/api/schema")
        assert resp.status_code == 200
        assert resp.json()["tables"] == {"employees": {"columns": {"id": "INT", "name": "VARCHAR"}}}

    def test_health_ok(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["databases"] == {"write": "connected", "readOnly": "connected"}

    def test_health_degraded(self, client, fake_db):
        fake_db.checkout_error = errors.InterfaceError(msg="gone", errno=2006)
        resp = client.get("/health")
        assert resp.status_code == 503
        assert resp.json()["status"] == "degraded"


class TestUnhandledErrors:
    def _boom_app(self, settings, pools):
        app = create_app(settings, pools=pools)

        @app.get("/boom")
        def boom():
            raise ValueError("kaboom")

        return app

    def test_no_stack_trace_in_production(self, settings, pools):
        with TestClient(self._boom_app(settings, pools), raise_server_exceptions=False) as c:
            resp = c.get("/boom")
        assert resp.status_code == 500
        assert "stack" not in resp.json()

    def test_stack_trace_in_development(self, settings, pools):
        dev = settings.model_copy(update={"app_env": "development"})
        with TestClient(self._boom_app(dev, pools), raise_server_exceptions=False) as c:
            resp = c.get("/boom")
        assert resp.status_code == 500
        assert "kaboom" in resp.json()["stack"]
