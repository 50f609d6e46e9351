# python -m pytest app/tests/routers/test_optimizer_router.py -v

"""HTTP tests for /api routes with the pipeline dependency overridden."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.config import Settings
from app.core.errors import ExecutionError
from app.deps import build_pipeline, get_pipeline
from app.main import app
from app.tests.fakes import ScriptedLanguageModel, optimization_json, routed_responder, unsafe_verdict_json


RECOMMENDATION = {
    "tableName": "users",
    "indexDefinition": "CREATE INDEX idx_users_email ON users(email)",
    "reasoning": "Equality filter on email",
}


def _safety(prompt):
    if "Query: DROP" in prompt:
        return unsafe_verdict_json()
    return '{"isSafe": true, "queryType": "SELECT", "reason": "Read-only"}'


@pytest.fixture
def llm():
    return ScriptedLanguageModel(
        routed_responder(
            safety=_safety,
            optimization=optimization_json(indexRecommendations=[RECOMMENDATION]),
        )
    )


@pytest.fixture
def pipeline(users_store, cache, llm):
    settings = Settings(mysql_database="testdb", cache_backend="memory")
    return build_pipeline(settings=settings, store=users_store, cache=cache, llm=llm)


@pytest_asyncio.fixture
async def client(pipeline):
    app.dependency_overrides[get_pipeline] = lambda: pipeline

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_optimize_returns_result_envelope(client):
    response = await client.post("/api/optimize", json={"query": "SELECT * FROM users"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["originalQuery"] == "SELECT * FROM users"
    assert body["data"]["tables"][0]["tableName"] == "users"
    assert body["data"]["cacheHit"] is False
    assert "indexRecommendations" not in body["data"]


@pytest.mark.asyncio
async def test_optimize_includes_recommendations_when_asked(client):
    response = await client.post(
        "/api/optimize",
        json={"query": "SELECT * FROM users", "includeIndexRecommendations": True},
    )

    assert response.status_code == 200
    assert response.json()["data"]["indexRecommendations"] == [RECOMMENDATION]


@pytest.mark.asyncio
async def test_unsafe_query_is_forbidden(client, users_store):
    response = await client.post("/api/optimize", json={"query": "DROP TABLE users"})

    assert response.status_code == 403
    detail = response.json()["detail"]
    assert detail["success"] is False
    assert detail["type"] == "SECURITY_ERROR"
    assert users_store.calls == []


@pytest.mark.asyncio
async def test_unknown_table_is_not_found(client, llm):
    llm.responder = routed_responder(safety=_safety, tables='["ghosts"]')

    response = await client.post("/api/optimize", json={"query": "SELECT * FROM ghosts"})

    assert response.status_code == 404
    assert response.json()["detail"]["type"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_query_without_tables_is_a_bad_request(client, llm):
    llm.responder = routed_responder(safety=_safety, tables="[]")

    response = await client.post("/api/optimize", json={"query": "SELECT 1"})

    assert response.status_code == 400
    assert response.json()["detail"] == {
        "success": False,
        "error": "No tables found in query",
        "type": "PARSE_ERROR",
    }


@pytest.mark.asyncio
async def test_explain_failure_is_unprocessable(client, users_store):
    async def failing_explain(statement):
        raise ExecutionError("You have an error in your SQL syntax")

    users_store.explain = failing_explain

    response = await client.post("/api/optimize", json={"query": "SELECT * FROM users"})

    assert response.status_code == 422
    assert response.json()["detail"]["type"] == "DATABASE_ERROR"


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{"query": ""}, {"query": "x" * 10001}, {}])
async def test_invalid_body_is_rejected(client, payload):
    response = await client.post("/api/optimize", json=payload)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_health_reports_services(client, llm):
    llm.responder = lambda prompt: "OK"

    response = await client.get("/api/health")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "healthy"
    assert data["services"] == {"mysql": "up", "redis": "up", "llm": "up"}
    assert data["timestamp"]


@pytest.mark.asyncio
async def test_health_is_unavailable_when_a_dependency_is_down(client, users_store, llm):
    llm.responder = lambda prompt: "OK"
    users_store.reachable = False

    response = await client.get("/api/health")

    assert response.status_code == 503
    assert response.json()["success"] is False
    assert response.json()["data"]["services"]["mysql"] == "down"


@pytest.mark.asyncio
async def test_invalidate_table_cache(client, users_store):
    await client.post("/api/optimize", json={"query": "SELECT * FROM users"})

    response = await client.delete("/api/cache/tables/users")
    await client.post("/api/optimize", json={"query": "SELECT * FROM users"})

    assert response.status_code == 200
    assert response.json() == {"success": True, "data": {"table": "users", "invalidated": True}}
    assert users_store.count("describe_table") == 2


@pytest.mark.asyncio
async def test_root_lists_endpoints(client):
    response = await client.get("/")

    assert response.status_code == 200
    assert "POST /api/optimize" in response.json()["endpoints"].values()
