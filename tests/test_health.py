import pytest


def stub_checks(monkeypatch, database: bool, redis: bool) -> None:
    async def db_check() -> bool:
        return database

    async def redis_check() -> bool:
        return redis

    monkeypatch.setattr(
        "practice_scheduler.api.v1.endpoints.health.check_database_connection", db_check
    )
    monkeypatch.setattr(
        "practice_scheduler.api.v1.endpoints.health.check_redis_connection", redis_check
    )


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_ready(client, monkeypatch):
    stub_checks(monkeypatch, database=True, redis=True)
    response = await client.get("/api/v1/health/ready")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_ready_without_redis_is_degraded(client, monkeypatch):
    stub_checks(monkeypatch, database=True, redis=False)
    response = await client.get("/api/v1/health/ready")
    assert response.status_code == 200
    assert response.json()["status"] == "degraded"
    assert response.json()["redis"] == "unhealthy"


@pytest.mark.asyncio
async def test_not_ready_without_database(client, monkeypatch):
    stub_checks(monkeypatch, database=False, redis=True)
    response = await client.get("/api/v1/health/ready")
    assert response.status_code == 503
    assert response.json()["database"] == "unhealthy"


@pytest.mark.asyncio
async def test_responses_carry_process_time(client):
    response = await client.get("/api/v1/health")
    assert float(response.headers["X-Process-Time"]) >= 0
