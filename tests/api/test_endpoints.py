"""
API endpoint tests
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from api.dependencies import get_db, get_scheduler
from api.main import app
from ingestion.runner import IngestionRunner
from ingestion.scheduler import SyncScheduler
from ingestion.sources import florida, michigan


@pytest.fixture
def scheduler(session_factory, alert_sink, write_apl_file, michigan_rows, tmp_path):
    return SyncScheduler(
        sources=[
            michigan.build_source(local_path=write_apl_file(michigan_rows, name="mi.csv")),
            florida.build_source(local_path=str(tmp_path / "missing_fl.xlsx")),
        ],
        session_maker=session_factory,
        alert_sink=alert_sink,
        max_retries=1,
        retry_delay=0,
        timezone="UTC",
    )


@pytest_asyncio.fixture
async def client(session_factory, scheduler):
    """Test client with database and scheduler overrides"""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_scheduler] = lambda: scheduler

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


async def load_michigan(session_factory, scheduler, alert_sink):
    async with session_factory() as session:
        await IngestionRunner(session, alert_sink=alert_sink).run(scheduler.sources["MI"])


@pytest.mark.asyncio
async def test_root(client):
    response = await client.get("/")

    assert response.status_code == 200
    assert response.json()["health"] == "/health"


@pytest.mark.asyncio
async def test_request_id_header(client):
    response = await client.get("/", headers={"X-Request-ID": "abc-123"})

    assert response.headers["X-Request-ID"] == "abc-123"
    assert "X-API-Latency-ms" in response.headers


@pytest.mark.asyncio
async def test_health_before_any_sync(client):
    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database_connected"] is True
    assert data["total_sources"] == 0


@pytest.mark.asyncio
async def test_health_after_sync(client, session_factory, scheduler, alert_sink):
    await load_michigan(session_factory, scheduler, alert_sink)

    data = (await client.get("/health")).json()

    assert data["total_sources"] == 1
    assert data["successful_sources"] == 1
    assert data["sources"][0]["state"] == "MI"
    assert data["sources"][0]["data_source"] == "fis"
    assert data["sources"][0]["sync_status"] == "success"
    assert data["sources"][0]["entries_count"] == 3


@pytest.mark.asyncio
async def test_lookup_any_upc_spelling(client, session_factory, scheduler, alert_sink):
    await load_michigan(session_factory, scheduler, alert_sink)

    for spelling in ("041220576081", "41220576081", "0041220576081"):
        response = await client.get(f"/apl/mi/{spelling}")

        assert response.status_code == 200
        data = response.json()
        assert data["eligible"] is True
        assert data["upc"] == "041220576081"
        assert data["upc_display"] == "0-41220-57608-1"
        assert len(data["entries"]) == 1
        assert data["entries"][0]["benefit_category"] == "Cereal - Hot Cereal"
        assert data["entries"][0]["size_restriction"]["max_size"] == 36.0


@pytest.mark.asyncio
async def test_lookup_as_of(client, session_factory, scheduler, alert_sink):
    await load_michigan(session_factory, scheduler, alert_sink)

    response = await client.get("/apl/MI/070038000563", params={"as_of": "2027-01-01"})

    assert response.json()["eligible"] is False
    assert response.json()["entries"] == []


@pytest.mark.asyncio
async def test_lookup_unknown_upc(client):
    response = await client.get("/apl/MI/999999999993")

    assert response.status_code == 200
    assert response.json()["eligible"] is False


@pytest.mark.asyncio
async def test_lookup_invalid_upc(client):
    response = await client.get("/apl/MI/123")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_trigger_sync(client):
    response = await client.post("/sync/mi")

    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "MI"
    assert data["status"] == "success"
    assert data["stats"]["additions"] == 3
    assert data["stats"]["skipped_rows"] == 1


@pytest.mark.asyncio
async def test_trigger_unknown_state(client):
    response = await client.post("/sync/TX")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_trigger_permanent_failure(client, alert_sink):
    response = await client.post("/sync/FL")

    assert response.status_code == 422
    assert response.json()["detail"]["error_type"] == "ResourceNotFoundError"


@pytest.mark.asyncio
async def test_sync_runs(client):
    await client.post("/sync/MI")
    await client.post("/sync/FL")

    runs = (await client.get("/sync/runs")).json()
    assert len(runs) == 2
    assert {r["status"] for r in runs} == {"success", "failure"}
    assert all(r["triggered_by"] == "manual" for r in runs)

    only_mi = (await client.get("/sync/runs", params={"state": "mi"})).json()
    assert len(only_mi) == 1
    assert only_mi[0]["additions"] == 3


@pytest.mark.asyncio
async def test_trigger_sync_records_request(client):
    response = await client.post(
        "/sync/MI",
        json={"reason": "formula_shortage", "requested_by": "ops", "notes": "recall notice"},
    )
    assert response.status_code == 200

    run = (await client.get("/sync/runs", params={"state": "MI"})).json()[0]
    assert run["reason"] == "formula_shortage"
    assert run["requested_by"] == "ops"
    assert run["notes"] == "recall notice"


@pytest.mark.asyncio
async def test_trigger_sync_rejects_oversized_reason(client):
    response = await client.post("/sync/MI", json={"reason": "x" * 201})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_sync_status(client):
    await client.post("/sync/MI")

    response = await client.get("/sync/status")

    assert response.status_code == 200
    by_state = {s["state"]: s for s in response.json()}
    assert set(by_state) == {"MI", "FL"}
    assert by_state["MI"]["sync_status"] == "success"
    assert by_state["MI"]["entries_count"] == 3
    assert by_state["FL"]["sync_status"] == "pending"
    assert by_state["MI"]["running"] is False
