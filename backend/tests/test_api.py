import pytest
from httpx import ASGITransport, AsyncClient

from gridtwin.config import Settings
from gridtwin.main import app
from gridtwin.services.ercot_client import ErcotClient
from gridtwin.services.live_store import LiveDataStore
from gridtwin.services.session import TwinSession


@pytest.fixture
async def client():
    app.state.session = TwinSession()
    app.state.live_store = LiveDataStore(
        ErcotClient(Settings(_env_file=None, ercot_subscription_key="", ercot_username="", ercot_password=""))
    )
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_districts_list(client):
    resp = await client.get("/api/v1/city/districts/")
    assert resp.status_code == 200
    data = resp.json()
    assert len(data["districts"]) == 8
    ids = {d["district_id"] for d in data["districts"]}
    assert {"downtown", "medical", "waterfront"} <= ids
    critical = {d["district_id"] for d in data["districts"] if d["critical_infrastructure"]}
    assert critical == {"downtown", "medical"}
    assert ["downtown", "medical"] in data["edges"]


@pytest.mark.asyncio
async def test_scenarios_list(client):
    resp = await client.get("/api/v1/city/scenarios/")
    assert resp.status_code == 200
    keys = [s["key"] for s in resp.json()]
    assert keys == ["baseline", "heatwaveEvSurge", "stormStress", "greenUpgrade"]


@pytest.mark.asyncio
async def test_simulation_run(client):
    resp = await client.post("/api/v1/simulation/run", json={"params": {"storm_enabled": True}})
    assert resp.status_code == 200
    data = resp.json()
    assert data["hours"][-1] == 72
    assert len(data["city"]["load_mw"]) == 73
    assert set(data["per_district"]) == {
        "downtown", "industrial", "university", "medical", "eastside", "north", "south", "waterfront",
    }
    assert 0 <= data["resilience_score"] <= 100


@pytest.mark.asyncio
async def test_simulation_rejects_invalid_override(client):
    resp = await client.post("/api/v1/simulation/run", json={
        "params": {},
        "overrides": {"districts": {"medical": {"storage_mwh": 9}}},
    })
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_budget_endpoint(client):
    resp = await client.post("/api/v1/simulation/budget", json={
        "params": {"microgrid_enabled": True, "demand_response_enabled": True, "budget_m": 4},
        "overrides": {"districts": {"south": {"storage_mwh": 1.0}}},
    })
    assert resp.status_code == 200
    data = resp.json()
    assert data["budget_used_m"] == pytest.approx(2.3)
    assert data["budget_m"] == 4
    assert data["interventions_count"] == 1


@pytest.mark.asyncio
async def test_recommendations(client):
    resp = await client.post("/api/v1/recommendations/", json={
        "params_b": {"heatwave_enabled": True, "event_enabled": True, "ev_adoption_delta": 0.25},
        "selected_hour": 18,
    })
    assert resp.status_code == 200
    data = resp.json()
    assert 1 <= len(data["actions"]) <= 3
    scores = [a["score"] for a in data["actions"]]
    assert scores == sorted(scores, reverse=True)
    assert data["risk_feed"][0]["text"].startswith("T+18h worst zone: ")
    assert data["compare"]["peak_delta_mw"] > 0


@pytest.mark.asyncio
async def test_recommendations_hour_out_of_range(client):
    resp = await client.post("/api/v1/recommendations/", json={"params_b": {}, "selected_hour": 80})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_session_state(client):
    resp = await client.get("/api/v1/session/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["scenario"] == "baseline"
    assert data["scenario_label"] == "Baseline"
    assert data["live_mode"] is False
    assert data["budget_used_m"] == 0
    assert data["pinned"]["label"] == "Baseline"
    assert "actions" in data["recommendations"]


@pytest.mark.asyncio
async def test_session_scenario_and_pin(client):
    resp = await client.post("/api/v1/session/scenario/stormStress")
    assert resp.status_code == 200
    assert resp.json()["params"]["storm_enabled"] is True

    resp = await client.post("/api/v1/session/pin")
    assert resp.status_code == 200
    assert resp.json()["label"] == "Storm Stress (Pinned)"

    resp = await client.post("/api/v1/session/reset")
    assert resp.json()["scenario"] == "baseline"


@pytest.mark.asyncio
async def test_session_interventions(client):
    resp = await client.post("/api/v1/session/districts/medical/storage", json={"delta": 1.0})
    assert resp.status_code == 200
    data = resp.json()
    assert data["applied"] is True
    assert data["budget_used_m"] == pytest.approx(0.6)
    assert data["overrides"]["districts"]["medical"]["storage_mwh"] == 1.0

    resp = await client.post("/api/v1/session/toggles/microgrid")
    assert resp.json()["budget_used_m"] == pytest.approx(2.1)

    resp = await client.post("/api/v1/session/districts/medical/capacity", json={"delta": 100})
    data = resp.json()
    assert data["applied"] is False
    assert data["warning"] == "Budget exceeded"

    resp = await client.post("/api/v1/session/districts/medical/clear")
    assert resp.json()["budget_used_m"] == pytest.approx(1.5)


@pytest.mark.asyncio
async def test_session_params_and_hour(client):
    resp = await client.patch("/api/v1/session/params", json={"ev_adoption_delta": 0.2, "budget_m": 8})
    assert resp.status_code == 200
    assert resp.json()["params"]["budget_m"] == 8

    resp = await client.patch("/api/v1/session/params", json={"storage_mwh": -2})
    assert resp.status_code == 422

    resp = await client.post("/api/v1/session/hour/95")
    assert resp.json() == {"selected_hour": 72}

    resp = await client.post("/api/v1/session/select/eastside")
    assert resp.json() == {"selected_district": "eastside"}


@pytest.mark.asyncio
async def test_session_unknown_names(client):
    assert (await client.post("/api/v1/session/scenario/blizzard")).status_code == 404
    assert (await client.post("/api/v1/session/toggles/teleport")).status_code == 404
    assert (await client.post("/api/v1/session/select/atlantis")).status_code == 404
    assert (await client.post("/api/v1/session/districts/atlantis/dr")).status_code == 404
    assert (await client.post("/api/v1/session/live/maybe")).status_code == 404


@pytest.mark.asyncio
async def test_ops_brief(client):
    resp = await client.get("/api/v1/session/brief")
    assert resp.status_code == 200
    assert resp.json()["text"].startswith("GridTwin Ops Brief\nMode: Synthetic")


@pytest.mark.asyncio
async def test_live_basic_without_key(client):
    resp = await client.get("/api/v1/live/basic")
    assert resp.status_code == 200
    assert resp.json()["ok"] is False


@pytest.mark.asyncio
async def test_live_mode_on_and_off(client):
    resp = await client.post("/api/v1/session/live/on")
    assert resp.status_code == 200
    data = resp.json()
    assert data["live_mode"] is True
    assert data["warning"] == ""

    state = (await client.get("/api/v1/session/")).json()
    assert state["live_mode"] is True
    assert state["scenario_label"] == "Baseline + Live"
    assert state["result"]["live_label"] == data["live_label"]

    resp = await client.post("/api/v1/session/live/off")
    assert resp.json() == {"live_mode": False, "warning": ""}


@pytest.mark.asyncio
async def test_live_bundle_fetched_on_demand(client):
    resp = await client.get("/api/v1/live/bundle")
    assert resp.status_code == 200
    data = resp.json()
    assert len(data["forecast_72h"]["points"]) == 73
    assert data["load_zone"] == "LZ_SOUTH"
