import math
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from gridtwin.config import Settings, settings
from gridtwin.schemas.live import (
    BasicSnapshot,
    DemandForecastPoint,
    LiveBundle,
    LoadForecast,
    PricePoint,
    RealtimeConditions,
    SettlementPrices,
)
from gridtwin.schemas.params import CityParams
from gridtwin.services.ercot_client import ErcotAuthError, ErcotClient, to_num
from gridtwin.services.live_adapter import (
    build_seed_inputs,
    fill_to_hours,
    forward_fill,
    to_hourly_curve,
    to_live_inputs,
)
from gridtwin.services.live_store import LiveDataStore
from gridtwin.services.simulation import run_simulation
from gridtwin.tasks import scheduler

START = datetime(2026, 7, 14, 0, 0, tzinfo=timezone.utc)


def _offline_settings(**kwargs) -> Settings:
    values = dict(
        _env_file=None,
        ercot_subscription_key="",
        ercot_username="",
        ercot_password="",
        ercot_bearer_token="",
    )
    values.update(kwargs)
    return Settings(**values)


def _make_bundle(demand=None, prices=None, realtime=True) -> LiveBundle:
    demand = demand or [40000 + 8000 * math.sin(i / 24 * math.pi * 2) for i in range(73)]
    return LiveBundle(
        fetched_at=START,
        realtime=RealtimeConditions(
            timestamp=START,
            system_demand_mw=45000,
            system_capacity_mw=60000,
            wind_mw=12000,
            solar_mw=5000,
        ) if realtime else None,
        forecast_72h=LoadForecast(
            fetched_at=START,
            points=[
                DemandForecastPoint(timestamp=START + timedelta(hours=i), demand_mw=d)
                for i, d in enumerate(demand)
            ],
        ),
        prices=SettlementPrices(fetched_at=START, points=prices or []),
    )


def _mock_http(resp: MagicMock) -> AsyncMock:
    mock_client = AsyncMock()
    mock_client.get = AsyncMock(return_value=resp)
    mock_client.post = AsyncMock(return_value=resp)
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    return mock_client


def _json_response(payload, status_code=200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload
    resp.raise_for_status = MagicMock()
    return resp


# --- Curve normalization ---

def test_fill_to_hours_pads_and_truncates():
    padded = fill_to_hours([1.0, 2.0])
    assert len(padded) == 73
    assert padded[-1] == 2.0
    assert fill_to_hours([], fallback=5.0) == [5.0] * 73
    assert fill_to_hours(list(range(100))) == list(range(73))


def test_forward_fill():
    assert forward_fill([None, 3.0, None, math.nan, 4.0], 7.0) == [7.0, 3.0, 3.0, 3.0, 4.0]


def test_hourly_curve_averages_duplicates():
    points = [
        (START + timedelta(minutes=10), 10.0),
        (START + timedelta(minutes=40), 20.0),
        (START + timedelta(hours=2), 30.0),
    ]
    curve = to_hourly_curve(points, START)
    assert len(curve) == 73
    assert curve[0] == pytest.approx(15.0)
    assert curve[1] is None
    assert curve[2] == pytest.approx(30.0)


def test_no_forecast_means_synthetic():
    synthetic = run_simulation(CityParams())
    bundle = LiveBundle(fetched_at=START)
    assert to_live_inputs(bundle, synthetic) is None


def test_live_demand_scaled_to_synthetic_peak():
    synthetic = run_simulation(CityParams())
    live = to_live_inputs(_make_bundle(), synthetic)
    assert live is not None
    assert len(live.demand_curve_mw) == 73
    assert max(live.demand_curve_mw) == pytest.approx(synthetic.city.peak_load)
    assert all(c >= 1 for c in live.capacity_curve_mw)
    assert all(180 <= c <= 520 for c in live.carbon_intensity_curve)
    assert live.live_label == settings.live_label


def test_price_curve_drives_cost_index():
    synthetic = run_simulation(CityParams())
    prices = [
        PricePoint(timestamp=START + timedelta(hours=i), settlement_point="LZ_SOUTH", price=20.0 + i)
        for i in range(73)
    ]
    prices.append(PricePoint(timestamp=START, settlement_point="HB_SOUTH", price=900.0))
    live = to_live_inputs(_make_bundle(prices=prices), synthetic)
    assert min(live.cost_index_curve) == pytest.approx(0.75)
    assert max(live.cost_index_curve) == pytest.approx(2.2)
    assert live.cost_index_curve[0] == pytest.approx(0.75)


def test_live_simulation_follows_live_demand():
    params = CityParams()
    synthetic = run_simulation(params)
    live = to_live_inputs(_make_bundle(), synthetic, label="Test feed")
    result = run_simulation(params, live=live)
    assert result.live_label == "Test feed"
    for t in (0, 18, 72):
        assert result.city.load_mw[t] == pytest.approx(live.demand_curve_mw[t])
        assert result.city.cost_index[t] == pytest.approx(live.cost_index_curve[t])


def test_seed_inputs_from_basic_snapshot():
    synthetic = run_simulation(CityParams())
    seed = BasicSnapshot(
        ok=True,
        timestamp=START,
        system_demand_mw=72000,
        wind_mw=18000,
        solar_mw=9000,
        renewables_share=0.375,
    )
    live = build_seed_inputs(seed, synthetic)
    assert live.live_label == "Austin (proxy: ERCOT system seed)"
    assert live.demand_curve_mw == pytest.approx(synthetic.city.load_mw)
    assert live.carbon_intensity_curve[0] == pytest.approx(322.5)
    assert live.renewables.wind_mw[0] == pytest.approx(18000)


# --- ERCOT client ---

def test_to_num():
    assert to_num("12.5") == 12.5
    assert to_num(None, 3.0) == 3.0
    assert to_num("n/a") == 0.0
    assert to_num(float("inf"), 1.0) == 1.0


@pytest.mark.asyncio
async def test_offline_bundle_falls_back_to_synthetic_series():
    client = ErcotClient(_offline_settings())
    bundle = await client.fetch_live_bundle()
    assert bundle.ok is True
    assert bundle.errors == []
    assert bundle.realtime.system_demand_mw == 46800
    assert len(bundle.forecast_72h.points) == 73
    assert all(p.demand_mw >= 26000 for p in bundle.forecast_72h.points)
    assert len(bundle.outages_72h.points) == 73
    assert bundle.outages_72h.load_zone == "LZ_SOUTH"
    prices = {p.settlement_point: p.price for p in bundle.prices.points}
    assert prices == {"LZ_SOUTH": 34.0, "HB_SOUTH": 29.0}


@pytest.mark.asyncio
async def test_failing_source_recorded_in_bundle():
    client = ErcotClient(_offline_settings())
    client.get_realtime_conditions = AsyncMock(side_effect=RuntimeError("boom"))
    bundle = await client.fetch_live_bundle()
    assert bundle.ok is False
    assert bundle.realtime is None
    assert bundle.errors == ["realtime: boom"]
    assert bundle.forecast_72h is not None


@pytest.mark.asyncio
async def test_basic_snapshot_without_key_is_fallback():
    snapshot = await ErcotClient(_offline_settings()).fetch_basic_snapshot()
    assert snapshot.ok is False
    assert snapshot.system_demand_mw == 72000
    assert snapshot.wind_mw == 18000
    assert snapshot.solar_mw == 9000


@pytest.mark.asyncio
async def test_basic_snapshot_parses_first_nonzero_fields():
    payload = {"data": [{
        "timestamp": "2026-07-14T15:00:00Z",
        "systemDemandMW": 0,
        "demandMW": 61000,
        "windMW": 20000,
        "solarMW": 0,
        "pvMW": 4000,
    }]}
    client = ErcotClient(_offline_settings(ercot_subscription_key="key"))
    with patch("gridtwin.services.ercot_client.httpx.AsyncClient", return_value=_mock_http(_json_response(payload))):
        snapshot = await client.fetch_basic_snapshot()
    assert snapshot.ok is True
    assert snapshot.system_demand_mw == 61000
    assert snapshot.wind_mw == 20000
    assert snapshot.solar_mw == 4000
    assert snapshot.renewables_share == pytest.approx(24000 / 61000)
    assert snapshot.timestamp == datetime(2026, 7, 14, 15, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_basic_snapshot_all_paths_rejected():
    client = ErcotClient(_offline_settings(ercot_subscription_key="key"))
    resp = _json_response({}, status_code=404)
    with patch("gridtwin.services.ercot_client.httpx.AsyncClient", return_value=_mock_http(resp)):
        snapshot = await client.fetch_basic_snapshot()
    assert snapshot.ok is False


@pytest.mark.asyncio
async def test_token_cached_until_near_expiry():
    client = ErcotClient(_offline_settings(ercot_username="ops", ercot_password="secret"))
    mock_client = _mock_http(_json_response({"id_token": "tok-1", "expires_in": 3600}))
    with patch("gridtwin.services.ercot_client.httpx.AsyncClient", return_value=mock_client):
        assert await client.get_token() == "tok-1"
        assert await client.get_token() == "tok-1"
    assert mock_client.post.call_count == 1
    form = mock_client.post.call_args.kwargs["data"]
    assert form["grant_type"] == "password"
    assert form["username"] == "ops"


@pytest.mark.asyncio
async def test_token_requires_credentials():
    with pytest.raises(ErcotAuthError):
        await ErcotClient(_offline_settings()).get_token()


@pytest.mark.asyncio
async def test_token_response_without_token_rejected():
    client = ErcotClient(_offline_settings(ercot_username="ops", ercot_password="secret"))
    with patch(
        "gridtwin.services.ercot_client.httpx.AsyncClient",
        return_value=_mock_http(_json_response({"expires_in": 3600})),
    ):
        with pytest.raises(ErcotAuthError):
            await client.get_token()


@pytest.mark.asyncio
async def test_find_report_id_by_keywords():
    client = ErcotClient(_offline_settings())
    client.list_public_reports = AsyncMock(return_value=[
        {"reportId": "NP3-565-CD", "title": "Seven-Day Load Forecast by Model and Weather Zone"},
        {"reportId": "NP6-345-CD", "title": "Actual System Load by Weather Zone"},
        {"id": "NP4-190-CD", "name": "DAM Settlement Point Prices"},
        {"title": "Untitled report without id"},
    ])
    assert await client.find_report_id(["load", "forecast"]) == (
        "NP3-565-CD", "Seven-Day Load Forecast by Model and Weather Zone",
    )
    assert await client.find_report_id(["settlement", "price"]) == ("NP4-190-CD", "DAM Settlement Point Prices")
    assert await client.find_report_id(["outage"]) is None


@pytest.mark.asyncio
async def test_realtime_conditions_parsed_from_report_rows():
    reports = {"data": [{"reportId": "RT-1", "title": "Real Time System Demand"}]}
    rows = {"data": [
        {"timestamp": "2026-07-14T11:00:00Z", "systemDemandMW": 48000},
        {"timestamp": "2026-07-14T12:00:00Z", "systemDemandMW": 50000, "windMW": 15000, "solarMW": "7000"},
    ]}

    async def fake_fetch(path, params=None):
        if path == "/":
            return reports
        if path == "/reports/RT-1":
            return rows
        raise AssertionError(f"unexpected path {path}")

    client = ErcotClient(_offline_settings())
    client.fetch_json = AsyncMock(side_effect=fake_fetch)
    realtime = await client.get_realtime_conditions()
    assert realtime.system_demand_mw == 50000
    assert realtime.system_capacity_mw == pytest.approx(60000)
    assert realtime.wind_mw == 15000
    assert realtime.solar_mw == 7000
    assert realtime.timestamp == datetime(2026, 7, 14, 12, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_load_forecast_prefers_austin_zone():
    client = ErcotClient(_offline_settings())
    rows = [
        {"hourISO": (START + timedelta(hours=i)).isoformat(), "weatherZone": "South Central", "demandMW": 9000 + i}
        for i in range(48)
    ] + [
        {"hourISO": START.isoformat(), "weatherZone": "North", "demandMW": 5000},
    ]
    client._rows_for = AsyncMock(return_value=rows)
    forecast = await client.get_load_forecast_72h()
    assert len(forecast.points) == 48
    assert forecast.points[0].demand_mw == 9000


@pytest.mark.asyncio
async def test_outages_filtered_to_load_zone():
    client = ErcotClient(_offline_settings())
    client._rows_for = AsyncMock(return_value=[
        {"timestamp": START.isoformat(), "loadZone": "LZ_SOUTH", "outagedMW": 650},
        {"timestamp": START.isoformat(), "loadZone": "LZ_WEST", "outagedMW": 999},
    ])
    outages = await client.get_outages_72h("LZ_SOUTH")
    assert [p.outaged_mw for p in outages.points] == [650]


# --- Live data store and refresh job ---

@pytest.mark.asyncio
async def test_store_refresh_produces_live_inputs():
    store = LiveDataStore(ErcotClient(_offline_settings()))
    bundle = await store.refresh()
    assert store.bundle is bundle
    assert store.basic.ok is False
    assert store.refreshed_at is not None

    live = store.live_inputs(run_simulation(CityParams()))
    assert live is not None
    assert live.live_label == settings.live_label


def test_store_falls_back_to_seed_then_synthetic():
    synthetic = run_simulation(CityParams())
    store = LiveDataStore(ErcotClient(_offline_settings()))
    assert store.live_inputs(synthetic) is None

    store.basic = BasicSnapshot(ok=True, timestamp=START, system_demand_mw=60000, wind_mw=10000, solar_mw=5000)
    assert store.live_inputs(synthetic).live_label == "Austin (proxy: ERCOT system seed)"

    store.basic = store.basic.model_copy(update={"ok": False})
    assert store.live_inputs(synthetic) is None


def test_refresh_job_runs_store_refresh():
    store = MagicMock()
    store.refresh = AsyncMock()
    scheduler._run_live_refresh(store)
    store.refresh.assert_awaited_once()


def test_refresh_job_logs_failures():
    store = MagicMock()
    store.refresh = AsyncMock(side_effect=RuntimeError("feed down"))
    scheduler._run_live_refresh(store)
    store.refresh.assert_awaited_once()


def test_scheduler_registers_live_refresh_job():
    store = MagicMock()
    with patch("gridtwin.tasks.scheduler.BackgroundScheduler") as mock_cls:
        scheduler.start_scheduler(store)
        job = mock_cls.return_value.add_job
        assert job.call_args.kwargs["id"] == "live_refresh"
        assert job.call_args.kwargs["args"] == [store]
        mock_cls.return_value.start.assert_called_once()
        scheduler.stop_scheduler()
        mock_cls.return_value.shutdown.assert_called_once_with(wait=False)
