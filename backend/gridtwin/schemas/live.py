from datetime import datetime

from pydantic import BaseModel, Field


class RealtimeConditions(BaseModel):
    timestamp: datetime
    system_demand_mw: float
    system_capacity_mw: float
    wind_mw: float = 0.0
    solar_mw: float = 0.0


class DemandForecastPoint(BaseModel):
    timestamp: datetime
    demand_mw: float


class LoadForecast(BaseModel):
    fetched_at: datetime
    points: list[DemandForecastPoint] = []


class OutagePoint(BaseModel):
    timestamp: datetime
    outaged_mw: float


class OutageForecast(BaseModel):
    load_zone: str
    fetched_at: datetime
    points: list[OutagePoint] = []


class PricePoint(BaseModel):
    timestamp: datetime
    settlement_point: str
    price: float  # $/MWh


class SettlementPrices(BaseModel):
    fetched_at: datetime
    points: list[PricePoint] = []


class LiveBundle(BaseModel):
    ok: bool = True
    fetched_at: datetime
    load_zone: str = "LZ_SOUTH"
    hub: str = "HB_SOUTH"
    realtime: RealtimeConditions | None = None
    forecast_72h: LoadForecast | None = None
    outages_72h: OutageForecast | None = None
    prices: SettlementPrices | None = None
    errors: list[str] = []


class BasicSnapshot(BaseModel):
    """Single realtime reading used to seed live curves when the full bundle is unavailable."""

    ok: bool
    timestamp: datetime
    system_demand_mw: float
    wind_mw: float
    solar_mw: float
    renewables_share: float | None = None


class RenewablesCurve(BaseModel):
    model_config = {"frozen": True}

    wind_mw: list[float] = Field(min_length=73)
    solar_mw: list[float] = Field(min_length=73)


class LiveInputs(BaseModel):
    model_config = {"frozen": True}

    live_label: str
    fetched_at: datetime
    demand_curve_mw: list[float] = Field(min_length=73)
    capacity_curve_mw: list[float] = Field(min_length=73)
    renewables: RenewablesCurve
    carbon_intensity_curve: list[float] = Field(min_length=73)
    cost_index_curve: list[float] = Field(min_length=73)
