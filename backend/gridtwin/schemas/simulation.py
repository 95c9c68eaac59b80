from typing import Literal

from pydantic import BaseModel

from gridtwin.city.districts import DistrictId


class PerDistrictSeries(BaseModel):
    load_mw: list[float] = []
    cap_mw: list[float] = []
    stress: list[float] = []  # load / capacity
    prob: list[float] = []  # overload probability 0-1
    solar_mw: list[float] = []


class LoadComponents(BaseModel):
    base_mw: float
    ev_mw: float
    ac_mw: float
    event_mw: float
    solar_mw: float
    storage_shave_mw: float
    cap_mw: float


class CitySeries(BaseModel):
    load_mw: list[float]
    cap_mw: list[float]
    total_solar_mw: list[float]
    carbon_intensity: list[float]  # gCO2/kWh
    cost_index: list[float]
    peak_hour: int
    peak_load: float


class RiskEntry(BaseModel):
    district_id: DistrictId
    stress: float
    prob: float


class AlertPoint(BaseModel):
    hour: int
    level: Literal["warn", "crit"]
    district_id: DistrictId
    prob: float
    stress: float


class PeakSummary(BaseModel):
    hour: int
    overload_zones: list[DistrictId] = []
    top_risk: list[RiskEntry] = []


class SimulationResult(BaseModel):
    model_config = {"frozen": True}

    hours: list[int]
    per_district: dict[DistrictId, PerDistrictSeries]
    per_district_components: dict[DistrictId, list[LoadComponents]]
    city: CitySeries
    alert_hours: list[AlertPoint] = []
    summary_at_peak: PeakSummary
    resilience_score: int  # 0-100
    live_label: str | None = None
