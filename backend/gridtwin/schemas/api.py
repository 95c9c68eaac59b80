from datetime import datetime

from pydantic import BaseModel, Field

from gridtwin.city.districts import DistrictId
from gridtwin.schemas.live import LiveInputs
from gridtwin.schemas.params import CityParams, DistrictOverrides
from gridtwin.schemas.recommendation import RecommendationOutput
from gridtwin.schemas.simulation import SimulationResult


class SimulationRequest(BaseModel):
    params: CityParams = CityParams()
    overrides: DistrictOverrides | None = None
    live: LiveInputs | None = None


class BudgetResponse(BaseModel):
    budget_used_m: float
    budget_m: float
    interventions_count: int


class RecommendationRequest(BaseModel):
    params_a: CityParams = CityParams()
    overrides_a: DistrictOverrides | None = None
    params_b: CityParams
    overrides_b: DistrictOverrides | None = None
    selected_hour: int = Field(default=0, ge=0, le=72)


class ParamsUpdate(BaseModel):
    ev_adoption_delta: float | None = None
    solar_delta: float | None = None
    storage_mwh: float | None = None
    budget_m: float | None = None


class AmountRequest(BaseModel):
    delta: float


class PinnedSummary(BaseModel):
    label: str
    params: CityParams
    overrides: DistrictOverrides
    live_label: str | None = None


class SessionState(BaseModel):
    scenario: str
    scenario_label: str
    params: CityParams
    overrides: DistrictOverrides
    selected_hour: int
    selected_district: DistrictId
    live_mode: bool
    live_label: str | None = None
    live_fetched_at: datetime | None = None
    budget_used_m: float
    interventions_count: int
    budget_warning: str = ""
    pinned: PinnedSummary
    roi_score: float
    result: SimulationResult
    recommendations: RecommendationOutput


class ChangeResponse(BaseModel):
    applied: bool
    warning: str = ""
    budget_used_m: float
    params: CityParams
    overrides: DistrictOverrides
