from typing import Literal

from pydantic import BaseModel

from gridtwin.city.districts import DistrictId


class RiskFeedItem(BaseModel):
    type: Literal["warn", "info", "ok"]
    text: str


class ActionImpact(BaseModel):
    peak_load_delta_mw: float = 0.0
    overload_delta: int = 0
    peak_risk_delta: float = 0.0
    resilience_delta: float = 0.0
    carbon_delta: float = 0.0
    cost_delta: float = 0.0
    cost_savings_pct: float = 0.0


class ActionItem(BaseModel):
    id: str
    title: str
    rationale: str
    drivers: str
    confidence: Literal["High", "Med", "Low"]
    impact: ActionImpact
    cost_m: float
    score: float
    over_budget: bool = False
    best_bang_for_buck: bool = False


class CompareSummary(BaseModel):
    peak_delta_mw: float = 0.0
    overload_delta: int = 0
    resilience_delta: int = 0
    carbon_delta: float = 0.0
    cost_savings_pct: float = 0.0


class RecommendationOutput(BaseModel):
    risk_feed: list[RiskFeedItem] = []
    actions: list[ActionItem] = []
    compare: CompareSummary
    worst_district_id: DistrictId
