"""Counterfactual recommendation engine.

Builds a short list of candidate interventions around the worst district,
re-simulates each against the current scenario (B) and ranks them by a
weighted impact score. This is a bounded greedy evaluation over a fixed
candidate list, not a search.

Score = resilience_delta
        - 12 * max(0, overload_delta)
        - 0.12 * peak_load_delta_mw
        - 30 * peak_risk_delta
        + 0.5 * cost_savings_pct
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from gridtwin.city.districts import DISTRICT_MAP, DISTRICTS, DistrictId, is_critical
from gridtwin.schemas.live import LiveInputs
from gridtwin.schemas.params import CityParams, DistrictOverrides
from gridtwin.schemas.recommendation import (
    ActionImpact,
    ActionItem,
    CompareSummary,
    RecommendationOutput,
    RiskFeedItem,
)
from gridtwin.schemas.simulation import SimulationResult
from gridtwin.services.budget import can_afford_change, compute_budget_used
from gridtwin.services.curves import clamp
from gridtwin.services.simulation import run_simulation

logger = logging.getLogger(__name__)

Simulate = Callable[[CityParams, DistrictOverrides, LiveInputs | None], SimulationResult]
ApplyFn = Callable[[CityParams, DistrictOverrides, DistrictId], tuple[CityParams, DistrictOverrides]]

MAX_CANDIDATES = 4
MAX_ACTIONS = 3
MIDDAY_HOURS = [h + 24 for h in (11, 12, 13, 14)]


@dataclass(frozen=True)
class CandidateAction:
    id: str
    title: str
    rationale: str
    drivers: str
    cost_m: float
    apply: ApplyFn


def _district_name(district_id: DistrictId) -> str:
    d = DISTRICT_MAP.get(district_id)
    return d.name if d else district_id.value


def _clamp_hour(hour: int) -> int:
    return int(clamp(hour, 0, 72))


def identify_worst_district(result: SimulationResult, hour: int | None = None) -> DistrictId:
    """District with the highest overload probability at `hour` (peak hour by default)."""
    h = result.city.peak_hour if hour is None else _clamp_hour(hour)
    return max(DISTRICTS, key=lambda d: result.per_district[d.district_id].prob[h]).district_id


def top_load_districts(result: SimulationResult, count: int = 2) -> list[DistrictId]:
    h = result.city.peak_hour
    ranked = sorted(DISTRICTS, key=lambda d: result.per_district[d.district_id].load_mw[h], reverse=True)
    return [d.district_id for d in ranked[:count]]


def _add_storage(p: CityParams, o: DistrictOverrides, worst: DistrictId):
    prev = o.get(worst)
    updated = prev.model_copy(update={"storage_mwh": clamp(prev.storage_mwh + 1.5, 0, 5)})
    return p, o.copy_overrides().with_override(worst, updated)


def _enable_dr(p: CityParams, o: DistrictOverrides, worst: DistrictId):
    if not p.demand_response_enabled:
        return p.model_copy(update={"demand_response_enabled": True}), o.copy_overrides()
    updated = o.get(worst).model_copy(update={"dr_enabled": True})
    return p, o.copy_overrides().with_override(worst, updated)


def _add_capacity(p: CityParams, o: DistrictOverrides, worst: DistrictId):
    prev = o.get(worst)
    updated = prev.model_copy(update={"cap_boost_mw": prev.cap_boost_mw + 10})
    return p, o.copy_overrides().with_override(worst, updated)


def _solar_for(targets: list[DistrictId]) -> ApplyFn:
    def apply(p: CityParams, o: DistrictOverrides, worst: DistrictId):
        next_o = o.copy_overrides()
        for did in targets:
            prev = next_o.get(did)
            next_o = next_o.with_override(
                did, prev.model_copy(update={"solar_boost": clamp(prev.solar_boost + 0.1, 0, 0.35)}),
            )
        return p, next_o
    return apply


def generate_candidate_actions(
    params: CityParams,
    overrides: DistrictOverrides,
    worst_district_id: DistrictId,
    result: SimulationResult,
) -> list[CandidateAction]:
    worst_name = _district_name(worst_district_id)
    candidates = [
        CandidateAction(
            id="storage-worst",
            title=f"Add +1.5 MWh battery in {worst_name}",
            rationale="Targets peak-hour stress where overload probability is highest.",
            drivers="Evening ramp and localized peak pressure",
            cost_m=0.9,
            apply=_add_storage,
        ),
        CandidateAction(
            id="dr-enable",
            title=(
                f"Enable local DR in {worst_name}"
                if params.demand_response_enabled
                else "Enable global managed demand response"
            ),
            rationale="Defers EV charging during 6-9pm to flatten feeder spikes.",
            drivers="EV evening concentration",
            cost_m=0.2,
            apply=_enable_dr,
        ),
        CandidateAction(
            id="capacity-worst",
            title=f"Upgrade transformer +10 MW in {worst_name}",
            rationale="Adds immediate headroom in the most constrained district.",
            drivers="Transformer loading margin",
            cost_m=0.35,
            apply=_add_capacity,
        ),
        CandidateAction(
            id="solar-top2",
            title="Incentivize +10% rooftop solar in top load districts",
            rationale="Cuts midday thermal dispatch and lowers evening ramp burden.",
            drivers="Solar offset and carbon pressure",
            cost_m=0.5,
            apply=_solar_for(top_load_districts(result)),
        ),
    ]
    return candidates[:MAX_CANDIDATES]


def overload_count_at_peak(result: SimulationResult) -> int:
    return len(result.summary_at_peak.overload_zones)


def peak_risk(result: SimulationResult) -> float:
    h = result.city.peak_hour
    return max(result.per_district[d.district_id].prob[h] for d in DISTRICTS)


def _cost_savings_pct(before: SimulationResult, after: SimulationResult) -> float:
    base_cost = before.city.cost_index[before.city.peak_hour]
    new_cost = after.city.cost_index[after.city.peak_hour]
    return (base_cost - new_cost) / max(0.1, base_cost) * 100


def action_score(impact: ActionImpact) -> float:
    return (
        impact.resilience_delta
        - 12 * max(0, impact.overload_delta)
        - 0.12 * impact.peak_load_delta_mw
        - 30 * impact.peak_risk_delta
        + 0.5 * impact.cost_savings_pct
    )


def confidence_from_impact(impact: ActionImpact) -> str:
    if impact.resilience_delta >= 8 or impact.overload_delta <= -1 or impact.peak_risk_delta <= -0.12:
        return "High"
    return "Med"


def evaluate_impact(before: SimulationResult, after: SimulationResult) -> ActionImpact:
    before_peak = before.city.peak_hour
    after_peak = after.city.peak_hour
    return ActionImpact(
        peak_load_delta_mw=round(after.city.peak_load - before.city.peak_load, 1),
        overload_delta=overload_count_at_peak(after) - overload_count_at_peak(before),
        peak_risk_delta=round(peak_risk(after) - peak_risk(before), 3),
        resilience_delta=round(float(after.resilience_score - before.resilience_score), 1),
        carbon_delta=round(
            after.city.carbon_intensity[after_peak] - before.city.carbon_intensity[before_peak], 1,
        ),
        cost_delta=round(after.city.cost_index[after_peak] - before.city.cost_index[before_peak], 3),
        cost_savings_pct=round(_cost_savings_pct(before, after), 1),
    )


def compare_results(result_a: SimulationResult, result_b: SimulationResult) -> CompareSummary:
    """Deltas of scenario B against the pinned scenario A, each at its own peak hour."""
    return CompareSummary(
        peak_delta_mw=round(result_b.city.peak_load - result_a.city.peak_load, 1),
        overload_delta=overload_count_at_peak(result_b) - overload_count_at_peak(result_a),
        resilience_delta=result_b.resilience_score - result_a.resilience_score,
        carbon_delta=round(
            result_b.city.carbon_intensity[result_b.city.peak_hour]
            - result_a.city.carbon_intensity[result_a.city.peak_hour],
            1,
        ),
        cost_savings_pct=round(_cost_savings_pct(result_a, result_b), 1),
    )


def run_counterfactuals(
    result_b: SimulationResult,
    params_b: CityParams,
    overrides_b: DistrictOverrides,
    selected_hour: int,
    live_b: LiveInputs | None = None,
    simulate: Simulate | None = None,
) -> tuple[list[ActionItem], DistrictId]:
    simulate = simulate or run_simulation
    worst = identify_worst_district(result_b, selected_hour)
    budget_used = compute_budget_used(params_b, overrides_b)

    evaluated: list[tuple[float, ActionItem]] = []
    for candidate in generate_candidate_actions(params_b, overrides_b, worst, result_b):
        next_params, next_overrides = candidate.apply(params_b, overrides_b, worst)
        simulated = simulate(next_params, next_overrides, live_b)
        impact = evaluate_impact(result_b, simulated)
        score = action_score(impact)
        evaluated.append((score, ActionItem(
            id=candidate.id,
            title=candidate.title,
            rationale=candidate.rationale,
            drivers=candidate.drivers,
            confidence=confidence_from_impact(impact),
            impact=impact,
            cost_m=candidate.cost_m,
            score=round(score, 3),
            over_budget=not can_afford_change(params_b.budget_m, budget_used, candidate.cost_m),
        )))

    # sorted() is stable, so exact ties keep candidate order
    top = sorted(evaluated, key=lambda pair: pair[0], reverse=True)[:MAX_ACTIONS]

    affordable = [pair for pair in top if not pair[1].over_budget]
    best = None
    if affordable:
        best = max(affordable, key=lambda pair: pair[0] / max(0.1, pair[1].cost_m))[1]
    ranked = [
        a.model_copy(update={"best_bang_for_buck": True}) if a is best else a
        for _, a in top
    ]

    logger.debug(
        "Evaluated %d candidates around %s; top action %s",
        len(evaluated), worst.value, ranked[0].id if ranked else None,
    )
    return ranked, worst


def _renewable_offset_pct(result: SimulationResult) -> float:
    solar = sum(result.city.total_solar_mw[h] for h in MIDDAY_HOURS)
    load = sum(result.city.load_mw[h] for h in MIDDAY_HOURS)
    return solar / max(1.0, load) * 100


def build_risk_feed(
    result_b: SimulationResult,
    params_b: CityParams,
    overrides_b: DistrictOverrides,
    selected_hour: int,
    worst_district_id: DistrictId,
) -> list[RiskFeedItem]:
    hour = _clamp_hour(selected_hour)
    at_hour = identify_worst_district(result_b, hour)
    series = result_b.per_district[at_hour]
    worst_prob = series.prob[hour]
    worst_stress = series.stress[hour]

    peak_top = result_b.summary_at_peak.top_risk[0]

    feed = [
        RiskFeedItem(
            type="warn" if worst_prob > 0.75 or worst_stress > 1 else "info",
            text=(
                f"T+{hour}h worst zone: {_district_name(at_hour)} "
                f"(Stress {worst_stress:.2f}, Risk {worst_prob * 100:.0f}%)."
            ),
        ),
        RiskFeedItem(
            type="warn" if peak_top.stress > 1 else "info",
            text=(
                f"Peak projection at T+{result_b.city.peak_hour}h flags "
                f"{_district_name(peak_top.district_id)} as top overload candidate."
            ),
        ),
        RiskFeedItem(
            type="ok",
            text=f"Renewables offset {_renewable_offset_pct(result_b):.1f}% of midday demand in Scenario B.",
        ),
    ]

    peak_cost = result_b.city.cost_index[result_b.city.peak_hour]
    if peak_cost > 1.5:
        feed.append(RiskFeedItem(
            type="warn",
            text=f"Cost pressure elevated at peak (Index {peak_cost:.2f}). Dispatch optimization advised.",
        ))

    if is_critical(worst_district_id) and worst_prob > 0.62:
        feed.append(RiskFeedItem(
            type="warn",
            text=(
                f"Critical infrastructure exposure detected in {_district_name(worst_district_id)}. "
                "Prioritize protective interventions."
            ),
        ))

    used = compute_budget_used(params_b, overrides_b)
    framing = "Over allocation risk." if used > params_b.budget_m else "Within approved cap."
    feed.append(RiskFeedItem(
        type="info",
        text=f"Budget utilization {used:.2f}M / {params_b.budget_m:.1f}M. {framing}",
    ))
    return feed


def build_recommendations(
    result_a: SimulationResult,
    result_b: SimulationResult,
    params_b: CityParams,
    overrides_b: DistrictOverrides,
    selected_hour: int,
    live_b: LiveInputs | None = None,
    simulate: Simulate | None = None,
) -> RecommendationOutput:
    actions, worst = run_counterfactuals(
        result_b, params_b, overrides_b, selected_hour, live_b=live_b, simulate=simulate,
    )
    return RecommendationOutput(
        risk_feed=build_risk_feed(result_b, params_b, overrides_b, selected_hour, worst),
        actions=actions,
        compare=compare_results(result_a, result_b),
        worst_district_id=worst,
    )


def format_signed(n: float, digits: int = 1) -> str:
    return f"{'+' if n >= 0 else '-'}{abs(n):.{digits}f}"


def action_impact_line(action: ActionItem) -> str:
    impact = action.impact
    return (
        f"Peak: {format_signed(impact.peak_load_delta_mw, 1)} MW • "
        f"Risk: {format_signed(impact.peak_risk_delta * 100, 1)}% • "
        f"Resilience: {format_signed(impact.resilience_delta, 0)}"
    )


def compare_line(compare: CompareSummary) -> str:
    return (
        f"Peak {format_signed(compare.peak_delta_mw, 1)} MW • "
        f"Overloads {format_signed(compare.overload_delta, 0)} • "
        f"Resilience {format_signed(compare.resilience_delta, 0)} • "
        f"Cost {format_signed(compare.cost_savings_pct, 1)}%"
    )


def cost_chip(action: ActionItem) -> str:
    return f"{action.cost_m:.2f}M"
