"""Operator-facing summaries: intervention ROI and the plain-text ops brief."""

from gridtwin.schemas.recommendation import RecommendationOutput
from gridtwin.schemas.simulation import SimulationResult


def roi_score(result_a: SimulationResult, result_b: SimulationResult, budget_used_m: float) -> float:
    """Improvement of B over A per $M spent."""
    peak_reduced = max(0.0, result_a.city.peak_load - result_b.city.peak_load)
    overloads_avoided = max(
        0,
        len(result_a.summary_at_peak.overload_zones) - len(result_b.summary_at_peak.overload_zones),
    )
    resilience_gain = max(0, result_b.resilience_score - result_a.resilience_score)
    return (peak_reduced * 0.6 + overloads_avoided * 8 + resilience_gain * 0.25) / max(0.1, budget_used_m)


def ops_brief(
    result_b: SimulationResult,
    recs: RecommendationOutput,
    budget_used_m: float,
    budget_m: float,
    mode_label: str = "Synthetic",
) -> str:
    top_risk = ", ".join(
        f"{r.district_id.value} ({r.prob * 100:.0f}%)" for r in result_b.summary_at_peak.top_risk
    )
    top_actions = " | ".join(
        f"{a.title}: {'+' if a.impact.resilience_delta >= 0 else ''}{a.impact.resilience_delta:.0f} resilience"
        for a in recs.actions
    )
    compare = recs.compare
    return "\n".join([
        "GridTwin Ops Brief",
        f"Mode: {mode_label}",
        f"Peak Hour: T+{result_b.city.peak_hour}h",
        f"Top Risk Districts: {top_risk}",
        f"Budget Used: {budget_used_m:.2f}M / {budget_m:.1f}M",
        (
            f"Compare Delta: Peak {compare.peak_delta_mw:.1f} MW, "
            f"Overloads {compare.overload_delta}, Resilience {compare.resilience_delta}"
        ),
        f"Top Actions: {top_actions}",
    ])
