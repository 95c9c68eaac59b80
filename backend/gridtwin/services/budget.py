"""Capital spend accounting for interventions ($M)."""

from gridtwin.schemas.params import CityParams, DistrictOverrides

MICROGRID_COST_M = 1.5
DEMAND_RESPONSE_COST_M = 0.2
STORAGE_COST_M_PER_MWH = 0.6
CAPACITY_COST_M_PER_10MW = 0.35
SOLAR_COST_M_PER_10PCT = 0.25
LOCAL_DR_COST_M = 0.2

BUDGET_EPSILON = 1e-9


def storage_cost(mwh: float) -> float:
    return mwh * STORAGE_COST_M_PER_MWH


def capacity_cost(mw: float) -> float:
    return (mw / 10) * CAPACITY_COST_M_PER_10MW


def solar_cost(fraction: float) -> float:
    return (fraction / 0.1) * SOLAR_COST_M_PER_10PCT


def compute_budget_used(params: CityParams, overrides: DistrictOverrides) -> float:
    used = 0.0
    if params.microgrid_enabled:
        used += MICROGRID_COST_M
    if params.demand_response_enabled:
        used += DEMAND_RESPONSE_COST_M

    for o in overrides.districts.values():
        used += storage_cost(o.storage_mwh)
        used += capacity_cost(max(0.0, o.cap_boost_mw))
        used += solar_cost(o.solar_boost)
        if o.dr_enabled:
            used += LOCAL_DR_COST_M

    return round(used, 3)


def can_afford_change(budget_cap: float, used: float, delta: float) -> bool:
    return used + delta <= budget_cap + BUDGET_EPSILON


def count_interventions(overrides: DistrictOverrides) -> int:
    """Number of districts carrying any intervention."""
    return sum(1 for o in overrides.districts.values() if not o.is_empty())
