"""Budget-gated mutations of the scenario snapshot.

Every operation returns a new (params, overrides) pair and is charged for the
change actually applied after clamping. A change that would push spend past
the budget cap is declined: the snapshot is returned as-is with a warning,
never an exception.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from gridtwin.city.districts import DistrictId
from gridtwin.schemas.params import CityParams, DistrictOverride, DistrictOverrides
from gridtwin.services import budget
from gridtwin.services.curves import clamp

logger = logging.getLogger(__name__)

BUDGET_WARNING = "Budget exceeded"

MAX_DISTRICT_STORAGE_MWH = 5.0
MAX_DISTRICT_SOLAR_BOOST = 0.35


class GlobalToggle(str, Enum):
    MICROGRID = "microgrid"
    DEMAND_RESPONSE = "demand_response"
    HEATWAVE = "heatwave"
    STORM = "storm"
    EVENT = "event"
    CRITICAL_PRIORITY = "critical_priority"


# Toggles that carry a capital cost while enabled
_TOGGLE_COSTS = {
    GlobalToggle.MICROGRID: budget.MICROGRID_COST_M,
    GlobalToggle.DEMAND_RESPONSE: budget.DEMAND_RESPONSE_COST_M,
}


@dataclass(frozen=True)
class ChangeOutcome:
    params: CityParams
    overrides: DistrictOverrides
    applied: bool = True
    warning: str = ""


_TOGGLE_FIELDS: dict[GlobalToggle, str] = {
    GlobalToggle.MICROGRID: "microgrid_enabled",
    GlobalToggle.DEMAND_RESPONSE: "demand_response_enabled",
    GlobalToggle.HEATWAVE: "heatwave_enabled",
    GlobalToggle.STORM: "storm_enabled",
    GlobalToggle.EVENT: "event_enabled",
    GlobalToggle.CRITICAL_PRIORITY: "critical_priority_enabled",
}


def _flag_value(params: CityParams, toggle: GlobalToggle) -> bool:
    return getattr(params, _TOGGLE_FIELDS[toggle])


def _with_flag(params: CityParams, toggle: GlobalToggle, value: bool) -> CityParams:
    return params.model_copy(update={_TOGGLE_FIELDS[toggle]: value})


def _budgeted(
    params: CityParams,
    overrides: DistrictOverrides,
    delta_cost_m: float,
    next_params: CityParams,
    next_overrides: DistrictOverrides,
) -> ChangeOutcome:
    used = budget.compute_budget_used(params, overrides)
    if delta_cost_m <= 0 or budget.can_afford_change(params.budget_m, used, delta_cost_m):
        return ChangeOutcome(params=next_params, overrides=next_overrides)
    logger.info(
        "Declined change costing %.3fM (used %.3fM of %.1fM)",
        delta_cost_m, used, params.budget_m,
    )
    return ChangeOutcome(params=params, overrides=overrides, applied=False, warning=BUDGET_WARNING)


def toggle_global_flag(
    params: CityParams,
    overrides: DistrictOverrides,
    toggle: GlobalToggle,
) -> ChangeOutcome:
    is_on = _flag_value(params, toggle)
    next_params = _with_flag(params, toggle, not is_on)
    cost = _TOGGLE_COSTS.get(toggle, 0.0)
    delta = -cost if is_on else cost
    return _budgeted(params, overrides, delta, next_params, overrides)


def add_district_storage(
    params: CityParams,
    overrides: DistrictOverrides,
    district_id: DistrictId,
    delta_mwh: float,
) -> ChangeOutcome:
    prev = overrides.get(district_id)
    updated = prev.model_copy(update={
        "storage_mwh": clamp(prev.storage_mwh + delta_mwh, 0, MAX_DISTRICT_STORAGE_MWH),
    })
    return _budgeted(
        params, overrides, budget.storage_cost(updated.storage_mwh - prev.storage_mwh),
        params, overrides.with_override(district_id, updated),
    )


def add_district_capacity(
    params: CityParams,
    overrides: DistrictOverrides,
    district_id: DistrictId,
    delta_mw: float,
) -> ChangeOutcome:
    prev = overrides.get(district_id)
    updated = prev.model_copy(update={"cap_boost_mw": max(0.0, prev.cap_boost_mw + delta_mw)})
    return _budgeted(
        params, overrides, budget.capacity_cost(updated.cap_boost_mw - prev.cap_boost_mw),
        params, overrides.with_override(district_id, updated),
    )


def add_district_solar(
    params: CityParams,
    overrides: DistrictOverrides,
    district_id: DistrictId,
    delta: float,
) -> ChangeOutcome:
    prev = overrides.get(district_id)
    updated = prev.model_copy(update={
        "solar_boost": clamp(prev.solar_boost + delta, 0, MAX_DISTRICT_SOLAR_BOOST),
    })
    return _budgeted(
        params, overrides, budget.solar_cost(updated.solar_boost - prev.solar_boost),
        params, overrides.with_override(district_id, updated),
    )


def toggle_district_dr(
    params: CityParams,
    overrides: DistrictOverrides,
    district_id: DistrictId,
) -> ChangeOutcome:
    prev = overrides.get(district_id)
    delta = -budget.LOCAL_DR_COST_M if prev.dr_enabled else budget.LOCAL_DR_COST_M
    updated = prev.model_copy(update={"dr_enabled": not prev.dr_enabled})
    return _budgeted(
        params, overrides, delta,
        params, overrides.with_override(district_id, updated),
    )


def clear_district_override(
    params: CityParams,
    overrides: DistrictOverrides,
    district_id: DistrictId,
) -> ChangeOutcome:
    return ChangeOutcome(
        params=params,
        overrides=overrides.with_override(district_id, DistrictOverride()),
    )
