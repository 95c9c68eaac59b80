from dataclasses import dataclass
from enum import Enum

from gridtwin.config import settings
from gridtwin.schemas.params import CityParams


class ScenarioKey(str, Enum):
    BASELINE = "baseline"
    HEATWAVE_EV_SURGE = "heatwaveEvSurge"
    STORM_STRESS = "stormStress"
    GREEN_UPGRADE = "greenUpgrade"


@dataclass(frozen=True)
class ScenarioPreset:
    key: ScenarioKey
    name: str
    params: CityParams


DEFAULT_PARAMS = CityParams(budget_m=settings.default_budget_m)

SCENARIOS: dict[ScenarioKey, ScenarioPreset] = {
    ScenarioKey.BASELINE: ScenarioPreset(
        key=ScenarioKey.BASELINE,
        name="Baseline",
        params=DEFAULT_PARAMS,
    ),
    ScenarioKey.HEATWAVE_EV_SURGE: ScenarioPreset(
        key=ScenarioKey.HEATWAVE_EV_SURGE,
        name="Heatwave + EV Surge",
        params=CityParams(
            ev_adoption_delta=0.25,
            heatwave_enabled=True,
            event_enabled=True,
        ),
    ),
    ScenarioKey.STORM_STRESS: ScenarioPreset(
        key=ScenarioKey.STORM_STRESS,
        name="Storm Stress",
        params=CityParams(
            ev_adoption_delta=0.05,
            storm_enabled=True,
            critical_priority_enabled=True,
        ),
    ),
    ScenarioKey.GREEN_UPGRADE: ScenarioPreset(
        key=ScenarioKey.GREEN_UPGRADE,
        name="Green Upgrade",
        params=CityParams(
            ev_adoption_delta=0.15,
            solar_delta=0.15,
            storage_mwh=3.0,
            demand_response_enabled=True,
        ),
    ),
}


def scenario_params(key: ScenarioKey, budget_m: float) -> CityParams:
    """Preset params carrying the caller's current budget cap."""
    return SCENARIOS[key].params.model_copy(update={"budget_m": budget_m})


def get_scenario(key: str) -> ScenarioPreset | None:
    try:
        return SCENARIOS.get(ScenarioKey(key))
    except ValueError:
        return None
