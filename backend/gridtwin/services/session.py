"""Scenario session: the mutable state a twin operator works on.

A session holds the current scenario B (params + overrides + optional live
curves), the pinned comparison scenario A, the selected hour and a
memoization cache of simulation results. Params and overrides are value
snapshots; every mutation replaces them.
"""

import hashlib
import json
import logging
from dataclasses import dataclass

from gridtwin.city.districts import DISTRICTS, DistrictId
from gridtwin.city.scenarios import DEFAULT_PARAMS, SCENARIOS, ScenarioKey, scenario_params
from gridtwin.schemas.live import LiveInputs
from gridtwin.schemas.params import CityParams, DistrictOverrides, empty_overrides
from gridtwin.schemas.recommendation import RecommendationOutput
from gridtwin.schemas.simulation import SimulationResult
from gridtwin.services import interventions
from gridtwin.services.budget import compute_budget_used, count_interventions
from gridtwin.services.curves import clamp
from gridtwin.services.interventions import ChangeOutcome, GlobalToggle
from gridtwin.services.recommendations import build_recommendations
from gridtwin.services.simulation import run_simulation

logger = logging.getLogger(__name__)


def simulation_key(
    params: CityParams,
    overrides: DistrictOverrides,
    live: LiveInputs | None,
) -> str:
    """Canonical hash of everything that affects a simulation run.

    Empty overrides are dropped and districts sorted so that structurally
    equal inputs always produce the same key.
    """
    payload = {
        "params": params.model_dump(mode="json"),
        "overrides": {
            did.value: o.model_dump(mode="json")
            for did, o in sorted(overrides.districts.items(), key=lambda kv: kv[0].value)
            if not o.is_empty()
        },
        "live": [live.live_label, live.fetched_at.isoformat()] if live else None,
    }
    blob = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class PinnedScenario:
    label: str
    params: CityParams
    overrides: DistrictOverrides
    live_inputs: LiveInputs | None = None


class TwinSession:
    def __init__(self, params: CityParams = DEFAULT_PARAMS):
        self.scenario_key = ScenarioKey.BASELINE
        self.params = params
        self.overrides = empty_overrides()
        self.selected_hour = 0
        self.selected_district = DISTRICTS[0].district_id
        self.live_inputs: LiveInputs | None = None
        self.budget_warning = ""
        self.pinned = PinnedScenario(label="Baseline", params=params, overrides=empty_overrides())
        self._cache: dict[str, SimulationResult] = {}

    # --- simulation ---

    def simulate(
        self,
        params: CityParams,
        overrides: DistrictOverrides,
        live: LiveInputs | None = None,
    ) -> SimulationResult:
        key = simulation_key(params, overrides, live)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        result = run_simulation(params, overrides, live)
        self._cache[key] = result
        return result

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def result_b(self) -> SimulationResult:
        return self.simulate(self.params, self.overrides, self.live_inputs)

    def result_a(self) -> SimulationResult:
        return self.simulate(self.pinned.params, self.pinned.overrides, self.pinned.live_inputs)

    def synthetic_result(self) -> SimulationResult:
        return self.simulate(self.params, self.overrides, None)

    def recommendations(self) -> RecommendationOutput:
        return build_recommendations(
            result_a=self.result_a(),
            result_b=self.result_b(),
            params_b=self.params,
            overrides_b=self.overrides,
            selected_hour=self.selected_hour,
            live_b=self.live_inputs,
            simulate=self.simulate,
        )

    # --- accounting ---

    @property
    def budget_used(self) -> float:
        return compute_budget_used(self.params, self.overrides)

    @property
    def interventions_count(self) -> int:
        return count_interventions(self.overrides)

    @property
    def live_mode(self) -> bool:
        return self.live_inputs is not None

    @property
    def scenario_label(self) -> str:
        name = SCENARIOS[self.scenario_key].name
        return f"{name} + Live" if self.live_mode else name

    # --- mutations ---

    def _commit(self, outcome: ChangeOutcome) -> ChangeOutcome:
        self.params = outcome.params
        self.overrides = outcome.overrides
        self.budget_warning = outcome.warning
        return outcome

    def apply_scenario(self, key: ScenarioKey) -> None:
        self.scenario_key = key
        self.params = scenario_params(key, self.params.budget_m)
        self.overrides = empty_overrides()
        self.budget_warning = ""

    def reset(self) -> None:
        self.scenario_key = ScenarioKey.BASELINE
        self.params = DEFAULT_PARAMS
        self.overrides = empty_overrides()
        self.selected_hour = 0
        self.selected_district = DISTRICTS[0].district_id
        self.budget_warning = ""

    def pin_as_a(self) -> PinnedScenario:
        self.pinned = PinnedScenario(
            label=f"{self.scenario_label} (Pinned)",
            params=self.params,
            overrides=self.overrides,
            live_inputs=self.live_inputs,
        )
        return self.pinned

    def select_hour(self, hour: int) -> int:
        self.selected_hour = int(clamp(hour, 0, 72))
        return self.selected_hour

    def select_district(self, district_id: DistrictId) -> None:
        self.selected_district = district_id

    def update_params(self, **changes) -> CityParams:
        """Set continuous controls (deltas, pooled storage, budget cap).

        Values are validated through the model, so an out-of-range value
        raises pydantic.ValidationError and leaves the snapshot untouched.
        """
        allowed = {"ev_adoption_delta", "solar_delta", "storage_mwh", "budget_m"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Not a continuous control: {', '.join(sorted(unknown))}")
        self.params = CityParams(**{**self.params.model_dump(), **changes})
        return self.params

    def toggle(self, toggle: GlobalToggle) -> ChangeOutcome:
        return self._commit(interventions.toggle_global_flag(self.params, self.overrides, toggle))

    def add_storage(self, district_id: DistrictId, delta_mwh: float) -> ChangeOutcome:
        return self._commit(
            interventions.add_district_storage(self.params, self.overrides, district_id, delta_mwh)
        )

    def add_capacity(self, district_id: DistrictId, delta_mw: float) -> ChangeOutcome:
        return self._commit(
            interventions.add_district_capacity(self.params, self.overrides, district_id, delta_mw)
        )

    def add_solar(self, district_id: DistrictId, delta: float) -> ChangeOutcome:
        return self._commit(
            interventions.add_district_solar(self.params, self.overrides, district_id, delta)
        )

    def toggle_district_dr(self, district_id: DistrictId) -> ChangeOutcome:
        return self._commit(
            interventions.toggle_district_dr(self.params, self.overrides, district_id)
        )

    def clear_district(self, district_id: DistrictId) -> ChangeOutcome:
        return self._commit(
            interventions.clear_district_override(self.params, self.overrides, district_id)
        )

    def set_live_inputs(self, live: LiveInputs | None) -> None:
        self.live_inputs = live
        logger.info("Live mode %s", f"on ({live.live_label})" if live else "off")
