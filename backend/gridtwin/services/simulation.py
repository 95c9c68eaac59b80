"""District load / capacity / overload-risk simulation over a 73-hour horizon.

Per hour and district, load is composed additively:
  base + EV + AC + event - solar - storage shave
Capacity is de-rated by storms and lifted by microgrids and transformer boosts.
Stress = load / capacity; overload probability is a sigmoid of the stress
margin above 0.85 plus a criticality bias.

City-level series and the scenario scalars (peak, overload zones, alert
timeline, resilience score) are derived from the full series. When live
inputs are supplied the district series are scaled hour by hour by the ratio
of the live curves to an unmitigated run with the same stressors, so the live
curves set the envelope and interventions still move load and capacity.
"""

import math

from gridtwin.city.districts import DISTRICTS, District, DistrictId, is_critical
from gridtwin.schemas.live import LiveInputs
from gridtwin.schemas.params import CityParams, DistrictOverride, DistrictOverrides, empty_overrides
from gridtwin.schemas.simulation import (
    AlertPoint,
    CitySeries,
    LoadComponents,
    PeakSummary,
    PerDistrictSeries,
    RiskEntry,
    SimulationResult,
)
from gridtwin.services.curves import (
    HOURS,
    TWO_PI,
    clamp,
    day_frac,
    evening_peak_curve,
    jitter,
    mean,
    sigmoid,
    solar_curve,
    temperature_factor,
)

# Storage discharges only across the evening bulge
STORAGE_ACTIVATION_PEAK = 0.55
STORAGE_DISCHARGE_MW_PER_MWH = 6.0
LOCAL_STORAGE_FACTOR = 0.2
GLOBAL_STORAGE_FACTOR = 0.95

CRITICAL_WEIGHT = 1.25
MICROGRID_CAPACITY_MW = 18.0


def _base_load(d: District, t: int, params: CityParams) -> float:
    base = d.base_load_mw * (
        0.92 + 0.1 * math.sin(TWO_PI * (day_frac(t) - 0.2)) + 0.06 * evening_peak_curve(t)
    )
    return base * 1.02 if params.storm_enabled else base


def _ev_load(d: District, t: int, params: CityParams, local_dr: bool) -> float:
    ev = clamp(d.ev_adoption + params.ev_adoption_delta, 0, 0.9)
    base_mw = ev * d.population / 1000 * 0.22
    peak = evening_peak_curve(t)
    shaped = base_mw * (0.35 + 0.95 * peak)
    if params.demand_response_enabled or local_dr:
        shaped *= 1 - 0.18 * peak
    return shaped


def _ac_load(d: District, t: int, params: CityParams) -> float:
    return d.base_load_mw * 0.18 * max(0.0, temperature_factor(t, params) - 0.92) * d.sensitivity.heat


def _event_spike(d: District, t: int, params: CityParams) -> float:
    h = t % 24
    if params.event_enabled and d.district_id == DistrictId.DOWNTOWN and 18 <= h <= 22:
        return 22 * d.sensitivity.event
    return 0.0


def _effective_capacity(d: District, t: int, params: CityParams, cap_boost_mw: float) -> float:
    cap = d.base_capacity_mw
    if params.storm_enabled:
        cap *= 0.78 if d.district_id == DistrictId.WATERFRONT else 0.9
        cap *= 1 - 0.05 * jitter(d.district_id.value, t)
    if params.microgrid_enabled and is_critical(d.district_id):
        cap += MICROGRID_CAPACITY_MW
    cap += cap_boost_mw
    return max(1.0, cap)


def _priority_weight(d: District, params: CityParams, default: float) -> float:
    if params.critical_priority_enabled and is_critical(d.district_id):
        return CRITICAL_WEIGHT
    return default


def global_storage_shares(params: CityParams, overrides: DistrictOverrides) -> dict[DistrictId, float]:
    """Split of the city storage pool among districts without local storage."""
    eligible = [d for d in DISTRICTS if not overrides.get(d.district_id).storage_mwh > 0]
    weights = {d.district_id: _priority_weight(d, params, 0.85) for d in eligible}
    total = sum(weights.values()) or 1.0
    shares = {d.district_id: 0.0 for d in DISTRICTS}
    for did, w in weights.items():
        shares[did] = w / total
    return shares


def _storage_shave(
    d: District,
    t: int,
    params: CityParams,
    override: DistrictOverride,
    shares: dict[DistrictId, float],
) -> float:
    peak = evening_peak_curve(t)
    if peak <= STORAGE_ACTIVATION_PEAK:
        return 0.0

    if override.storage_mwh > 0:
        weight = _priority_weight(d, params, 1.0)
        return override.storage_mwh * STORAGE_DISCHARGE_MW_PER_MWH * peak * weight * LOCAL_STORAGE_FACTOR

    if params.storage_mwh <= 0:
        return 0.0
    return params.storage_mwh * STORAGE_DISCHARGE_MW_PER_MWH * peak * shares[d.district_id] * GLOBAL_STORAGE_FACTOR


def overload_probability(stress: float, criticality: float) -> float:
    return clamp(sigmoid((stress - 0.85) * 8) + 0.05 * criticality, 0, 1)


def carbon_intensity(solar_mw: float, load_mw: float, params: CityParams) -> float:
    ci = 380 - 140 * (solar_mw / max(1.0, load_mw))
    if params.storm_enabled:
        ci += 30
    if params.heatwave_enabled:
        ci += 15
    return clamp(ci, 180, 520)


def cost_index(
    load_mw: float,
    cap_mw: float,
    solar_mw: float,
    t: int,
    dr_coverage: float,
) -> float:
    peak_premium = 0.55 * (load_mw / max(1.0, cap_mw)) ** 2
    dr_discount = -0.1 * evening_peak_curve(t) * dr_coverage
    solar_discount = -0.08 * (solar_mw / max(1.0, load_mw))
    return clamp(1 + peak_premium + dr_discount + solar_discount, 0.75, 2.2)


def _district_rows(
    params: CityParams,
    overrides: DistrictOverrides,
    shares: dict[DistrictId, float],
    t: int,
) -> list[tuple[District, float, float, LoadComponents]]:
    rows = []
    for d in DISTRICTS:
        o = overrides.get(d.district_id)

        base_mw = _base_load(d, t, params)
        ev_mw = _ev_load(d, t, params, o.dr_enabled)
        ac_mw = _ac_load(d, t, params)
        event_mw = _event_spike(d, t, params)

        solar_pen = clamp(d.solar_penetration + params.solar_delta + o.solar_boost, 0, 0.85)
        solar_mw = solar_pen * d.base_load_mw * 0.55 * solar_curve(t, params)

        shave_mw = _storage_shave(d, t, params, o, shares)
        cap_mw = _effective_capacity(d, t, params, o.cap_boost_mw)
        load_mw = max(0.0, base_mw + ev_mw + ac_mw + event_mw - solar_mw - shave_mw)

        rows.append((d, load_mw, cap_mw, LoadComponents(
            base_mw=base_mw,
            ev_mw=ev_mw,
            ac_mw=ac_mw,
            event_mw=event_mw,
            solar_mw=solar_mw,
            storage_shave_mw=shave_mw,
            cap_mw=cap_mw,
        )))
    return rows


def _without_interventions(params: CityParams) -> CityParams:
    """Same stressors with every mitigation lever reset."""
    return params.model_copy(update={
        "solar_delta": 0.0,
        "storage_mwh": 0.0,
        "microgrid_enabled": False,
        "demand_response_enabled": False,
    })


def _live_ratios(params: CityParams, live: LiveInputs) -> list[tuple[float, float]]:
    """Per-hour (load, capacity) scale factors mapping the unmitigated run onto the live curves."""
    bare = _without_interventions(params)
    overrides = empty_overrides()
    shares = global_storage_shares(bare, overrides)
    ratios = []
    for t in HOURS:
        rows = _district_rows(bare, overrides, shares, t)
        load_total = sum(row[1] for row in rows)
        cap_total = sum(row[2] for row in rows)
        ratios.append((
            live.demand_curve_mw[t] / max(1.0, load_total),
            live.capacity_curve_mw[t] / max(1.0, cap_total),
        ))
    return ratios


def run_simulation(
    params: CityParams,
    overrides: DistrictOverrides | None = None,
    live: LiveInputs | None = None,
) -> SimulationResult:
    overrides = overrides if overrides is not None else empty_overrides()

    per_district = {d.district_id: PerDistrictSeries() for d in DISTRICTS}
    components: dict[DistrictId, list[LoadComponents]] = {d.district_id: [] for d in DISTRICTS}

    city_load: list[float] = []
    city_cap: list[float] = []
    total_solar: list[float] = []
    carbon: list[float] = []
    cost: list[float] = []

    shares = global_storage_shares(params, overrides)
    ratios = _live_ratios(params, live) if live is not None else None
    local_dr_count = sum(1 for d in DISTRICTS if overrides.get(d.district_id).dr_enabled)

    for t in HOURS:
        hour_rows = _district_rows(params, overrides, shares, t)
        if ratios is not None:
            hour_rows = _rescale_to_live(hour_rows, *ratios[t])

        load_sum = 0.0
        cap_sum = 0.0
        solar_sum = 0.0
        for d, load_mw, cap_mw, comp in hour_rows:
            stress = load_mw / cap_mw
            series = per_district[d.district_id]
            series.load_mw.append(load_mw)
            series.cap_mw.append(cap_mw)
            series.stress.append(stress)
            series.prob.append(overload_probability(stress, d.criticality))
            series.solar_mw.append(comp.solar_mw)
            components[d.district_id].append(comp)

            load_sum += load_mw
            cap_sum += cap_mw
            solar_sum += comp.solar_mw

        city_load.append(load_sum)
        city_cap.append(cap_sum)

        if live is not None:
            total_solar.append(live.renewables.solar_mw[t])
            carbon.append(clamp(live.carbon_intensity_curve[t], 180, 520))
            cost.append(clamp(live.cost_index_curve[t], 0.75, 2.2))
            continue

        total_solar.append(solar_sum)
        carbon.append(carbon_intensity(solar_sum, load_sum, params))
        dr_coverage = 1.0 if params.demand_response_enabled else local_dr_count / len(DISTRICTS)
        cost.append(cost_index(load_sum, cap_sum, solar_sum, t, dr_coverage))

    peak_load = max(city_load)
    peak_hour = city_load.index(peak_load)

    overload_zones = [
        d.district_id for d in DISTRICTS
        if per_district[d.district_id].stress[peak_hour] > 1.0
    ]

    ranked = sorted(
        (
            RiskEntry(
                district_id=d.district_id,
                stress=per_district[d.district_id].stress[peak_hour],
                prob=per_district[d.district_id].prob[peak_hour],
            )
            for d in DISTRICTS
        ),
        key=lambda r: r.prob,
        reverse=True,
    )

    return SimulationResult(
        hours=list(HOURS),
        per_district=per_district,
        per_district_components=components,
        city=CitySeries(
            load_mw=city_load,
            cap_mw=city_cap,
            total_solar_mw=total_solar,
            carbon_intensity=carbon,
            cost_index=cost,
            peak_hour=peak_hour,
            peak_load=peak_load,
        ),
        alert_hours=_alert_timeline(per_district),
        summary_at_peak=PeakSummary(
            hour=peak_hour,
            overload_zones=overload_zones,
            top_risk=ranked[:3],
        ),
        resilience_score=_resilience_score(params, per_district, peak_hour, len(overload_zones)),
        live_label=live.live_label if live is not None else None,
    )


def _rescale_to_live(hour_rows: list, load_ratio: float, cap_ratio: float) -> list:
    """Scale district load and capacity onto the live envelope for one hour."""
    rescaled = []
    for d, load_mw, cap_mw, comp in hour_rows:
        cap_live = max(1.0, cap_mw * cap_ratio)
        rescaled.append((
            d,
            max(0.0, load_mw * load_ratio),
            cap_live,
            comp.model_copy(update={"cap_mw": cap_live}),
        ))
    return rescaled


def _alert_timeline(per_district: dict[DistrictId, PerDistrictSeries]) -> list[AlertPoint]:
    """Worst district per hour, flagged crit/warn. Quiet hours are omitted."""
    alerts = []
    for t in HOURS:
        worst = max(
            DISTRICTS,
            key=lambda d: per_district[d.district_id].prob[t],
        )
        prob = per_district[worst.district_id].prob[t]
        stress = per_district[worst.district_id].stress[t]
        if prob > 0.8 or stress > 1.0:
            level = "crit"
        elif prob > 0.65:
            level = "warn"
        else:
            continue
        alerts.append(AlertPoint(
            hour=t,
            level=level,
            district_id=worst.district_id,
            prob=prob,
            stress=stress,
        ))
    return alerts


def _resilience_score(
    params: CityParams,
    per_district: dict[DistrictId, PerDistrictSeries],
    peak_hour: int,
    overload_count: int,
) -> int:
    avg_stress = mean([
        clamp(per_district[d.district_id].stress[peak_hour], 0, 1.2) for d in DISTRICTS
    ])
    score = (
        100
        - 55 * avg_stress
        - 12 * overload_count
        + 6 * params.storage_mwh
        + (6 if params.microgrid_enabled else 0)
        + (4 if params.demand_response_enabled else 0)
    )
    return round(clamp(score, 0, 100))
