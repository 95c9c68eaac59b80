"""Normalize an external grid-operator bundle into 73-point simulation curves.

Raw timestamped points are bucketed by hour (duplicates averaged) and
forward-filled. The external demand curve is scaled so its peak matches the
synthetic city peak, which keeps live curves on the same magnitude as the
district model they are distributed over.
"""

import math
from datetime import datetime

from gridtwin.config import settings
from gridtwin.schemas.live import BasicSnapshot, LiveBundle, LiveInputs, RenewablesCurve
from gridtwin.schemas.simulation import SimulationResult
from gridtwin.services.curves import clamp

HORIZON = 73
FALLBACK_SYSTEM_DEMAND_MW = 45000.0
FALLBACK_PRICE = 30.0
SEED_REFERENCE_DEMAND_MW = 72000.0


def fill_to_hours(values: list[float], fallback: float = 0.0) -> list[float]:
    """Truncate or pad (repeating the last value) to exactly HORIZON points."""
    if len(values) >= HORIZON:
        return values[:HORIZON]
    if not values:
        return [fallback] * HORIZON
    out = list(values)
    while len(out) < HORIZON:
        out.append(out[-1])
    return out


def _hour_slot(ts: datetime) -> int:
    return math.floor(ts.timestamp() / 3600)


def to_hourly_curve(points: list[tuple[datetime, float]], start: datetime) -> list[float | None]:
    by_hour: dict[int, list[float]] = {}
    for ts, value in points:
        by_hour.setdefault(_hour_slot(ts), []).append(value)

    start_slot = _hour_slot(start)
    curve: list[float | None] = []
    for i in range(HORIZON):
        values = by_hour.get(start_slot + i)
        curve.append(sum(values) / len(values) if values else None)
    return curve


def forward_fill(curve: list[float | None], fallback: float) -> list[float]:
    out: list[float] = []
    for i, v in enumerate(curve):
        if v is not None and math.isfinite(v):
            out.append(v)
        else:
            out.append(out[i - 1] if i > 0 else fallback)
    return out


def _price_curve(bundle: LiveBundle, start: datetime) -> list[float] | None:
    if not bundle.prices or not bundle.prices.points:
        return None
    points = [
        (p.timestamp, p.price) for p in bundle.prices.points
        if p.settlement_point == bundle.load_zone
    ]
    if not points:
        return None
    return forward_fill(to_hourly_curve(points, start), FALLBACK_PRICE)


def to_live_inputs(
    bundle: LiveBundle,
    synthetic: SimulationResult,
    label: str | None = None,
) -> LiveInputs | None:
    """Build live curves from a fetched bundle; None means stay fully synthetic."""
    if not bundle.forecast_72h or not bundle.forecast_72h.points:
        return None

    start = bundle.forecast_72h.points[0].timestamp
    realtime = bundle.realtime
    system_demand = forward_fill(
        to_hourly_curve([(p.timestamp, p.demand_mw) for p in bundle.forecast_72h.points], start),
        realtime.system_demand_mw if realtime else FALLBACK_SYSTEM_DEMAND_MW,
    )

    synthetic_peak = max(synthetic.city.load_mw)
    scale = synthetic_peak / max(max(system_demand), 1.0)
    demand = fill_to_hours([max(1.0, v * scale) for v in system_demand])

    if bundle.outages_72h and bundle.outages_72h.points:
        outaged = forward_fill(
            to_hourly_curve([(p.timestamp, p.outaged_mw) for p in bundle.outages_72h.points], start),
            0.0,
        )
    else:
        outaged = [0.0] * HORIZON

    realtime_cap = realtime.system_capacity_mw if realtime else 0.0
    if realtime_cap > 0:
        base_cap = realtime_cap * scale * 1.02
    else:
        base_cap = max(demand) / 0.78

    capacity = []
    for i, d in enumerate(demand):
        from_outage = base_cap - outaged[i] * scale * 0.18
        capacity.append(max(1.0, from_outage if math.isfinite(from_outage) else d / 0.78))
    capacity = fill_to_hours(capacity)

    wind_now = realtime.wind_mw if realtime else 0.0
    solar_now = realtime.solar_mw if realtime else 0.0
    wind = fill_to_hours([wind_now * scale] * HORIZON)
    solar = fill_to_hours([
        max(0.0, solar_now * scale * (0.4 + max(0.0, math.sin(math.pi * (i % 24) / 24)) ** 1.4))
        for i in range(HORIZON)
    ])

    carbon = fill_to_hours([
        clamp(380 - 140 * (solar[i] / max(1.0, load) + wind[i] / max(1.0, load)), 180, 520)
        for i, load in enumerate(demand)
    ])

    prices = _price_curve(bundle, start)
    if prices:
        lo, hi = min(prices), max(prices)
        cost = [clamp(0.75 + (p - lo) / max(1.0, hi - lo) * 1.45, 0.75, 2.2) for p in prices]
    else:
        cost = [
            clamp(1 + 0.55 * (demand[i] / max(1.0, capacity[i])) ** 2, 0.75, 2.2)
            for i in range(HORIZON)
        ]

    return LiveInputs(
        live_label=label or settings.live_label,
        fetched_at=bundle.fetched_at,
        demand_curve_mw=demand,
        capacity_curve_mw=capacity,
        renewables=RenewablesCurve(wind_mw=wind, solar_mw=solar),
        carbon_intensity_curve=carbon,
        cost_index_curve=fill_to_hours(cost),
    )


def build_seed_inputs(seed: BasicSnapshot, synthetic: SimulationResult) -> LiveInputs:
    """Derive live curves from a single realtime reading by reshaping the synthetic run."""
    share = seed.renewables_share
    if share is None:
        share = (seed.wind_mw + seed.solar_mw) / max(1.0, seed.system_demand_mw)
    demand_scale = clamp(seed.system_demand_mw / SEED_REFERENCE_DEMAND_MW, 0.7, 1.4)
    carbon_seed = clamp(420 - 260 * share, 180, 520)

    return LiveInputs(
        live_label="Austin (proxy: ERCOT system seed)",
        fetched_at=seed.timestamp,
        demand_curve_mw=[v * demand_scale for v in synthetic.city.load_mw],
        capacity_curve_mw=[v * demand_scale * 1.02 for v in synthetic.city.cap_mw],
        renewables=RenewablesCurve(
            wind_mw=[seed.wind_mw * demand_scale] * HORIZON,
            solar_mw=[seed.solar_mw * demand_scale] * HORIZON,
        ),
        carbon_intensity_curve=[carbon_seed] * HORIZON,
        cost_index_curve=list(synthetic.city.cost_index),
    )
