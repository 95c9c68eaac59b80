"""Time-shape helpers for the grid simulation.

All functions are pure in the hour index t (0-72). A day is mapped onto
[0, 1) so 0.75 is 18:00 local.
"""

import math

from gridtwin.schemas.params import CityParams

HOURS = list(range(73))
TWO_PI = math.pi * 2

_FNV_OFFSET = 2166136261
_FNV_PRIME = 16777619


def clamp(value: float, lo: float, hi: float) -> float:
    return min(hi, max(lo, value))


def sigmoid(x: float) -> float:
    return 1 / (1 + math.exp(-x))


def mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def day_frac(t: int) -> float:
    return (t % 24) / 24


def evening_peak_curve(t: int) -> float:
    """Gaussian bulge centred on 18:00, sigma 0.06 of a day."""
    d = day_frac(t)
    return math.exp(-((d - 0.75) ** 2) / (2 * 0.06 ** 2))


def temperature_factor(t: int, params: CityParams) -> float:
    d = day_frac(t)
    base = 1.0 + 0.1 * math.sin(TWO_PI * (d - 0.25))
    if params.heatwave_enabled:
        base *= 1.12
        base += 0.06 * math.exp(-((d - 0.65) ** 2) / (2 * 0.08 ** 2))
    return clamp(base, 0.95, 1.3)


def solar_curve(t: int, params: CityParams) -> float:
    solar = max(0.0, math.sin(math.pi * day_frac(t))) ** 1.5
    if params.storm_enabled:
        solar *= 0.55
    return clamp(solar, 0.0, 1.0)


def jitter(district_id: str, t: int) -> float:
    """Stable pseudo-random value in [0, 1] from an FNV-1a fold of "id:t"."""
    h = _FNV_OFFSET
    for ch in f"{district_id}:{t}":
        h ^= ord(ch)
        h = (h * _FNV_PRIME) & 0xFFFFFFFF
    return h / 0xFFFFFFFF
