from dataclasses import dataclass
from enum import Enum


class DistrictId(str, Enum):
    DOWNTOWN = "downtown"
    INDUSTRIAL = "industrial"
    UNIVERSITY = "university"
    MEDICAL = "medical"
    EASTSIDE = "eastside"
    NORTH = "north"
    SOUTH = "south"
    WATERFRONT = "waterfront"


@dataclass(frozen=True)
class Sensitivity:
    heat: float
    storm: float
    event: float


@dataclass(frozen=True)
class District:
    district_id: DistrictId
    name: str
    q: int  # axial hex coordinates
    r: int
    base_load_mw: float
    base_capacity_mw: float
    population: int
    ev_adoption: float  # fraction of households with an EV
    solar_penetration: float  # rooftop solar as fraction of base load
    criticality: float  # 0-1, biases overload probability
    sensitivity: Sensitivity


DISTRICTS = [
    District(
        district_id=DistrictId.DOWNTOWN,
        name="Downtown Core",
        q=0,
        r=0,
        base_load_mw=62.0,
        base_capacity_mw=110.0,
        population=38000,
        ev_adoption=0.14,
        solar_penetration=0.08,
        criticality=0.9,
        sensitivity=Sensitivity(heat=1.1, storm=0.9, event=1.0),
    ),
    District(
        district_id=DistrictId.INDUSTRIAL,
        name="Industrial Park",
        q=1,
        r=-1,
        base_load_mw=78.0,
        base_capacity_mw=125.0,
        population=12000,
        ev_adoption=0.06,
        solar_penetration=0.10,
        criticality=0.55,
        sensitivity=Sensitivity(heat=0.8, storm=1.0, event=0.2),
    ),
    District(
        district_id=DistrictId.UNIVERSITY,
        name="University District",
        q=-1,
        r=0,
        base_load_mw=44.0,
        base_capacity_mw=80.0,
        population=30000,
        ev_adoption=0.18,
        solar_penetration=0.16,
        criticality=0.5,
        sensitivity=Sensitivity(heat=1.0, storm=0.8, event=0.6),
    ),
    District(
        district_id=DistrictId.MEDICAL,
        name="Medical Center",
        q=0,
        r=-1,
        base_load_mw=51.0,
        base_capacity_mw=92.0,
        population=16000,
        ev_adoption=0.10,
        solar_penetration=0.07,
        criticality=1.0,
        sensitivity=Sensitivity(heat=1.2, storm=1.1, event=0.3),
    ),
    District(
        district_id=DistrictId.EASTSIDE,
        name="Eastside",
        q=1,
        r=0,
        base_load_mw=39.0,
        base_capacity_mw=70.0,
        population=46000,
        ev_adoption=0.12,
        solar_penetration=0.12,
        criticality=0.4,
        sensitivity=Sensitivity(heat=1.15, storm=0.9, event=0.3),
    ),
    District(
        district_id=DistrictId.NORTH,
        name="North Hills",
        q=-1,
        r=-1,
        base_load_mw=35.0,
        base_capacity_mw=66.0,
        population=42000,
        ev_adoption=0.20,
        solar_penetration=0.20,
        criticality=0.35,
        sensitivity=Sensitivity(heat=0.95, storm=0.8, event=0.2),
    ),
    District(
        district_id=DistrictId.SOUTH,
        name="South Valley",
        q=0,
        r=1,
        base_load_mw=41.0,
        base_capacity_mw=72.0,
        population=50000,
        ev_adoption=0.09,
        solar_penetration=0.11,
        criticality=0.45,
        sensitivity=Sensitivity(heat=1.25, storm=1.0, event=0.3),
    ),
    District(
        district_id=DistrictId.WATERFRONT,
        name="Waterfront",
        q=-1,
        r=1,
        base_load_mw=33.0,
        base_capacity_mw=60.0,
        population=22000,
        ev_adoption=0.16,
        solar_penetration=0.14,
        criticality=0.6,
        sensitivity=Sensitivity(heat=1.0, storm=1.4, event=0.5),
    ),
]

DISTRICT_MAP: dict[DistrictId, District] = {d.district_id: d for d in DISTRICTS}

# Districts hosting critical infrastructure (hospitals, central business feeders)
CRITICAL_DISTRICTS = frozenset({DistrictId.MEDICAL, DistrictId.DOWNTOWN})

# Feeder ties between neighbouring hexes, used by map renderers
EDGES: list[tuple[DistrictId, DistrictId]] = [
    (DistrictId.DOWNTOWN, DistrictId.MEDICAL),
    (DistrictId.DOWNTOWN, DistrictId.EASTSIDE),
    (DistrictId.DOWNTOWN, DistrictId.UNIVERSITY),
    (DistrictId.DOWNTOWN, DistrictId.SOUTH),
    (DistrictId.MEDICAL, DistrictId.INDUSTRIAL),
    (DistrictId.MEDICAL, DistrictId.NORTH),
    (DistrictId.INDUSTRIAL, DistrictId.EASTSIDE),
    (DistrictId.UNIVERSITY, DistrictId.NORTH),
    (DistrictId.UNIVERSITY, DistrictId.WATERFRONT),
    (DistrictId.SOUTH, DistrictId.WATERFRONT),
]


def get_district(district_id: str) -> District | None:
    try:
        return DISTRICT_MAP.get(DistrictId(district_id))
    except ValueError:
        return None


def is_critical(district_id: DistrictId) -> bool:
    return district_id in CRITICAL_DISTRICTS
