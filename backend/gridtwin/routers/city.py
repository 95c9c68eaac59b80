from fastapi import APIRouter

from gridtwin.city.districts import DISTRICTS, EDGES, is_critical
from gridtwin.city.scenarios import SCENARIOS

router = APIRouter(prefix="/city", tags=["city"])


@router.get("/districts/")
async def list_districts():
    """District catalog with hex coordinates and feeder ties."""
    return {
        "districts": [
            {
                "district_id": d.district_id.value,
                "name": d.name,
                "q": d.q,
                "r": d.r,
                "base_load_mw": d.base_load_mw,
                "base_capacity_mw": d.base_capacity_mw,
                "population": d.population,
                "ev_adoption": d.ev_adoption,
                "solar_penetration": d.solar_penetration,
                "criticality": d.criticality,
                "critical_infrastructure": is_critical(d.district_id),
                "sensitivity": {
                    "heat": d.sensitivity.heat,
                    "storm": d.sensitivity.storm,
                    "event": d.sensitivity.event,
                },
            }
            for d in DISTRICTS
        ],
        "edges": [[a.value, b.value] for a, b in EDGES],
    }


@router.get("/scenarios/")
async def list_scenarios():
    return [
        {"key": s.key.value, "name": s.name, "params": s.params.model_dump()}
        for s in SCENARIOS.values()
    ]
