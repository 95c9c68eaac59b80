from fastapi import APIRouter

from gridtwin.schemas.api import BudgetResponse, SimulationRequest
from gridtwin.schemas.params import CityParams, DistrictOverrides, empty_overrides
from gridtwin.schemas.simulation import SimulationResult
from gridtwin.services.budget import compute_budget_used, count_interventions
from gridtwin.services.simulation import run_simulation

router = APIRouter(prefix="/simulation", tags=["simulation"])


@router.post("/run", response_model=SimulationResult)
async def simulate(req: SimulationRequest):
    """Run the 73-hour projection for an arbitrary scenario snapshot."""
    return run_simulation(req.params, req.overrides, req.live)


@router.post("/budget", response_model=BudgetResponse)
async def budget(params: CityParams, overrides: DistrictOverrides | None = None):
    overrides = overrides or empty_overrides()
    return BudgetResponse(
        budget_used_m=compute_budget_used(params, overrides),
        budget_m=params.budget_m,
        interventions_count=count_interventions(overrides),
    )
