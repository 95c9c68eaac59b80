from fastapi import APIRouter

from gridtwin.schemas.api import RecommendationRequest
from gridtwin.schemas.params import empty_overrides
from gridtwin.schemas.recommendation import RecommendationOutput
from gridtwin.services.recommendations import build_recommendations
from gridtwin.services.session import TwinSession

router = APIRouter(prefix="/recommendations", tags=["recommendations"])


@router.post("/", response_model=RecommendationOutput)
async def recommend(req: RecommendationRequest):
    """Rank counterfactual interventions for scenario B against pinned A."""
    # Request-scoped session so A, B and the candidate runs share one cache
    scratch = TwinSession()
    overrides_a = req.overrides_a or empty_overrides()
    overrides_b = req.overrides_b or empty_overrides()
    return build_recommendations(
        result_a=scratch.simulate(req.params_a, overrides_a),
        result_b=scratch.simulate(req.params_b, overrides_b),
        params_b=req.params_b,
        overrides_b=overrides_b,
        selected_hour=req.selected_hour,
        simulate=scratch.simulate,
    )
