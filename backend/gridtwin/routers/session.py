from fastapi import APIRouter, HTTPException, Request
from pydantic import ValidationError

from gridtwin.city.districts import DistrictId, get_district
from gridtwin.city.scenarios import get_scenario
from gridtwin.schemas.api import (
    AmountRequest,
    ChangeResponse,
    ParamsUpdate,
    PinnedSummary,
    SessionState,
)
from gridtwin.services.briefing import ops_brief, roi_score
from gridtwin.services.interventions import ChangeOutcome, GlobalToggle
from gridtwin.services.live_store import LiveDataStore
from gridtwin.services.session import TwinSession

router = APIRouter(prefix="/session", tags=["session"])


def _session(request: Request) -> TwinSession:
    return request.app.state.session


def _live_store(request: Request) -> LiveDataStore:
    return request.app.state.live_store


def _district_or_404(district_id: str) -> DistrictId:
    district = get_district(district_id)
    if district is None:
        raise HTTPException(status_code=404, detail=f"Unknown district '{district_id}'")
    return district.district_id


def _state(session: TwinSession) -> SessionState:
    result_a = session.result_a()
    result_b = session.result_b()
    live = session.live_inputs
    pinned = session.pinned
    return SessionState(
        scenario=session.scenario_key.value,
        scenario_label=session.scenario_label,
        params=session.params,
        overrides=session.overrides,
        selected_hour=session.selected_hour,
        selected_district=session.selected_district,
        live_mode=session.live_mode,
        live_label=live.live_label if live else None,
        live_fetched_at=live.fetched_at if live else None,
        budget_used_m=session.budget_used,
        interventions_count=session.interventions_count,
        budget_warning=session.budget_warning,
        pinned=PinnedSummary(
            label=pinned.label,
            params=pinned.params,
            overrides=pinned.overrides,
            live_label=pinned.live_inputs.live_label if pinned.live_inputs else None,
        ),
        roi_score=round(roi_score(result_a, result_b, session.budget_used), 3),
        result=result_b,
        recommendations=session.recommendations(),
    )


def _change(session: TwinSession, outcome: ChangeOutcome) -> ChangeResponse:
    return ChangeResponse(
        applied=outcome.applied,
        warning=outcome.warning,
        budget_used_m=session.budget_used,
        params=outcome.params,
        overrides=outcome.overrides,
    )


@router.get("/", response_model=SessionState)
async def get_session_state(request: Request):
    return _state(_session(request))


@router.get("/brief")
async def get_ops_brief(request: Request):
    session = _session(request)
    mode = session.live_inputs.live_label if session.live_inputs else "Synthetic"
    text = ops_brief(
        session.result_b(),
        session.recommendations(),
        session.budget_used,
        session.params.budget_m,
        mode_label=mode,
    )
    return {"text": text}


@router.post("/scenario/{key}", response_model=SessionState)
async def apply_scenario(key: str, request: Request):
    preset = get_scenario(key)
    if preset is None:
        raise HTTPException(status_code=404, detail=f"Unknown scenario '{key}'")
    session = _session(request)
    session.apply_scenario(preset.key)
    return _state(session)


@router.post("/reset", response_model=SessionState)
async def reset_session(request: Request):
    session = _session(request)
    session.reset()
    return _state(session)


@router.post("/pin", response_model=PinnedSummary)
async def pin_as_a(request: Request):
    pinned = _session(request).pin_as_a()
    return PinnedSummary(
        label=pinned.label,
        params=pinned.params,
        overrides=pinned.overrides,
        live_label=pinned.live_inputs.live_label if pinned.live_inputs else None,
    )


@router.post("/hour/{hour}")
async def select_hour(hour: int, request: Request):
    return {"selected_hour": _session(request).select_hour(hour)}


@router.post("/select/{district_id}")
async def select_district(district_id: str, request: Request):
    did = _district_or_404(district_id)
    _session(request).select_district(did)
    return {"selected_district": did.value}


@router.patch("/params", response_model=ChangeResponse)
async def update_params(update: ParamsUpdate, request: Request):
    session = _session(request)
    changes = update.model_dump(exclude_none=True)
    try:
        session.update_params(**changes)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False))
    return _change(session, ChangeOutcome(params=session.params, overrides=session.overrides))


@router.post("/toggles/{toggle}", response_model=ChangeResponse)
async def toggle_flag(toggle: str, request: Request):
    try:
        flag = GlobalToggle(toggle)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown toggle '{toggle}'")
    session = _session(request)
    return _change(session, session.toggle(flag))


@router.post("/districts/{district_id}/storage", response_model=ChangeResponse)
async def add_storage(district_id: str, body: AmountRequest, request: Request):
    session = _session(request)
    return _change(session, session.add_storage(_district_or_404(district_id), body.delta))


@router.post("/districts/{district_id}/capacity", response_model=ChangeResponse)
async def add_capacity(district_id: str, body: AmountRequest, request: Request):
    session = _session(request)
    return _change(session, session.add_capacity(_district_or_404(district_id), body.delta))


@router.post("/districts/{district_id}/solar", response_model=ChangeResponse)
async def add_solar(district_id: str, body: AmountRequest, request: Request):
    session = _session(request)
    return _change(session, session.add_solar(_district_or_404(district_id), body.delta))


@router.post("/districts/{district_id}/dr", response_model=ChangeResponse)
async def toggle_district_dr(district_id: str, request: Request):
    session = _session(request)
    return _change(session, session.toggle_district_dr(_district_or_404(district_id)))


@router.post("/districts/{district_id}/clear", response_model=ChangeResponse)
async def clear_district(district_id: str, request: Request):
    session = _session(request)
    return _change(session, session.clear_district(_district_or_404(district_id)))


@router.post("/live/{mode}")
async def set_live_mode(mode: str, request: Request):
    """Switch scenario B between synthetic and live curves."""
    session = _session(request)
    if mode == "off":
        session.set_live_inputs(None)
        return {"live_mode": False, "warning": ""}
    if mode != "on":
        raise HTTPException(status_code=404, detail=f"Unknown live mode '{mode}'")

    store = _live_store(request)
    if store.bundle is None:
        await store.refresh()
    live = store.live_inputs(session.synthetic_result())
    session.set_live_inputs(live)
    if live is None:
        return {"live_mode": False, "warning": "Live feed unavailable, staying on synthetic curves"}
    return {"live_mode": True, "live_label": live.live_label, "fetched_at": live.fetched_at, "warning": ""}
