from fastapi import APIRouter, Request

from gridtwin.schemas.live import BasicSnapshot, LiveBundle
from gridtwin.services.live_store import LiveDataStore

router = APIRouter(prefix="/live", tags=["live"])


def _live_store(request: Request) -> LiveDataStore:
    return request.app.state.live_store


@router.get("/bundle", response_model=LiveBundle)
async def get_bundle(request: Request):
    """Latest ERCOT bundle, pulled on demand if nothing has been fetched yet."""
    store = _live_store(request)
    if store.bundle is None:
        return await store.refresh()
    return store.bundle


@router.post("/refresh", response_model=LiveBundle)
async def refresh_bundle(request: Request):
    return await _live_store(request).refresh()


@router.get("/basic", response_model=BasicSnapshot)
async def get_basic(request: Request):
    return await _live_store(request).client.fetch_basic_snapshot()


@router.get("/reports")
async def list_reports(request: Request):
    """Discovered public reports, trimmed to id/title/description."""
    reports = await _live_store(request).client.list_public_reports()
    sanitized = [
        {
            "report_id": r.get("reportId", r.get("id")),
            "title": r.get("title", r.get("name")),
            "description": r.get("description", r.get("shortDescription")),
        }
        for r in reports[:300]
    ]
    return {"count": len(sanitized), "reports": sanitized}
