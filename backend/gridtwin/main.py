from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gridtwin.config import settings
from gridtwin.services.live_store import LiveDataStore
from gridtwin.services.session import TwinSession


@asynccontextmanager
async def lifespan(app: FastAPI):
    from gridtwin.tasks.scheduler import start_scheduler, stop_scheduler
    if settings.live_refresh_enabled:
        start_scheduler(app.state.live_store)
    yield
    stop_scheduler()


app = FastAPI(
    title="GridTwin",
    description="Urban power-grid digital twin: district load, overload risk and intervention ranking",
    version="0.1.0",
    lifespan=lifespan,
)

app.state.session = TwinSession()
app.state.live_store = LiveDataStore()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

from gridtwin.routers import city, live, recommendations, session, simulation  # noqa: E402

app.include_router(city.router, prefix="/api/v1")
app.include_router(simulation.router, prefix="/api/v1")
app.include_router(recommendations.router, prefix="/api/v1")
app.include_router(session.router, prefix="/api/v1")
app.include_router(live.router, prefix="/api/v1")


@app.get("/health")
async def health():
    return {"status": "ok"}
