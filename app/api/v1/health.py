"""Health check endpoint with store connectivity and realtime connection count."""

from fastapi import APIRouter, Request
from starlette.concurrency import run_in_threadpool

from app.schemas.health import HealthResponse

router = APIRouter()


@router.get("/", response_model=HealthResponse)
async def get_health(request: Request) -> HealthResponse:
    """
    Return service health status and database connectivity.
    Used by load balancers and monitoring.
    """
    store = request.app.state.store
    connected = await run_in_threadpool(store.ping)

    return HealthResponse(
        status="ok",
        environment=request.app.state.settings.APP_ENV,
        database="connected" if connected else "disconnected",
        realtime_connections=request.app.state.hub.connection_count,
    )
