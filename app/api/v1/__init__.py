"""API v1 routes."""

from fastapi import APIRouter

from app.api.v1 import health, realtime
from app.api.v1.graphql import create_graphql_router
from app.core.config import settings

router = APIRouter()
router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(
    create_graphql_router(graphql_ide="graphiql" if settings.APP_ENV == "dev" else None),
    prefix="/graphql",
    tags=["graphql"],
)
router.include_router(realtime.router, tags=["realtime"])
