"""FastAPI application entrypoint. No business logic; only wiring and middleware."""

from dotenv import load_dotenv

load_dotenv()

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from app.api.v1 import router as v1_router
from app.core.config import Settings, get_settings
from app.core.database import Store
from app.services.notifications import ChannelHub, Notifier

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )


def create_app(store: Store | None = None, hub: ChannelHub | None = None) -> FastAPI:
    """
    Build the application. The store and hub are injected (tests pass their own);
    by default the store is built from DATABASE_URL and opened for the app's lifetime.

    Configuration is process-wide: this factory, the token helpers and the GraphQL router
    all read the cached get_settings().
    """
    settings = get_settings()
    store = store or Store(settings.DATABASE_URL, echo=settings.DEBUG)
    hub = hub or ChannelHub(queue_size=settings.REALTIME_QUEUE_SIZE)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(settings)
        owns_store = not store.is_open
        store.open()
        if settings.AUTO_CREATE_SCHEMA:
            store.create_schema()
        logger.info("Voluntariado API started", extra={"environment": settings.APP_ENV})
        try:
            yield
        finally:
            if owns_store:
                store.close()

    app = FastAPI(
        title="Voluntariado API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.hub = hub
    app.state.notifier = Notifier(hub)

    origins = settings.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SESSION_SECRET.get_secret_value(),
        session_cookie=settings.SESSION_COOKIE_NAME,
        https_only=settings.APP_ENV == "prod",
    )

    app.include_router(v1_router, prefix=settings.API_V1_PREFIX)

    @app.get("/")
    def root() -> dict[str, str]:
        """Root route; minimal payload for discovery."""
        return {
            "message": "Voluntariado API",
            "graphql": f"{settings.API_V1_PREFIX}/graphql",
            "realtime": f"{settings.API_V1_PREFIX}/realtime",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    current = get_settings()
    uvicorn.run(app, host=current.HOST, port=current.PORT)
