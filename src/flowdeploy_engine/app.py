"""FastAPI application factory for FlowDeploy-Engine."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flowdeploy_engine.common.config import get_settings
from flowdeploy_engine.common.logging import setup_logging
from flowdeploy_engine.common.schemas import BreakerStatus, HealthResponse


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        from flowdeploy_engine.deps import get_db
        db = get_db()
        await db.init()
        await db.create_all()
        yield
        # Shutdown
        from flowdeploy_engine.deps import close_clients, get_deployment_facade
        await get_deployment_facade().drain()
        await close_clients()
        await db.close()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(version=settings.api_version)

    @app.get("/health/breakers", response_model=list[BreakerStatus])
    async def breakers():
        from flowdeploy_engine.deps import get_breakers
        return [BreakerStatus(**b) for b in get_breakers().snapshot()]

    # Mount routers
    from flowdeploy_engine.deployment.router import router as deployment_router

    prefix = settings.api_prefix
    app.include_router(deployment_router, prefix=prefix, tags=["deployment"])

    return app
