"""FastAPI application factory."""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from babycare.api.routes import analysis
from babycare.insights.factory import get_ai_engine
from babycare.scheduler.jobs import build_scheduler


def create_app() -> FastAPI:
    """Build and return the FastAPI app."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Honour dependency overrides so tests never touch the real engine
        provider = app.dependency_overrides.get(get_ai_engine, get_ai_engine)
        engine = provider()
        scheduler = None
        if engine.gateway is not None:
            scheduler = build_scheduler(engine.gateway.cache)
            scheduler.start()
        yield
        if scheduler is not None:
            scheduler.shutdown(wait=False)

    app = FastAPI(
        title="Babycare Insights API",
        description="Sleep, routine and prediction analytics for baby-care logs",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(analysis.router, tags=["analysis"])

    return app


# Module-level app instance for uvicorn
app = create_app()
