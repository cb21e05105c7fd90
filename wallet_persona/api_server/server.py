"""
FastAPI server: wallet analysis and persona scoring over HTTP.

The lifespan handler builds one PersonaPipeline (aggregator, wallet store,
reference statistics engine) from the environment and closes it on
shutdown. create_app() accepts a prebuilt pipeline instead, which the app
then does not own.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

from wallet_persona import __version__
from wallet_persona.analytics.pipeline import PersonaPipeline
from wallet_persona.api_server.routes import router as persona_router
from wallet_persona.persona_logging import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the pipeline unless one was injected; close what we built on shutdown."""
    owned = getattr(app.state, "pipeline", None) is None
    if owned:
        app.state.pipeline = PersonaPipeline.from_settings()
        logger.info("api_pipeline_started", database=app.state.pipeline.store.url.split("//")[-1])

    yield

    if owned:
        await app.state.pipeline.aclose()
        app.state.pipeline = None
        logger.info("api_pipeline_stopped")


def create_app(pipeline: PersonaPipeline | None = None) -> FastAPI:
    app = FastAPI(
        title="Wallet Persona API",
        description="Aggregates Ethereum wallet activity and scores it into behavioral personas.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline
    app.include_router(persona_router, prefix="/api", tags=["Persona"])

    @app.get("/")
    def root() -> dict[str, str]:
        """Liveness probe."""
        return {"message": "server is running"}

    @app.exception_handler(HTTPException)
    def http_exception_handler(request: Any, exc: HTTPException) -> JSONResponse:
        """Consistent JSON error response for HTTPException."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    return app


app = create_app()
