"""FastAPI dashboard application."""

import os
from contextlib import asynccontextmanager

import logfire
import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration

from asset_pipeline.api import dashboard, health
from asset_pipeline.config import get_settings
from asset_pipeline.exceptions import PipelineError
from asset_pipeline.logging_config import setup_logfire


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure observability on startup."""
    settings = get_settings()

    setup_logfire(app)

    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            traces_sample_rate=settings.sentry_traces_sample_rate,
            environment=settings.env,
            integrations=[FastApiIntegration()],
        )

    logfire.info(
        "Dashboard startup complete",
        environment=settings.env,
        pipeline_config=settings.pipeline_config,
    )

    yield

    logfire.info("Dashboard shutdown complete")


app = FastAPI(
    title="Asset Pipeline Dashboard",
    description="Inspect the record store and trigger pipeline runs",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    """Surface pipeline failures to the caller without retrying."""
    logfire.error(
        "Pipeline request failed",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return JSONResponse(status_code=500, content={"ok": False, "error": str(exc)})


app.include_router(health.router, tags=["health"])
app.include_router(dashboard.router, tags=["dashboard"])


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "asset_pipeline.main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("ENV") == "local",
    )
