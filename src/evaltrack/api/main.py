"""
evaltrack API - FastAPI backend for run capture, scoring and issue reporting
"""

from __future__ import annotations

import time
from typing import Optional

from dotenv import find_dotenv, load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from evaltrack.api.dependencies import build_services
from evaltrack.api.errors import install_error_handlers
from evaltrack.application.ports.storage_port import StoragePort
from evaltrack.settings import Settings
from evaltrack.utils.logging_config import LogFiles, Logger, clear_trace_id, set_trace_id

from .routes import annotations, artifacts, capture, issues, planned_fixes, runs

# Load local .env so EVALTRACK_* settings apply in API mode.
load_dotenv(find_dotenv(usecwd=True), override=False)

VERSION = "0.1.0"


def create_app(
    settings: Optional[Settings] = None,
    *,
    storage: Optional[StoragePort] = None,
) -> FastAPI:
    app = FastAPI(
        title="evaltrack API",
        description="Capture, score and annotate AI-generation evaluation runs",
        version=VERSION,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(app)

    @app.middleware("http")
    async def _trace_requests(request: Request, call_next):
        trace_id = set_trace_id(request.headers.get("x-trace-id"))
        started = time.monotonic()
        try:
            response = await call_next(request)
            elapsed_ms = int((time.monotonic() - started) * 1000)
            Logger.info(
                f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms}ms)",
                file=LogFiles.API,
            )
            response.headers["x-trace-id"] = trace_id
            return response
        finally:
            clear_trace_id()

    @app.get("/health")
    async def health_check():
        services = getattr(app.state, "services", None)
        backend = services.storage.backend_name if services else None
        return {"status": "healthy", "version": VERSION, "backend": backend}

    app.include_router(runs.router, prefix="/api", tags=["Runs"])
    app.include_router(capture.router, prefix="/api", tags=["Capture & Scoring"])
    app.include_router(annotations.router, prefix="/api", tags=["Annotations"])
    app.include_router(planned_fixes.router, prefix="/api", tags=["Planned Fixes"])
    app.include_router(issues.router, prefix="/api", tags=["Issues"])
    app.include_router(artifacts.router, prefix="/api", tags=["Artifacts"])

    @app.on_event("startup")
    async def _startup_services():
        resolved = settings or Settings.from_env()
        app.state.services = build_services(resolved, storage=storage)
        logger.info(f"evaltrack API started (backend={app.state.services.storage.backend_name})")

    @app.on_event("shutdown")
    async def _shutdown_services():
        services = getattr(app.state, "services", None)
        if services is not None:
            services.close()
            app.state.services = None
        Logger.close()
        logger.info("evaltrack API stopped")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
