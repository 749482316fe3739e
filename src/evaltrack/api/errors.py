from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from evaltrack.domain.errors import (
    BackendError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from evaltrack.domain.run import LifecycleError, TransitionResult
from evaltrack.utils.logging_config import LogFiles, Logger


def transition_or_404(
    result: TransitionResult,
    *,
    invalid_state: str,
    not_found: str = "Run not found",
) -> Dict[str, Any]:
    if result.ok:
        return result.run.to_dict()
    if result.error is LifecycleError.NOT_FOUND:
        raise HTTPException(status_code=404, detail=not_found)
    raise HTTPException(status_code=404, detail=invalid_state)


def _describe_validation(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "invalid request"


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def _validation(_request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def _request_validation(_request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"detail": _describe_validation(exc)})

    @app.exception_handler(NotFoundError)
    async def _not_found(_request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(InvalidStateError)
    async def _invalid_state(_request: Request, exc: InvalidStateError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(BackendError)
    async def _backend(request: Request, exc: BackendError):
        cause = exc.__cause__ or exc
        Logger.error(
            f"{request.method} {request.url.path} backend failure: {cause!r}",
            file=LogFiles.ERROR,
        )
        return JSONResponse(status_code=500, content={"detail": "storage backend failure"})
