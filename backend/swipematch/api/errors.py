"""Global error handlers ensuring request_id is included in JSON responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from swipematch.api.request_id import get_request_id
from swipematch.domain.matching.exceptions import StorageUnavailable

logger = logging.getLogger(__name__)


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        payload = {"detail": exc.detail, "request_id": get_request_id(request)}
        return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        payload = {"detail": "validation_error", "errors": exc.errors(), "request_id": get_request_id(request)}
        return JSONResponse(status_code=422, content=payload)

    @app.exception_handler(StorageUnavailable)
    async def storage_exc_handler(request: Request, exc: StorageUnavailable):  # type: ignore[override]
        logger.warning("storage unavailable", extra={"reason": exc.reason, "path": request.url.path})
        payload = {"detail": exc.reason, "request_id": get_request_id(request)}
        return JSONResponse(status_code=503, content=payload, headers={"Retry-After": "1"})
