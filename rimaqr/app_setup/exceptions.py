"""
Gestionnaires d'exceptions.
- HTTPException: body JSON FastAPI standard {"detail": ...}.
- Erreurs métier: {"detail", "code", "retryable"} (+ "field" pour les erreurs de validation).
  ValidationError -> 422, InvalidTransitionError -> 409, DataAccessError -> 503, GatewayError -> 502.
"""
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from rimaqr.errors import (
    DataAccessError,
    DomainError,
    GatewayError,
    InvalidTransitionError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = (
    (ValidationError, 422),
    (InvalidTransitionError, 409),
    (DataAccessError, 503),
    (GatewayError, 502),
)


def status_for(exc: DomainError) -> int:
    for cls, status in STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return status
    return 400


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        status = status_for(exc)
        content = {"detail": exc.message, "code": exc.code.value, "retryable": exc.retryable}
        if isinstance(exc, ValidationError):
            content["field"] = exc.field
        if status >= 500:
            logger.warning("%s %s -> %s %s", request.method, request.url.path, status, exc)
        return JSONResponse(status_code=status, content=content)
