"""Maps service exceptions to HTTP responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from policyhub.services.errors import (
    DuplicateRuleError,
    NotFoundError,
    PolicyError,
    PolicyValidationError,
    ReferentialIntegrityError,
    TransportError,
)

logger: logging.Logger = logging.getLogger(__name__)


def _body(exc: Exception, **extra: object) -> dict[str, object]:
    return {"detail": str(exc), "type": type(exc).__name__, **extra}


def error_response(exc: PolicyError) -> JSONResponse:
    if isinstance(exc, PolicyValidationError):
        return JSONResponse(status_code=400, content=_body(exc, errors=exc.errors))
    if isinstance(exc, NotFoundError):
        return JSONResponse(status_code=404, content=_body(exc))
    if isinstance(exc, ReferentialIntegrityError):
        return JSONResponse(
            status_code=409,
            content=_body(exc, ruletype_id=exc.ruletype_id, rule_count=exc.rule_count),
        )
    if isinstance(exc, DuplicateRuleError):
        return JSONResponse(
            status_code=409, content=_body(exc, duplicate=exc.duplicate.to_dict())
        )
    if isinstance(exc, TransportError):
        return JSONResponse(status_code=502, content=_body(exc, status_code=exc.status_code))
    return JSONResponse(status_code=400, content=_body(exc))


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(PolicyError)
    async def _on_policy_error(request: Request, exc: PolicyError) -> JSONResponse:
        logger.info("%s %s -> %s: %s", request.method, request.url.path, type(exc).__name__, exc)
        return error_response(exc)

    @app.exception_handler(Exception)
    async def _on_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc), "type": type(exc).__name__},
        )
