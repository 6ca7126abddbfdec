# jobmatch/api/errors.py
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from jobmatch.core.errors import (
    AuthorizationError, ExtractionError, MatchingError, NotFoundError,
    QueueExhaustedError, StoreError, ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_CODES: dict[type, int] = {
    ValidationError: 400,
    AuthorizationError: 403,
    NotFoundError: 404,
    QueueExhaustedError: 409,
    ExtractionError: 502,
    StoreError: 503,
}


def _body(error: str, detail) -> dict:
    return {"success": False, "error": error, "detail": detail}


def status_for(exc: MatchingError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return 500


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(MatchingError)
    async def matching_error_handler(request: Request, exc: MatchingError):
        code = status_for(exc)
        if code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=code, content=_body(type(exc).__name__, str(exc)))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        # malformed parameters share the ValidationError contract
        errors = [
            {"loc": list(e.get("loc", ())), "msg": e.get("msg", "")}
            for e in exc.errors()
        ]
        return JSONResponse(status_code=400, content=_body("ValidationError", errors))
