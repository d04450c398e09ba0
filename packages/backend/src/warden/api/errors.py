"""Exception handlers — WardenError → JSON error body.

Learn: the services raise domain failures (warden.errors) and know nothing
about HTTP. One handler renders all of them from the class attributes:

    {"detail": "<message>", "code": "<stable code>"}   status = exc.status_code

4xx are logged as warnings, 5xx as errors. Anything that is not a
WardenError becomes a 500 with the traceback logged.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from warden.errors import TokenFailure, WardenError

logger = structlog.get_logger()


def error_response(status_code: int, detail: str, code: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "code": code},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(WardenError)
    async def handle_warden_error(request: Request, exc: WardenError):
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            "api.request_failed",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            code=exc.code,
            message=exc.message,
        )
        headers = None
        if isinstance(exc, TokenFailure) and exc.status_code == 401:
            headers = {"WWW-Authenticate": "Bearer"}
        return error_response(exc.status_code, exc.message, exc.code, headers)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception(
            "api.unhandled_error",
            path=request.url.path,
            method=request.method,
        )
        return error_response(500, "Internal server error", "internal_error")
