"""Request ID middleware — one ID per request, carried through the logs.

Learn: the ID comes from the incoming X-Request-ID header (so a gateway's
trace id survives) or is generated. It is bound into structlog's
contextvars, so every log line the services write for this request
carries request_id, and it is echoed back in the response header.
"""

import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            client_ip=request.client.host if request.client else None,
        )

        response: Response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
