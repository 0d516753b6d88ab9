"""Request middleware for the mock control server."""

import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from entitlement_engine.logging_config import bound_context, get_logger

logger = get_logger(__name__)

CONTROL_PREFIX = "mock"


def control_operation(path: str) -> Optional[str]:
    """Control operation named by a request path, e.g. ``time/advance`` for ``/mock/time/advance``."""
    parts = [part for part in path.split("/") if part]
    if len(parts) > 1 and parts[0] == CONTROL_PREFIX:
        return "/".join(parts[1:])
    return None


class ControlRequestMiddleware(BaseHTTPMiddleware):
    """Logs every request and correlates the logs it produces.

    Each request gets a ``request_id`` and, for ``/mock`` routes, a
    ``control_operation`` bound to the logging context. Responses carry
    ``X-Request-ID`` and, once the runtime is up, ``X-Virtual-Time`` (the mock
    engine's clock in epoch milliseconds) so clients can follow time travel.
    """

    def __init__(self, app: ASGIApp, include_request_details: bool = True):
        super().__init__(app)
        self.include_request_details = include_request_details

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        context = {"request_id": request_id}
        operation = control_operation(request.url.path)
        if operation is not None:
            context["control_operation"] = operation

        with bound_context(**context):
            details = {}
            if self.include_request_details:
                details = {
                    "query_params": str(request.query_params) if request.query_params else None,
                    "client_host": request.client.host if request.client else "unknown",
                    "user_agent": request.headers.get("user-agent"),
                }
            logger.info("request_started", method=request.method, path=request.url.path, **details)

            start_time = time.perf_counter()
            try:
                response = await call_next(request)
            except Exception as exc:
                logger.error(
                    "request_failed",
                    method=request.method,
                    path=request.url.path,
                    duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
                    error=str(exc),
                    error_type=type(exc).__name__,
                    exc_info=True,
                )
                raise

            logger.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )

        response.headers["X-Request-ID"] = request_id
        runtime = getattr(request.app.state, "runtime", None)
        if runtime is not None:
            response.headers["X-Virtual-Time"] = str(runtime.engine.clock.now_millis())
        return response
