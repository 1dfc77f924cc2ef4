import logging
import time
from uuid import uuid4

from fastapi import FastAPI
from fastapi import HTTPException
from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError

from app.api.v1.auth import router as auth_router
from app.api.v1.notifications import router as notifications_router
from app.api.v1.requests import router as requests_router
from app.api.v1.users import router as users_router
from app.core.exceptions import (
    BookingError,
    booking_error_handler,
    http_exception_handler,
    validation_exception_handler,
)
from app.core.logging import setup_logging
from app.core.metrics import REQUEST_COUNT, REQUEST_LATENCY, render_metrics
from app.core.request_context import request_id_ctx_var

app = FastAPI(title="Consultant Booking API", version="0.1.0")
app.add_exception_handler(BookingError, booking_error_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
setup_logging()
logger = logging.getLogger("app.request")

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(requests_router)
app.include_router(notifications_router)


def _route_path(request: Request) -> str:
    # label metrics by route template so ids do not explode cardinality
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


def _observe(request: Request, status_code: int, started_at: float) -> float:
    elapsed = time.perf_counter() - started_at
    path = _route_path(request)
    REQUEST_COUNT.labels(method=request.method, path=path, status_code=status_code).inc()
    REQUEST_LATENCY.labels(method=request.method, path=path).observe(elapsed)
    return elapsed * 1000


@app.middleware("http")
async def observability_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or uuid4().hex
    token = request_id_ctx_var.set(request_id)
    started_at = time.perf_counter()
    try:
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = _observe(request, 500, started_at)
            logger.exception(
                "request_failed method=%s path=%s status=500 duration_ms=%.2f",
                request.method,
                _route_path(request),
                duration_ms,
            )
            raise

        duration_ms = _observe(request, response.status_code, started_at)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request_completed method=%s path=%s status=%s duration_ms=%.2f",
            request.method,
            _route_path(request),
            response.status_code,
            duration_ms,
        )
        return response
    finally:
        request_id_ctx_var.reset(token)


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/metrics", tags=["observability"])
def metrics() -> Response:
    payload, content_type = render_metrics()
    return Response(content=payload, media_type=content_type)
