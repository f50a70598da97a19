"""
Bookflow API: public booking widget, staff dashboard and payment webhooks.

Every error leaves as the same JSON envelope and every response carries
an X-Request-ID header.
"""

from contextlib import asynccontextmanager
import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog

from bookflow.config import settings
from bookflow.api import auth, bookings, public, tenants
from bookflow.errors import BookingError
from bookflow.webhooks import payments as payment_webhooks

logging.basicConfig(format="%(message)s", level=settings.log_level.upper())

# Route structlog through stdlib logging so uvicorn and celery share one sink
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer() if settings.log_format == "json" else structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"

HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Bookflow API", version="1.0.0", payment_env=settings.payment_env)
    yield
    logger.info("Shutting down Bookflow API")


app = FastAPI(
    title="Bookflow",
    description="Restaurant booking confirmation service with idempotent holds and deposits",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER],
)


def _request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
    return request_id


def _envelope(code: str, message: str, request_id: str, details=None) -> dict:
    return {
        "success": False,
        "error": {"code": code, "message": message, "request_id": request_id, "details": details},
    }


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Tag every request and response with a request id"""
    request_id = _request_id(request)
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    request_id = _request_id(request)
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "Booking request failed",
        code=exc.code,
        status_code=exc.status_code,
        path=request.url.path,
        request_id=request_id,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(request_id),
        headers={REQUEST_ID_HEADER: request_id},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    request_id = _request_id(request)
    errors = [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=_envelope("VALIDATION_ERROR", "Please check your booking details", request_id, {"errors": errors}),
        headers={REQUEST_ID_HEADER: request_id},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    request_id = _request_id(request)
    headers = dict(exc.headers or {})
    headers[REQUEST_ID_HEADER] = request_id
    return JSONResponse(
        status_code=exc.status_code,
        content=_envelope(HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"), str(exc.detail), request_id),
        headers=headers,
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    request_id = _request_id(request)
    logger.exception("Unhandled error", path=request.url.path, request_id=request_id)
    return JSONResponse(
        status_code=500,
        content=_envelope("INTERNAL_ERROR", "Something went wrong. Please try again", request_id),
        headers={REQUEST_ID_HEADER: request_id},
    )


@app.get("/health")
async def health():
    return {"status": "healthy", "service": "bookflow", "version": app.version}


async def _check_database() -> None:
    from bookflow.database import SessionLocal

    async with SessionLocal() as db:
        await db.execute(text("SELECT 1"))


async def _check_broker() -> None:
    from bookflow.jobs.celery_app import celery_app

    celery_app.control.ping(timeout=1)


@app.get("/health/ready")
async def ready():
    """Report whether the database and the job broker answer"""
    checks = {}
    for name, probe in (("database", _check_database), ("redis", _check_broker)):
        try:
            await probe()
            checks[name] = "ok"
        except Exception as e:
            logger.warning("Readiness probe failed", dependency=name, error=str(e))
            checks[name] = f"failed: {e}"

    healthy = all(result == "ok" for result in checks.values())
    return {"status": "ready" if healthy else "not_ready", "checks": checks}


# Staff dashboard
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(tenants.router, prefix="/tenants", tags=["Tenants"])
app.include_router(bookings.router, prefix="/tenants/{tenant_id}/bookings", tags=["Bookings"])

# Guest-facing widget
app.include_router(public.router, prefix="/public/tenants", tags=["Public Booking"])

# Payment provider callbacks
app.include_router(payment_webhooks.router, prefix="/webhooks/payments", tags=["Webhooks"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "bookflow.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_debug,
    )
