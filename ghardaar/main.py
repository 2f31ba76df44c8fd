"""Ghardaar marketplace API: FastAPI application entry point.

Server half of the property marketplace. Browser pages talk to the managed
backend directly for reads and RLS-guarded writes; these routes cover what
needs the service-role key or a third-party integration.
"""

import asyncio
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ghardaar.api import admin, calculators, crm, integrations
from ghardaar.backend.factory import close_backend
from ghardaar.config.settings import get_settings
from ghardaar.logging.audit import (
    RequestTimer,
    bind_request,
    get_audit_logger,
    setup_logging,
)
from ghardaar.providers.registry import close_all_providers
from ghardaar.security.ratelimit import get_rate_limiter, run_periodic_sweep

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    setup_logging()
    settings = get_settings()
    sweeper = asyncio.create_task(run_periodic_sweep(
        get_rate_limiter(),
        interval_seconds=settings.rate_limit_sweep_seconds,
        max_age_ms=settings.rate_limit_retention_ms,
    ))
    get_audit_logger().info("API started")
    yield
    sweeper.cancel()
    with suppress(asyncio.CancelledError):
        await sweeper
    await close_all_providers()
    await close_backend()
    get_audit_logger().info("API stopped")


app = FastAPI(
    title="Ghardaar Marketplace API",
    description="Listings, lead capture and staff CRM services",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    rid = bind_request(request.method, request.url.path)
    with RequestTimer() as timer:
        response = await call_next(request)
    response.headers["X-Request-Id"] = rid
    get_audit_logger().debug(
        "Request handled",
        extra={"audit_data": {
            "status": response.status_code,
            "latency_ms": timer.elapsed_ms,
        }},
    )
    return response


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request body", "details": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]


@app.get("/health")
async def health():
    return {"status": "healthy", "version": VERSION}


app.include_router(integrations.router, prefix="/api", tags=["integrations"])
app.include_router(admin.router, prefix="/api", tags=["admin"])
app.include_router(crm.router, prefix="/api/staff/crm", tags=["crm"])
app.include_router(calculators.router, prefix="/api/calculators", tags=["calculators"])
