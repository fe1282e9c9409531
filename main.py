"""Main FastAPI application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from common.config import get_settings
from common.db import Database
from common.errors import AuditError, QueryError
from common.migrations import apply_migrations
from services.aih import analytics_routes, routes as aih_routes
from services.auth import routes as auth_routes
from services.maintenance import routes as maintenance_routes

settings = get_settings()

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


async def _sweep_cache(db: Database, interval: int):
    """Drop expired cache entries periodically; reads also expire lazily."""
    while True:
        await asyncio.sleep(interval)
        removed = db.cache.sweep()
        if removed:
            logger.debug(f"Cache sweep removed {removed} expired entries")


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = Database.from_settings(settings)
    apply_migrations(db.engine, settings)
    app.state.db = db
    sweeper = asyncio.create_task(_sweep_cache(db, settings.cache_sweep_seconds))
    logger.info(f"AIH audit API ready (database {settings.database_path})")

    yield

    sweeper.cancel()
    db.close_all()
    logger.info("AIH audit API stopped")


app = FastAPI(
    title="AIH Audit API",
    description="Audit backend for hospital admission authorizations (AIH) billed to SUS",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_and_secure(request: Request, call_next):
    logger.info(f"{request.method} {request.url.path}")
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "no-referrer"
    return response


@app.exception_handler(AuditError)
async def audit_error_handler(request: Request, exc: AuditError):
    if isinstance(exc, QueryError):
        return JSONResponse(status_code=exc.http_status, content={"error": exc.public_message})

    content = {"error": exc.message}
    if getattr(exc, "expected", None):
        content["expected"] = exc.expected
        content["received"] = exc.received
    return JSONResponse(status_code=exc.http_status, content=content)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
    return JSONResponse(status_code=400, content={"error": "; ".join(messages)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Include routers
app.include_router(auth_routes.router)
app.include_router(aih_routes.router)
app.include_router(analytics_routes.router)
app.include_router(maintenance_routes.router)


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "service": "AIH Audit API",
        "version": "1.0.0",
        "status": "operational",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=settings.port)
