from __future__ import annotations

from dotenv import load_dotenv
load_dotenv()

from contextlib import asynccontextmanager
import logging
import time
import uuid

import anyio
from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from jose import JWTError
from sqlalchemy import select

from kafka_governance.core.config import get_settings
from kafka_governance.core.errors import GovernanceError, NotAuthorized, http_status_for
from kafka_governance.core.logging import configure_logging, reset_request_id, set_request_id
from kafka_governance.core.runtime_state import mark_shutdown_started, mark_startup
from kafka_governance.db.db import engine, SessionLocal
from kafka_governance.db.models import Base, Tenant
from kafka_governance.db.seed import seed
from .api.routes import router as api_router

settings = get_settings()
configure_logging(
    settings.log_level,
    log_format=settings.log_format,
    redact_fields=settings.log_redact_fields,
)

logger = logging.getLogger("kafka_governance.main")

REQUEST_ID_HEADER = "X-Request-ID"


def startup_sync() -> bool:
    """Create tables and seed demo data on an empty database. Returns True when seeding ran."""
    Base.metadata.create_all(engine)
    if not settings.seed_on_startup:
        return False
    with SessionLocal() as db:
        if db.scalar(select(Tenant)):
            return False
        seed(db)
    logger.info("Seeded default tenant, teams, users and environments")
    return True


def shutdown_sync() -> None:
    try:
        engine.dispose()
    except Exception:
        logger.warning("Engine dispose failed during shutdown", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    seeded = await anyio.to_thread.run_sync(startup_sync)
    mark_startup(seeded=seeded)
    logger.info("Started env=%s cluster_api=%s", settings.app_env, settings.cluster_api_url)
    yield
    mark_shutdown_started()
    await anyio.to_thread.run_sync(shutdown_sync)


def _error_response(request: Request, status_code: int, detail, headers=None) -> JSONResponse:
    logger.info("Responding %s to %s %s", status_code, request.method, request.url.path)
    return JSONResponse(status_code=status_code, content={"detail": detail}, headers=headers)


def create_app() -> FastAPI:
    """Build the governance API: middleware, error mapping and routers."""
    app = FastAPI(title="Kafka Request Governance API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        token = set_request_id(request_id)
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            logger.info(
                "%s %s status=%s elapsed_ms=%.1f",
                request.method,
                request.url.path,
                status_code,
                (time.perf_counter() - started) * 1000,
            )
            reset_request_id(token)

    @app.exception_handler(GovernanceError)
    async def governance_error_handler(request: Request, exc: GovernanceError):
        if isinstance(exc, NotAuthorized):
            detail = exc.as_dict()
        else:
            detail = {"code": exc.code, "message": exc.message}
        return _error_response(request, http_status_for(exc.code), detail)

    @app.exception_handler(JWTError)
    async def jwt_error_handler(request: Request, exc: JWTError):
        return _error_response(request, 401, "Invalid or expired token")

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return _error_response(request, exc.status_code, exc.detail, headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error_response(request, 500, "Internal server error")

    app.include_router(api_router)
    return app


app = create_app()
