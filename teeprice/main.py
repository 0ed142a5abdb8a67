# teeprice/main.py
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.exception_handlers import http_exception_handler
from fastapi.exceptions import ResponseValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.requests import Request

from teeprice.database import build_engine, build_session_factory
from teeprice.engine import PricingEngine
from teeprice.exceptions import (
    BaseProductMissing,
    PersistenceError,
    PricingIntegrityError,
    RecordNotFound,
    TeeTimeBlocked,
)
from teeprice.persistence import SqlPricingStore
from teeprice.routers import pricing

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper(), format="%(levelname)s %(name)s %(message)s")
logger = logging.getLogger(__name__)


def _attach_store(engine: PricingEngine) -> None:
    # Without a database the engine still prices; load/save report False.
    try:
        engine.store = SqlPricingStore(build_session_factory(build_engine()))
        logger.info("[DB] Pricing store connected")
    except (SQLAlchemyError, ImportError) as e:
        logger.warning("[DB] Could not connect to database: %s", str(e)[:100])
        logger.warning("[DB] Pricing will run in memory only (no persistence)")


@asynccontextmanager
async def lifespan(app: FastAPI):
    engine: PricingEngine = app.state.engine
    if engine.store is None and os.getenv("PRICING_STORE", "sql").strip().lower() != "memory":
        _attach_store(engine)
    for course_id in [c.strip() for c in os.getenv("PRICING_PRELOAD_COURSES", "").split(",") if c.strip()]:
        await engine.load(course_id)
    yield


def create_app(engine: Optional[PricingEngine] = None) -> FastAPI:
    app = FastAPI(title="Teeprice Pricing Engine", lifespan=lifespan)
    app.state.engine = engine or PricingEngine()

    # -----------------------------------------
    # Domain errors -> JSON
    # -----------------------------------------
    @app.exception_handler(TeeTimeBlocked)
    async def tee_time_blocked_handler(request: Request, exc: TeeTimeBlocked):
        # Blocked slots are shown as plain unavailability, never as a price.
        return JSONResponse(status_code=409, content={"detail": "unavailable", "reason": exc.override_name})

    @app.exception_handler(BaseProductMissing)
    async def base_product_missing_handler(request: Request, exc: BaseProductMissing):
        return JSONResponse(status_code=503, content={"detail": "Pricing is not configured for this course"})

    @app.exception_handler(PricingIntegrityError)
    async def integrity_error_handler(request: Request, exc: PricingIntegrityError):
        return JSONResponse(status_code=422, content={"detail": "Pricing integrity check failed", "errors": exc.errors})

    @app.exception_handler(RecordNotFound)
    async def not_found_handler(request: Request, exc: RecordNotFound):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        # Raised by updates and imports after the request body itself parsed.
        return JSONResponse(
            status_code=422,
            content={"detail": [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()]},
        )

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError):
        logger.error("[PERSIST] %s", str(exc)[:240])
        return JSONResponse(status_code=503, content={"detail": "Pricing storage unavailable"})

    @app.exception_handler(ResponseValidationError)
    async def response_validation_error_handler(request: Request, exc: ResponseValidationError):
        logger.error("[API] Response validation error: %s", str(exc)[:240])
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        if isinstance(exc, HTTPException):
            return await http_exception_handler(request, exc)
        logger.error("[UNHANDLED] %s: %s", type(exc).__name__, str(exc)[:240])
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    # -----------------------------------------
    # CORS Settings
    # -----------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=False,
    )

    # -----------------------------------------
    # Routers
    # -----------------------------------------
    app.include_router(pricing.router)

    @app.get("/health")
    def health():
        engine: PricingEngine = app.state.engine
        return {
            "status": "ok",
            "persistence": engine.store is not None,
            "courses": engine.repository.course_ids(),
            "cache": engine.cache.stats(),
        }

    return app


app = create_app()
