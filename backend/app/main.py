"""
FastAPI application factory.

Startup sequence:
  1. Validate settings
  2. Check DB connectivity (warn on failure — do not crash, the load balancer will detect)
  3. Mount routers and exception handlers

Error mapping:
  InvoiceValidationError  → 400/404 with the validation message
  InvoiceNumberFormatError → 400 (caller supplied a malformed invoice number)
  InvoiceNumberError      → 500 "Failed to create invoice"; the client may retry
                            the whole request, which allocates afresh
  anything else           → 500 "Internal server error"
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import get_settings
from app.core.db import check_db_connection
from app.core.exceptions import (
    InvoiceNumberError,
    InvoiceNumberFormatError,
    InvoiceValidationError,
)
from app.api.v1.health import router as health_router

settings = get_settings()
logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.DEBUG if settings.is_development else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s — %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Starting wellness-clinic backend (env=%s, clinic_tz=%s)",
        settings.environment,
        settings.clinic_timezone,
    )
    db_ok = await check_db_connection()
    if db_ok:
        logger.info("Database connection: OK")
    else:
        logger.warning("Database connection: FAILED — check DB_HOST / credentials")

    yield

    logger.info("Shutting down wellness-clinic backend")


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(InvoiceValidationError)
    async def invoice_validation_handler(request: Request, exc: InvoiceValidationError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(InvoiceNumberFormatError)
    async def invoice_number_format_handler(request: Request, exc: InvoiceNumberFormatError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(InvoiceNumberError)
    async def invoice_number_handler(request: Request, exc: InvoiceNumberError):
        logger.exception(
            "Invoice number allocation failed on %s %s (%s)",
            request.method,
            request.url,
            type(exc).__name__,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Failed to create invoice"},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Wellness Clinic — API",
        version="0.1.0",
        description="Clinic administration backend",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    # ------------------------------------------------------------------ #
    # CORS — restrict in production
    # ------------------------------------------------------------------ #
    origins = ["*"] if settings.is_development else [f"https://{settings.environment}.wellness-clinic.co.za"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # ------------------------------------------------------------------ #
    # Routers
    # ------------------------------------------------------------------ #
    app.include_router(health_router)

    return app


app = create_app()
