"""
Command Catalog API

FastAPI application entry point for the hybrid command search service.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Optional

import structlog
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from cmdsearch.config import settings
from cmdsearch.db.session import CatalogStore


# =============================================================================
# Logging
# =============================================================================
_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "openai")


def configure_logging() -> None:
    """
    Route structlog and stdlib logging through one JSON renderer on stdout.

    Every line carries ``timestamp`` (ISO 8601), ``level`` and ``event``
    plus whatever the call site bound, e.g. ``record_id`` or
    ``candidate_count``.
    """
    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer(),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.LOG_LEVEL.upper())

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


# =============================================================================
# Sentry Configuration
# =============================================================================
def configure_sentry() -> None:
    """
    Initialize Sentry error tracking if SENTRY_DSN is configured.
    """
    if not settings.SENTRY_DSN:
        return

    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
    from sentry_sdk.utils import BadDsn

    logger = structlog.get_logger()
    try:
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
            ],
            traces_sample_rate=0.1,
            environment="development" if settings.DEBUG else "production",
        )
    except BadDsn as exc:
        logger.warning("sentry_init_failed", error=str(exc))
        return
    logger.info("sentry_initialized", dsn_prefix=settings.SENTRY_DSN[:20] + "...")


# =============================================================================
# Application Factory
# =============================================================================
def create_app(store: Optional[CatalogStore] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        store: Catalog store to serve.  When omitted, one is created from
            DATABASE_URL and closed on shutdown; a caller-supplied store is
            opened but left for the caller to close.
    """
    owns_store = store is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        configure_sentry()
        logger = structlog.get_logger()

        catalog = store or CatalogStore(settings.DATABASE_URL)
        catalog.open()
        app.state.store = catalog
        logger.info(
            "application_startup",
            app_name="Command Catalog API",
            debug=settings.DEBUG,
            embedding_model=settings.EMBEDDING_MODEL,
        )

        yield

        if owns_store:
            catalog.close()
        logger.info("application_shutdown")

    app = FastAPI(
        title="Command Catalog API",
        description="Hybrid keyword + embedding search over operator commands",
        version="2.0.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    @app.get("/health", tags=["Health"])
    async def health_check() -> JSONResponse:
        """Health check endpoint for load balancers and monitoring."""
        catalog: Optional[CatalogStore] = getattr(app.state, "store", None)
        return JSONResponse(
            content={
                "status": "ok",
                "service": "command-catalog-api",
                "database": "connected" if catalog is not None and catalog.is_open else "not initialized",
            },
            status_code=200,
        )

    from cmdsearch.api import commands_router

    app.include_router(commands_router, prefix="/api/v1")
    return app


app = create_app()
