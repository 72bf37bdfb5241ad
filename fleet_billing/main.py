"""
Fleet Billing - Main Application Entry Point

Installment plans, off-session charging, early payoff and the refund
cascade for a multi-tenant vehicle-rental platform.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from fleet_billing import __version__
from fleet_billing.core.config import Settings, settings as default_settings
from fleet_billing.core.logging import setup_logging
from fleet_billing.core.metrics import get_metrics, get_metrics_content_type
from fleet_billing.infrastructure.clients.stripe_client import (
    configured_processor_modes,
    processor_settings_problems,
)
from fleet_billing.infrastructure.database import db_manager
from fleet_billing.presentation.api import api_router
from fleet_billing.presentation.middleware import (
    LoggingMiddleware,
    RequestContextMiddleware,
    error_handler_middleware,
)

logger = structlog.get_logger(__name__)


def check_processor_settings(app_settings: Settings) -> list[str]:
    """Log each processor settings problem and return them."""
    problems = processor_settings_problems(app_settings)
    for problem in problems:
        logger.warning("processor_settings_problem", problem=problem)
    return problems


def build_lifespan(app_settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        setup_logging()
        db_manager.init()

        problems = check_processor_settings(app_settings)
        logger.info(
            "application_started",
            version=__version__,
            app_name=app_settings.app_name,
            processor_modes=configured_processor_modes(app_settings),
            processor_settings_ok=not problems,
        )

        yield

        await db_manager.close()
        logger.info("application_stopped")

    return lifespan


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    cfg = app_settings or default_settings

    application = FastAPI(
        title="Fleet Billing",
        description="Rental installment plans, charging and refunds",
        version=__version__,
        lifespan=build_lifespan(cfg),
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_middleware(LoggingMiddleware)
    application.add_middleware(RequestContextMiddleware)

    error_handler_middleware(application)
    application.include_router(api_router)

    if cfg.metrics_enabled:
        @application.get("/metrics", include_in_schema=False)
        async def metrics() -> Response:
            """Prometheus metrics endpoint."""
            return Response(content=get_metrics(), media_type=get_metrics_content_type())

    @application.get("/", include_in_schema=False)
    async def root():
        return RedirectResponse(url="/docs")

    return application


app = create_app()
