"""Readiness of the billing service: database reachability and processor keys."""

from typing import Annotated, Dict

import structlog
from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_billing import __version__
from fleet_billing.infrastructure.clients.stripe_client import configured_processor_modes
from fleet_billing.infrastructure.database import get_db_session

logger = structlog.get_logger(__name__)

health_router = APIRouter()


class HealthResponse(BaseModel):
    status: str = Field(..., description="healthy, or degraded when the database is unreachable")
    version: str
    database: str = Field(..., description="ok or unavailable")
    processor_modes: Dict[str, bool] = Field(
        ...,
        description="Payment modes with a processor key configured",
    )


@health_router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check",
    description="""
    Runs a trivial query against the billing database and reports which
    payment modes can charge. Answers 503 while the database is unreachable.
    """,
    responses={503: {"model": HealthResponse, "description": "Database unreachable"}},
)
async def health_check(
    response: Response,
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> HealthResponse:
    database = "ok"
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("health_database_unavailable", error=str(exc))
        database = "unavailable"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=__version__,
        database=database,
        processor_modes=configured_processor_modes(),
    )
