"""Endpoints for the scheduled billing jobs."""

from datetime import date
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query

from fleet_billing.application.services import (
    DueInstallmentProcessor,
    InstallmentReminderService,
)
from fleet_billing.core.dependencies import get_installment_processor, get_reminder_service
from fleet_billing.presentation.schemas import ProcessingSummarySchema, ReminderSummarySchema

jobs_router = APIRouter(prefix="/jobs")


@jobs_router.post(
    "/process-installments",
    response_model=ProcessingSummarySchema,
    summary="Process Due Installments",
    description="""
    Charge every installment due on or before the run date, plus failed
    installments whose retry interval has passed. Failures are recorded
    per installment and never stop the batch.
    """,
)
async def process_installments(
    processor: Annotated[DueInstallmentProcessor, Depends(get_installment_processor)],
    run_date: Annotated[Optional[date], Query(description="Run as of this date; defaults to today")] = None,
) -> ProcessingSummarySchema:
    summary = await processor.run(today=run_date)
    return ProcessingSummarySchema.model_validate(summary.to_dict())


@jobs_router.post(
    "/send-reminders",
    response_model=ReminderSummarySchema,
    summary="Send Installment Reminders",
)
async def send_reminders(
    reminder_service: Annotated[InstallmentReminderService, Depends(get_reminder_service)],
    run_date: Annotated[Optional[date], Query(description="Run as of this date; defaults to today")] = None,
    days_ahead: Annotated[Optional[int], Query(ge=0, le=60)] = None,
) -> ReminderSummarySchema:
    summary = await reminder_service.send_reminders(today=run_date, days_ahead=days_ahead)

    return ReminderSummarySchema(
        due_date=summary.due_date,
        candidates=summary.candidates,
        sent=summary.sent,
        skipped=summary.skipped,
        failed=summary.failed,
    )
