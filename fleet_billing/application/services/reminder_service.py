"""Upcoming-installment reminders."""

from datetime import date, timedelta
from typing import Optional

import structlog

from fleet_billing.domain.entities import NotificationType
from fleet_billing.domain.interfaces import NotificationRepository, PlanRepository
from fleet_billing.service.installments import InstallmentSettings, installment_settings
from fleet_billing.application.dto import ReminderSummary

from .notifications import NotificationDispatcher

logger = structlog.get_logger(__name__)


class InstallmentReminderService:
    """Reminds customers of installments coming due; once per installment."""

    def __init__(
        self,
        plan_repository: PlanRepository,
        notification_repository: NotificationRepository,
        notifier: NotificationDispatcher,
        settings: InstallmentSettings = installment_settings,
    ):
        self._plan_repo = plan_repository
        self._notification_repo = notification_repository
        self._notifier = notifier
        self._settings = settings

    async def send_reminders(
        self,
        today: Optional[date] = None,
        days_ahead: Optional[int] = None,
    ) -> ReminderSummary:
        today = today or date.today()
        if days_ahead is None:
            days_ahead = self._settings.reminder_days_ahead
        due_date = today + timedelta(days=days_ahead)

        installments = await self._plan_repo.get_installments_due_on(due_date)

        sent = skipped = failed = 0
        for installment in installments:
            if await self._notification_repo.exists(installment.id, NotificationType.REMINDER):
                skipped += 1
                continue

            if await self._notifier.installment_reminder(installment):
                sent += 1
            else:
                failed += 1

        await self._plan_repo.commit()

        logger.info(
            "reminders_sent",
            due_date=due_date.isoformat(),
            candidates=len(installments),
            sent=sent,
            skipped=skipped,
            failed=failed,
        )

        return ReminderSummary(
            due_date=due_date.isoformat(),
            candidates=len(installments),
            sent=sent,
            skipped=skipped,
            failed=failed,
        )
