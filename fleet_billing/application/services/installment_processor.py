"""
Due-installment processor.

Charges every installment that is due, plus failed installments whose
retry interval has passed. Each installment is claimed with a conditional
update before the charge, so concurrent runs never charge the same one.

An installment whose charge was accepted but has not settled stays
``processing`` with the processor intent stored on it. Each run first
sweeps processing installments older than the processing timeout and looks
their intent up instead of charging again.
"""

from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import List, Optional

import structlog

from fleet_billing.core.metrics import (
    record_installment_charge,
    track_installment_run_latency,
)
from fleet_billing.domain.entities import (
    ChargeResult,
    InstallmentCandidate,
    InstallmentStatus,
)
from fleet_billing.domain.exceptions import (
    DomainException,
    InstallmentNotFoundException,
    InstallmentNotPayableException,
    PaymentMethodMissingException,
    PlanNotFoundException,
)
from fleet_billing.domain.interfaces import PaymentRepository, PlanRepository
from fleet_billing.service.installments import (
    installment_settings,
    merge_batches,
    select_retry_candidates,
)
from fleet_billing.application.dto import InstallmentResult, ProcessingSummary

from .notifications import NotificationDispatcher
from .settlement import InstallmentSettlement
from .tenant_context import ProcessorFactory, TenantPaymentContextResolver

logger = structlog.get_logger(__name__)


class DueInstallmentProcessor:
    """Batch collector for scheduled and retryable installments."""

    def __init__(
        self,
        plan_repository: PlanRepository,
        payment_repository: PaymentRepository,
        context_resolver: TenantPaymentContextResolver,
        settlement: InstallmentSettlement,
        notifier: NotificationDispatcher,
        processor_factory: ProcessorFactory,
        processing_timeout: Optional[timedelta] = None,
    ):
        self._plan_repo = plan_repository
        self._payment_repo = payment_repository
        self._context_resolver = context_resolver
        self._settlement = settlement
        self._notifier = notifier
        self._processor_factory = processor_factory
        self._processing_timeout = processing_timeout or timedelta(
            minutes=installment_settings.processing_timeout_minutes
        )

    async def run(
        self,
        today: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> ProcessingSummary:
        """
        Process one batch.

        A failure on one installment is recorded against it and never
        stops the rest of the batch.
        """
        now = now or datetime.utcnow()
        today = today or now.date()
        log = logger.bind(run_date=today.isoformat())

        with track_installment_run_latency():
            results = await self.sweep_stale(now)
            stale_count = len(results)

            due = await self._plan_repo.get_due_candidates(today)
            retry = select_retry_candidates(await self._plan_repo.get_failed_candidates(), now)
            batch = merge_batches(due, retry)

            log.info(
                "installment_run_started",
                due_count=len(due),
                retry_count=len(retry),
                stale_count=stale_count,
            )

            for candidate in batch:
                trigger = (
                    "retry"
                    if candidate.installment.status == InstallmentStatus.FAILED
                    else "scheduled"
                )
                try:
                    result = await self.process_candidate(candidate, now, trigger)
                except Exception as exc:
                    await self._plan_repo.rollback()
                    log.exception(
                        "installment_processing_error",
                        installment_id=candidate.installment.id,
                        error=str(exc),
                    )
                    result = InstallmentResult(
                        installment_id=candidate.installment.id,
                        success=False,
                        error=str(exc),
                    )
                if result is not None:
                    results.append(result)

        summary = ProcessingSummary(
            due_count=len(due),
            retry_count=len(retry),
            results=results,
            stale_count=stale_count,
        )

        log.info(
            "installment_run_completed",
            processed=summary.processed,
            successful=summary.successful,
            failed=summary.failed,
            pending=summary.pending,
        )

        return summary

    async def sweep_stale(self, now: datetime) -> List[InstallmentResult]:
        """
        Resolve installments left processing longer than the timeout.

        With a stored intent the intent is looked up: succeeded settles the
        installment, a failed state counts as a failed attempt and anything
        else leaves it processing. Without one the claim is released to the
        status it came from, so the next charge reuses the same
        idempotency key.
        """
        cutoff = now - self._processing_timeout
        stale = await self._plan_repo.get_stale_processing(cutoff)

        results = []
        for candidate in stale:
            try:
                result = await self.resolve_stale(candidate, cutoff, now)
            except Exception as exc:
                await self._plan_repo.rollback()
                logger.exception(
                    "stale_installment_error",
                    installment_id=candidate.installment.id,
                    error=str(exc),
                )
                result = InstallmentResult(
                    installment_id=candidate.installment.id,
                    success=False,
                    error=str(exc),
                )
            if result is not None:
                results.append(result)

        return results

    async def resolve_stale(
        self,
        candidate: InstallmentCandidate,
        cutoff: datetime,
        now: datetime,
    ) -> Optional[InstallmentResult]:
        installment = candidate.installment
        log = logger.bind(
            installment_id=installment.id,
            plan_id=installment.plan_id,
            trigger="reconcile",
            intent_ref=installment.processor_payment_ref,
        )

        claimed = await self._plan_repo.claim_stale_installment(installment.id, cutoff, now)
        if not claimed:
            log.info("stale_installment_skipped")
            return None
        await self._plan_repo.commit()

        if not installment.processor_payment_ref:
            prior = InstallmentStatus.FAILED if installment.failure_count else InstallmentStatus.SCHEDULED
            await self._plan_repo.release_installment_claim(installment.id, prior)
            await self._plan_repo.commit()
            log.warning("stale_installment_released", status=prior.value)
            return None

        context = await self._context_resolver.resolve(installment.tenant_id)
        processor = self._processor_factory(context)
        intent = await processor.retrieve_payment_intent(installment.processor_payment_ref)

        if intent.status == "succeeded":
            charge = ChargeResult(
                intent_ref=intent.id,
                status=intent.status,
                amount_cents=intent.amount_cents or installment.amount_cents,
                charge_ref=intent.charge_ref,
            )
            return await self._settle_success(candidate, charge, "reconcile", log)

        if intent.failed:
            return await self._settle_failure(
                candidate, f"Payment {intent.status}", now, "reconcile", log
            )

        log.info("installment_charge_still_pending", status=intent.status)
        return InstallmentResult(
            installment_id=installment.id,
            success=False,
            processor_ref=intent.id,
            pending=True,
        )

    async def process_candidate(
        self,
        candidate: InstallmentCandidate,
        now: datetime,
        trigger: str = "scheduled",
    ) -> Optional[InstallmentResult]:
        """
        Claim, charge and settle one installment.

        Returns:
            The outcome, or None when another worker already holds the claim
        """
        installment = candidate.installment
        log = logger.bind(
            installment_id=installment.id,
            plan_id=installment.plan_id,
            trigger=trigger,
        )

        claimed = await self._plan_repo.claim_installment(installment.id, installment.status, now)
        if not claimed:
            log.info("installment_claim_skipped", status=installment.status.value)
            return None
        await self._plan_repo.commit()

        try:
            charge = await self._charge(candidate, log)
        except DomainException as exc:
            return await self._settle_failure(candidate, exc.message, now, trigger, log)
        except Exception as exc:
            log.exception("installment_charge_error", error=str(exc))
            return await self._settle_failure(
                candidate, "Unexpected error while charging", now, trigger, log
            )

        if charge.is_pending:
            return await self._hold_pending(candidate, charge, trigger, log)

        return await self._settle_success(candidate, charge, trigger, log)

    async def retry_installment(
        self,
        installment_id: str,
        now: Optional[datetime] = None,
    ) -> InstallmentResult:
        """
        Charge a failed installment right away, ignoring the retry interval.

        Raises:
            InstallmentNotFoundException: If the installment does not exist
            InstallmentNotPayableException: If it is not failed or its plan
                is not active or overdue
        """
        now = now or datetime.utcnow()

        installment = await self._plan_repo.get_installment(installment_id)
        if installment is None:
            raise InstallmentNotFoundException(installment_id)

        if installment.status != InstallmentStatus.FAILED:
            raise InstallmentNotPayableException(
                f"Only failed installments can be retried (status: {installment.status.value})"
            )

        plan = await self._plan_repo.get_by_id(installment.plan_id)
        if plan is None:
            raise PlanNotFoundException(installment.plan_id)
        if not plan.is_chargeable:
            raise InstallmentNotPayableException(
                f"Plan is {plan.status.value}; only active or overdue plans can be charged"
            )

        candidate = InstallmentCandidate(
            installment=installment,
            plan_status=plan.status,
            config=plan.config,
            processor_customer_ref=plan.processor_customer_ref,
            processor_payment_method_ref=plan.processor_payment_method_ref,
        )

        result = await self.process_candidate(candidate, now, trigger="manual")
        if result is None:
            raise InstallmentNotPayableException("This installment is currently being processed")

        return result

    async def _charge(self, candidate: InstallmentCandidate, log) -> ChargeResult:
        installment = candidate.installment

        if not candidate.processor_customer_ref or not candidate.processor_payment_method_ref:
            raise PaymentMethodMissingException()

        key = installment.idempotency_key

        existing = await self._payment_repo.get_by_idempotency_key(key)
        if existing is not None and existing.processor_intent_ref:
            log.info("installment_charge_already_recorded", payment_id=existing.id)
            return ChargeResult(
                intent_ref=existing.processor_intent_ref,
                status="succeeded",
                amount_cents=existing.amount_cents,
            )

        context = await self._context_resolver.resolve(installment.tenant_id)
        processor = self._processor_factory(context)

        return await processor.charge_off_session(
            customer_ref=candidate.processor_customer_ref,
            payment_method_ref=candidate.processor_payment_method_ref,
            amount_cents=installment.amount_cents,
            description=f"Installment {installment.installment_number} for rental {installment.rental_id}",
            idempotency_key=key,
            metadata={
                "installment_id": installment.id,
                "plan_id": installment.plan_id,
                "rental_id": installment.rental_id,
                "tenant_id": installment.tenant_id,
            },
        )

    async def _hold_pending(
        self,
        candidate: InstallmentCandidate,
        charge: ChargeResult,
        trigger: str,
        log,
    ) -> InstallmentResult:
        installment = candidate.installment

        await self._plan_repo.record_processor_ref(installment.id, charge.intent_ref)
        await self._plan_repo.commit()

        record_installment_charge(trigger, False, pending=True)
        log.info(
            "installment_charge_pending",
            intent_ref=charge.intent_ref,
            status=charge.status,
        )

        return InstallmentResult(
            installment_id=installment.id,
            success=False,
            processor_ref=charge.intent_ref,
            pending=True,
        )

    async def _settle_success(
        self,
        candidate: InstallmentCandidate,
        charge: ChargeResult,
        trigger: str,
        log,
    ) -> InstallmentResult:
        installment = candidate.installment

        try:
            payment, _ = await self._settlement.record_charge(
                installment,
                charge,
                idempotency_key=installment.idempotency_key,
                target_categories=candidate.config.split_categories,
            )
            await self._plan_repo.commit()
        except Exception:
            await self._keep_charge_ref(installment.id, charge.intent_ref, log)
            raise

        record_installment_charge(trigger, True, installment.amount_cents)
        log.info(
            "installment_charged",
            amount_cents=installment.amount_cents,
            payment_id=payment.id,
        )

        await self._notifier.installment_paid(installment, payment.id)

        return InstallmentResult(
            installment_id=installment.id,
            success=True,
            processor_ref=charge.intent_ref,
        )

    async def _keep_charge_ref(self, installment_id: str, intent_ref: str, log) -> None:
        """Leave a charged installment processing with its intent after a failed settlement."""
        await self._plan_repo.rollback()
        try:
            await self._plan_repo.record_processor_ref(installment_id, intent_ref)
            await self._plan_repo.commit()
        except Exception as exc:
            await self._plan_repo.rollback()
            log.exception("installment_charge_ref_not_saved", intent_ref=intent_ref, error=str(exc))
            return

        log.error("installment_settlement_deferred", intent_ref=intent_ref)

    async def _settle_failure(
        self,
        candidate: InstallmentCandidate,
        reason: str,
        now: datetime,
        trigger: str,
        log,
    ) -> InstallmentResult:
        installment = candidate.installment

        exhausted = await self._settlement.mark_failed(
            installment,
            reason,
            attempted_at=now,
            max_retry_attempts=candidate.config.max_retry_attempts,
        )
        await self._plan_repo.commit()

        record_installment_charge(trigger, False)
        log.warning(
            "installment_charge_failed",
            reason=reason,
            failure_count=installment.failure_count + 1,
            retries_exhausted=exhausted,
        )

        failed = replace(
            installment,
            status=InstallmentStatus.FAILED,
            failure_count=installment.failure_count + 1,
            last_failure_reason=reason,
        )
        await self._notifier.installment_failed(failed, reason)

        return InstallmentResult(installment_id=installment.id, success=False, error=reason)
