"""
Charge Selection for the due-installment processor.

Decides which installments a run should attempt: everything scheduled and
due, plus failed installments that still have attempts left and whose retry
interval has elapsed.
"""

from datetime import date, datetime
from typing import Iterable, List

from fleet_billing.domain.entities import (
    CHARGEABLE_PLAN_STATUSES,
    InstallmentCandidate,
    InstallmentStatus,
)


def is_due(candidate: InstallmentCandidate, today: date) -> bool:
    installment = candidate.installment
    return (
        installment.status == InstallmentStatus.SCHEDULED
        and installment.due_date <= today
        and candidate.plan_status in CHARGEABLE_PLAN_STATUSES
    )


def is_retry_eligible(candidate: InstallmentCandidate, now: datetime) -> bool:
    return candidate.plan_status in CHARGEABLE_PLAN_STATUSES and (
        candidate.installment.is_retry_eligible(
            now,
            candidate.config.max_retry_attempts,
            candidate.config.retry_interval_days,
        )
    )


def select_retry_candidates(
    candidates: Iterable[InstallmentCandidate],
    now: datetime,
) -> List[InstallmentCandidate]:
    return [c for c in candidates if is_retry_eligible(c, now)]


def merge_batches(*batches: Iterable[InstallmentCandidate]) -> List[InstallmentCandidate]:
    """Concatenate candidate batches, keeping the first occurrence of each installment."""
    seen = set()
    merged = []
    for batch in batches:
        for candidate in batch:
            if candidate.installment.id in seen:
                continue
            seen.add(candidate.installment.id)
            merged.append(candidate)
    return merged
