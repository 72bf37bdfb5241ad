"""
Installment Calculation Module for Fleet Billing
"""

from .settings import InstallmentSettings, installment_settings
from .schedule import (
    ScheduleLine,
    build_schedule,
    divide_cents,
    due_date_for,
    split_amount,
    validate_installment_count,
)
from .retry import is_due, is_retry_eligible, merge_batches, select_retry_candidates
from .reconciliation import (
    calculate_refundable_balance,
    refund_allocation,
    split_evenly,
)

__all__ = [
    # Settings
    "InstallmentSettings",
    "installment_settings",
    # Schedule
    "ScheduleLine",
    "build_schedule",
    "divide_cents",
    "due_date_for",
    "split_amount",
    "validate_installment_count",
    # Selection
    "is_due",
    "is_retry_eligible",
    "merge_batches",
    "select_retry_candidates",
    # Reconciliation
    "calculate_refundable_balance",
    "refund_allocation",
    "split_evenly",
]
