"""
Unit Tests for installment schedule calculation.

These tests verify:
1. Even splits with the rounding remainder on the final installment
2. Weekly and monthly due dates, including month-end starts
3. Folding installment #1 into the checkout
4. Rejection of counts and amounts that cannot form a schedule
5. Plan construction from a request
"""

import pytest
from datetime import date, timedelta
from unittest.mock import AsyncMock

from fleet_billing.application.dto import PlanRequest
from fleet_billing.application.services import InstallmentPlanBuilder
from fleet_billing.domain.entities import InstallmentStatus, PlanType
from fleet_billing.domain.exceptions import (
    InvalidInstallmentCountException,
    InvalidPlanAmountException,
    InvalidPlanRequestException,
)
from fleet_billing.service.installments import (
    InstallmentSettings,
    build_schedule,
    divide_cents,
    due_date_for,
    split_amount,
)


# =============================================================================
# Amount Splitting Tests
# =============================================================================

class TestAmountSplitting:
    """Tests for dividing a balance into installment amounts."""

    def test_even_split(self):
        assert split_amount(30000, 3) == [10000, 10000, 10000]

    def test_last_installment_absorbs_remainder(self):
        amounts = split_amount(10000, 3)

        assert amounts == [3333, 3333, 3334]
        assert sum(amounts) == 10000

    def test_half_cent_rounds_up(self):
        assert divide_cents(10001, 2) == 5001
        assert split_amount(10001, 2) == [5001, 5000]

    @pytest.mark.parametrize("total,count", [(9999, 4), (12345, 7), (100, 12), (50001, 5)])
    def test_split_always_sums_to_total(self, total, count):
        assert sum(split_amount(total, count)) == total


# =============================================================================
# Due Date Tests
# =============================================================================

class TestDueDates:
    """Tests for installment due date calculation."""

    def test_weekly_dates_are_seven_days_apart(self):
        start = date(2024, 3, 4)
        lines = build_schedule(40000, 4, start, PlanType.WEEKLY)

        due_dates = [line.due_date for line in lines]
        assert due_dates == [start + timedelta(weeks=i) for i in range(4)]

    def test_monthly_dates_advance_by_calendar_month(self):
        lines = build_schedule(30000, 3, date(2024, 1, 15), PlanType.MONTHLY)

        assert [line.due_date for line in lines] == [
            date(2024, 1, 15),
            date(2024, 2, 15),
            date(2024, 3, 15),
        ]

    def test_month_end_start_clamps_without_drifting(self):
        start = date(2024, 1, 31)

        assert due_date_for(start, PlanType.MONTHLY, 1) == date(2024, 2, 29)
        assert due_date_for(start, PlanType.MONTHLY, 2) == date(2024, 3, 31)
        assert due_date_for(start, PlanType.MONTHLY, 3) == date(2024, 4, 30)

    def test_installments_are_numbered_in_due_date_order(self):
        lines = build_schedule(60000, 6, date(2024, 5, 1), PlanType.WEEKLY)

        assert [line.installment_number for line in lines] == [1, 2, 3, 4, 5, 6]
        assert all(a.due_date < b.due_date for a, b in zip(lines, lines[1:]))


# =============================================================================
# Folded First Installment Tests
# =============================================================================

class TestFoldedFirstInstallment:
    """Tests for collecting installment #1 at checkout."""

    def test_custom_first_amount_splits_the_rest(self):
        """
        30000 over 3 monthly installments with 5000 taken at checkout leaves
        12500 due on each of the next two months.
        """
        lines = build_schedule(
            30000,
            3,
            date(2024, 1, 15),
            PlanType.MONTHLY,
            charge_first_upfront=True,
            first_installment_cents=5000,
        )

        assert [(l.installment_number, l.amount_cents, l.due_date) for l in lines] == [
            (1, 5000, date(2024, 1, 15)),
            (2, 12500, date(2024, 2, 15)),
            (3, 12500, date(2024, 3, 15)),
        ]
        assert lines[0].charged_upfront is True
        assert not any(line.charged_upfront for line in lines[1:])

    def test_default_first_amount_is_even_share(self):
        lines = build_schedule(
            30000,
            3,
            date(2024, 1, 15),
            PlanType.MONTHLY,
            charge_first_upfront=True,
        )

        assert [line.amount_cents for line in lines] == [10000, 10000, 10000]

    def test_first_amount_must_leave_a_balance(self):
        with pytest.raises(InvalidPlanAmountException):
            build_schedule(
                30000,
                3,
                date(2024, 1, 15),
                PlanType.MONTHLY,
                charge_first_upfront=True,
                first_installment_cents=30000,
            )

    def test_first_amount_must_be_positive(self):
        with pytest.raises(InvalidPlanAmountException):
            build_schedule(
                30000,
                3,
                date(2024, 1, 15),
                PlanType.MONTHLY,
                charge_first_upfront=True,
                first_installment_cents=0,
            )


# =============================================================================
# Validation Tests
# =============================================================================

class TestScheduleValidation:
    """Tests for inputs that cannot form a schedule."""

    @pytest.mark.parametrize("count", [0, 1, 13])
    def test_count_outside_bounds_is_rejected(self, count):
        with pytest.raises(InvalidInstallmentCountException):
            build_schedule(30000, count, date(2024, 1, 1), PlanType.WEEKLY)

    def test_bounds_come_from_settings(self):
        settings = InstallmentSettings(min_installments=1, max_installments=24)

        lines = build_schedule(24000, 24, date(2024, 1, 1), PlanType.WEEKLY, settings=settings)

        assert len(lines) == 24

    def test_non_positive_total_is_rejected(self):
        with pytest.raises(InvalidPlanAmountException):
            build_schedule(0, 3, date(2024, 1, 1), PlanType.WEEKLY)

    def test_total_too_small_for_count_is_rejected(self):
        with pytest.raises(InvalidPlanAmountException):
            build_schedule(3, 4, date(2024, 1, 1), PlanType.WEEKLY)

    def test_min_above_max_is_rejected(self):
        with pytest.raises(ValueError):
            InstallmentSettings(min_installments=6, max_installments=3)


# =============================================================================
# Plan Builder Tests
# =============================================================================

def make_request(**overrides) -> PlanRequest:
    data = dict(
        rental_id="rental-1",
        tenant_id="tenant-1",
        customer_id="customer-1",
        upfront_base_cents=20000,
        total_installable_cents=30000,
        plan_type=PlanType.MONTHLY,
        number_of_installments=3,
        start_date=date(2024, 1, 15),
    )
    data.update(overrides)
    return PlanRequest(**data)


class TestPlanBuilder:
    """Tests for building plan entities from requests."""

    def test_plain_plan_starts_pending_and_scheduled(self):
        builder = InstallmentPlanBuilder(AsyncMock())

        plan = builder.build(make_request())

        assert plan.status.value == "pending"
        assert plan.upfront_amount_cents == 20000
        assert plan.installment_amount_cents == 10000
        assert plan.next_due_date == date(2024, 1, 15)
        assert all(inst.status == InstallmentStatus.SCHEDULED for inst in plan.installments)
        assert all(inst.plan_id == plan.id for inst in plan.installments)

    def test_folded_plan_claims_first_installment(self):
        builder = InstallmentPlanBuilder(AsyncMock())

        plan = builder.build(
            make_request(charge_first_upfront=True, first_installment_cents=5000)
        )

        first = plan.get_installment(1)
        assert first.status == InstallmentStatus.PROCESSING
        assert plan.upfront_amount_cents == 25000
        assert plan.installment_amount_cents == 12500
        assert plan.next_due_date == date(2024, 2, 15)
        assert plan.config.charge_first_upfront is True

    def test_per_plan_overrides_win_over_defaults(self):
        builder = InstallmentPlanBuilder(AsyncMock())

        plan = builder.build(make_request(max_retry_attempts=5, retry_interval_days=2))

        assert plan.config.max_retry_attempts == 5
        assert plan.config.retry_interval_days == 2

    def test_invalid_request_is_rejected(self):
        builder = InstallmentPlanBuilder(AsyncMock())

        with pytest.raises(InvalidPlanRequestException):
            builder.build(make_request(upfront_base_cents=-1))

    @pytest.mark.asyncio
    async def test_create_plan_persists_once(self):
        repo = AsyncMock()
        repo.get_open_plan_for_rental.return_value = None
        builder = InstallmentPlanBuilder(repo)

        plan = await builder.create_plan(make_request())

        repo.save.assert_awaited_once_with(plan)
