"""
Installment Schedule Calculation.

Splits an installable balance into dated installments. All amounts are
integer cents; division rounds half up to the cent and the final
installment absorbs whatever rounding leaves over, so the schedule always
sums exactly to the balance.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from dateutil.relativedelta import relativedelta

from fleet_billing.domain.entities import PlanType
from fleet_billing.domain.exceptions import (
    InvalidInstallmentCountException,
    InvalidPlanAmountException,
)

from .settings import InstallmentSettings, installment_settings


@dataclass(frozen=True)
class ScheduleLine:
    """One row of a computed schedule, before it becomes an entity."""

    installment_number: int
    amount_cents: int
    due_date: date
    charged_upfront: bool = False


def divide_cents(total_cents: int, parts: int) -> int:
    """Divide cents by ``parts``, rounding half up to the nearest cent."""
    quotient = Decimal(total_cents) / Decimal(parts)
    return int(quotient.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def due_date_for(start_date: date, plan_type: PlanType, offset: int) -> date:
    """
    Due date ``offset`` periods after ``start_date``.

    Monthly offsets are computed from the start date each time so a plan
    starting on the 31st lands on month ends rather than drifting.
    """
    if plan_type == PlanType.WEEKLY:
        return start_date + timedelta(weeks=offset)
    return start_date + relativedelta(months=offset)


def validate_installment_count(
    number_of_installments: int,
    settings: InstallmentSettings = installment_settings,
) -> None:
    if not settings.min_installments <= number_of_installments <= settings.max_installments:
        raise InvalidInstallmentCountException(
            number_of_installments,
            settings.min_installments,
            settings.max_installments,
        )


def split_amount(total_cents: int, count: int) -> List[int]:
    """
    Split ``total_cents`` into ``count`` amounts.

    Every amount except the last is the rounded average; the last takes
    the remainder.
    """
    regular = divide_cents(total_cents, count)
    last = total_cents - regular * (count - 1)
    return [regular] * (count - 1) + [last]


def build_schedule(
    total_cents: int,
    number_of_installments: int,
    start_date: date,
    plan_type: PlanType,
    charge_first_upfront: bool = False,
    first_installment_cents: Optional[int] = None,
    settings: InstallmentSettings = installment_settings,
) -> List[ScheduleLine]:
    """
    Compute the installment schedule for a plan.

    Args:
        total_cents: Balance to be split across installments
        number_of_installments: Total installments including any folded first one
        start_date: Due date of installment #1
        plan_type: Weekly or monthly cadence
        charge_first_upfront: Whether installment #1 is collected at checkout
        first_installment_cents: Amount of the folded installment; defaults
            to the rounded even share
        settings: Installment settings (uses defaults if not provided)

    Returns:
        Schedule lines numbered 1..N in due date order

    Raises:
        InvalidInstallmentCountException: If N is outside the allowed range
        InvalidPlanAmountException: If any amount would not be positive
    """
    validate_installment_count(number_of_installments, settings)

    if total_cents <= 0:
        raise InvalidPlanAmountException("Installable amount must be positive")

    lines: List[ScheduleLine] = []
    scheduled_total = total_cents
    first_number = 1

    if charge_first_upfront:
        first_amount = (
            first_installment_cents
            if first_installment_cents is not None
            else divide_cents(total_cents, number_of_installments)
        )
        if first_amount <= 0:
            raise InvalidPlanAmountException("First installment amount must be positive")
        if first_amount >= total_cents:
            raise InvalidPlanAmountException(
                "First installment must leave a balance for the remaining installments"
            )
        lines.append(ScheduleLine(1, first_amount, start_date, charged_upfront=True))
        scheduled_total = total_cents - first_amount
        first_number = 2

    regular_count = number_of_installments - (first_number - 1)
    amounts = split_amount(scheduled_total, regular_count)

    if any(amount <= 0 for amount in amounts):
        raise InvalidPlanAmountException(
            f"Installable amount {total_cents} is too small for "
            f"{number_of_installments} installments"
        )

    for index, amount in enumerate(amounts):
        number = first_number + index
        lines.append(
            ScheduleLine(
                installment_number=number,
                amount_cents=amount,
                due_date=due_date_for(start_date, plan_type, number - 1),
            )
        )

    return lines
