"""
Ledger Reconciliation.

Computes how much of a rental's ledger category can still be refunded, and
how a refunded payment is spread back over ledger categories.
"""

from typing import Dict, Iterable, List, Tuple

from fleet_billing.domain.entities import (
    DEFAULT_LEDGER_CATEGORY,
    LedgerEntry,
    LedgerEntryType,
    PaymentApplication,
    RefundableBalance,
)


def calculate_refundable_balance(
    rental_id: str,
    category: str,
    entries: Iterable[LedgerEntry],
) -> RefundableBalance:
    """
    availableForRefund = sum(charge paid) - sum(|refund|) for one category.

    A charge's paid portion is its amount minus what remains unpaid.
    """
    charged = 0
    paid = 0
    refunded = 0

    for entry in entries:
        if entry.category != category:
            continue
        if entry.type == LedgerEntryType.CHARGE:
            charged += entry.amount_cents
            paid += entry.paid_cents
        elif entry.type == LedgerEntryType.REFUND:
            refunded += abs(entry.amount_cents)

    return RefundableBalance(
        rental_id=rental_id,
        category=category,
        total_charged_cents=charged,
        total_paid_cents=paid,
        total_refunded_cents=refunded,
    )


def split_evenly(amount_cents: int, categories: List[str]) -> List[Tuple[str, int]]:
    """Even split in cents; the last category takes the remainder."""
    share = amount_cents // len(categories)
    lines = [(category, share) for category in categories[:-1]]
    lines.append((categories[-1], amount_cents - share * (len(categories) - 1)))
    return lines


def refund_allocation(
    amount_cents: int,
    applications: Iterable[PaymentApplication],
    target_categories: Iterable[str],
) -> List[Tuple[str, int]]:
    """
    Decide which ledger categories a refunded payment comes back out of.

    Uses the payment's applications to ledger charges when it has any,
    otherwise splits evenly across the payment's target categories, and
    falls back to the default category.

    Returns:
        (category, positive cents) pairs in first-seen order
    """
    applied: Dict[str, int] = {}
    for application in applications:
        category = application.category or DEFAULT_LEDGER_CATEGORY
        applied[category] = applied.get(category, 0) + application.amount_applied_cents

    if applied:
        # Earlier partial refunds leave less to return than was applied.
        lines = []
        left = amount_cents
        for category, cents in applied.items():
            take = min(cents, left)
            if take > 0:
                lines.append((category, take))
                left -= take
        return lines

    categories = [c for c in target_categories if c]
    if categories:
        return [(c, cents) for c, cents in split_evenly(amount_cents, categories) if cents > 0]

    return [(DEFAULT_LEDGER_CATEGORY, amount_cents)]
