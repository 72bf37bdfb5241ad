"""Refund and ledger domain exceptions."""

from .base import ConsistencyException


class RefundExceedsAvailableException(ConsistencyException):
    """Raised when a refund request is larger than what the category can return."""

    def __init__(self, requested_cents: int, available_cents: int):
        super().__init__(
            message=(
                f"Refund amount {requested_cents} exceeds available "
                f"refund amount {available_cents}"
            ),
            code="REFUND_EXCEEDS_AVAILABLE",
        )
        self.requested_cents = requested_cents
        self.available_cents = available_cents


class NoRefundableBalanceException(ConsistencyException):
    """Raised when nothing has been paid in the category yet."""

    def __init__(self, category: str):
        super().__init__(
            message=f"No refundable amount available for category {category}",
            code="NO_REFUNDABLE_BALANCE",
        )
        self.category = category


class InvalidRefundRequestException(ConsistencyException):
    """Raised when a refund request fails basic validation."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            code="INVALID_REFUND_REQUEST",
        )


class HoldNotRefundableException(ConsistencyException):
    """Raised when a refund targets an uncaptured pre-authorization hold."""

    def __init__(self, payment_id: str):
        super().__init__(
            message="Payment is a pre-authorization hold. Release the hold instead of refunding it.",
            code="HOLD_NOT_REFUNDABLE",
        )
        self.payment_id = payment_id
