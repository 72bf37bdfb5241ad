"""Installment plan domain exceptions."""

from .base import ConsistencyException, NotFoundException


class PlanNotFoundException(NotFoundException):
    """Raised when a plan cannot be found."""

    def __init__(self, plan_id: str):
        super().__init__(
            message=f"Plan not found: {plan_id}",
            code="PLAN_NOT_FOUND",
        )
        self.plan_id = plan_id


class InstallmentNotFoundException(NotFoundException):
    """Raised when an installment cannot be found."""

    def __init__(self, installment_id: str):
        super().__init__(
            message=f"Installment not found: {installment_id}",
            code="INSTALLMENT_NOT_FOUND",
        )
        self.installment_id = installment_id


class PlanAlreadyExistsException(ConsistencyException):
    """Raised when a rental already has a plan that is still running."""

    def __init__(self, rental_id: str, plan_id: str):
        super().__init__(
            message=f"Rental {rental_id} already has an open installment plan",
            code="PLAN_ALREADY_EXISTS",
        )
        self.rental_id = rental_id
        self.plan_id = plan_id


class InvalidInstallmentCountException(ConsistencyException):
    """Raised when the requested number of installments is out of range."""

    def __init__(self, count: int, minimum: int, maximum: int):
        super().__init__(
            message=f"Number of installments must be between {minimum} and {maximum}, got {count}",
            code="INVALID_INSTALLMENT_COUNT",
        )
        self.count = count


class InvalidPlanAmountException(ConsistencyException):
    """Raised when a plan or installment amount is not positive."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            code="INVALID_PLAN_AMOUNT",
        )


class InvalidPlanRequestException(ConsistencyException):
    """Raised when a plan request fails basic validation."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            code="INVALID_PLAN_REQUEST",
        )


class InvalidInstallmentTransitionException(ConsistencyException):
    """Raised when an installment is moved along an edge the state machine forbids."""

    def __init__(self, current: str, target: str):
        super().__init__(
            message=f"Installment cannot move from {current} to {target}",
            code="INVALID_INSTALLMENT_TRANSITION",
        )
        self.current = current
        self.target = target


class InstallmentNotPayableException(ConsistencyException):
    """Raised when an installment or plan cannot be paid right now."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            code="INSTALLMENT_NOT_PAYABLE",
        )
