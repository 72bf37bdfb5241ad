"""Payment processor and payment method domain exceptions."""

from .base import ConsistencyException, DomainException, NotFoundException


class ProcessorConfigurationException(DomainException):
    """Raised when no processor credentials exist for the resolved mode."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            code="PROCESSOR_NOT_CONFIGURED",
        )


class ProcessorException(DomainException):
    """
    Raised when the payment processor rejects or fails a request.

    The message is safe to show to a customer; the raw processor
    error is kept in ``detail`` for logs.
    """

    status_code = 502

    def __init__(
        self,
        message: str,
        code: str = "PROCESSOR_ERROR",
        detail: str | None = None,
        processor_code: str | None = None,
    ):
        super().__init__(message=message, code=code)
        self.detail = detail
        self.processor_code = processor_code


class CardDeclinedException(ProcessorException):
    """Raised when the card was declined or needs authentication."""

    status_code = 402

    def __init__(self, detail: str | None = None, processor_code: str | None = None):
        super().__init__(
            message="There was an issue with your card. Please check your card details and try again.",
            code="CARD_DECLINED",
            detail=detail,
            processor_code=processor_code,
        )


class ProcessorRateLimitException(ProcessorException):
    """Raised when the processor throttles requests."""

    status_code = 429

    def __init__(self, detail: str | None = None):
        super().__init__(
            message="Too many requests. Please wait a moment and try again.",
            code="PROCESSOR_RATE_LIMITED",
            detail=detail,
        )


class ProcessorUnavailableException(ProcessorException):
    """Raised when the processor cannot be reached or errors internally."""

    status_code = 503

    def __init__(self, detail: str | None = None):
        super().__init__(
            message="Payment service temporarily unavailable. Please try again later.",
            code="PROCESSOR_UNAVAILABLE",
            detail=detail,
        )


class ProcessorInvalidRequestException(ProcessorException):
    """Raised when the processor rejects request parameters."""

    status_code = 400

    def __init__(self, detail: str | None = None, processor_code: str | None = None):
        super().__init__(
            message="Invalid payment request. Please contact support.",
            code="PROCESSOR_INVALID_REQUEST",
            detail=detail,
            processor_code=processor_code,
        )


class PaymentNotCompletedException(ProcessorException):
    """Raised when a charge came back in a non-terminal or failed state."""

    status_code = 402

    def __init__(self, status: str, intent_ref: str | None = None):
        super().__init__(
            message=f"Payment not completed. Status: {status}",
            code="PAYMENT_NOT_COMPLETED",
            detail=status,
        )
        self.status = status
        self.intent_ref = intent_ref


class PaymentPendingException(ProcessorException):
    """
    Raised when a customer-initiated charge was accepted but has not settled.

    The installments stay claimed until the intent is reconciled, so the
    customer cannot pay them a second time in the meantime.
    """

    status_code = 202

    def __init__(self, intent_ref: str):
        super().__init__(
            message="Your payment is being processed. It will show as paid once your bank confirms it.",
            code="PAYMENT_PENDING",
            detail=intent_ref,
        )
        self.intent_ref = intent_ref


class PaymentNotFoundException(NotFoundException):
    """Raised when a payment cannot be found."""

    def __init__(self, reference: str):
        super().__init__(
            message=f"Payment not found: {reference}",
            code="PAYMENT_NOT_FOUND",
        )
        self.reference = reference


class PaymentMethodMissingException(ConsistencyException):
    """Raised when an off-session charge has no stored payment method."""

    def __init__(self, message: str = "No payment method on file. Please update your card."):
        super().__init__(
            message=message,
            code="PAYMENT_METHOD_MISSING",
        )


class PaymentMethodOwnershipException(ConsistencyException):
    """Raised when a payment method token belongs to another processor profile."""

    def __init__(self, payment_method_ref: str):
        super().__init__(
            message="Payment method does not belong to this customer",
            code="PAYMENT_METHOD_NOT_OWNED",
        )
        self.payment_method_ref = payment_method_ref


class CheckoutNotConfirmableException(ConsistencyException):
    """Raised when a checkout session cannot be confirmed."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            code="CHECKOUT_NOT_CONFIRMABLE",
        )
