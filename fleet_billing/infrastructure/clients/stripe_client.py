"""Stripe implementation of PaymentProcessorClient."""

import asyncio
from typing import Any, Callable, Dict, List, Optional

import stripe
import structlog

from fleet_billing.core.config import Settings, settings as default_settings
from fleet_billing.core.metrics import record_processor_failure, track_processor_latency
from fleet_billing.domain.entities import (
    FAILED_INTENT_STATUSES,
    CardDetails,
    ChargeResult,
    CheckoutSession,
    CheckoutSessionRequest,
    PaymentIntentInfo,
    PaymentMode,
    RefundResult,
    SetupIntentInfo,
    TenantPaymentContext,
)
from fleet_billing.domain.exceptions import (
    CardDeclinedException,
    DomainException,
    PaymentNotCompletedException,
    ProcessorConfigurationException,
    ProcessorException,
    ProcessorInvalidRequestException,
    ProcessorRateLimitException,
    ProcessorUnavailableException,
)
from fleet_billing.domain.interfaces import PaymentProcessorClient

logger = structlog.get_logger(__name__)

KEY_PREFIXES = {
    PaymentMode.TEST: ("sk_test_", "rk_test_"),
    PaymentMode.LIVE: ("sk_live_", "rk_live_"),
}


def _ref(value: Any) -> Optional[str]:
    """Stripe returns either an id or an expanded object for linked resources."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return getattr(value, "id", None)


def _secret_key(cfg: Settings, mode: PaymentMode) -> str:
    return cfg.stripe_live_secret_key if mode == PaymentMode.LIVE else cfg.stripe_test_secret_key


class StripePaymentProcessor(PaymentProcessorClient):
    """
    Stripe client bound to one secret key and, optionally, one connected account.

    Each instance owns its own ``stripe.StripeClient``, so clients for
    different tenants and modes coexist in one process without touching
    module-level configuration.
    """

    def __init__(
        self,
        api_key: str,
        merchant_account_id: Optional[str] = None,
        currency: str | None = None,
        max_network_retries: int | None = None,
        client: Optional[stripe.StripeClient] = None,
    ):
        if max_network_retries is None:
            max_network_retries = default_settings.stripe_max_network_retries
        self._client = client or stripe.StripeClient(
            api_key,
            max_network_retries=max_network_retries,
        )
        self._merchant_account_id = merchant_account_id
        self._currency = currency or default_settings.currency

    async def create_customer(
        self,
        email: Optional[str],
        name: Optional[str],
        phone: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        params: Dict[str, Any] = {"metadata": metadata or {}}
        if email:
            params["email"] = email
        if name:
            params["name"] = name
        if phone:
            params["phone"] = phone

        customer = await self._call("create_customer", self._client.customers.create, params=params)
        return customer.id

    async def create_checkout_session(self, request: CheckoutSessionRequest) -> CheckoutSession:
        params: Dict[str, Any] = {
            "mode": "payment",
            "customer": request.customer_ref,
            "client_reference_id": request.client_reference_id,
            "success_url": request.success_url,
            "cancel_url": request.cancel_url,
            "metadata": request.metadata,
            "line_items": [
                {
                    "price_data": {
                        "currency": self._currency,
                        "product_data": {"name": item.name},
                        "unit_amount": item.amount_cents,
                    },
                    "quantity": item.quantity,
                }
                for item in request.line_items
            ],
            "payment_intent_data": {"metadata": request.metadata},
        }
        if request.save_payment_method:
            params["payment_intent_data"]["setup_future_usage"] = "off_session"

        session = await self._call(
            "create_checkout_session",
            self._client.checkout.sessions.create,
            params=params,
            idempotency_key=request.idempotency_key,
        )
        return self._to_checkout_session(session)

    async def retrieve_checkout_session(self, session_ref: str) -> CheckoutSession:
        session = await self._call(
            "retrieve_checkout_session",
            self._client.checkout.sessions.retrieve,
            session_ref,
            params={"expand": ["payment_intent"]},
        )
        return self._to_checkout_session(session)

    async def charge_off_session(
        self,
        customer_ref: str,
        payment_method_ref: str,
        amount_cents: int,
        description: str,
        idempotency_key: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> ChargeResult:
        intent = await self._call(
            "charge_off_session",
            self._client.payment_intents.create,
            params={
                "amount": amount_cents,
                "currency": self._currency,
                "customer": customer_ref,
                "payment_method": payment_method_ref,
                "off_session": True,
                "confirm": True,
                "description": description,
                "metadata": metadata or {},
            },
            idempotency_key=idempotency_key,
        )

        if intent.status in FAILED_INTENT_STATUSES:
            record_processor_failure("not_completed")
            logger.warning(
                "processor_charge_not_completed",
                intent_id=intent.id,
                status=intent.status,
            )
            raise PaymentNotCompletedException(intent.status, intent_ref=intent.id)

        result = ChargeResult(
            intent_ref=intent.id,
            status=intent.status,
            amount_cents=intent.amount,
            charge_ref=_ref(getattr(intent, "latest_charge", None)),
        )
        if result.is_pending:
            logger.info(
                "processor_charge_pending",
                intent_id=intent.id,
                status=intent.status,
            )
        return result

    async def retrieve_payment_intent(self, intent_ref: str) -> PaymentIntentInfo:
        intent = await self._call(
            "retrieve_payment_intent",
            self._client.payment_intents.retrieve,
            intent_ref,
        )
        return self._to_intent_info(intent)

    async def cancel_payment_intent(self, intent_ref: str) -> None:
        await self._call("cancel_payment_intent", self._client.payment_intents.cancel, intent_ref)

    async def create_refund(
        self,
        intent_ref: str,
        amount_cents: int,
        idempotency_key: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> RefundResult:
        refund = await self._call(
            "create_refund",
            self._client.refunds.create,
            params={
                "payment_intent": intent_ref,
                "amount": amount_cents,
                "reason": "requested_by_customer",
                "metadata": metadata or {},
            },
            idempotency_key=idempotency_key,
        )
        return RefundResult(id=refund.id, status=refund.status, amount_cents=refund.amount)

    async def create_setup_intent(
        self,
        customer_ref: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> SetupIntentInfo:
        intent = await self._call(
            "create_setup_intent",
            self._client.setup_intents.create,
            params={
                "customer": customer_ref,
                "payment_method_types": ["card"],
                "usage": "off_session",
                "metadata": metadata or {},
            },
        )
        return SetupIntentInfo(
            id=intent.id,
            client_secret=intent.client_secret,
            status=intent.status,
        )

    async def retrieve_payment_method(self, payment_method_ref: str) -> CardDetails:
        method = await self._call(
            "retrieve_payment_method",
            self._client.payment_methods.retrieve,
            payment_method_ref,
        )
        card = getattr(method, "card", None)

        return CardDetails(
            payment_method_ref=method.id,
            customer_ref=_ref(getattr(method, "customer", None)),
            brand=getattr(card, "brand", None),
            last4=getattr(card, "last4", None),
            exp_month=getattr(card, "exp_month", None),
            exp_year=getattr(card, "exp_year", None),
        )

    async def set_default_payment_method(self, customer_ref: str, payment_method_ref: str) -> None:
        await self._call(
            "set_default_payment_method",
            self._client.customers.update,
            customer_ref,
            params={"invoice_settings": {"default_payment_method": payment_method_ref}},
        )

    async def get_default_payment_method(self, customer_ref: str) -> Optional[str]:
        customer = await self._call(
            "retrieve_customer",
            self._client.customers.retrieve,
            customer_ref,
        )
        invoice_settings = getattr(customer, "invoice_settings", None)
        return _ref(getattr(invoice_settings, "default_payment_method", None))

    async def _call(
        self,
        operation: str,
        method: Callable[..., Any],
        *args: Any,
        params: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Any:
        options: Dict[str, Any] = {}
        if self._merchant_account_id:
            options["stripe_account"] = self._merchant_account_id
        if idempotency_key:
            options["idempotency_key"] = idempotency_key

        try:
            with track_processor_latency(operation):
                return await asyncio.to_thread(method, *args, params=params or {}, options=options)
        except stripe.StripeError as exc:
            raise self._translate(exc, operation) from exc

    def _translate(self, exc: stripe.StripeError, operation: str) -> DomainException:
        """Map a Stripe error to the domain taxonomy, logging the raw detail."""
        detail = str(exc)
        code = getattr(exc, "code", None)

        if isinstance(exc, stripe.CardError):
            error_type = "card_declined"
            translated = CardDeclinedException(detail=detail, processor_code=code)
        elif isinstance(exc, stripe.RateLimitError):
            error_type = "rate_limited"
            translated = ProcessorRateLimitException(detail=detail)
        elif isinstance(exc, stripe.InvalidRequestError):
            error_type = "invalid_request"
            translated = ProcessorInvalidRequestException(detail=detail, processor_code=code)
        elif isinstance(exc, (stripe.APIConnectionError, stripe.APIError)):
            error_type = "unavailable"
            translated = ProcessorUnavailableException(detail=detail)
        elif isinstance(exc, (stripe.AuthenticationError, stripe.PermissionError)):
            error_type = "configuration"
            translated = ProcessorConfigurationException(
                "Payment processor credentials were rejected"
            )
        else:
            error_type = "other"
            translated = ProcessorException(
                message="An unexpected payment error occurred. Please try again.",
                detail=detail,
                processor_code=code,
            )

        record_processor_failure(error_type)
        logger.warning(
            "processor_request_failed",
            operation=operation,
            error_type=error_type,
            processor_code=code,
            detail=detail,
        )
        return translated

    def _to_checkout_session(self, session: Any) -> CheckoutSession:
        intent = getattr(session, "payment_intent", None)
        payment_method = None
        if intent is not None and not isinstance(intent, str):
            payment_method = getattr(intent, "payment_method", None)

        return CheckoutSession(
            id=session.id,
            url=getattr(session, "url", None),
            status=getattr(session, "status", None),
            paid=getattr(session, "payment_status", None) == "paid",
            payment_intent_ref=_ref(intent),
            payment_method_ref=_ref(payment_method),
            customer_ref=_ref(getattr(session, "customer", None)),
        )

    def _to_intent_info(self, intent: Any) -> PaymentIntentInfo:
        return PaymentIntentInfo(
            id=intent.id,
            status=intent.status,
            amount_cents=getattr(intent, "amount", 0) or 0,
            payment_method_ref=_ref(getattr(intent, "payment_method", None)),
            charge_ref=_ref(getattr(intent, "latest_charge", None)),
        )



def configured_processor_modes(app_settings: Settings | None = None) -> Dict[str, bool]:
    """Report which payment modes have a secret key configured."""
    cfg = app_settings or default_settings
    return {mode.value: bool(_secret_key(cfg, mode)) for mode in PaymentMode}


def processor_settings_problems(app_settings: Settings | None = None) -> List[str]:
    """
    Check the configured Stripe keys without calling Stripe.

    Returns a list of human-readable problems; an empty list means every
    configured key matches its mode.
    """
    cfg = app_settings or default_settings
    problems: List[str] = []

    if not any(configured_processor_modes(cfg).values()):
        problems.append("no payment processor key is configured for any mode")

    for mode, prefixes in KEY_PREFIXES.items():
        key = _secret_key(cfg, mode)
        if key and not key.startswith(prefixes):
            problems.append(f"{mode.value} processor key does not look like a {mode.value} key")

    if cfg.stripe_max_network_retries < 0:
        problems.append("processor network retries must not be negative")

    return problems


def resolve_processor_client(
    context: TenantPaymentContext,
    app_settings: Settings | None = None,
) -> StripePaymentProcessor:
    """
    Build a Stripe client for a tenant payment context.

    Args:
        context: The resolved tenant payment context
        app_settings: Settings to read keys from (uses defaults if not provided)

    Returns:
        A client using the mode's secret key and the context's merchant account

    Raises:
        ProcessorConfigurationException: If no secret key is configured for the mode
    """
    cfg = app_settings or default_settings
    api_key = _secret_key(cfg, context.mode)

    if not api_key:
        logger.error(
            "processor_not_configured",
            tenant_id=context.tenant_id,
            mode=context.mode.value,
        )
        raise ProcessorConfigurationException(
            f"No payment processor key configured for {context.mode.value} mode"
        )

    return StripePaymentProcessor(
        api_key=api_key,
        merchant_account_id=context.merchant_account_id,
        currency=cfg.currency,
        max_network_retries=cfg.stripe_max_network_retries,
    )
