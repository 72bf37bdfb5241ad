"""Error handling middleware and exception handlers."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import structlog

from fleet_billing.domain.exceptions import (
    ConsistencyException,
    DomainException,
    NotFoundException,
    PaymentPendingException,
    PlanAlreadyExistsException,
    ProcessorConfigurationException,
    ProcessorException,
)
from .request_context import get_request_id

logger = structlog.get_logger(__name__)


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": code,
            "message": message,
            "request_id": get_request_id(),
        },
    )


def error_handler_middleware(app: FastAPI) -> None:
    """
    Register exception handlers with the FastAPI app.

    Maps domain exceptions to appropriate HTTP responses.
    """

    @app.exception_handler(NotFoundException)
    async def not_found_handler(
        request: Request,
        exc: NotFoundException,
    ) -> JSONResponse:
        """Handle lookups that found nothing."""
        return _error_response(404, exc.code, exc.message)

    @app.exception_handler(PlanAlreadyExistsException)
    async def plan_exists_handler(
        request: Request,
        exc: PlanAlreadyExistsException,
    ) -> JSONResponse:
        """Handle duplicate plan creation."""
        return _error_response(409, exc.code, exc.message)

    @app.exception_handler(ConsistencyException)
    async def consistency_handler(
        request: Request,
        exc: ConsistencyException,
    ) -> JSONResponse:
        """Handle requests that would break a billing rule."""
        logger.info(
            "request_rejected",
            code=exc.code,
            message=exc.message,
        )
        return _error_response(400, exc.code, exc.message)

    @app.exception_handler(ProcessorException)
    async def processor_error_handler(
        request: Request,
        exc: ProcessorException,
    ) -> JSONResponse:
        """Handle payment processor failures with a customer-safe message."""
        logger.error(
            "processor_error",
            code=exc.code,
            processor_code=exc.processor_code,
            detail=exc.detail,
        )
        return _error_response(exc.status_code, exc.code, exc.message)

    @app.exception_handler(PaymentPendingException)
    async def payment_pending_handler(
        request: Request,
        exc: PaymentPendingException,
    ) -> JSONResponse:
        """Handle charges the processor accepted but has not settled."""
        logger.info("payment_pending", intent_ref=exc.intent_ref)
        response = _error_response(202, exc.code, exc.message)
        response.headers["X-Processor-Ref"] = exc.intent_ref
        return response

    @app.exception_handler(ProcessorConfigurationException)
    async def processor_config_handler(
        request: Request,
        exc: ProcessorConfigurationException,
    ) -> JSONResponse:
        """Handle missing processor credentials."""
        logger.error("processor_configuration_error", message=exc.message)
        return _error_response(
            503,
            exc.code,
            "Payment service temporarily unavailable. Please try again later.",
        )

    @app.exception_handler(DomainException)
    async def domain_exception_handler(
        request: Request,
        exc: DomainException,
    ) -> JSONResponse:
        """Handle generic domain exceptions."""
        logger.warning(
            "domain_exception",
            code=exc.code,
            message=exc.message,
        )
        return _error_response(400, exc.code, exc.message)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return _error_response(500, "INTERNAL_ERROR", "An unexpected error occurred.")
