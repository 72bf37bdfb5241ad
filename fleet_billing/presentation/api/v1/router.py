from fastapi import APIRouter

from .checkout import checkout_router
from .health import health_router
from .installments import installment_router
from .jobs import jobs_router
from .payment_methods import payment_method_router
from .plans import plan_router
from .refunds import refund_router

router = APIRouter()

router.include_router(health_router, tags=["Health"])
router.include_router(checkout_router, tags=["Checkout"])
router.include_router(plan_router, tags=["Plans"])
router.include_router(installment_router, tags=["Installments"])
router.include_router(refund_router, tags=["Refunds"])
router.include_router(payment_method_router, tags=["Payment Methods"])
router.include_router(jobs_router, tags=["Jobs"])
