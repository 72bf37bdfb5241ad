"""Rental and customer domain exceptions."""

from .base import NotFoundException


class RentalNotFoundException(NotFoundException):
    """Raised when a rental cannot be found."""

    def __init__(self, rental_id: str):
        super().__init__(
            message=f"Rental not found: {rental_id}",
            code="RENTAL_NOT_FOUND",
        )
        self.rental_id = rental_id


class CustomerNotFoundException(NotFoundException):
    """Raised when a customer cannot be found."""

    def __init__(self, customer_id: str):
        super().__init__(
            message=f"Customer not found: {customer_id}",
            code="CUSTOMER_NOT_FOUND",
        )
        self.customer_id = customer_id
