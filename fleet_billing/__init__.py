"""
Fleet Billing - Rental Installment & Refund Service

A FastAPI-based microservice that handles installment plans, off-session
charging, early payoff, and the refund cascade for a multi-tenant
vehicle-rental platform.
"""

__version__ = "0.1.0"
