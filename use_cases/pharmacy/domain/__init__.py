"""
Pharmacy Domain Layer.

Contains pure business logic for the pharmacy use case.
No database access or I/O - just business rules.
"""

from .policies import (
    PAYMENT_METHODS,
    ORDER_STATUSES,
    ShippingInfoValidator,
    PaymentMethodValidator,
)
from .services import (
    OrderTotals,
    OrderTotalsCalculator,
    OrderRequest,
    OrderRequestBuilder,
)

__all__ = [
    "PAYMENT_METHODS",
    "ORDER_STATUSES",
    "ShippingInfoValidator",
    "PaymentMethodValidator",
    "OrderTotals",
    "OrderTotalsCalculator",
    "OrderRequest",
    "OrderRequestBuilder",
]
