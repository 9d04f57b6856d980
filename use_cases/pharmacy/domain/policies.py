"""
Pharmacy Policies - Pure Business Rules.

These rules have NO dependencies on databases or external services.
All data needed for evaluation is passed in as parameters.
"""

import re
from decimal import Decimal
from typing import Any, Dict, List

from core.domain import Validator, ValidationError


# =============================================================================
# CONFIGURATION
# =============================================================================

DEFAULT_TAX_RATE = Decimal("0.08")
DEFAULT_FREE_SHIPPING_THRESHOLD = Decimal("50")
DEFAULT_SHIPPING_FEE = Decimal("9.99")

PAYMENT_METHODS = ["cod", "bank_transfer", "stripe"]

ORDER_STATUSES = ["pending", "processing", "completed", "cancelled"]

# Shipping form fields that must be filled, in display order
REQUIRED_SHIPPING_FIELDS = ["full_name", "email", "phone", "address", "city", "postal_code"]

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# =============================================================================
# VALIDATORS
# =============================================================================

class ShippingInfoValidator(Validator):
    """Checks the delivery details collected at checkout."""

    def validate(self, data: Dict[str, Any]) -> List[ValidationError]:
        missing = [
            name for name in REQUIRED_SHIPPING_FIELDS
            if not str(data.get(name) or "").strip()
        ]
        if missing:
            return [ValidationError(
                field=",".join(missing),
                message=f"Please fill in: {', '.join(missing)}",
                code="required",
            )]

        if not EMAIL_PATTERN.match(str(data["email"]).strip()):
            return [ValidationError(
                field="email",
                message="Please enter a valid email address",
            )]
        return []


class PaymentMethodValidator(Validator):
    """Only records known payment methods; no payment is processed."""

    def validate(self, data: Dict[str, Any]) -> List[ValidationError]:
        method = data.get("payment_method")
        if method not in PAYMENT_METHODS:
            return [ValidationError(
                field="payment_method",
                message=f"Unsupported payment method: {method}",
            )]
        return []


def is_valid_order_status(status: str) -> bool:
    return status in ORDER_STATUSES
