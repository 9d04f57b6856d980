"""
Pharmacy Domain Services.

Order pricing and order record construction. Pure logic, no I/O.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from core.domain import DomainService, round_money

from .policies import (
    DEFAULT_FREE_SHIPPING_THRESHOLD,
    DEFAULT_SHIPPING_FEE,
    DEFAULT_TAX_RATE,
)


@dataclass
class OrderTotals:
    """Price breakdown of an order."""
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal

    @property
    def free_shipping(self) -> bool:
        return self.shipping == 0

    def to_dict(self) -> Dict[str, str]:
        return {
            "subtotal": str(self.subtotal),
            "tax": str(self.tax),
            "shipping": str(self.shipping),
            "total": str(self.total),
        }


@dataclass
class OrderRequest:
    """An order ready to be persisted."""
    id: str
    user_id: str
    items: List[Dict[str, Any]]
    shipping_info: Dict[str, Any]
    payment_method: str
    totals: OrderTotals
    status: str = "pending"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_order_record(self) -> Dict[str, Any]:
        """Record for the orders table."""
        shipping = self.shipping_info
        address = ", ".join(
            part for part in (shipping.get("address"), shipping.get("city"), shipping.get("postal_code"))
            if part
        )
        return {
            "id": self.id,
            "user_id": self.user_id,
            "total_amount": str(self.totals.total),
            "subtotal": str(self.totals.subtotal),
            "tax": str(self.totals.tax),
            "shipping": str(self.totals.shipping),
            "status": self.status,
            "payment_method": self.payment_method,
            "shipping_address": address,
            "shipping_info": dict(shipping),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.created_at.isoformat(),
        }

    def to_item_records(self) -> List[Dict[str, Any]]:
        """Records for the order_items table."""
        return [
            {
                "id": str(uuid.uuid4()),
                "order_id": self.id,
                "medicine_id": item["medicine_id"],
                "quantity": item["quantity"],
                "price": item["price"],
                "total": item["total"],
                "created_at": self.created_at.isoformat(),
            }
            for item in self.items
        ]


class OrderTotalsCalculator(DomainService):
    """
    Computes subtotal, tax, shipping and total for a cart.

    Shipping is free once the subtotal is strictly above the threshold.
    """

    def __init__(
        self,
        tax_rate: Decimal = DEFAULT_TAX_RATE,
        free_shipping_threshold: Decimal = DEFAULT_FREE_SHIPPING_THRESHOLD,
        shipping_fee: Decimal = DEFAULT_SHIPPING_FEE,
    ):
        self.tax_rate = Decimal(str(tax_rate))
        self.free_shipping_threshold = Decimal(str(free_shipping_threshold))
        self.shipping_fee = Decimal(str(shipping_fee))

    def execute(self, subtotal: Decimal) -> OrderTotals:
        subtotal = round_money(subtotal)
        tax = round_money(subtotal * self.tax_rate)
        shipping = Decimal("0.00") if subtotal > self.free_shipping_threshold else round_money(self.shipping_fee)
        return OrderTotals(
            subtotal=subtotal,
            tax=tax,
            shipping=shipping,
            total=round_money(subtotal + tax + shipping),
        )


class OrderRequestBuilder(DomainService):
    """Turns a cart snapshot into an OrderRequest."""

    def __init__(self, calculator: Optional[OrderTotalsCalculator] = None):
        self.calculator = calculator or OrderTotalsCalculator()

    def execute(
        self,
        user_id: str,
        cart,
        shipping_info: Dict[str, Any],
        payment_method: str,
    ) -> OrderRequest:
        items = [
            {
                "medicine_id": item.id,
                "quantity": item.quantity,
                "price": str(item.price),
                "total": str(item.subtotal),
            }
            for item in cart.items
        ]
        return OrderRequest(
            id=str(uuid.uuid4()),
            user_id=user_id,
            items=items,
            shipping_info=dict(shipping_info),
            payment_method=payment_method,
            totals=self.calculator.execute(cart.total),
        )
