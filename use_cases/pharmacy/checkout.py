"""
Checkout.

Turns the current cart into an order: validates the delivery details,
refreshes stock from the catalog, re-validates the cart, writes the order and
its lines, and clears the cart once the backend has accepted the order.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.data import BackendError, RecordStore, with_timeout

from .cart import CartManager
from .catalog import CatalogError, MedicineCatalog
from .domain.policies import PaymentMethodValidator, ShippingInfoValidator
from .domain.services import OrderRequestBuilder, OrderTotals, OrderTotalsCalculator

logger = logging.getLogger(__name__)


class CheckoutError(Exception):
    """The order was not placed; the cart is unchanged."""

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        cause: Optional[BackendError] = None,
    ):
        super().__init__(message)
        self.message = message
        self.errors = errors or [message]
        self.cause = cause


@dataclass
class OrderConfirmation:
    """Summary returned after a successful checkout."""
    order_id: str
    totals: OrderTotals
    item_count: int
    status: str = "pending"
    lines: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "status": self.status,
            "item_count": self.item_count,
            "totals": self.totals.to_dict(),
            "lines": self.lines,
        }


class CheckoutService:
    """Places pharmacy orders from the shared cart."""

    def __init__(
        self,
        cart: CartManager,
        catalog: MedicineCatalog,
        store: RecordStore,
        calculator: Optional[OrderTotalsCalculator] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self._cart = cart
        self._catalog = catalog
        self._store = store
        self._calculator = calculator or OrderTotalsCalculator()
        self._builder = OrderRequestBuilder(self._calculator)
        self._shipping_validator = ShippingInfoValidator()
        self._payment_validator = PaymentMethodValidator()
        self._timeout = timeout_seconds

    def quote(self) -> OrderTotals:
        """Price breakdown for the current cart."""
        return self._calculator.execute(self._cart.get_cart().total)

    async def place_order(
        self,
        user_id: str,
        shipping_info: Dict[str, Any],
        payment_method: str = "cod",
    ) -> OrderConfirmation:
        """
        Place an order for the current cart.

        Raises:
            CheckoutError: validation failed, stock is insufficient or the
                backend rejected the order
        """
        if self._cart.get_cart().is_empty:
            raise CheckoutError("Your cart is empty")

        errors = self._shipping_validator.validate(shipping_info)
        errors += self._payment_validator.validate({"payment_method": payment_method})
        if errors:
            raise CheckoutError(errors[0].message, errors=[e.message for e in errors])

        await self._refresh_stock()
        validation = self._cart.validate_stock()
        if not validation.valid:
            raise CheckoutError(
                "Some items are out of stock: " + ", ".join(validation.errors),
                errors=list(validation.errors),
            )

        cart = self._cart.get_cart()
        order = self._builder.execute(user_id, cart, shipping_info, payment_method)

        result = await with_timeout(
            self._store.insert("orders", [order.to_order_record()]),
            self._timeout,
            "order insert",
        )
        if not result.ok:
            logger.error(f"Error placing order for {user_id}: {result.error.message}")
            raise CheckoutError("Failed to place order. Please try again.", cause=result.error)

        lines = order.to_item_records()
        result = await with_timeout(
            self._store.insert("order_items", lines),
            self._timeout,
            "order items insert",
        )
        if not result.ok:
            logger.error(f"Error saving items of order {order.id}: {result.error.message}")
            await self._discard_order(order.id)
            raise CheckoutError("Failed to place order. Please try again.", cause=result.error)

        self._cart.clear_cart()
        logger.info(f"Order {order.id} placed by {user_id} for {order.totals.total}")
        return OrderConfirmation(
            order_id=order.id,
            totals=order.totals,
            item_count=cart.item_count,
            status=order.status,
            lines=order.items,
        )

    async def _refresh_stock(self):
        cart = self._cart.get_cart()
        try:
            stock = await self._catalog.fetch_stock(item.id for item in cart.items)
        except CatalogError as e:
            if e.error.is_not_configured:
                raise CheckoutError("Checkout is unavailable: backend not configured", cause=e.error)
            raise CheckoutError("Could not verify stock. Please try again.", cause=e.error)
        self._cart.refresh_stock(stock)

    async def _discard_order(self, order_id: str):
        result = await with_timeout(
            self._store.delete("orders", {"id": order_id}),
            self._timeout,
            "order rollback",
        )
        if not result.ok:
            logger.error(f"Could not remove incomplete order {order_id}: {result.error.message}")
