"""
Pharmacy Use Case.

Medicine catalog, the shopping cart and checkout.

Components:
- CartManager: owner of the cart state (validation, persistence, notifications)
- CartRemoteSync: backend copy of the cart for signed-in users
- MedicineCatalog: read access to the medicines table
- CheckoutService: turns the cart into an order

Usage:
    from use_cases.pharmacy import CartManager
    from core.storage import JsonFileStorage

    cart = CartManager(JsonFileStorage("./data/local_storage.json"))
"""

from use_cases.pharmacy.cart import (
    CART_STORAGE_KEY,
    Cart,
    CartItem,
    CartManager,
    Medicine,
    StockValidation,
)
from use_cases.pharmacy.cart_sync import CartRemoteSync
from use_cases.pharmacy.catalog import CatalogError, CatalogResult, MedicineCatalog
from use_cases.pharmacy.checkout import CheckoutError, CheckoutService, OrderConfirmation

__all__ = [
    "CART_STORAGE_KEY",
    "Cart",
    "CartItem",
    "CartManager",
    "Medicine",
    "StockValidation",
    "CartRemoteSync",
    "CatalogError",
    "CatalogResult",
    "MedicineCatalog",
    "CheckoutError",
    "CheckoutService",
    "OrderConfirmation",
]
