"""
Use Cases Package.

Each use case is a self-contained package built on the core layers:

- pharmacy: medicine catalog, shopping cart and checkout
- healthcare: appointment booking and ambulance dispatch requests
- admin: role management and system statistics

Architecture:
Each use case follows the layered pattern defined in core/:
- domain/: Pure business logic (policies, services)
- services: Orchestration over the injected RecordStore
"""

from use_cases.pharmacy import CartManager, CheckoutService, MedicineCatalog
from use_cases.healthcare import BookingService
from use_cases.admin import AdminService

__all__ = [
    "CartManager",
    "CheckoutService",
    "MedicineCatalog",
    "BookingService",
    "AdminService",
]
