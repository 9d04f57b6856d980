"""
Medicine Catalog.

Read access to the medicines table. When no backend is configured the
catalog reports itself unavailable (demo mode) instead of pretending the
pharmacy has no stock.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from core.data import BackendError, QueryOptions, RecordStore, with_timeout

from .cart import Medicine

logger = logging.getLogger(__name__)


class CatalogError(Exception):
    """Loading the catalog failed for a reason other than missing configuration."""

    def __init__(self, error: BackendError):
        super().__init__(f"Failed to load medicines: {error.message}")
        self.error = error


@dataclass
class CatalogResult:
    """Medicines returned by the catalog and whether the backend was reachable."""
    medicines: List[Medicine] = field(default_factory=list)
    available: bool = True


class MedicineCatalog:
    """Queries the medicines table."""

    def __init__(self, store: RecordStore, timeout_seconds: Optional[float] = None):
        self._store = store
        self._timeout = timeout_seconds

    async def _select(self, options: Optional[QueryOptions] = None):
        return await with_timeout(
            self._store.select("medicines", options), self._timeout, "medicine query"
        )

    async def list_medicines(self, search: Optional[str] = None) -> CatalogResult:
        """
        List medicines, optionally filtered by a case-insensitive search term
        matched against name, category and description.

        Raises:
            CatalogError: the backend is configured but the query failed
        """
        result = await self._select(QueryOptions(order_by="name"))
        if result.not_configured:
            logger.warning("Backend not configured; catalog unavailable")
            return CatalogResult(medicines=[], available=False)
        if not result.ok:
            raise CatalogError(result.error)

        medicines = _parse_medicines(result.data or [])
        if search:
            term = search.strip().lower()
            medicines = [
                medicine for medicine in medicines
                if term in medicine.name.lower()
                or term in medicine.category.lower()
                or term in medicine.description.lower()
            ]
        return CatalogResult(medicines=medicines, available=True)

    async def get_medicine(self, medicine_id: str) -> Optional[Medicine]:
        result = await self._select(QueryOptions(filters={"id": medicine_id}, limit=1))
        if not result.ok:
            raise CatalogError(result.error)
        medicines = _parse_medicines(result.data or [])
        return medicines[0] if medicines else None

    async def fetch_stock(self, medicine_ids: Iterable[str]) -> Dict[str, int]:
        """
        Current stock for the given medicines.

        Medicines missing from the catalog are reported with zero stock.

        Raises:
            CatalogError: the query failed
        """
        ids = list(dict.fromkeys(medicine_ids))
        if not ids:
            return {}
        result = await self._select(
            QueryOptions(filters={"id": ids}, columns=["id", "stock_quantity"])
        )
        if not result.ok:
            raise CatalogError(result.error)

        stock = {medicine_id: 0 for medicine_id in ids}
        for row in result.data or []:
            try:
                stock[str(row["id"])] = max(0, int(row.get("stock_quantity", 0)))
            except (KeyError, ValueError, TypeError):
                logger.warning(f"Ignoring malformed stock row: {row!r}")
        return stock


def _parse_medicines(rows: List[dict]) -> List[Medicine]:
    medicines = []
    for row in rows:
        try:
            medicines.append(Medicine.from_dict(row))
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Skipping malformed medicine record: {e}")
    return medicines
