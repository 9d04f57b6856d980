"""
Backend copy of the cart for signed-in users.

One record per user in the carts table, keyed by the user id.
"""

import logging
from typing import Optional

from core.data import BackendResult, QueryOptions, RecordStore, with_timeout

from .cart import Cart

logger = logging.getLogger(__name__)


class CartRemoteSync:
    """Pushes and fetches cart snapshots through the record store."""

    def __init__(self, store: RecordStore, timeout_seconds: Optional[float] = None):
        self._store = store
        self._timeout = timeout_seconds

    async def push(self, user_id: str, cart: Cart) -> BackendResult:
        record = cart.to_dict()
        record["id"] = user_id
        record["user_id"] = user_id
        return await with_timeout(
            self._store.upsert("carts", record), self._timeout, "cart push"
        )

    async def fetch(self, user_id: str) -> BackendResult[Optional[Cart]]:
        result = await with_timeout(
            self._store.select("carts", QueryOptions(filters={"id": user_id}, limit=1)),
            self._timeout,
            "cart fetch",
        )
        if not result.ok:
            return result
        rows = result.data or []
        if not rows:
            return BackendResult.success(None)
        return BackendResult.success(Cart.from_dict(rows[0]))
