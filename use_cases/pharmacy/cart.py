"""
Shopping Cart Management.

The CartManager is the sole owner of the pharmacy cart for the current
profile. It validates quantities against stock, persists every change to
local storage, publishes immutable snapshots to subscribers and pushes the
cart to the backend in the background for signed-in users.

Mutations are synchronous and all-or-nothing. Their return value depends only
on local validation; neither local persistence failures nor remote sync
failures are reported to the caller.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from core.domain import parse_date
from core.events import Signal, Subscription
from core.storage import LocalStorage, StorageError

logger = logging.getLogger(__name__)

CART_STORAGE_KEY = "wanterio_cart"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_money(value: Any) -> Decimal:
    """Convert a price-like value to Decimal, rejecting negatives."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValueError(f"Invalid price: {value!r}")
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"Invalid price: {value!r}")
    return amount


def _is_quantity(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _to_count(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Invalid {name}: {value!r}")
    try:
        count = int(value)
    except (ValueError, TypeError):
        raise ValueError(f"Invalid {name}: {value!r}")
    if count != value and not isinstance(value, str):
        raise ValueError(f"Invalid {name}: {value!r}")
    return count


# =============================================================================
# MODELS
# =============================================================================

@dataclass(frozen=True)
class Medicine:
    """A catalog item as returned by the medicines table."""
    id: str
    name: str
    price: Decimal
    stock_quantity: int
    description: str = ""
    category: str = ""
    image_url: str = ""
    created_at: str = field(default_factory=_now_iso)
    updated_at: str = field(default_factory=_now_iso)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Medicine":
        """Build from a backend record; raises ValueError on bad fields."""
        stock = _to_count(data.get("stock_quantity", 0), "stock_quantity")
        if stock < 0:
            raise ValueError(f"Invalid stock_quantity: {stock}")
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            price=to_money(data.get("price", 0)),
            stock_quantity=stock,
            description=data.get("description") or "",
            category=data.get("category") or "",
            image_url=data.get("image_url") or "",
            created_at=data.get("created_at") or _now_iso(),
            updated_at=data.get("updated_at") or _now_iso(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": str(self.price),
            "stock_quantity": self.stock_quantity,
            "category": self.category,
            "image_url": self.image_url,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class CartItem(Medicine):
    """A cart line: a medicine snapshot plus the requested quantity."""
    quantity: int = 1

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity

    @property
    def exceeds_stock(self) -> bool:
        return self.quantity > self.stock_quantity

    @classmethod
    def from_medicine(cls, medicine: Medicine, quantity: int) -> "CartItem":
        return cls(
            id=medicine.id,
            name=medicine.name,
            price=medicine.price,
            stock_quantity=medicine.stock_quantity,
            description=medicine.description,
            category=medicine.category,
            image_url=medicine.image_url,
            created_at=medicine.created_at,
            updated_at=medicine.updated_at,
            quantity=quantity,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CartItem":
        quantity = _to_count(data.get("quantity"), "quantity")
        if quantity <= 0:
            raise ValueError(f"Invalid quantity: {quantity}")
        return cls.from_medicine(Medicine.from_dict(data), quantity)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["quantity"] = self.quantity
        return data


@dataclass(frozen=True)
class Cart:
    """
    Immutable cart snapshot.

    total and item_count are always derived from items by Cart.build().
    """
    items: Tuple[CartItem, ...] = ()
    total: Decimal = Decimal("0")
    item_count: int = 0
    last_updated: str = field(default_factory=_now_iso)

    @classmethod
    def build(cls, items: Iterable[CartItem], last_updated: Optional[str] = None) -> "Cart":
        items = tuple(items)
        return cls(
            items=items,
            total=sum((item.subtotal for item in items), Decimal("0")),
            item_count=sum(item.quantity for item in items),
            last_updated=last_updated or _now_iso(),
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Cart":
        """
        Rebuild a cart from persisted data.

        Unreadable or duplicate lines are dropped and the stored totals are
        ignored in favour of recomputed ones.
        """
        raw_items = data.get("items") if isinstance(data, Mapping) else None
        if not isinstance(raw_items, list):
            raw_items = []

        items: List[CartItem] = []
        seen = set()
        for raw in raw_items:
            try:
                item = CartItem.from_dict(raw)
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Dropping unreadable cart line: {e}")
                continue
            if item.id in seen:
                logger.warning(f"Dropping duplicate cart line {item.id}")
                continue
            seen.add(item.id)
            items.append(item)

        last_updated = data.get("last_updated") if isinstance(data, Mapping) else None
        if not isinstance(last_updated, str) or parse_date(last_updated) is None:
            last_updated = None
        return cls.build(items, last_updated=last_updated)

    def get_item(self, item_id: str) -> Optional[CartItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    @property
    def is_empty(self) -> bool:
        return not self.items

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "total": str(self.total),
            "item_count": self.item_count,
            "last_updated": self.last_updated,
        }


@dataclass(frozen=True)
class StockValidation:
    """Result of a client-side stock check."""
    valid: bool
    errors: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.valid, "errors": list(self.errors)}


def stock_error_message(item: CartItem) -> str:
    return (
        f"{item.name} - Requested quantity ({item.quantity}) "
        f"exceeds available stock ({item.stock_quantity})"
    )


# =============================================================================
# CART MANAGER
# =============================================================================

class CartManager:
    """
    Owns the cart state for the current profile.

    One instance is composed at application start and shared with all
    consumers. Tests build as many isolated instances as they need.

    Example:
        manager = CartManager(MemoryStorage())
        manager.subscribe(lambda cart: print(cart.total))
        manager.add_item(medicine, 2)
    """

    def __init__(
        self,
        storage: LocalStorage,
        storage_key: str = CART_STORAGE_KEY,
        remote=None,
    ):
        """
        Initialize the manager and hydrate it from local storage.

        Args:
            storage: Local key/value storage for persistence
            storage_key: Namespaced key the cart is stored under
            remote: Optional CartRemoteSync for signed-in users
        """
        self._storage = storage
        self._storage_key = storage_key
        self._remote = remote
        self._user_id: Optional[str] = None
        self._changed: Signal[Cart] = Signal("cart")
        self._sync_task: Optional[asyncio.Task] = None
        self._queued_sync: Optional[Tuple[str, Cart]] = None
        self._cart = Cart.build([])
        self._load()

    # =========================================================================
    # READ ACCESS
    # =========================================================================

    def get_cart(self) -> Cart:
        """Return the current snapshot (immutable)."""
        return self._cart

    def subscribe(self, callback: Callable[[Cart], None]) -> Subscription:
        """Register a listener; it is called immediately with the current snapshot."""
        subscription = self._changed.connect(callback)
        callback(self._cart)
        return subscription

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def add_item(self, medicine: Union[Medicine, Mapping[str, Any]], quantity: int = 1) -> bool:
        """
        Add a medicine, summing quantities with an existing line.

        Returns False without changing anything when the quantity is not a
        positive integer, the record cannot be read, or the resulting line
        would exceed the declared stock.
        """
        if not isinstance(medicine, Medicine):
            try:
                medicine = Medicine.from_dict(medicine)
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Rejected unreadable medicine record: {e}")
                return False
        if not _is_quantity(quantity) or quantity <= 0 or quantity > medicine.stock_quantity:
            return False

        items = list(self._cart.items)
        for index, item in enumerate(items):
            if item.id == medicine.id:
                new_quantity = item.quantity + quantity
                if new_quantity > medicine.stock_quantity:
                    return False
                items[index] = replace(
                    item,
                    quantity=new_quantity,
                    stock_quantity=medicine.stock_quantity,
                )
                break
        else:
            items.append(CartItem.from_medicine(medicine, quantity))

        self._commit(items)
        return True

    def update_quantity(self, item_id: str, new_quantity: int) -> bool:
        """
        Set the exact quantity of a line.

        A quantity of zero or less removes the line. Returns False for unknown
        ids, non-integer quantities and quantities above the line's stock
        snapshot.
        """
        if not _is_quantity(new_quantity):
            return False
        items = list(self._cart.items)
        for index, item in enumerate(items):
            if item.id == item_id:
                break
        else:
            return False

        if new_quantity <= 0:
            del items[index]
        elif new_quantity > item.stock_quantity:
            return False
        else:
            items[index] = replace(item, quantity=new_quantity)

        self._commit(items)
        return True

    def remove_item(self, item_id: str):
        """Remove a line if present; the cart is persisted and published either way."""
        self._commit([item for item in self._cart.items if item.id != item_id])

    def clear_cart(self):
        """Empty the cart (after a successful order, for example)."""
        self._commit([])

    def refresh_stock(self, stock_by_id: Mapping[str, int]):
        """
        Replace stock snapshots with freshly fetched values.

        Quantities are left untouched so validate_stock() can report lines
        that no longer fit.
        """
        changed = False
        items = []
        for item in self._cart.items:
            stock = stock_by_id.get(item.id)
            if stock is not None and stock != item.stock_quantity:
                item = replace(item, stock_quantity=max(0, int(stock)))
                changed = True
            items.append(item)
        if changed:
            self._commit(items)

    def validate_stock(self) -> StockValidation:
        """Check every line against its last known stock snapshot."""
        errors = tuple(
            stock_error_message(item) for item in self._cart.items if item.exceeds_stock
        )
        return StockValidation(valid=not errors, errors=errors)

    def _commit(self, items: List[CartItem]):
        self._cart = Cart.build(items)
        self._persist()
        self._changed.emit(self._cart)
        self._schedule_sync(self._cart)

    # =========================================================================
    # LOCAL PERSISTENCE
    # =========================================================================

    def _load(self):
        """Hydrate from local storage; anything unreadable means an empty cart."""
        try:
            raw = self._storage.get_item(self._storage_key)
        except (StorageError, OSError) as e:
            logger.error(f"Error loading cart from local storage: {e}")
            return
        if not raw:
            return

        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.error(f"Discarding corrupt cart in local storage: {e}")
            return
        if not isinstance(data, dict):
            logger.error("Discarding corrupt cart in local storage: not an object")
            return

        self._cart = Cart.from_dict(data)
        logger.debug(f"Restored cart with {len(self._cart.items)} lines")

    def _persist(self):
        try:
            self._storage.set_item(self._storage_key, json.dumps(self._cart.to_dict()))
        except (StorageError, OSError, TypeError, ValueError) as e:
            logger.error(f"Error saving cart to local storage: {e}")

    # =========================================================================
    # REMOTE SYNC
    # =========================================================================

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    def attach_user(self, user_id: str):
        """Start syncing changes to the backend for this user."""
        self._user_id = user_id

    def detach_user(self):
        self._user_id = None

    def _schedule_sync(self, cart: Cart):
        """
        Queue the snapshot for a background push; the outcome is only logged.

        Pushes run one at a time and only the latest queued snapshot is sent,
        so an older cart can never overwrite a newer one on the backend.
        """
        if self._remote is None or self._user_id is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; skipping remote cart sync")
            return
        self._queued_sync = (self._user_id, cart)
        task = self._sync_task
        if task is None or task.done() or task.get_loop() is not loop:
            self._sync_task = loop.create_task(self._run_sync())
            self._sync_task.add_done_callback(self._sync_finished)

    async def _run_sync(self):
        while self._queued_sync is not None:
            user_id, cart = self._queued_sync
            self._queued_sync = None
            try:
                result = await self._remote.push(user_id, cart)
            except Exception:
                logger.exception(f"Remote cart sync for {user_id} crashed")
                continue
            if not result.ok:
                logger.warning(f"Remote cart sync for {user_id} failed: {result.error.message}")

    def _sync_finished(self, task: asyncio.Task):
        if not task.cancelled() and task.exception() is not None:
            logger.error("Remote cart sync stopped", exc_info=task.exception())

    async def drain_sync(self):
        """Wait for the background push still in flight (used at shutdown)."""
        task = self._sync_task
        if task is not None and not task.done() and task.get_loop() is asyncio.get_running_loop():
            await asyncio.gather(task, return_exceptions=True)

    async def load_remote(self, user_id: str) -> bool:
        """
        Adopt the backend copy of the cart when it is newer than the local one.

        Last writer wins; carts are never merged. Returns True when the local
        cart was replaced.
        """
        if self._remote is None:
            return False

        result = await self._remote.fetch(user_id)
        if not result.ok:
            logger.warning(f"Could not load remote cart for {user_id}: {result.error.message}")
            return False
        remote_cart = result.data
        if remote_cart is None:
            return False

        if remote_cart.is_empty:
            return False
        # An empty local cart always yields to a non-empty remote one
        if not self._cart.is_empty:
            remote_time = parse_date(remote_cart.last_updated)
            local_time = parse_date(self._cart.last_updated)
            if remote_time is None or (local_time is not None and remote_time <= local_time):
                return False

        self._cart = remote_cart
        self._persist()
        self._changed.emit(self._cart)
        logger.info(f"Adopted remote cart for {user_id} ({remote_cart.item_count} items)")
        return True
