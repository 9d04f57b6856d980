"""
Data Layer Contracts.

The data layer describes the hosted backend the application talks to:

- RecordStore: per-table record access (upsert, select, insert, update,
  delete, count) plus server-side functions for privileged operations.
- IdentityProvider: email/password identity with session change events.

Every call returns a BackendResult carrying either data or a structured
BackendError. A missing configuration is reported as ErrorKind.NOT_CONFIGURED
so callers can switch to a degraded mode instead of reporting "no data".

Key principles:
- No business logic behind these interfaces
- Implementations are injected (Cosmos DB in production, fakes in tests)
- Every backend call is bounded by a timeout (see with_timeout)
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

from core.events import Subscription

logger = logging.getLogger(__name__)

# Type variable for result payloads
T = TypeVar("T")


# =============================================================================
# ERRORS
# =============================================================================

class ErrorKind(Enum):
    """Classification of backend failures."""
    NOT_CONFIGURED = "not_configured"
    SCHEMA_MISSING = "schema_missing"
    NOT_FOUND = "not_found"
    PERMISSION = "permission"
    AUTH = "auth"
    CONFLICT = "conflict"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


RETRYABLE_KINDS = {ErrorKind.TIMEOUT, ErrorKind.UNAVAILABLE}

# Provider error codes meaning "the table/relation has not been created yet"
SCHEMA_MISSING_CODES = {"PGRST116", "42P01"}
SCHEMA_MISSING_HINTS = ("relation", "does not exist", "not found")


class BackendError(Exception):
    """A structured error returned (or raised) by a backend collaborator."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        code: Optional[str] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.code = code
        self.retryable = kind in RETRYABLE_KINDS if retryable is None else retryable

    @property
    def is_setup_incomplete(self) -> bool:
        """True when the backend schema has not been provisioned."""
        return self.kind == ErrorKind.SCHEMA_MISSING

    @property
    def is_not_configured(self) -> bool:
        return self.kind == ErrorKind.NOT_CONFIGURED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "code": self.code,
            "retryable": self.retryable,
        }

    def __repr__(self) -> str:
        return f"BackendError(kind={self.kind.value!r}, message={self.message!r}, code={self.code!r})"


def classify_error(
    code: Optional[str] = None,
    message: str = "",
    status: Optional[int] = None,
) -> ErrorKind:
    """
    Map a raw provider error onto an ErrorKind.

    Schema detection runs first: a missing relation must never be confused with
    a permission problem, because only the former allows a role fallback.
    """
    lowered = (message or "").lower()
    if code in SCHEMA_MISSING_CODES or any(hint in lowered for hint in SCHEMA_MISSING_HINTS):
        return ErrorKind.SCHEMA_MISSING
    if status == 401:
        return ErrorKind.AUTH
    if status == 403:
        return ErrorKind.PERMISSION
    if status == 404:
        return ErrorKind.NOT_FOUND
    if status == 408:
        return ErrorKind.TIMEOUT
    if status == 409:
        return ErrorKind.CONFLICT
    if status is not None and status >= 500:
        return ErrorKind.UNAVAILABLE
    return ErrorKind.UNKNOWN


def not_configured_error(operation: str = "") -> BackendError:
    """Error returned by every call while no backend is configured."""
    suffix = f" ({operation})" if operation else ""
    return BackendError(ErrorKind.NOT_CONFIGURED, f"Backend not configured{suffix}")


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class BackendResult(Generic[T]):
    """Outcome of a backend call: either data or an error."""
    data: Optional[T] = None
    error: Optional[BackendError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def not_configured(self) -> bool:
        return self.error is not None and self.error.is_not_configured

    def unwrap(self) -> T:
        """Return the data or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.data

    @classmethod
    def success(cls, data: Optional[T] = None) -> "BackendResult[T]":
        return cls(data=data)

    @classmethod
    def failure(cls, error: BackendError) -> "BackendResult[T]":
        return cls(error=error)


async def with_timeout(
    awaitable: Awaitable[BackendResult],
    seconds: Optional[float],
    operation: str = "backend call",
) -> BackendResult:
    """
    Await a backend call, converting an expired deadline into a retryable error.

    A hung backend call must never leave a caller waiting forever.
    """
    if seconds is None or seconds <= 0:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError:
        logger.warning(f"{operation} timed out after {seconds}s")
        return BackendResult.failure(
            BackendError(ErrorKind.TIMEOUT, f"{operation} timed out after {seconds}s")
        )


# =============================================================================
# IDENTITY TYPES
# =============================================================================

@dataclass(frozen=True)
class AuthUser:
    """An authenticated identity as reported by the identity provider."""
    id: str
    email: str
    full_name: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def display_name(self) -> str:
        """Full name, falling back to the local part of the email address."""
        if self.full_name:
            return self.full_name
        return self.email.split("@")[0] if self.email else ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.display_name,
        }


@dataclass(frozen=True)
class AuthSession:
    """A signed-in session issued by the identity provider."""
    access_token: str
    user: AuthUser
    expires_at: Optional[datetime] = None


class AuthEvent(Enum):
    """Identity provider session transitions."""
    INITIAL_SESSION = "initial_session"
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"
    TOKEN_REFRESHED = "token_refreshed"
    USER_UPDATED = "user_updated"


SessionChangeCallback = Callable[[AuthEvent, Optional[AuthSession]], Awaitable[None]]


# =============================================================================
# QUERY OPTIONS
# =============================================================================

@dataclass
class QueryOptions:
    """Options for record store selects."""
    filters: Dict[str, Any] = field(default_factory=dict)
    columns: Optional[List[str]] = None
    order_by: Optional[str] = None
    order_desc: bool = False
    limit: Optional[int] = None
    offset: int = 0


# =============================================================================
# COLLABORATOR CONTRACTS
# =============================================================================

class RecordStore(ABC):
    """
    Abstract record store accessed per logical table.

    Tables: users, user_roles, medicines, orders, order_items, appointments,
    ambulance_requests, carts.

    Example:
        result = await store.select("user_roles", QueryOptions(filters={"user_id": uid}))
        if result.ok:
            roles = [row["role"] for row in result.data]
    """

    @property
    def is_configured(self) -> bool:
        return True

    @abstractmethod
    async def upsert(self, table: str, record: Dict[str, Any]) -> BackendResult[Dict[str, Any]]:
        """Create or replace a record keyed by its id."""
        pass

    @abstractmethod
    async def select(
        self,
        table: str,
        options: Optional[QueryOptions] = None,
    ) -> BackendResult[List[Dict[str, Any]]]:
        """Return records matching the filters (a list value means "any of")."""
        pass

    @abstractmethod
    async def insert(
        self,
        table: str,
        records: List[Dict[str, Any]],
    ) -> BackendResult[List[Dict[str, Any]]]:
        """Insert new records (ids are generated when missing)."""
        pass

    @abstractmethod
    async def update(
        self,
        table: str,
        values: Dict[str, Any],
        filters: Dict[str, Any],
    ) -> BackendResult[List[Dict[str, Any]]]:
        """Patch every record matching the filters."""
        pass

    @abstractmethod
    async def delete(self, table: str, filters: Dict[str, Any]) -> BackendResult[int]:
        """Delete every record matching the filters; returns the number removed."""
        pass

    @abstractmethod
    async def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> BackendResult[int]:
        """Count records matching the filters."""
        pass

    @abstractmethod
    async def call(self, function: str, params: Dict[str, Any]) -> BackendResult[Any]:
        """Invoke a server-side function for privileged operations."""
        pass


class IdentityProvider(ABC):
    """Abstract identity provider with session change notifications."""

    @property
    def is_configured(self) -> bool:
        return True

    @abstractmethod
    async def get_current_session(self) -> Optional[AuthSession]:
        """Return the restored session, if any."""
        pass

    @abstractmethod
    def on_session_change(self, callback: SessionChangeCallback) -> Subscription:
        """Register a coroutine callback fired on sign-in, sign-out and refresh."""
        pass

    @abstractmethod
    async def sign_in_with_password(self, email: str, password: str) -> BackendResult[AuthSession]:
        pass

    @abstractmethod
    async def sign_up(
        self,
        email: str,
        password: str,
        profile: Optional[Dict[str, Any]] = None,
    ) -> BackendResult[AuthUser]:
        pass

    @abstractmethod
    async def sign_out(self) -> BackendResult[None]:
        pass
