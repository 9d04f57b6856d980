"""
Session Management.

Owns the single authenticated identity of the application and the role set
resolved for it. The SessionManager bridges identity provider events to
application role state and role-based routing:

    UNAUTHENTICATED -> RESOLVING -> AUTHENTICATED
                                 -> UNAUTHENTICATED (role resolution failed)
    AUTHENTICATED   -> UNAUTHENTICATED (sign-out)

Role resolution fails closed: a backend error that is not a missing schema
never results in a granted role.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from core.data import (
    AuthEvent,
    AuthSession,
    AuthUser,
    BackendError,
    IdentityProvider,
    QueryOptions,
    RecordStore,
    with_timeout,
)
from core.events import Signal, Subscription
from core.roles import DEFAULT_ROLE, has_any_role, landing_route, normalize_roles, primary_role
from shared.cosmos_config import ASSIGN_DEFAULT_PATIENT_ROLE

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Lifecycle states of the application session."""
    UNAUTHENTICATED = "unauthenticated"
    RESOLVING = "resolving"
    AUTHENTICATED = "authenticated"


class SessionError(Exception):
    """Fatal error while resolving the session; access must be blocked."""

    def __init__(self, message: str, cause: Optional[BackendError] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class AuthError(Exception):
    """Credential or sign-out failure reported by the identity provider."""

    def __init__(self, message: str, cause: Optional[BackendError] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable view of the session published to subscribers."""
    state: SessionState = SessionState.UNAUTHENTICATED
    user: Optional[AuthUser] = None
    roles: Tuple[str, ...] = ()
    error: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.state == SessionState.AUTHENTICATED

    @property
    def is_loading(self) -> bool:
        return self.state == SessionState.RESOLVING

    @property
    def primary_role(self) -> Optional[str]:
        return primary_role(self.roles)

    @property
    def landing_route(self) -> str:
        return landing_route(self.roles)

    def has_role(self, *roles: str) -> bool:
        return self.is_authenticated and has_any_role(self.roles, roles)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "user": self.user.to_dict() if self.user else None,
            "roles": list(self.roles),
            "primary_role": self.primary_role,
            "error": self.error,
        }


class Navigator:
    """
    Tracks the current route and records redirects.

    The routing layer reads current_path after a session transition to decide
    where the user should be.
    """

    def __init__(self, current_path: str = "/"):
        self.current_path = current_path
        self.history: List[str] = []

    def push(self, path: str):
        logger.debug(f"Navigating {self.current_path} -> {path}")
        self.history.append(path)
        self.current_path = path


class SessionManager:
    """
    Manages the authenticated identity and its resolved role set.

    One instance is composed at application start and shared with every
    consumer that needs the current user or roles.
    """

    def __init__(
        self,
        identity: IdentityProvider,
        store: RecordStore,
        navigator: Optional[Navigator] = None,
        allow_local_default_role: bool = False,
        home_path: str = "/",
        auth_path_prefix: str = "/auth/",
        timeout_seconds: Optional[float] = None,
    ):
        """
        Initialize the session manager.

        Args:
            identity: Identity provider issuing sessions
            store: Record store holding users and user_roles
            navigator: Route tracker used for role-based redirects
            allow_local_default_role: Grant the patient role locally when the
                backend refuses to assign it (off by default)
            home_path: Landing page route
            auth_path_prefix: Prefix of sign-in / sign-up routes
            timeout_seconds: Upper bound for each backend call
        """
        self._identity = identity
        self._store = store
        self._navigator = navigator or Navigator(home_path)
        self._allow_local_default_role = allow_local_default_role
        self._home_path = home_path
        self._auth_path_prefix = auth_path_prefix
        self._timeout = timeout_seconds
        self._snapshot = SessionSnapshot()
        self._changed: Signal[SessionSnapshot] = Signal("session")
        self._resolution = 0
        self._identity_subscription: Optional[Subscription] = None
        self._pending: Optional[asyncio.Task] = None

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    @property
    def snapshot(self) -> SessionSnapshot:
        return self._snapshot

    @property
    def state(self) -> SessionState:
        return self._snapshot.state

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self._snapshot.user

    @property
    def roles(self) -> Tuple[str, ...]:
        return self._snapshot.roles

    @property
    def navigator(self) -> Navigator:
        return self._navigator

    def subscribe(self, callback: Callable[[SessionSnapshot], None]) -> Subscription:
        """Register a listener; it is called immediately with the current snapshot."""
        subscription = self._changed.connect(callback)
        callback(self._snapshot)
        return subscription

    def require_role(self, *roles: str) -> SessionSnapshot:
        """Return the snapshot if it grants one of the roles, else raise SessionError."""
        snapshot = self._snapshot
        if not snapshot.is_authenticated:
            raise SessionError(snapshot.error or "Not signed in")
        if roles and not snapshot.has_role(*roles):
            raise SessionError(f"Requires one of: {', '.join(normalize_roles(roles))}")
        return snapshot

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self):
        """Listen for identity changes and restore a prior session, if any."""
        if self._identity_subscription is None:
            self._identity_subscription = self._identity.on_session_change(self._on_session_change)

        try:
            session = await asyncio.wait_for(
                self._identity.get_current_session(), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Restoring the previous session timed out")
            session = None

        if session is not None:
            await self._resolve_logged(session.user)
        else:
            self._publish(SessionSnapshot())

    def stop(self):
        """Stop listening for identity changes."""
        if self._identity_subscription is not None:
            self._identity_subscription.unsubscribe()
            self._identity_subscription = None
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    async def _on_session_change(self, event: AuthEvent, session: Optional[AuthSession]):
        logger.debug(f"Identity event {event.value}")
        if session is not None:
            # Resolution runs detached from the provider call that announced it
            self._pending = asyncio.create_task(self._resolve_logged(session.user))
            return
        # A session-less event invalidates any resolution still in flight
        self._resolution += 1
        if self._snapshot != SessionSnapshot():
            self._publish(SessionSnapshot())

    async def _resolve_logged(self, user: AuthUser):
        try:
            await self.resolve(user)
        except SessionError as e:
            logger.error(f"Session for {user.email} blocked: {e.message}")

    # =========================================================================
    # BOOTSTRAP
    # =========================================================================

    async def resolve(self, user: AuthUser) -> SessionSnapshot:
        """
        Resolve roles for an authenticated identity and publish the result.

        Raises:
            SessionError: role resolution failed for a reason other than an
                unprovisioned schema; the session is left unauthenticated.
        """
        self._resolution += 1
        token = self._resolution
        self._publish(SessionSnapshot(state=SessionState.RESOLVING, user=user))

        try:
            await self._sync_profile(user)
            roles = await self._resolve_roles(user)
        except SessionError as e:
            if token != self._resolution:
                logger.debug(f"Discarding stale failed resolution for {user.id}")
                return self._snapshot
            self._publish(SessionSnapshot(error=e.message))
            raise
        except asyncio.CancelledError:
            # Never leave a cancelled resolution stuck in RESOLVING
            if token == self._resolution:
                logger.warning(f"Role resolution for {user.id} was cancelled")
                self._publish(SessionSnapshot(error="Role resolution was interrupted"))
            raise

        if token != self._resolution:
            logger.debug(f"Discarding stale resolution for {user.id}")
            return self._snapshot

        snapshot = SessionSnapshot(
            state=SessionState.AUTHENTICATED,
            user=user,
            roles=tuple(roles),
        )
        self._publish(snapshot)
        logger.info(f"Session ready for {user.email} with roles {list(snapshot.roles)}")
        self._redirect(snapshot)
        return snapshot

    async def _sync_profile(self, user: AuthUser):
        """Best-effort upsert of the user profile record."""
        result = await with_timeout(
            self._store.upsert("users", {
                "id": user.id,
                "email": user.email,
                "full_name": user.display_name,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            }),
            self._timeout,
            "profile sync",
        )
        if not result.ok:
            logger.error(f"Error syncing user {user.id}: {result.error.message}")

    async def _resolve_roles(self, user: AuthUser) -> List[str]:
        result = await with_timeout(
            self._store.select(
                "user_roles",
                QueryOptions(filters={"user_id": user.id}, columns=["role"]),
            ),
            self._timeout,
            "role fetch",
        )

        if not result.ok:
            error = result.error
            if error.is_setup_incomplete:
                logger.warning(f"Role tables not provisioned ({error.message}); using '{DEFAULT_ROLE}'")
                return [DEFAULT_ROLE]
            raise SessionError(f"Role fetch failed: {error.message}", cause=error)

        roles = normalize_roles(row["role"] for row in (result.data or []) if row.get("role"))
        if roles:
            return roles

        assigned = await with_timeout(
            self._store.call(ASSIGN_DEFAULT_PATIENT_ROLE, {"p_user_id": user.id}),
            self._timeout,
            "default role assignment",
        )
        if assigned.ok:
            return [DEFAULT_ROLE]

        logger.error(f"Error assigning default role to {user.id}: {assigned.error.message}")
        if self._allow_local_default_role:
            logger.warning(f"Granting '{DEFAULT_ROLE}' locally to {user.id}")
            return [DEFAULT_ROLE]
        raise SessionError(
            f"Default role assignment failed: {assigned.error.message}",
            cause=assigned.error,
        )

    def _redirect(self, snapshot: SessionSnapshot):
        # Only move users sitting on the home page or an auth page; deep links stay put
        current = self._navigator.current_path
        if current == self._home_path or current.startswith(self._auth_path_prefix):
            self._navigator.push(snapshot.landing_route)

    def _publish(self, snapshot: SessionSnapshot):
        self._snapshot = snapshot
        self._changed.emit(snapshot)

    # =========================================================================
    # IDENTITY OPERATIONS
    # =========================================================================

    async def sign_in(self, email: str, password: str) -> AuthSession:
        """
        Sign in with email and password.

        The identity provider announces the new session, which starts role
        resolution; this call returns once that resolution has finished.

        Raises:
            AuthError: the credentials were rejected or the backend failed
        """
        result = await with_timeout(
            self._identity.sign_in_with_password(email, password),
            self._timeout,
            "sign-in",
        )
        if not result.ok:
            raise AuthError(result.error.message, cause=result.error)
        await self.wait_resolved()
        return result.data

    async def wait_resolved(self):
        """Wait for the role resolution started by the latest sign-in event."""
        task = self._pending
        if task is not None and not task.done():
            await asyncio.shield(task)

    async def sign_up(self, email: str, password: str, full_name: str) -> AuthUser:
        """
        Register a new identity.

        Raises:
            AuthError: registration was rejected
        """
        result = await with_timeout(
            self._identity.sign_up(email, password, {"full_name": full_name}),
            self._timeout,
            "sign-up",
        )
        if not result.ok:
            raise AuthError(result.error.message, cause=result.error)
        return result.data

    async def sign_out(self):
        """
        Sign out and return to the home page.

        Raises:
            AuthError: the backend refused; session state is left unchanged
        """
        result = await with_timeout(self._identity.sign_out(), self._timeout, "sign-out")
        if not result.ok:
            raise AuthError(result.error.message, cause=result.error)

        self._resolution += 1
        if self._snapshot != SessionSnapshot():
            self._publish(SessionSnapshot())
        self._navigator.push(self._home_path)
