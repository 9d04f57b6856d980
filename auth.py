"""
Authentication module for portal users.

Email/password identities backed by the Cosmos DB credentials container.
Passwords are hashed with PBKDF2-SHA256 and a random per-user salt. The
provider keeps one current session per process and announces session
changes to registered listeners (the SessionManager).
"""

import asyncio
import hashlib
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, EmailStr

from core.data import (
    AuthEvent,
    AuthSession,
    AuthUser,
    BackendError,
    BackendResult,
    ErrorKind,
    IdentityProvider,
    QueryOptions,
    RecordStore,
    SessionChangeCallback,
    not_configured_error,
)
from core.events import Subscription

logger = logging.getLogger(__name__)

SESSION_HOURS = 24
HASH_ITERATIONS = 210_000
MIN_PASSWORD_LENGTH = 6


# =============================================================================
# MODELS
# =============================================================================

class LoginRequest(BaseModel):
    """Login request model."""
    email: EmailStr
    password: str


class SignUpRequest(BaseModel):
    """Sign-up request model."""
    email: EmailStr
    password: str
    full_name: str = ""


class LoginResponse(BaseModel):
    """Login response model."""
    success: bool
    message: str
    token: Optional[str] = None
    user: Optional[Dict[str, Any]] = None


# =============================================================================
# PASSWORD UTILITIES
# =============================================================================

def hash_password(password: str, salt: Optional[str] = None) -> Tuple[str, str]:
    """Hash a password, returning (hash, salt). A new salt is generated when none is given."""
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), bytes.fromhex(salt), HASH_ITERATIONS)
    return digest.hex(), salt


def verify_password(password: str, password_hash: str, salt: str) -> bool:
    """Verify a password against its stored hash and salt."""
    candidate, _ = hash_password(password, salt)
    return secrets.compare_digest(candidate, password_hash)


def generate_session_token() -> str:
    """Generate a secure session token."""
    return secrets.token_urlsafe(32)


def _auth_failure(message: str) -> BackendResult:
    return BackendResult.failure(BackendError(ErrorKind.AUTH, message))


# =============================================================================
# IDENTITY PROVIDERS
# =============================================================================

class CosmosIdentityProvider(IdentityProvider):
    """
    Identity provider over the credentials container.

    Usage:
        identity = CosmosIdentityProvider(store)
        identity.on_session_change(session_manager_callback)
        result = await identity.sign_in_with_password(email, password)
    """

    def __init__(self, store: RecordStore, session_hours: int = SESSION_HOURS):
        self._store = store
        self._session_hours = session_hours
        self._session: Optional[AuthSession] = None
        self._listeners: List[SessionChangeCallback] = []

    def on_session_change(self, callback: SessionChangeCallback) -> Subscription:
        self._listeners.append(callback)
        return Subscription(self, callback)

    def _disconnect(self, callback: SessionChangeCallback):
        if callback in self._listeners:
            self._listeners.remove(callback)

    async def _notify(self, event: AuthEvent, session: Optional[AuthSession]):
        for listener in list(self._listeners):
            try:
                await listener(event, session)
            except Exception:
                logger.exception(f"Session listener failed on {event.value}")

    async def get_current_session(self) -> Optional[AuthSession]:
        session = self._session
        if session is None:
            return None
        if session.expires_at and datetime.now(timezone.utc) > session.expires_at:
            logger.info(f"Session for {session.user.email} expired")
            self._session = None
            return None
        return session

    async def _find_credential(self, email: str) -> BackendResult:
        result = await self._store.select(
            "credentials", QueryOptions(filters={"email": email.lower()}, limit=1)
        )
        if not result.ok:
            return result
        rows = result.data or []
        return BackendResult.success(rows[0] if rows else None)

    async def sign_in_with_password(self, email: str, password: str) -> BackendResult[AuthSession]:
        found = await self._find_credential(email)
        if not found.ok:
            return found
        credential = found.data
        if not credential or not await asyncio.to_thread(
            verify_password, password, credential["password_hash"], credential["salt"]
        ):
            logger.warning(f"Rejected sign-in for {email}")
            return _auth_failure("Invalid login credentials")

        user = AuthUser(
            id=credential["user_id"],
            email=credential["email"],
            full_name=credential.get("full_name", ""),
        )
        session = AuthSession(
            access_token=generate_session_token(),
            user=user,
            expires_at=datetime.now(timezone.utc) + timedelta(hours=self._session_hours),
        )
        self._session = session
        logger.info(f"Created session for user {user.id}")
        await self._notify(AuthEvent.SIGNED_IN, session)
        return BackendResult.success(session)

    async def sign_up(self, email, password, profile=None) -> BackendResult[AuthUser]:
        if len(password or "") < MIN_PASSWORD_LENGTH:
            return _auth_failure(f"Password should be at least {MIN_PASSWORD_LENGTH} characters")

        found = await self._find_credential(email)
        if not found.ok:
            return found
        if found.data:
            return _auth_failure("User already registered")

        profile = profile or {}
        user = AuthUser(id=str(uuid.uuid4()), email=email.lower(), full_name=profile.get("full_name", ""))
        password_hash, salt = await asyncio.to_thread(hash_password, password)
        now = datetime.now(timezone.utc).isoformat()

        created = await self._store.insert("credentials", [{
            "id": user.email,
            "email": user.email,
            "user_id": user.id,
            "full_name": user.full_name,
            "password_hash": password_hash,
            "salt": salt,
            "created_at": now,
        }])
        if not created.ok:
            if created.error.kind == ErrorKind.CONFLICT:
                return _auth_failure("User already registered")
            return created

        profile_result = await self._store.upsert("users", {
            "id": user.id,
            "email": user.email,
            "full_name": user.display_name,
            "created_at": now,
            "updated_at": now,
        })
        if not profile_result.ok:
            logger.error(f"Error creating profile for {user.id}: {profile_result.error.message}")

        logger.info(f"Registered user {user.id}")
        return BackendResult.success(user)

    async def sign_out(self) -> BackendResult[None]:
        previous = self._session
        self._session = None
        if previous is not None:
            logger.info(f"Signed out user {previous.user.id}")
        await self._notify(AuthEvent.SIGNED_OUT, None)
        return BackendResult.success(None)


class UnconfiguredIdentityProvider(IdentityProvider):
    """Identity provider used while no backend is configured."""

    @property
    def is_configured(self) -> bool:
        return False

    async def get_current_session(self) -> Optional[AuthSession]:
        return None

    def on_session_change(self, callback: SessionChangeCallback) -> Subscription:
        return Subscription(self, callback)

    def _disconnect(self, callback: SessionChangeCallback):
        pass

    async def sign_in_with_password(self, email, password):
        return BackendResult.failure(not_configured_error("sign-in"))

    async def sign_up(self, email, password, profile=None):
        return BackendResult.failure(not_configured_error("sign-up"))

    async def sign_out(self):
        return BackendResult.success(None)
