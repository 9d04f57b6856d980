"""
Core Framework for the Wanterio portal.

This module provides the base classes and interfaces that all use cases
build on. The layered architecture ensures:

1. Domain Layer - Pure business rules, no I/O
2. Data Layer - Backend contracts (record store, identity provider)
3. Session Layer - Authenticated identity, roles and role-based routing
4. Local State - Observer primitives and local key/value persistence

Each use case follows this pattern for consistency and reusability.
"""

from .domain import DomainService, PolicyEngine, Validator, ValidationError
from .data import BackendError, BackendResult, ErrorKind, IdentityProvider, RecordStore
from .events import Signal, Subscription
from .storage import JsonFileStorage, LocalStorage, MemoryStorage, StorageError
from .session import AuthError, SessionError, SessionManager, SessionSnapshot, SessionState

__all__ = [
    # Domain
    "DomainService",
    "PolicyEngine",
    "Validator",
    "ValidationError",
    # Data
    "BackendError",
    "BackendResult",
    "ErrorKind",
    "IdentityProvider",
    "RecordStore",
    # Events
    "Signal",
    "Subscription",
    # Storage
    "JsonFileStorage",
    "LocalStorage",
    "MemoryStorage",
    "StorageError",
    # Session
    "AuthError",
    "SessionError",
    "SessionManager",
    "SessionSnapshot",
    "SessionState",
]
