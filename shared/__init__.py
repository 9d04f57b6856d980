"""
Shared modules for the Wanterio patient portal.

This package contains shared configuration and utilities used across the application.
"""

from shared.cosmos_config import (
    COSMOS_ENDPOINT,
    DATABASE_NAME,
    TABLES,
    is_cosmos_configured,
)

__all__ = [
    "COSMOS_ENDPOINT",
    "DATABASE_NAME",
    "TABLES",
    "is_cosmos_configured",
]
