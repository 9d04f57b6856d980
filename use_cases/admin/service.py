"""
Administration.

Role management, user and order listings, and system statistics for the
admin dashboard. Privileged role changes go through the record store so the
backend's own access rules stay authoritative.
"""

import asyncio
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from core.data import BackendError, IdentityProvider, QueryOptions, RecordStore, with_timeout
from core.roles import KNOWN_ROLES, Role
from shared.cosmos_config import CREATE_SUPER_ADMIN
from use_cases.pharmacy.domain.policies import ORDER_STATUSES

logger = logging.getLogger(__name__)

STATS_TABLES = {
    "total_users": "users",
    "total_orders": "orders",
    "total_appointments": "appointments",
    "total_emergency_requests": "ambulance_requests",
}


class AdminError(Exception):
    """An administrative operation failed."""

    def __init__(self, message: str, cause: Optional[BackendError] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class AdminService:
    """Operations behind the admin dashboard."""

    def __init__(
        self,
        store: RecordStore,
        identity: IdentityProvider,
        timeout_seconds: Optional[float] = None,
    ):
        self._store = store
        self._identity = identity
        self._timeout = timeout_seconds

    async def _run(self, awaitable, operation: str):
        result = await with_timeout(awaitable, self._timeout, operation)
        if not result.ok:
            logger.error(f"Error during {operation}: {result.error.message}")
            raise AdminError(f"{operation} failed: {result.error.message}", cause=result.error)
        return result.data

    # =========================================================================
    # ROLES
    # =========================================================================

    async def create_super_admin(self, email: str, password: str, full_name: str) -> Dict[str, Any]:
        """Register an account and promote it through the privileged function."""
        user = await self._run(
            self._identity.sign_up(email, password, {"full_name": full_name}),
            "super admin sign-up",
        )
        if user is None:
            raise AdminError("Failed to create user")

        await self._run(
            self._store.call(CREATE_SUPER_ADMIN, {
                "admin_user_id": user.id,
                "admin_email": email,
                "admin_name": full_name,
            }),
            "super admin promotion",
        )
        logger.info(f"Super admin created: {email}")
        return {"success": True, "user": user.to_dict()}

    async def assign_role(self, user_id: str, role: str) -> Dict[str, Any]:
        role = _check_role(role)
        await self._run(
            self._store.upsert("user_roles", {
                "id": f"{user_id}:{role}",
                "user_id": user_id,
                "role": role,
                "created_at": datetime.now(timezone.utc).isoformat(),
            }),
            "role assignment",
        )
        logger.info(f"Assigned role {role} to {user_id}")
        return {"success": True}

    async def remove_role(self, user_id: str, role: str) -> Dict[str, Any]:
        role = _check_role(role)
        await self._run(
            self._store.delete("user_roles", {"user_id": user_id, "role": role}),
            "role removal",
        )
        logger.info(f"Removed role {role} from {user_id}")
        return {"success": True}

    # =========================================================================
    # LISTINGS
    # =========================================================================

    async def list_users(self, page: int = 1, limit: int = 50) -> Dict[str, Any]:
        """Users with their roles, newest first."""
        users = await self._run(
            self._store.select("users", _page_options(page, limit)),
            "user listing",
        ) or []
        total = await self._run(self._store.count("users"), "user count") or 0

        roles_by_user: Dict[str, List[str]] = {user["id"]: [] for user in users}
        if roles_by_user:
            rows = await self._run(
                self._store.select(
                    "user_roles",
                    QueryOptions(filters={"user_id": list(roles_by_user)}, columns=["user_id", "role"]),
                ),
                "role listing",
            ) or []
            for row in rows:
                roles_by_user.setdefault(row["user_id"], []).append(row["role"])

        return {
            "users": [dict(user, user_roles=roles_by_user.get(user["id"], [])) for user in users],
            "total": total,
            "page": page,
            "total_pages": math.ceil(total / limit) if limit else 0,
        }

    async def list_orders(self, page: int = 1, limit: int = 50) -> Dict[str, Any]:
        orders = await self._run(
            self._store.select("orders", _page_options(page, limit)),
            "order listing",
        ) or []
        total = await self._run(self._store.count("orders"), "order count") or 0
        return {
            "orders": orders,
            "total": total,
            "page": page,
            "total_pages": math.ceil(total / limit) if limit else 0,
        }

    async def update_order_status(self, order_id: str, status: str) -> Dict[str, Any]:
        if status not in ORDER_STATUSES:
            raise AdminError(f"Unknown order status: {status}")
        await self._run(
            self._store.update(
                "orders",
                {"status": status, "updated_at": datetime.now(timezone.utc).isoformat()},
                {"id": order_id},
            ),
            "order status update",
        )
        return {"success": True}

    # =========================================================================
    # STATISTICS
    # =========================================================================

    async def system_stats(self) -> Dict[str, int]:
        """Record counts for the dashboard; a failed count is reported as zero."""
        keys = list(STATS_TABLES)
        results = await asyncio.gather(*[
            with_timeout(self._store.count(STATS_TABLES[key]), self._timeout, f"{key} count")
            for key in keys
        ])
        stats = {}
        for key, result in zip(keys, results):
            if not result.ok:
                logger.error(f"Error fetching {key}: {result.error.message}")
            stats[key] = result.data if result.ok and result.data else 0
        return stats


def _check_role(role: str) -> str:
    tag = role.value if isinstance(role, Role) else str(role)
    if tag not in KNOWN_ROLES:
        raise AdminError(f"Unknown role: {role}")
    return tag


def _page_options(page: int, limit: int) -> QueryOptions:
    page = max(1, page)
    return QueryOptions(
        order_by="created_at",
        order_desc=True,
        limit=limit,
        offset=(page - 1) * limit,
    )
