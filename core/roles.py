"""
Roles and Role-Based Routing.

Pure rules: which roles exist, which one wins when a user has several, and
where each role lands after sign-in. Roles travel as plain string tags so the
set returned by the backend is kept verbatim.
"""

from enum import Enum
from typing import Iterable, List, Optional


class Role(str, Enum):
    """Access roles granted by the backend."""
    PATIENT = "patient"
    DOCTOR = "doctor"
    CLINIC = "clinic"
    DRIVER = "driver"
    MODERATOR = "moderator"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


KNOWN_ROLES = {role.value for role in Role}

DEFAULT_ROLE = Role.PATIENT.value

# Roles that win the primary-role election, highest first
ROLE_PRECEDENCE = [Role.SUPER_ADMIN.value, Role.ADMIN.value, Role.MODERATOR.value]

DASHBOARD_ROUTES = {
    Role.PATIENT.value: "/dashboard/patient",
    Role.DOCTOR.value: "/dashboard/doctor",
    Role.CLINIC.value: "/dashboard/clinic",
    Role.DRIVER.value: "/dashboard/driver",
    Role.ADMIN.value: "/dashboard/admin",
    Role.SUPER_ADMIN.value: "/dashboard/admin",
    Role.MODERATOR.value: "/dashboard/moderator",
}

ADMIN_ROLES = {Role.ADMIN.value, Role.SUPER_ADMIN.value}


def normalize_roles(values: Iterable) -> List[str]:
    """Role tags as strings, in backend order, without duplicates."""
    roles = []
    for value in values:
        tag = value.value if isinstance(value, Role) else str(value)
        if tag and tag not in roles:
            roles.append(tag)
    return roles


def primary_role(roles: Iterable[str]) -> Optional[str]:
    """
    Pick the role used for the post-login landing route.

    super_admin > admin > moderator, otherwise the first role returned.
    """
    roles = normalize_roles(roles)
    if not roles:
        return None
    for role in ROLE_PRECEDENCE:
        if role in roles:
            return role
    return roles[0]


def landing_route(roles: Iterable[str]) -> str:
    """Dashboard route for the primary role (patient dashboard when unknown)."""
    return DASHBOARD_ROUTES.get(primary_role(roles), DASHBOARD_ROUTES[DEFAULT_ROLE])


def has_any_role(roles: Iterable[str], required: Iterable[str]) -> bool:
    required = set(normalize_roles(required))
    return any(role in required for role in normalize_roles(roles))
