"""
Administration Use Case.

Role management and system statistics for admin and super admin users.
"""

from use_cases.admin.service import AdminError, AdminService

__all__ = [
    "AdminError",
    "AdminService",
]
