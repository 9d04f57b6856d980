# Test administration services
import asyncio

import pytest

from core.data import ErrorKind
from use_cases.admin import AdminError, AdminService
from tests.fakes import FakeIdentityProvider, FakeRecordStore


class TestAdminService:

    def setup_method(self):
        self.store = FakeRecordStore({
            "users": [
                {"id": "u1", "email": "a@example.com", "created_at": "2026-01-01T00:00:00+00:00"},
                {"id": "u2", "email": "b@example.com", "created_at": "2026-02-01T00:00:00+00:00"},
                {"id": "u3", "email": "c@example.com", "created_at": "2026-03-01T00:00:00+00:00"},
            ],
            "user_roles": [
                {"id": "u1:patient", "user_id": "u1", "role": "patient"},
                {"id": "u2:doctor", "user_id": "u2", "role": "doctor"},
                {"id": "u2:patient", "user_id": "u2", "role": "patient"},
            ],
            "orders": [{"id": "o1", "status": "pending"}],
        })
        self.identity = FakeIdentityProvider()
        self.admin = AdminService(self.store, self.identity)

    def test_create_super_admin(self):
        result = asyncio.run(self.admin.create_super_admin("root@example.com", "secret1", "Root"))
        user_id = result["user"]["id"]
        assert {"user_id": user_id, "role": "super_admin"}.items() <= self.store.rows("user_roles")[-1].items()

    def test_create_super_admin_sign_up_failure(self):
        self.identity.add_account("root@example.com", "secret1")
        with pytest.raises(AdminError):
            asyncio.run(self.admin.create_super_admin("root@example.com", "secret1", "Root"))

    def test_assign_and_remove_role(self):
        asyncio.run(self.admin.assign_role("u3", "driver"))
        asyncio.run(self.admin.assign_role("u3", "driver"))
        roles = [row for row in self.store.rows("user_roles") if row["user_id"] == "u3"]
        assert [row["role"] for row in roles] == ["driver"]

        asyncio.run(self.admin.remove_role("u3", "driver"))
        assert not any(row["user_id"] == "u3" for row in self.store.rows("user_roles"))

    def test_unknown_role(self):
        with pytest.raises(AdminError):
            asyncio.run(self.admin.assign_role("u3", "pharmacist"))

    def test_list_users_newest_first_with_roles(self):
        page = asyncio.run(self.admin.list_users(page=1, limit=2))
        assert [user["id"] for user in page["users"]] == ["u3", "u2"]
        assert page["users"][1]["user_roles"] == ["doctor", "patient"]
        assert page["users"][0]["user_roles"] == []
        assert page["total"] == 3
        assert page["total_pages"] == 2

    def test_update_order_status(self):
        asyncio.run(self.admin.update_order_status("o1", "processing"))
        assert self.store.rows("orders")[0]["status"] == "processing"
        with pytest.raises(AdminError):
            asyncio.run(self.admin.update_order_status("o1", "shipped"))

    def test_system_stats_reports_zero_on_error(self):
        self.store.fail("appointments", "count", ErrorKind.SCHEMA_MISSING, "relation does not exist")
        stats = asyncio.run(self.admin.system_stats())
        assert stats == {
            "total_users": 3,
            "total_orders": 1,
            "total_appointments": 0,
            "total_emergency_requests": 0,
        }
