# Test session bootstrap, role resolution and sign-out
import asyncio

import pytest

from core.data import AuthEvent, AuthSession, AuthUser, BackendError, ErrorKind
from core.session import (
    AuthError,
    Navigator,
    SessionError,
    SessionManager,
    SessionSnapshot,
    SessionState,
)
from shared.cosmos_config import ASSIGN_DEFAULT_PATIENT_ROLE
from tests.fakes import FakeIdentityProvider, FakeRecordStore


PATIENT = AuthUser(id="u1", email="pat@example.com", full_name="Pat Doe")
DOCTOR = AuthUser(id="u2", email="doc@example.com", full_name="Dr. Who")


async def settle():
    for _ in range(10):
        await asyncio.sleep(0)


class TestRoleResolution:

    def setup_method(self):
        self.store = FakeRecordStore()
        self.identity = FakeIdentityProvider()
        self.navigator = Navigator("/")
        self.manager = SessionManager(self.identity, self.store, navigator=self.navigator)

    def test_empty_roles_assign_default_patient(self):
        """No roles plus a successful default assignment yields exactly {patient}"""
        snapshot = asyncio.run(self.manager.resolve(PATIENT))

        assert snapshot.state == SessionState.AUTHENTICATED
        assert snapshot.roles == ("patient",)
        assert self.store.operations(ASSIGN_DEFAULT_PATIENT_ROLE) == ["call"]
        assert self.navigator.current_path == "/dashboard/patient"

    def test_existing_roles_are_kept_verbatim(self):
        self.store.rows("user_roles").extend([
            {"id": "u2:doctor", "user_id": "u2", "role": "doctor"},
            {"id": "u2:clinic", "user_id": "u2", "role": "clinic"},
            {"id": "u1:patient", "user_id": "u1", "role": "patient"},
        ])
        snapshot = asyncio.run(self.manager.resolve(DOCTOR))

        assert snapshot.roles == ("doctor", "clinic")
        assert self.store.operations(ASSIGN_DEFAULT_PATIENT_ROLE) == []
        assert self.navigator.current_path == "/dashboard/doctor"

    def test_admin_precedence_drives_landing_route(self):
        self.store.rows("user_roles").extend([
            {"user_id": "u2", "role": "doctor"},
            {"user_id": "u2", "role": "moderator"},
            {"user_id": "u2", "role": "super_admin"},
        ])
        snapshot = asyncio.run(self.manager.resolve(DOCTOR))
        assert snapshot.primary_role == "super_admin"
        assert self.navigator.current_path == "/dashboard/admin"

    def test_profile_is_synced(self):
        asyncio.run(self.manager.resolve(PATIENT))
        profile = self.store.rows("users")[0]
        assert profile["id"] == "u1"
        assert profile["email"] == "pat@example.com"
        assert profile["full_name"] == "Pat Doe"

    def test_profile_sync_failure_is_not_fatal(self):
        self.store.fail("users", "upsert", ErrorKind.PERMISSION, "denied")
        snapshot = asyncio.run(self.manager.resolve(PATIENT))
        assert snapshot.is_authenticated

    def test_schema_missing_falls_back_to_patient(self):
        self.store.fail("user_roles", "select", ErrorKind.SCHEMA_MISSING,
                        'relation "user_roles" does not exist', code="42P01")
        snapshot = asyncio.run(self.manager.resolve(PATIENT))
        assert snapshot.roles == ("patient",)
        assert self.store.operations(ASSIGN_DEFAULT_PATIENT_ROLE) == []

    def test_permission_error_fails_closed(self):
        """A generic backend error must never silently grant a role"""
        self.store.fail("user_roles", "select", ErrorKind.PERMISSION, "permission denied for table")

        with pytest.raises(SessionError) as error:
            asyncio.run(self.manager.resolve(PATIENT))

        assert "Role fetch failed" in error.value.message
        snapshot = self.manager.snapshot
        assert snapshot.state == SessionState.UNAUTHENTICATED
        assert snapshot.roles == ()
        assert snapshot.error
        assert self.store.operations(ASSIGN_DEFAULT_PATIENT_ROLE) == []
        assert self.navigator.current_path == "/"

    def test_default_assignment_failure_fails_closed(self):
        self.store.fail(ASSIGN_DEFAULT_PATIENT_ROLE, "call", ErrorKind.PERMISSION, "not allowed")
        with pytest.raises(SessionError):
            asyncio.run(self.manager.resolve(PATIENT))
        assert not self.manager.snapshot.is_authenticated

    def test_local_default_role_when_enabled(self):
        manager = SessionManager(self.identity, self.store, allow_local_default_role=True)
        self.store.fail(ASSIGN_DEFAULT_PATIENT_ROLE, "call", ErrorKind.PERMISSION, "not allowed")
        snapshot = asyncio.run(manager.resolve(PATIENT))
        assert snapshot.roles == ("patient",)

    def test_hung_role_fetch_times_out_closed(self):
        manager = SessionManager(self.identity, self.store, timeout_seconds=0.05)

        async def scenario():
            self.store.gate("user_roles", "select")
            await manager.resolve(PATIENT)

        with pytest.raises(SessionError) as error:
            asyncio.run(scenario())
        assert error.value.cause.kind == ErrorKind.TIMEOUT
        assert error.value.cause.retryable

    def test_published_states(self):
        seen = []
        self.manager.subscribe(seen.append)
        asyncio.run(self.manager.resolve(PATIENT))
        assert [snapshot.state for snapshot in seen] == [
            SessionState.UNAUTHENTICATED,
            SessionState.RESOLVING,
            SessionState.AUTHENTICATED,
        ]


class TestRedirects:

    def setup_method(self):
        self.store = FakeRecordStore({"user_roles": [{"user_id": "u2", "role": "driver"}]})
        self.identity = FakeIdentityProvider()

    def resolve_from(self, path):
        navigator = Navigator(path)
        manager = SessionManager(self.identity, self.store, navigator=navigator)
        asyncio.run(manager.resolve(DOCTOR))
        return navigator

    def test_redirect_from_home(self):
        assert self.resolve_from("/").current_path == "/dashboard/driver"

    def test_redirect_from_auth_pages(self):
        assert self.resolve_from("/auth/login").current_path == "/dashboard/driver"

    def test_deep_link_is_preserved(self):
        navigator = self.resolve_from("/pharmacy")
        assert navigator.current_path == "/pharmacy"
        assert navigator.history == []

    def test_unknown_role_lands_on_patient_dashboard(self):
        self.store.rows("user_roles")[0]["role"] = "pharmacist"
        assert self.resolve_from("/").current_path == "/dashboard/patient"


class TestSessionLifecycle:

    def setup_method(self):
        self.store = FakeRecordStore({"user_roles": [{"user_id": "u1", "role": "patient"}]})
        self.identity = FakeIdentityProvider()
        self.identity.add_account("pat@example.com", "secret1", user_id="u1", full_name="Pat Doe")
        self.manager = SessionManager(self.identity, self.store)

    def test_start_without_session(self):
        asyncio.run(self.manager.start())
        assert self.manager.snapshot == SessionSnapshot()

    def test_start_restores_existing_session(self):
        self.identity.session = AuthSession(access_token="t", user=PATIENT)
        asyncio.run(self.manager.start())
        assert self.manager.state == SessionState.AUTHENTICATED
        assert self.manager.current_user == PATIENT

    def test_sign_in_resolves_roles(self):
        async def scenario():
            await self.manager.start()
            return await self.manager.sign_in("pat@example.com", "secret1")

        session = asyncio.run(scenario())
        assert session.user.id == "u1"
        assert self.manager.roles == ("patient",)
        assert self.manager.navigator.current_path == "/dashboard/patient"

    def test_bad_credentials_raise_auth_error(self):
        async def scenario():
            await self.manager.start()
            await self.manager.sign_in("pat@example.com", "wrong")

        with pytest.raises(AuthError) as error:
            asyncio.run(scenario())
        assert error.value.message == "Invalid login credentials"
        assert self.manager.state == SessionState.UNAUTHENTICATED

    def test_sign_up_duplicate(self):
        with pytest.raises(AuthError):
            asyncio.run(self.manager.sign_up("pat@example.com", "secret1", "Pat"))

    def test_sign_out_clears_state_and_goes_home(self):
        async def scenario():
            await self.manager.start()
            await self.manager.sign_in("pat@example.com", "secret1")
            self.manager.navigator.push("/pharmacy")
            await self.manager.sign_out()

        asyncio.run(scenario())
        assert self.manager.snapshot == SessionSnapshot()
        assert self.manager.navigator.current_path == "/"

    def test_sign_out_failure_leaves_state(self):
        async def scenario():
            await self.manager.start()
            await self.manager.sign_in("pat@example.com", "secret1")
            self.identity.sign_out_error = BackendError(ErrorKind.UNAVAILABLE, "network down")
            await self.manager.sign_out()

        with pytest.raises(AuthError):
            asyncio.run(scenario())
        assert self.manager.state == SessionState.AUTHENTICATED
        assert self.manager.roles == ("patient",)

    def test_stop_ignores_later_events(self):
        async def scenario():
            await self.manager.start()
            self.manager.stop()
            await self.identity.emit(AuthEvent.SIGNED_IN, AuthSession(access_token="t", user=PATIENT))

        asyncio.run(scenario())
        assert self.manager.state == SessionState.UNAUTHENTICATED

    def test_require_role(self):
        with pytest.raises(SessionError):
            self.manager.require_role("admin")
        asyncio.run(self.manager.resolve(PATIENT))
        assert self.manager.require_role("patient").is_authenticated
        with pytest.raises(SessionError):
            self.manager.require_role("admin", "super_admin")


class TestStaleResolutions:

    def setup_method(self):
        self.store = FakeRecordStore({"user_roles": [
            {"user_id": "u1", "role": "patient"},
            {"user_id": "u2", "role": "doctor"},
        ]})
        self.identity = FakeIdentityProvider()
        self.manager = SessionManager(self.identity, self.store)

    def test_sign_out_during_resolution_wins(self):
        async def scenario():
            await self.manager.start()
            gate = self.store.gate("user_roles", "select")
            task = asyncio.create_task(self.manager.resolve(PATIENT))
            await settle()
            assert self.manager.state == SessionState.RESOLVING

            await self.identity.emit(AuthEvent.SIGNED_OUT, None)
            gate.set()
            return await task

        snapshot = asyncio.run(scenario())
        assert snapshot.state == SessionState.UNAUTHENTICATED
        assert self.manager.snapshot == SessionSnapshot()

    def test_newer_resolution_is_not_overwritten(self):
        async def scenario():
            gate = self.store.gate("user_roles", "select")
            older = asyncio.create_task(self.manager.resolve(PATIENT))
            await settle()

            del self.store.gates[("user_roles", "select")]
            await self.manager.resolve(DOCTOR)

            gate.set()
            await older

        asyncio.run(scenario())
        assert self.manager.current_user == DOCTOR
        assert self.manager.roles == ("doctor",)


class TestSignInTiming:

    def setup_method(self):
        self.store = FakeRecordStore()
        self.identity = FakeIdentityProvider()
        self.identity.add_account("pat@example.com", "secret1", user_id="u1", full_name="Pat Doe")

    def test_slow_resolution_is_not_cut_by_sign_in_timeout(self):
        """Each call fits the timeout even though the whole resolution does not"""
        self.store.latency = 0.06
        manager = SessionManager(self.identity, self.store, timeout_seconds=0.1)

        async def scenario():
            await manager.start()
            return await manager.sign_in("pat@example.com", "secret1")

        session = asyncio.run(scenario())
        assert session.user.id == "u1"
        assert manager.state == SessionState.AUTHENTICATED
        assert manager.roles == ("patient",)

    def test_cancelled_resolution_publishes_final_state(self):
        manager = SessionManager(self.identity, self.store)

        async def scenario():
            self.store.gate("user_roles", "select")
            task = asyncio.create_task(manager.resolve(PATIENT))
            await settle()
            assert manager.state == SessionState.RESOLVING
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        asyncio.run(scenario())
        assert manager.state == SessionState.UNAUTHENTICATED
        assert manager.snapshot.error == "Role resolution was interrupted"

    def test_stop_cancels_resolution_in_flight(self):
        manager = SessionManager(self.identity, self.store)

        async def scenario():
            await manager.start()
            self.store.gate("user_roles", "select")
            await self.identity.emit(AuthEvent.SIGNED_IN, AuthSession(access_token="t", user=PATIENT))
            await settle()
            assert manager.state == SessionState.RESOLVING
            manager.stop()
            await settle()

        asyncio.run(scenario())
        assert manager.state == SessionState.UNAUTHENTICATED
