# Test the credential-backed identity provider
import asyncio
import threading

import auth
from auth import CosmosIdentityProvider, UnconfiguredIdentityProvider, hash_password, verify_password
from core.data import AuthEvent, ErrorKind
from cosmos_backend import UnconfiguredRecordStore
from tests.fakes import FakeRecordStore


class TestPasswordHashing:

    def test_hash_and_verify(self):
        password_hash, salt = hash_password("secret1")
        assert verify_password("secret1", password_hash, salt)
        assert not verify_password("secret2", password_hash, salt)

    def test_salts_are_random(self):
        first, first_salt = hash_password("secret1")
        second, second_salt = hash_password("secret1")
        assert first_salt != second_salt
        assert first != second
        assert hash_password("secret1", first_salt)[0] == first


class TestCosmosIdentityProvider:

    def setup_method(self):
        self.store = FakeRecordStore()
        self.identity = CosmosIdentityProvider(self.store)
        self.events = []

        async def listener(event, session):
            self.events.append((event, session))

        self.identity.on_session_change(listener)

    def test_sign_up_then_sign_in(self):
        async def scenario():
            created = await self.identity.sign_up("Pat@Example.com", "secret1", {"full_name": "Pat Doe"})
            signed_in = await self.identity.sign_in_with_password("pat@example.com", "secret1")
            current = await self.identity.get_current_session()
            return created, signed_in, current

        created, signed_in, current = asyncio.run(scenario())
        assert created.ok
        assert signed_in.ok
        assert signed_in.data.user.id == created.data.id
        assert current is signed_in.data
        assert self.events == [(AuthEvent.SIGNED_IN, signed_in.data)]

        credential = self.store.rows("credentials")[0]
        assert credential["email"] == "pat@example.com"
        assert "secret1" not in credential.values()
        assert self.store.rows("users")[0]["full_name"] == "Pat Doe"

    def test_hashing_runs_off_the_event_loop(self, monkeypatch):
        threads = []

        def recording(hasher):
            def wrapper(*args):
                threads.append(threading.current_thread())
                return hasher(*args)
            return wrapper

        monkeypatch.setattr(auth, "hash_password", recording(hash_password))
        monkeypatch.setattr(auth, "verify_password", recording(verify_password))

        async def scenario():
            await self.identity.sign_up("pat@example.com", "secret1")
            return await self.identity.sign_in_with_password("pat@example.com", "secret1")

        assert asyncio.run(scenario()).ok
        assert len(threads) >= 2
        assert threading.main_thread() not in threads

    def test_wrong_password(self):
        async def scenario():
            await self.identity.sign_up("pat@example.com", "secret1")
            return await self.identity.sign_in_with_password("pat@example.com", "nope")

        result = asyncio.run(scenario())
        assert result.error.kind == ErrorKind.AUTH
        assert result.error.message == "Invalid login credentials"
        assert self.events == []

    def test_unknown_email(self):
        result = asyncio.run(self.identity.sign_in_with_password("ghost@example.com", "secret1"))
        assert result.error.kind == ErrorKind.AUTH

    def test_duplicate_sign_up(self):
        async def scenario():
            await self.identity.sign_up("pat@example.com", "secret1")
            return await self.identity.sign_up("pat@example.com", "another1")

        result = asyncio.run(scenario())
        assert result.error.message == "User already registered"

    def test_short_password(self):
        result = asyncio.run(self.identity.sign_up("pat@example.com", "123"))
        assert result.error.kind == ErrorKind.AUTH
        assert self.store.rows("credentials") == []

    def test_sign_out_notifies(self):
        async def scenario():
            await self.identity.sign_up("pat@example.com", "secret1")
            await self.identity.sign_in_with_password("pat@example.com", "secret1")
            await self.identity.sign_out()
            return await self.identity.get_current_session()

        assert asyncio.run(scenario()) is None
        assert [event for event, _ in self.events] == [AuthEvent.SIGNED_IN, AuthEvent.SIGNED_OUT]

    def test_expired_session_is_dropped(self):
        identity = CosmosIdentityProvider(self.store, session_hours=-1)

        async def scenario():
            await identity.sign_up("pat@example.com", "secret1")
            await identity.sign_in_with_password("pat@example.com", "secret1")
            return await identity.get_current_session()

        assert asyncio.run(scenario()) is None

    def test_store_failure_is_returned(self):
        self.store.fail("credentials", "select", ErrorKind.UNAVAILABLE, "down")
        result = asyncio.run(self.identity.sign_in_with_password("pat@example.com", "secret1"))
        assert result.error.kind == ErrorKind.UNAVAILABLE


class TestUnconfiguredIdentity:

    def test_sign_in_reports_not_configured(self):
        result = asyncio.run(UnconfiguredIdentityProvider().sign_in_with_password("a@b.co", "x"))
        assert result.not_configured

    def test_cosmos_provider_over_unconfigured_store(self):
        identity = CosmosIdentityProvider(UnconfiguredRecordStore())
        result = asyncio.run(identity.sign_in_with_password("a@b.co", "secret1"))
        assert result.not_configured
