# Test backend error classification and call timeouts
import asyncio

import pytest

from core.data import BackendError, BackendResult, ErrorKind, classify_error, not_configured_error, with_timeout


class TestClassifyError:

    def test_schema_missing_codes(self):
        assert classify_error(code="42P01") == ErrorKind.SCHEMA_MISSING
        assert classify_error(code="PGRST116") == ErrorKind.SCHEMA_MISSING

    def test_schema_missing_messages(self):
        assert classify_error(message='relation "public.user_roles" does not exist') == ErrorKind.SCHEMA_MISSING
        assert classify_error(message="Container not found", status=404) == ErrorKind.SCHEMA_MISSING

    def test_status_codes(self):
        assert classify_error(status=401) == ErrorKind.AUTH
        assert classify_error(message="permission denied", status=403) == ErrorKind.PERMISSION
        assert classify_error(status=404) == ErrorKind.NOT_FOUND
        assert classify_error(status=408) == ErrorKind.TIMEOUT
        assert classify_error(status=409) == ErrorKind.CONFLICT
        assert classify_error(status=503) == ErrorKind.UNAVAILABLE
        assert classify_error() == ErrorKind.UNKNOWN


class TestBackendResult:

    def test_not_configured_is_distinct_from_empty(self):
        empty = BackendResult.success([])
        missing = BackendResult.failure(not_configured_error("select"))
        assert empty.ok and not empty.not_configured
        assert not missing.ok and missing.not_configured

    def test_unwrap(self):
        assert BackendResult.success(3).unwrap() == 3
        with pytest.raises(BackendError):
            BackendResult.failure(BackendError(ErrorKind.UNKNOWN, "x")).unwrap()

    def test_retryable_kinds(self):
        assert BackendError(ErrorKind.TIMEOUT, "t").retryable
        assert BackendError(ErrorKind.UNAVAILABLE, "u").retryable
        assert not BackendError(ErrorKind.PERMISSION, "p").retryable
        assert BackendError(ErrorKind.PERMISSION, "p").to_dict()["kind"] == "permission"


class TestWithTimeout:

    def test_expired_call_becomes_timeout_error(self):
        async def hung():
            await asyncio.sleep(5)
            return BackendResult.success(1)

        result = asyncio.run(with_timeout(hung(), 0.01, "role fetch"))
        assert result.error.kind == ErrorKind.TIMEOUT
        assert result.error.retryable
        assert "role fetch" in result.error.message

    def test_fast_call_passes_through(self):
        async def quick():
            return BackendResult.success("ok")

        assert asyncio.run(with_timeout(quick(), 1.0)).data == "ok"
        assert asyncio.run(with_timeout(quick(), None)).data == "ok"
