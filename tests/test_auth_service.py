"""
tests/test_auth_service.py -- Tests for auth/service.py.

Most tests run AuthService against a real SQLite Storage (see conftest.py):
uniqueness, the admin flag, and concurrent registration are storage
behaviours, and mocking the store would only confirm the mock.

Storage failure paths use MagicMock ports, since a real SQLite database
cannot be made to fail on demand.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import pytest
from jose import JWTError, jwt

from auth.errors import (
    ApplicationNotFound,
    HashingFailure,
    InvalidCredentials,
    SigningFailure,
    StorageError,
    StorageFailure,
    UserAlreadyExists,
    UserMissingError,
    UserNotFound,
)
from auth.models import Application, User
from auth.service import AuthService
from auth.tokens import ALGORITHM, TokenIssuer
from tests.conftest import APP_ID, APP_SECRET, TOKEN_TTL

EMAIL = "alice@example.com"
PASSWORD = "correct-horse-battery"


def _decode(token: str) -> dict:
    return jwt.decode(token, APP_SECRET, algorithms=[ALGORITHM])


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


class TestLogin:
    def test_register_then_login_round_trip(self, service):
        uid = service.register_new_user(EMAIL, PASSWORD)
        claims = _decode(service.login(EMAIL, PASSWORD, APP_ID))
        assert claims["uid"] == uid
        assert claims["email"] == EMAIL
        assert claims["app_id"] == APP_ID

    def test_exp_is_login_time_plus_ttl(self, service):
        service.register_new_user(EMAIL, PASSWORD)
        before = time.time()
        claims = _decode(service.login(EMAIL, PASSWORD, APP_ID))
        after = time.time()
        ttl = int(TOKEN_TTL.total_seconds())
        assert int(before) + ttl <= claims["exp"] <= after + ttl
        assert claims["exp"] - claims["iat"] == ttl

    def test_unknown_email_is_invalid_credentials(self, service):
        with pytest.raises(InvalidCredentials):
            service.login("nobody@example.com", PASSWORD, APP_ID)

    def test_wrong_password_is_invalid_credentials(self, service):
        service.register_new_user(EMAIL, PASSWORD)
        with pytest.raises(InvalidCredentials):
            service.login(EMAIL, "wrong-password", APP_ID)

    def test_unknown_email_and_wrong_password_are_indistinguishable(self, service):
        """Both failures carry the same kind and the same message."""
        service.register_new_user(EMAIL, PASSWORD)
        with pytest.raises(InvalidCredentials) as unknown:
            service.login("nobody@example.com", PASSWORD, APP_ID)
        with pytest.raises(InvalidCredentials) as wrong:
            service.login(EMAIL, "wrong-password", APP_ID)
        assert str(unknown.value) == str(wrong.value) == "auth.login: invalid credentials"

    def test_unknown_email_still_runs_bcrypt(self, storage, issuer):
        """Timing equalization: an unknown email costs one bcrypt verification."""
        hasher = MagicMock()
        hasher.hash.return_value = b"$2b$04$dummy"
        service = AuthService(
            log=logging.getLogger("sso.test"),
            user_saver=storage,
            user_provider=storage,
            app_provider=storage,
            hasher=hasher,
            issuer=issuer,
            token_ttl=TOKEN_TTL,
        )
        with pytest.raises(InvalidCredentials):
            service.login("nobody@example.com", PASSWORD, APP_ID)
        hasher.verify.assert_called_once_with(b"$2b$04$dummy", PASSWORD)

    def test_email_is_case_sensitive(self, service):
        service.register_new_user(EMAIL, PASSWORD)
        with pytest.raises(InvalidCredentials):
            service.login(EMAIL.upper(), PASSWORD, APP_ID)

    @pytest.mark.parametrize(
        ("email", "password"),
        [(EMAIL, "\ud800"), ("ghost@example.com", "\ud800"), ("a\ud800@example.com", PASSWORD)],
        ids=["known-email", "unknown-email", "unencodable-email"],
    )
    def test_unencodable_input_is_invalid_credentials(self, service, email, password):
        service.register_new_user(EMAIL, PASSWORD)
        with pytest.raises(InvalidCredentials):
            service.login(email, password, APP_ID)

    def test_out_of_range_app_id_is_application_not_found(self, service):
        service.register_new_user(EMAIL, PASSWORD)
        with pytest.raises(ApplicationNotFound):
            service.login(EMAIL, PASSWORD, 2**63)

    def test_timing_dummy_uses_configured_cost(self, service):
        assert service._dummy_hash.startswith(b"$2b$04$")

    def test_unknown_app_is_application_not_found(self, service):
        service.register_new_user(EMAIL, PASSWORD)
        with pytest.raises(ApplicationNotFound, match="app not found"):
            service.login(EMAIL, PASSWORD, 404)

    def test_bad_password_checked_before_app(self, service):
        """Credentials are verified first -- an unknown app does not reveal a valid password."""
        service.register_new_user(EMAIL, PASSWORD)
        with pytest.raises(InvalidCredentials):
            service.login(EMAIL, "wrong-password", 404)

    def test_tokens_are_scoped_per_application(self, service, storage):
        storage.create_app(2, "second-app", "second-secret")
        service.register_new_user(EMAIL, PASSWORD)
        token = service.login(EMAIL, PASSWORD, 2)
        assert jwt.decode(token, "second-secret", algorithms=[ALGORITHM])["app_id"] == 2
        with pytest.raises(JWTError):
            _decode(token)

    def test_malformed_stored_hash_is_hashing_failure(self, hasher, issuer):
        users = MagicMock()
        users.user.return_value = User(id=1, email=EMAIL, pass_hash=b"garbage")
        service = AuthService(
            log=logging.getLogger("sso.test"),
            user_saver=MagicMock(),
            user_provider=users,
            app_provider=MagicMock(),
            hasher=hasher,
            issuer=issuer,
            token_ttl=TOKEN_TTL,
        )
        with pytest.raises(HashingFailure) as excinfo:
            service.login(EMAIL, PASSWORD, APP_ID)
        assert excinfo.value.op == "auth.login"
        assert isinstance(excinfo.value.__cause__, HashingFailure)

    def test_empty_app_secret_is_signing_failure(self, hasher, issuer):
        users = MagicMock()
        users.user.return_value = User(id=1, email=EMAIL, pass_hash=hasher.hash(PASSWORD))
        apps = MagicMock()
        apps.app.return_value = Application(id=APP_ID, name="broken", secret="")
        service = AuthService(
            log=logging.getLogger("sso.test"),
            user_saver=MagicMock(),
            user_provider=users,
            app_provider=apps,
            hasher=hasher,
            issuer=issuer,
            token_ttl=TOKEN_TTL,
        )
        with pytest.raises(SigningFailure, match="^auth.login: "):
            service.login(EMAIL, PASSWORD, APP_ID)

    def test_storage_error_is_wrapped(self, hasher, issuer):
        users = MagicMock()
        users.user.side_effect = StorageError("disk I/O error")
        service = AuthService(
            log=logging.getLogger("sso.test"),
            user_saver=MagicMock(),
            user_provider=users,
            app_provider=MagicMock(),
            hasher=hasher,
            issuer=issuer,
            token_ttl=TOKEN_TTL,
        )
        with pytest.raises(StorageFailure, match="auth.login: disk I/O error") as excinfo:
            service.login(EMAIL, PASSWORD, APP_ID)
        assert isinstance(excinfo.value.__cause__, StorageError)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestRegister:
    def test_returns_new_id(self, service):
        first = service.register_new_user(EMAIL, PASSWORD)
        second = service.register_new_user("bob@example.com", PASSWORD)
        assert first > 0
        assert second != first

    def test_password_is_stored_hashed(self, service, storage):
        service.register_new_user(EMAIL, PASSWORD)
        stored = storage.user(EMAIL)
        assert PASSWORD.encode() not in stored.pass_hash
        assert stored.pass_hash.startswith(b"$2b$")

    def test_duplicate_email_is_user_already_exists(self, service):
        service.register_new_user(EMAIL, PASSWORD)
        with pytest.raises(UserAlreadyExists, match="user already exists") as excinfo:
            service.register_new_user(EMAIL, "another-password")
        assert excinfo.value.op == "auth.register_new_user"

    def test_hashing_failure_propagates_with_op(self, service, storage):
        with pytest.raises(HashingFailure, match="^auth.register_new_user: password exceeds 72 bytes"):
            service.register_new_user(EMAIL, "x" * 100)
        with pytest.raises(UserMissingError):
            storage.user(EMAIL)

    def test_unencodable_password_is_hashing_failure(self, service):
        with pytest.raises(HashingFailure, match="^auth.register_new_user: password is not valid UTF-8"):
            service.register_new_user(EMAIL, "\ud800")

    def test_unencodable_email_is_storage_failure(self, service):
        with pytest.raises(StorageFailure, match="^auth.register_new_user: "):
            service.register_new_user("a\ud800@example.com", PASSWORD)

    def test_concurrent_registration_has_exactly_one_winner(self, service):
        """Two simultaneous registrations of one email: one id, one UserAlreadyExists."""
        barrier = threading.Barrier(2)

        def register():
            barrier.wait()
            try:
                return service.register_new_user(EMAIL, PASSWORD)
            except UserAlreadyExists as exc:
                return exc

        with ThreadPoolExecutor(max_workers=2) as pool:
            outcomes = list(pool.map(lambda _: register(), range(2)))

        ids = [o for o in outcomes if isinstance(o, int)]
        conflicts = [o for o in outcomes if isinstance(o, UserAlreadyExists)]
        assert len(ids) == 1
        assert len(conflicts) == 1


# ---------------------------------------------------------------------------
# Admin query
# ---------------------------------------------------------------------------


class TestIsAdmin:
    def test_new_user_is_not_admin(self, service):
        uid = service.register_new_user(EMAIL, PASSWORD)
        assert service.is_admin(uid) is False

    def test_flagged_user_is_admin(self, service, storage):
        uid = service.register_new_user(EMAIL, PASSWORD)
        storage.set_admin(uid)
        assert service.is_admin(uid) is True

    def test_unknown_user_is_user_not_found(self, service):
        with pytest.raises(UserNotFound, match="auth.is_admin: user not found"):
            service.is_admin(9999)

    @pytest.mark.parametrize("user_id", [2**63, -(2**63) - 1])
    def test_out_of_range_user_id_is_user_not_found(self, service, user_id):
        with pytest.raises(UserNotFound):
            service.is_admin(user_id)

    def test_storage_error_is_wrapped(self, hasher, issuer):
        users = MagicMock()
        users.is_admin.side_effect = StorageError("connection reset")
        service = AuthService(
            log=logging.getLogger("sso.test"),
            user_saver=MagicMock(),
            user_provider=users,
            app_provider=MagicMock(),
            hasher=hasher,
            issuer=issuer,
            token_ttl=TOKEN_TTL,
        )
        with pytest.raises(StorageFailure):
            service.is_admin(1)

    def test_missing_user_from_port_maps_to_user_not_found(self, hasher):
        users = MagicMock()
        users.is_admin.side_effect = UserMissingError()
        service = AuthService(
            log=logging.getLogger("sso.test"),
            user_saver=MagicMock(),
            user_provider=users,
            app_provider=MagicMock(),
            hasher=hasher,
            issuer=TokenIssuer(),
            token_ttl=TOKEN_TTL,
        )
        with pytest.raises(UserNotFound):
            service.is_admin(1)


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


class TestLogging:
    def test_records_carry_op_and_email(self, service, caplog):
        caplog.set_level(logging.INFO, logger="sso.test.auth")
        service.register_new_user(EMAIL, PASSWORD)
        records = [r for r in caplog.records if r.name == "sso.test.auth"]
        assert records
        assert all(r.op == "auth.register_new_user" for r in records)
        assert all(r.email == EMAIL for r in records)

    def test_password_is_never_logged(self, service, caplog):
        caplog.set_level(logging.DEBUG)
        service.register_new_user(EMAIL, PASSWORD)
        service.login(EMAIL, PASSWORD, APP_ID)
        with pytest.raises(InvalidCredentials):
            service.login(EMAIL, "wrong-password", APP_ID)
        assert PASSWORD not in caplog.text
        assert "wrong-password" not in caplog.text

    def test_per_call_extra_is_merged_with_context(self, service, caplog):
        caplog.set_level(logging.INFO, logger="sso.test.auth")
        uid = service.register_new_user(EMAIL, PASSWORD)
        done = [r for r in caplog.records if r.getMessage() == "user registered"]
        assert len(done) == 1
        assert done[0].user_id == uid
        assert done[0].op == "auth.register_new_user"
