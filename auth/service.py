"""
auth/service.py -- AuthService: login, registration, and the admin query.

This is the only component with business rules. It orchestrates:
  - a UserSaver / UserProvider / AppProvider (auth/ports.py) for persistence,
  - a CredentialHasher (auth/hasher.py) for bcrypt,
  - a TokenIssuer (auth/tokens.py) for per-application JWTs.

Error policy:
  Every failure leaves this module as an AuthError subclass tagged with the
  operation name ("auth.login", "auth.register_new_user", "auth.is_admin").
  Storage errors are translated into domain kinds here; the original error
  stays reachable as __cause__ for diagnostics.

  Login never says whether the email exists. Unknown email and wrong
  password both raise InvalidCredentials, and both run one bcrypt check
  (against a dummy hash when the user is unknown) so response time does not
  reveal which case occurred.

Logging:
  The logger is injected. Each call logs through core.log.bind(), carrying
  op plus email or user_id as structured extras. Passwords are never logged.

Concurrency: no mutable state after __init__. Any number of threads may call
any method at once; uniqueness races are resolved by the storage layer.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from auth.errors import (
    AppMissingError,
    ApplicationNotFound,
    AuthError,
    InvalidCredentials,
    StorageError,
    StorageFailure,
    UserAlreadyExists,
    UserExistsError,
    UserMissingError,
    UserNotFound,
)
from auth.hasher import CredentialHasher
from auth.ports import AppProvider, UserProvider, UserSaver
from auth.tokens import TokenIssuer
from core.log import bind

# Hashed once per service so an unknown-email login costs the same bcrypt
# work as a wrong-password login. The dummy uses the current BCRYPT_ROUNDS
# while stored hashes keep the cost they were created with, so after a cost
# change the two paths only match again once users have re-registered or
# been rehashed at the new cost.
_TIMING_DUMMY_PASSWORD = "sso-timing-equalization-dummy"


class AuthService:
    """Authentication domain service.

    Usage:
        service = AuthService(
            log=logging.getLogger("sso.auth"),
            user_saver=storage,
            user_provider=storage,
            app_provider=storage,
            hasher=CredentialHasher(),
            issuer=TokenIssuer(),
            token_ttl=timedelta(hours=1),
        )
        uid = service.register_new_user("a@example.com", "pw")
        token = service.login("a@example.com", "pw", app_id=1)
    """

    def __init__(
        self,
        *,
        log: logging.Logger,
        user_saver: UserSaver,
        user_provider: UserProvider,
        app_provider: AppProvider,
        hasher: CredentialHasher,
        issuer: TokenIssuer,
        token_ttl: timedelta,
    ) -> None:
        self._log = log
        self._user_saver = user_saver
        self._user_provider = user_provider
        self._app_provider = app_provider
        self._hasher = hasher
        self._issuer = issuer
        self.token_ttl = token_ttl
        self._dummy_hash = hasher.hash(_TIMING_DUMMY_PASSWORD)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def login(self, email: str, password: str, app_id: int) -> str:
        """Verify credentials and return a token scoped to app_id.

        Raises:
            InvalidCredentials:  unknown email or wrong password.
            ApplicationNotFound: app_id is not provisioned.
            HashingFailure:      the stored hash is malformed.
            SigningFailure:      the token could not be signed.
            StorageFailure:      any other storage error.
        """
        op = "auth.login"
        log = bind(self._log, op=op, email=email)
        log.info("attempting to login user")

        try:
            user = self._user_provider.user(email)
        except UserMissingError as exc:
            # Equalize timing -- do NOT return before running bcrypt.
            self._hasher.verify(self._dummy_hash, password)
            log.warning("user not found")
            raise InvalidCredentials(op=op) from exc
        except StorageError as exc:
            log.error("failed getting user: %s", exc)
            raise StorageFailure(str(exc), op=op) from exc

        try:
            matches = self._hasher.verify(user.pass_hash, password)
        except AuthError as exc:
            log.error("failed verifying password: %s", exc)
            raise exc.with_op(op) from exc
        if not matches:
            log.warning("invalid credentials")
            raise InvalidCredentials(op=op)

        try:
            app = self._app_provider.app(app_id)
        except AppMissingError as exc:
            log.warning("app not found", extra={"app_id": app_id})
            raise ApplicationNotFound(op=op) from exc
        except StorageError as exc:
            log.error("failed getting app: %s", exc)
            raise StorageFailure(str(exc), op=op) from exc

        try:
            token = self._issuer.issue(user, app, self.token_ttl)
        except AuthError as exc:
            log.error("failed generating token: %s", exc)
            raise exc.with_op(op) from exc

        log.info("user logged in successfully")
        return token

    def register_new_user(self, email: str, password: str) -> int:
        """Hash password, persist the user, and return the new user id.

        Raises:
            UserAlreadyExists: email is already registered.
            HashingFailure:    bcrypt could not hash the password.
            StorageFailure:    any other storage error.
        """
        op = "auth.register_new_user"
        log = bind(self._log, op=op, email=email)
        log.info("registering user")

        try:
            pass_hash = self._hasher.hash(password)
        except AuthError as exc:
            log.error("failed generating password hash: %s", exc)
            raise exc.with_op(op) from exc

        try:
            user_id = self._user_saver.save_user(email, pass_hash)
        except UserExistsError as exc:
            log.warning("user already exists")
            raise UserAlreadyExists(op=op) from exc
        except StorageError as exc:
            log.error("failed saving user: %s", exc)
            raise StorageFailure(str(exc), op=op) from exc

        log.info("user registered", extra={"user_id": user_id})
        return user_id

    def is_admin(self, user_id: int) -> bool:
        """Return the admin flag for user_id.

        Raises:
            UserNotFound:   no user has this id.
            StorageFailure: any other storage error.
        """
        op = "auth.is_admin"
        log = bind(self._log, op=op, user_id=user_id)
        log.info("checking if user is admin")

        try:
            is_admin = self._user_provider.is_admin(user_id)
        except UserMissingError as exc:
            log.warning("user not found")
            raise UserNotFound(op=op) from exc
        except StorageError as exc:
            log.error("failed checking admin flag: %s", exc)
            raise StorageFailure(str(exc), op=op) from exc

        log.info("checked if user is admin", extra={"is_admin": is_admin})
        return is_admin
