"""
auth/errors.py -- Error taxonomy for the SSO core and its storage adapters.

Two families:

  StorageError -- raised by storage adapters (auth/store.py or any other
      implementation of auth/ports.py). These describe what the storage saw:
      a duplicate email, a missing user row, a missing application row.

  AuthError -- raised by AuthService. Every AuthError carries the name of the
      operation that produced it (e.g. "auth.login") so log lines and error
      messages read "<op>: <message>". The subclass is the stable "kind" the
      transport adapter matches on; the message text is for humans.

The transport adapter (api/routes/v1/auth.py) is the only place that turns
these kinds into HTTP status codes. Nothing in auth/ knows about HTTP.

Layer rule: no imports from api/.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Storage errors
# ---------------------------------------------------------------------------


class StorageError(Exception):
    """Base class for storage adapter failures (I/O, driver errors)."""


class UserExistsError(StorageError):
    def __init__(self, message: str = "user already exists") -> None:
        super().__init__(message)


class UserMissingError(StorageError):
    def __init__(self, message: str = "user not found") -> None:
        super().__init__(message)


class AppMissingError(StorageError):
    def __init__(self, message: str = "app not found") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Domain errors
# ---------------------------------------------------------------------------


class AuthError(Exception):
    """Base class for every error AuthService raises.

    Args:
        message: Human-readable reason. Subclasses provide a stable default
                 that callers may match as a substring.
        op:      Originating operation name. None until AuthService tags it.
    """

    default_message = "auth error"

    def __init__(self, message: str | None = None, *, op: str | None = None) -> None:
        self.message = message or self.default_message
        self.op = op
        super().__init__(f"{op}: {self.message}" if op else self.message)

    def with_op(self, op: str) -> AuthError:
        """Return a copy of this error, same kind and message, tagged with op."""
        return type(self)(self.message, op=op)


class InvalidCredentials(AuthError):
    """Unknown email or wrong password. Deliberately does not say which."""

    default_message = "invalid credentials"


class UserAlreadyExists(AuthError):
    default_message = "user already exists"


class UserNotFound(AuthError):
    default_message = "user not found"


class ApplicationNotFound(AuthError):
    default_message = "app not found"


class HashingFailure(AuthError):
    """bcrypt could not hash or verify (bad cost, malformed stored hash)."""

    default_message = "password hashing failed"


class SigningFailure(AuthError):
    """The token could not be signed or verified with the application secret."""

    default_message = "token signing failed"


class StorageFailure(AuthError):
    """Any storage error that has no dedicated domain kind."""

    default_message = "storage failure"
