"""
auth/tokens.py -- Per-application JWT issuance and verification.

Security design decisions:
  JWT: python-jose with HS256. Each token is signed with the secret of the
       application it was issued for, not a process-wide key. A relying
       application verifies with its own secret, so a token minted for
       application A fails signature verification at application B.

  Claims: uid, email, app_id, iat, exp. exp is always iat + ttl, computed
       from a single clock reading so the two can never drift apart.

  Failures: any problem building or signing the token (empty secret, claims
       that do not serialize, a key python-jose refuses) surfaces as
       SigningFailure. The transport layer treats it as an internal error.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import jwt
from jose.exceptions import JOSEError

from auth.errors import SigningFailure
from auth.models import Application, TokenClaims, User

ALGORITHM = "HS256"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenIssuer:
    """Builds and signs identity tokens for a verified user.

    The clock is injectable so tests can pin iat/exp. It must return an
    aware datetime.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock

    def issue(self, user: User, application: Application, ttl: timedelta) -> str:
        """Return a signed token for user, scoped to application, valid for ttl."""
        if not application.secret:
            raise SigningFailure(f"application {application.id} has an empty signing secret")

        iat = int(self._clock().timestamp())
        claims = TokenClaims(
            uid=user.id,
            email=user.email,
            app_id=application.id,
            iat=iat,
            exp=iat + int(ttl.total_seconds()),
        )
        try:
            return jwt.encode(claims.to_dict(), application.secret, algorithm=ALGORITHM)
        except (JOSEError, TypeError, ValueError) as exc:
            raise SigningFailure(f"failed to sign token: {exc}") from exc

    def decode(self, token: str, application: Application) -> dict:
        """Verify token against application's secret and return its claims.

        Checks the signature and the exp claim. Raises SigningFailure on any
        failure, including a token issued for a different application.
        """
        if not application.secret:
            raise SigningFailure(f"application {application.id} has an empty signing secret")
        try:
            claims = jwt.decode(token, application.secret, algorithms=[ALGORITHM])
        except JOSEError as exc:
            raise SigningFailure(f"invalid token: {exc}") from exc
        if claims.get("app_id") != application.id:
            raise SigningFailure("token was issued for a different application")
        return claims
