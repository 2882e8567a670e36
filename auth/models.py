"""
auth/models.py -- Domain dataclasses for the identity provider.

Pattern: Data class (pure data container, zero logic). Stores build these from
rows; AuthService and TokenIssuer read them. Nothing here touches I/O.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered identity.

    pass_hash is the bcrypt output (salt and cost embedded). The plaintext
    password never reaches this object.

    email is stored exactly as received -- uniqueness is case-sensitive.
    """

    id: int
    email: str
    pass_hash: bytes
    is_admin: bool = False


@dataclass
class Application:
    """A relying party ("tenant") that receives tokens from this provider.

    secret is the HS256 key for every token minted for this application.
    Each application has its own, so a token issued for one application
    fails signature verification in any other.
    """

    id: int
    name: str
    secret: str


@dataclass
class TokenClaims:
    """Identity claims embedded in a signed token. Never persisted.

    iat/exp are Unix timestamps (seconds) -- the JWT NumericDate format.
    """

    uid: int
    email: str
    app_id: int
    iat: int
    exp: int

    def to_dict(self) -> dict:
        return {
            "uid": self.uid,
            "email": self.email,
            "app_id": self.app_id,
            "iat": self.iat,
            "exp": self.exp,
        }
