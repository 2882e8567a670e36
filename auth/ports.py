"""
auth/ports.py -- Storage capabilities AuthService depends on.

Three narrow protocols rather than one repository interface. AuthService only
sees the capability each operation needs, so a backend can provide them
separately (e.g. users in one database, applications in a config service).
auth/store.py happens to implement all three in one class.

Error contract for implementations:
  save_user -- raise UserExistsError when the email is already taken. The
               check-and-insert must be atomic: two concurrent calls with the
               same email produce exactly one success.
  user / is_admin -- raise UserMissingError when no row matches.
  app  -- raise AppMissingError when no row matches.
  Anything else -- raise StorageError (or a subclass).
"""

from __future__ import annotations

from typing import Protocol

from auth.models import Application, User


class UserSaver(Protocol):
    def save_user(self, email: str, pass_hash: bytes) -> int: ...


class UserProvider(Protocol):
    def user(self, email: str) -> User: ...

    def is_admin(self, user_id: int) -> bool: ...


class AppProvider(Protocol):
    def app(self, app_id: int) -> Application: ...
