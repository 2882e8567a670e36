"""
auth/bootstrap.py -- Fallible wiring of storage, hasher, issuer and AuthService.

build_auth_service() is the single place the production object graph is
assembled. It either returns a ready (AuthService, Storage) pair or raises
BootstrapError; it never leaves half-initialized resources behind. Callers
(api/main.py lifespan, main.py CLI) decide what a failure means for the
process -- both treat it as fatal.

Startup checks:
  1. Storage opens and the schema exists.
  2. Every provisioned application has a non-empty signing secret. An
     application without one could never receive a token, so it is a
     configuration error, not something to discover on the first login.
  3. The hasher's cost factor is usable (AuthService hashes its timing
     dummy on construction).

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

from auth.errors import AuthError, StorageError
from auth.hasher import CredentialHasher
from auth.service import AuthService
from auth.store import Storage
from auth.tokens import TokenIssuer
from core.config import Settings

logger = logging.getLogger("sso.bootstrap")


class BootstrapError(Exception):
    """The service cannot start with the current configuration or storage."""


def check_app_secrets(storage: Storage) -> None:
    """Raise BootstrapError if any application has an empty signing secret."""
    missing = [a.id for a in storage.list_apps() if not a.secret]
    if missing:
        raise BootstrapError(f"applications without a signing secret: {missing}")


def build_auth_service(settings: Settings, log: logging.Logger | None = None) -> tuple[AuthService, Storage]:
    """Open storage and wire an AuthService from settings.

    Returns (service, storage). The caller owns storage and must close() it
    on shutdown.
    """
    log = log or logging.getLogger("sso")

    try:
        storage = Storage(settings.database_url)
    except StorageError as exc:
        raise BootstrapError(f"failed to init storage: {exc}") from exc

    try:
        check_app_secrets(storage)
        service = AuthService(
            log=log.getChild("auth"),
            user_saver=storage,
            user_provider=storage,
            app_provider=storage,
            hasher=CredentialHasher(rounds=settings.bcrypt_rounds),
            issuer=TokenIssuer(),
            token_ttl=settings.token_ttl,
        )
    except BootstrapError:
        storage.close()
        raise
    except (StorageError, AuthError) as exc:
        storage.close()
        raise BootstrapError(f"failed to build auth service: {exc}") from exc

    logger.info(
        "Auth service ready (token_ttl=%ss, bcrypt_rounds=%d)",
        settings.token_ttl_seconds,
        settings.bcrypt_rounds,
    )
    return service, storage
