"""
auth/store.py -- SQLAlchemy Core persistence for users and applications.

Pattern: Repository + Data Mapper. Storage is the repository; _row_to_user /
_row_to_app are the mappers. AuthService never touches SQL -- it sees this
class only through the three narrow ports in auth/ports.py (UserSaver,
UserProvider, AppProvider), all of which Storage satisfies.

Uniqueness:
  users.email carries a UNIQUE constraint. save_user() does not check first
  and insert second; it inserts and lets the database reject duplicates.
  That makes "insert unless the email exists" atomic, so two concurrent
  registrations of one email give exactly one row and one UserExistsError.

Security:
  All queries use bound parameters. No f-strings in SQL.

Errors:
  IntegrityError on users.email -> UserExistsError
  no matching row               -> UserMissingError / AppMissingError
  any other SQLAlchemyError     -> StorageError (with the operation name)

  sqlite3 raises OverflowError for integers outside 64 bits and
  UnicodeEncodeError for strings with lone surrogates, and SQLAlchemy does
  not wrap either. No stored row can hold such a value, so lookups report
  the row as missing and writes raise StorageError.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from pathlib import Path

from sqlalchemy import (
    Boolean,
    Column,
    Integer,
    LargeBinary,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    false,
    select,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import AppMissingError, StorageError, UserExistsError, UserMissingError
from auth.models import Application, User

# Python values sqlite3 cannot bind as parameters.
_UNBINDABLE = (OverflowError, UnicodeEncodeError)

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),  # case-sensitive, as received
    Column("pass_hash", LargeBinary, nullable=False),  # bcrypt output, never plaintext
    Column("is_admin", Boolean, nullable=False, default=False, server_default=false()),
)

_apps = Table(
    "apps",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=False),  # caller-supplied
    Column("name", String(255), nullable=False, unique=True),
    Column("secret", Text, nullable=False),  # HS256 signing key for this app's tokens
)


# ---------------------------------------------------------------------------
# SQLite tuning
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block behind a writer.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _ensure_sqlite_dir(db_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    url = make_url(db_url)
    database = url.database
    if not database or database == ":memory:" or database.startswith("file:"):
        return
    Path(database).parent.mkdir(parents=True, exist_ok=True)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class Storage:
    """Repository for User and Application entities.

    Usage:
        storage = Storage("sqlite:///./storage/sso.db")
        storage.create_app(1, "billing", "billing-signing-secret")
        uid = storage.save_user("a@example.com", pass_hash)
        storage.user("a@example.com")
        storage.close()

    Raises StorageError from __init__ if the database cannot be opened or the
    schema cannot be created.
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        is_sqlite = db_url.startswith("sqlite")
        try:
            if is_sqlite:
                connect_args["check_same_thread"] = False
                _ensure_sqlite_dir(db_url)
            self.engine: Engine = create_engine(db_url, connect_args=connect_args)
            if is_sqlite:
                event.listen(self.engine, "connect", _set_wal_mode)
            _metadata.create_all(self.engine)
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(f"storage.init: {exc}") from exc

    # ------------------------------------------------------------------
    # UserSaver
    # ------------------------------------------------------------------

    def save_user(self, email: str, pass_hash: bytes) -> int:
        """Insert a user and return the assigned id.

        Raises UserExistsError if the email is already registered.
        """
        try:
            with self.engine.connect() as conn:
                result = conn.execute(_users.insert().values(email=email, pass_hash=pass_hash))
                conn.commit()
                return result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise UserExistsError() from exc
        except _UNBINDABLE as exc:
            raise StorageError(f"storage.save_user: {exc}") from exc
        except SQLAlchemyError as exc:
            raise StorageError(f"storage.save_user: {exc}") from exc

    # ------------------------------------------------------------------
    # UserProvider
    # ------------------------------------------------------------------

    def user(self, email: str) -> User:
        """Look up a user by exact email. Raises UserMissingError if absent."""
        try:
            with self.engine.connect() as conn:
                row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        except _UNBINDABLE as exc:
            raise UserMissingError() from exc
        except SQLAlchemyError as exc:
            raise StorageError(f"storage.user: {exc}") from exc
        if row is None:
            raise UserMissingError()
        return _row_to_user(row)

    def is_admin(self, user_id: int) -> bool:
        """Return the admin flag for user_id. Raises UserMissingError if absent."""
        try:
            with self.engine.connect() as conn:
                flag = conn.execute(select(_users.c.is_admin).where(_users.c.id == user_id)).fetchone()
        except _UNBINDABLE as exc:
            raise UserMissingError() from exc
        except SQLAlchemyError as exc:
            raise StorageError(f"storage.is_admin: {exc}") from exc
        if flag is None:
            raise UserMissingError()
        return bool(flag.is_admin)

    # ------------------------------------------------------------------
    # AppProvider
    # ------------------------------------------------------------------

    def app(self, app_id: int) -> Application:
        """Look up an application by id. Raises AppMissingError if absent."""
        try:
            with self.engine.connect() as conn:
                row = conn.execute(_apps.select().where(_apps.c.id == app_id)).fetchone()
        except _UNBINDABLE as exc:
            raise AppMissingError() from exc
        except SQLAlchemyError as exc:
            raise StorageError(f"storage.app: {exc}") from exc
        if row is None:
            raise AppMissingError()
        return _row_to_app(row)

    # ------------------------------------------------------------------
    # Provisioning (CLI and tests -- not used by AuthService)
    # ------------------------------------------------------------------

    def create_app(self, app_id: int, name: str, secret: str) -> None:
        """Register a relying application with its signing secret.

        Raises StorageError if the id or name is already taken.
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(_apps.insert().values(id=app_id, name=name, secret=secret))
                conn.commit()
        except IntegrityError as exc:
            raise StorageError(f"storage.create_app: app {app_id} or name {name!r} already exists") from exc
        except _UNBINDABLE as exc:
            raise StorageError(f"storage.create_app: {exc}") from exc
        except SQLAlchemyError as exc:
            raise StorageError(f"storage.create_app: {exc}") from exc

    def list_apps(self) -> list[Application]:
        """Return all applications ordered by id."""
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(_apps.select().order_by(_apps.c.id)).fetchall()
        except SQLAlchemyError as exc:
            raise StorageError(f"storage.list_apps: {exc}") from exc
        return [_row_to_app(r) for r in rows]

    def set_admin(self, user_id: int, is_admin: bool = True) -> None:
        """Set or clear the admin flag. Raises UserMissingError if absent."""
        try:
            with self.engine.connect() as conn:
                result = conn.execute(_users.update().where(_users.c.id == user_id).values(is_admin=is_admin))
                conn.commit()
        except _UNBINDABLE as exc:
            raise UserMissingError() from exc
        except SQLAlchemyError as exc:
            raise StorageError(f"storage.set_admin: {exc}") from exc
        if result.rowcount == 0:
            raise UserMissingError()

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        pass_hash=bytes(row.pass_hash),
        is_admin=bool(row.is_admin),
    )


def _row_to_app(row) -> Application:
    return Application(id=row.id, name=row.name, secret=row.secret)
