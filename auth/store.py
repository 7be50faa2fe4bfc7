"""
auth/store.py -- SQLAlchemy Core persistence layer for the user directory.

Pattern: Repository + Data Mapper. UserStore is the repository and satisfies
the UserDirectory protocol (auth/directory.py); _row_to_user is the mapper.
The workflow and route code never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Password hashes are written and read only here.

Lookups are case-insensitive: username and email are stored as entered and
again upper-cased in normalized_* columns, which carry the UNIQUE constraints.

Lockout: verify_password() counts consecutive failures. When the count reaches
max_failed_attempts the account is locked for lockout_minutes and the counter
is reset. A successful check resets the counter. max_failed_attempts=0 turns
automatic lockout off.

Layer rule: no imports from api/, core/, or mail/.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import DirectoryError, UserValidationError
from auth.models import Registration, User
from auth.passwords import DEFAULT_POLICY, PasswordPolicy, exceeds_bcrypt_limit, hash_password, verify_password

logger = logging.getLogger("bridgeauth.store")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'bridgeauth.db'}"

DEFAULT_ROLES: tuple[str, ...] = ("Admin", "Customer")

_USERNAME_CHARS = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789-._@+")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("username", String(256), nullable=False),
    Column("normalized_username", String(256), nullable=False, unique=True),
    Column("email", String(256), nullable=False),
    Column("normalized_email", String(256), nullable=False, unique=True),
    Column("full_name", String(255), nullable=False, server_default=""),
    Column("avatar", Text),
    Column("address", Text),
    Column("birthday", String(10)),  # ISO date
    Column("phone_number", String(50)),
    Column("password_hash", Text),
    Column("email_confirmed", Integer, nullable=False, server_default="0"),
    Column("lockout_enabled", Integer, nullable=False, server_default="1"),
    Column("lockout_end", String(32)),  # ISO 8601 UTC, NULL = never locked
    Column("access_failed_count", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(256), nullable=False),
    Column("normalized_name", String(256), nullable=False, unique=True),
)

_user_roles = Table(
    "user_roles",
    _metadata,
    Column("user_id", String(36), nullable=False),
    Column("role_id", Integer, nullable=False),
    UniqueConstraint("user_id", "role_id", name="uq_user_roles_user_role"),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block on concurrent writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _normalize(value: str) -> str:
    return value.strip().upper()


def _is_valid_email(email: str) -> bool:
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """SQL-backed user directory.

    Usage:
        store = UserStore("sqlite:///./bridgeauth.db")
        user = store.create(Registration(username="alice", email="a@x.com", password="Pw1!xx"))
        store.assign_role(user.id, "Customer")
        store.verify_password(user.id, "Pw1!xx")
        store.close()
    """

    def __init__(
        self,
        db_url: str = _DEFAULT_DB_URL,
        roles: tuple[str, ...] = DEFAULT_ROLES,
        max_failed_attempts: int = 5,
        lockout_minutes: int = 5,
        password_policy: PasswordPolicy = DEFAULT_POLICY,
    ) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)
        self.max_failed_attempts = max_failed_attempts
        self.lockout_duration = timedelta(minutes=lockout_minutes)
        self.password_policy = password_policy
        for role in roles:
            self.ensure_role(role)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_by_username(self, username: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where(_users.c.normalized_username == _normalize(username))
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_email(self, email: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.normalized_email == _normalize(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Create / delete
    # ------------------------------------------------------------------

    def create(self, registration: Registration) -> User:
        """Validate and insert a new, unconfirmed user. Returns the stored record.

        Raises UserValidationError listing every problem: password policy
        violations first, then username, then email.
        """
        errors = self.password_policy.validate(registration.password)
        errors.extend(self._identity_errors(registration))
        if errors:
            raise UserValidationError(errors)

        user_id = str(uuid.uuid4())
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _users.insert().values(
                        id=user_id,
                        username=registration.username.strip(),
                        normalized_username=_normalize(registration.username),
                        email=registration.email.strip(),
                        normalized_email=_normalize(registration.email),
                        full_name=registration.full_name or "",
                        avatar=registration.avatar,
                        address=registration.address,
                        birthday=registration.birthday.isoformat() if registration.birthday else None,
                        phone_number=registration.phone_number,
                        password_hash=hash_password(registration.password),
                        email_confirmed=0,
                        lockout_enabled=1,
                        access_failed_count=0,
                        created_at=_now().isoformat(),
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            # A concurrent registration claimed the username or email after our check.
            raise UserValidationError(
                self._identity_errors(registration) or ["Username or email is already taken."]
            ) from exc

        logger.info("User created: id=%s username=%s", user_id, registration.username)
        created = self.find_by_id(user_id)
        if created is None:
            raise DirectoryError(f"User '{user_id}' vanished after insert.")
        return created

    def delete(self, user_id: str) -> None:
        """Delete a user and its role links in one transaction."""
        try:
            with self.engine.begin() as conn:
                conn.execute(_user_roles.delete().where(_user_roles.c.user_id == user_id))
                result = conn.execute(_users.delete().where(_users.c.id == user_id))
        except SQLAlchemyError as exc:
            raise DirectoryError(f"Could not delete user '{user_id}'.") from exc
        if result.rowcount == 0:
            raise DirectoryError(f"User '{user_id}' does not exist.")

    def _identity_errors(self, registration: Registration) -> list[str]:
        errors: list[str] = []
        username = registration.username.strip()
        if not username or any(c not in _USERNAME_CHARS for c in username):
            errors.append(f"Username '{username}' is invalid, can only contain letters or digits.")
        elif self.find_by_username(username) is not None:
            errors.append(f"Username '{username}' is already taken.")

        email = registration.email.strip()
        if not _is_valid_email(email):
            errors.append(f"Email '{email}' is invalid.")
        elif self.find_by_email(email) is not None:
            errors.append(f"Email '{email}' is already taken.")
        return errors

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def ensure_role(self, name: str) -> None:
        """Create a role if it does not exist yet. Idempotent."""
        with self.engine.connect() as conn:
            exists = conn.execute(
                select(_roles.c.id).where(_roles.c.normalized_name == _normalize(name))
            ).fetchone()
            if exists is None:
                conn.execute(_roles.insert().values(name=name, normalized_name=_normalize(name)))
                conn.commit()

    def list_roles(self) -> list[str]:
        with self.engine.connect() as conn:
            rows = conn.execute(select(_roles.c.name).order_by(_roles.c.name)).fetchall()
        return [r.name for r in rows]

    def assign_role(self, user_id: str, role: str) -> None:
        """Link a user to an existing role.

        Raises DirectoryError if the role or user does not exist, the user
        already holds the role, or the database write fails.
        """
        try:
            with self.engine.connect() as conn:
                role_row = conn.execute(
                    select(_roles.c.id).where(_roles.c.normalized_name == _normalize(role))
                ).fetchone()
                if role_row is None:
                    raise DirectoryError(f"Role '{role}' does not exist.")
                user_row = conn.execute(select(_users.c.id).where(_users.c.id == user_id)).fetchone()
                if user_row is None:
                    raise DirectoryError(f"User '{user_id}' does not exist.")
                conn.execute(_user_roles.insert().values(user_id=user_id, role_id=role_row.id))
                conn.commit()
        except IntegrityError as exc:
            raise DirectoryError(f"User already in role '{role}'.") from exc
        except SQLAlchemyError as exc:
            raise DirectoryError(f"Could not assign role '{role}'.") from exc

    def roles_of(self, user_id: str) -> list[str]:
        """Return the user's role names, sorted."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_roles.c.name)
                .select_from(_user_roles.join(_roles, _user_roles.c.role_id == _roles.c.id))
                .where(_user_roles.c.user_id == user_id)
                .order_by(_roles.c.name)
            ).fetchall()
        return [r.name for r in rows]

    # ------------------------------------------------------------------
    # Credentials and account state
    # ------------------------------------------------------------------

    def verify_password(self, user_id: str, password: str) -> bool:
        """Check password and apply the lockout policy.

        Returns False for unknown users and users without a password hash. A
        password over bcrypt's byte limit can never have been stored, so it is
        a mismatch that does not count toward lockout.
        """
        user = self.find_by_id(user_id)
        if user is None or not user.password_hash:
            return False
        if exceeds_bcrypt_limit(password):
            return False

        if verify_password(password, user.password_hash):
            if user.access_failed_count:
                self._update(user_id, access_failed_count=0)
            return True

        if user.lockout_enabled and self.max_failed_attempts > 0:
            failures = user.access_failed_count + 1
            if failures >= self.max_failed_attempts:
                until = _now() + self.lockout_duration
                self._update(user_id, access_failed_count=0, lockout_end=until.isoformat())
                logger.warning("Account locked after %d failed attempts: id=%s until=%s", failures, user_id, until)
            else:
                self._update(user_id, access_failed_count=failures)
        return False

    def confirm_email(self, user_id: str) -> None:
        if not self._update(user_id, email_confirmed=1):
            raise DirectoryError(f"User '{user_id}' does not exist.")

    def set_lockout(self, user_id: str, until: datetime | None) -> bool:
        """Lock a user until the given time, or unlock with None.

        A naive until is taken as UTC, the same as stored timestamps.
        Returns True if a row was updated, False if user_id was not found.
        """
        if until is not None and until.tzinfo is None:
            until = until.replace(tzinfo=timezone.utc)
        return self._update(
            user_id,
            lockout_end=until.astimezone(timezone.utc).isoformat() if until else None,
            access_failed_count=0,
        )

    def _update(self, user_id: str, **fields) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.exception("Database ping failed")
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        full_name=row.full_name or "",
        avatar=row.avatar,
        address=row.address,
        birthday=date.fromisoformat(row.birthday) if row.birthday else None,
        phone_number=row.phone_number,
        password_hash=row.password_hash,
        email_confirmed=bool(row.email_confirmed),
        lockout_enabled=bool(row.lockout_enabled),
        lockout_end=_parse_ts(row.lockout_end),
        access_failed_count=row.access_failed_count,
        created_at=row.created_at,
    )
