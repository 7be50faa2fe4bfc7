"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). The store and the
workflow do the work; these only own the shape.

Layer rule: no imports from api/, core/, or mail/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime


@dataclass
class User:
    """A user record as held by the user directory.

    password_hash never leaves auth/store.py and auth/passwords.py -- nothing
    in the workflow or the API reads it.

    lockout_end is timezone-aware UTC. A value in the past means the account
    was locked once and the lock has expired; only a future value blocks
    authentication.
    """

    username: str
    email: str
    id: str | None = None
    full_name: str = ""
    avatar: str | None = None
    address: str | None = None
    birthday: date | None = None
    phone_number: str | None = None
    password_hash: str | None = field(default=None, repr=False)
    email_confirmed: bool = False
    lockout_enabled: bool = True
    lockout_end: datetime | None = None
    access_failed_count: int = 0
    created_at: str | None = None


@dataclass
class Registration:
    """Input for self-registration. password is plaintext at this boundary."""

    username: str
    email: str
    password: str
    full_name: str = ""
    avatar: str | None = None
    address: str | None = None
    birthday: date | None = None
    phone_number: str | None = None


@dataclass
class LoginResult:
    """What a successful login hands back to the caller."""

    id: str
    email: str
    full_name: str
    username: str
    avatar: str | None
    roles: list[str]
    token: str
