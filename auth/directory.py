"""
auth/directory.py -- The user directory contract consumed by AuthService.

AuthService depends on this Protocol, never on auth/store.py directly. Any
backing store that satisfies it works: the SQLAlchemy UserStore in production,
an in-memory double in tests.
"""

from __future__ import annotations

from typing import Protocol

from auth.models import Registration, User


class UserDirectory(Protocol):
    def find_by_username(self, username: str) -> User | None:
        """Case-insensitive username lookup."""
        ...

    def find_by_email(self, email: str) -> User | None:
        """Case-insensitive email lookup."""
        ...

    def find_by_id(self, user_id: str) -> User | None: ...

    def create(self, registration: Registration) -> User:
        """Validate and persist a new user. The directory owns password hashing.

        Raises UserValidationError with every rejected field when validation fails.
        """
        ...

    def delete(self, user_id: str) -> None:
        """Raises DirectoryError if the user could not be deleted."""
        ...

    def assign_role(self, user_id: str, role: str) -> None:
        """Raises DirectoryError if the role could not be assigned."""
        ...

    def roles_of(self, user_id: str) -> list[str]: ...

    def verify_password(self, user_id: str, password: str) -> bool:
        """Check a password. May update failure counters and lock the account."""
        ...

    def confirm_email(self, user_id: str) -> None: ...
