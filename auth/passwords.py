"""
auth/passwords.py -- Password hashing and password policy.

Hashing: bcrypt directly, no passlib wrapper. passlib's internal wrap-bug
detection creates a password longer than 72 bytes, which bcrypt 4.x rejects
with an explicit error. bcrypt only looks at the first 72 bytes of its input
(bcrypt>=5 refuses anything longer), so the policy rejects longer passwords
at registration and verify_password() treats them as a mismatch.

Policy: the same default rules an ASP.NET Identity store applies, with the
same descriptions, so clients that render field-level feedback keep working.

Only auth/store.py calls into this module -- the directory owns credentials.
"""

from __future__ import annotations

from dataclasses import dataclass

import bcrypt

MAX_PASSWORD_BYTES = 72


def exceeds_bcrypt_limit(plain: str) -> bool:
    return len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    if exceeds_bcrypt_limit(plain):
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the DB
        return False


@dataclass(frozen=True)
class PasswordPolicy:
    min_length: int = 6
    require_non_alphanumeric: bool = True
    require_digit: bool = True
    require_lowercase: bool = True
    require_uppercase: bool = True

    def validate(self, password: str) -> list[str]:
        """Return the policy violations for password, in a stable order. Empty means valid."""
        errors: list[str] = []
        if len(password) < self.min_length:
            errors.append(f"Passwords must be at least {self.min_length} characters.")
        if exceeds_bcrypt_limit(password):
            errors.append(f"Passwords must be at most {MAX_PASSWORD_BYTES} bytes.")
        if self.require_non_alphanumeric and all(c.isalnum() for c in password):
            errors.append("Passwords must have at least one non alphanumeric character.")
        if self.require_digit and not any("0" <= c <= "9" for c in password):
            errors.append("Passwords must have at least one digit ('0'-'9').")
        if self.require_lowercase and not any("a" <= c <= "z" for c in password):
            errors.append("Passwords must have at least one lowercase ('a'-'z').")
        if self.require_uppercase and not any("A" <= c <= "Z" for c in password):
            errors.append("Passwords must have at least one uppercase ('A'-'Z').")
        return errors


DEFAULT_POLICY = PasswordPolicy()
