"""
auth/errors.py -- Typed failures raised by the auth workflow and the user directory.

Workflow failures derive from AuthError; the API layer maps each subclass to an
HTTP status through a single exception handler (see api/main.py). Every
subclass carries a stable machine-readable code alongside the message.

Directory failures (DirectoryError, UserValidationError) are raised by
UserDirectory implementations. UserValidationError never reaches the HTTP
layer as an exception -- AuthService.register() turns it into a list.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for workflow failures."""

    code = "auth_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UserNotFoundError(AuthError):
    code = "user_not_found"

    def __init__(self, identifier: str) -> None:
        super().__init__(f"No user found with username or email '{identifier}'.")
        self.identifier = identifier


class AccountLockedError(AuthError):
    code = "account_locked"

    def __init__(self) -> None:
        super().__init__("This account is currently locked. Contact an administrator for help.")


class UnconfirmedAccountError(AuthError):
    code = "email_unconfirmed"

    def __init__(self) -> None:
        super().__init__(
            "The email address for this account has not been confirmed. "
            "Check your inbox for the confirmation email."
        )


class InvalidCredentialsError(AuthError):
    code = "bad_credentials"

    def __init__(self) -> None:
        super().__init__("Invalid password. Please try again.")


class RegistrationFailedError(AuthError):
    code = "registration_failed"

    def __init__(self) -> None:
        super().__init__("Something went wrong during registration. Please try again.")


class InconsistentStateError(AuthError):
    """Registration rollback failed: a user exists without its default role."""

    code = "inconsistent_state"

    def __init__(self, user_id: str) -> None:
        super().__init__(f"Registration rollback failed; user '{user_id}' was left without a role.")
        self.user_id = user_id


class InvalidConfirmationTokenError(AuthError):
    code = "invalid_token"

    def __init__(self) -> None:
        super().__init__("The confirmation link is invalid or has expired.")


class DirectoryError(Exception):
    """A user directory operation failed."""


class UserValidationError(DirectoryError):
    """The directory rejected the fields of a new user.

    errors is an ordered list of human-readable descriptions suitable for
    field-level feedback.
    """

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = list(errors)
