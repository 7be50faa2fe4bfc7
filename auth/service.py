"""
auth/service.py -- The authentication workflow: login, registration, email confirmation.

AuthService orchestrates a UserDirectory, a Mailer and a TokenConfig; all
three are injected at construction. It owns no state of its own, so one
instance serves every request.

Failure policy:
  Lookup and account-state failures raise immediately (auth/errors.py) and
  are never retried here. Registration validation failures are returned as a
  list because they are expected, user-correctable outcomes. A failed
  confirmation email is a False return, not an exception.

Two flows have a deliberate shape worth knowing before editing:
  login() on an unconfirmed account notifies, then fails. The confirmation
      email goes out before UnconfirmedAccountError is raised, whatever the
      password was.
  register() is create-then-assign-role. If the role cannot be assigned the
      new user is deleted again; if that delete fails too, InconsistentStateError
      is raised instead of the usual RegistrationFailedError.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from auth.directory import UserDirectory
from auth.errors import (
    AccountLockedError,
    DirectoryError,
    InconsistentStateError,
    InvalidConfirmationTokenError,
    InvalidCredentialsError,
    RegistrationFailedError,
    UnconfirmedAccountError,
    UserNotFoundError,
    UserValidationError,
)
from auth.models import LoginResult, Registration, User
from auth.tokens import (
    TokenConfig,
    build_claims,
    create_access_token,
    create_confirmation_token,
    decode_confirmation_token,
)
from mail.rendering import confirmation_subject, render_confirmation_email
from mail.sender import Mailer

logger = logging.getLogger("bridgeauth.auth")

DEFAULT_ROLE = "Customer"


class AuthService:
    def __init__(
        self,
        directory: UserDirectory,
        mailer: Mailer,
        token_config: TokenConfig,
        app_name: str = "Warehouse Bridge",
    ) -> None:
        self.directory = directory
        self.mailer = mailer
        self.token_config = token_config
        self.app_name = app_name

    # ------------------------------------------------------------------
    # Login / authenticate
    # ------------------------------------------------------------------

    def login(self, identifier: str, password: str, callback_url: str) -> LoginResult:
        """Authenticate and return the user summary, roles and a bearer token.

        An unconfirmed account gets a fresh confirmation email and then
        UnconfirmedAccountError. If that account is also locked, the
        AccountLockedError from the email step surfaces instead.
        """
        identifier = identifier.strip()
        user = self._resolve(identifier)

        if not user.email_confirmed:
            self.send_email_confirmation(identifier, callback_url)
            logger.info("Login refused for unconfirmed account: id=%s", user.id)
            raise UnconfirmedAccountError()

        token = self.authenticate(identifier, password)
        roles = self.directory.roles_of(user.id)
        logger.info("Login succeeded: id=%s username=%s", user.id, user.username)
        return LoginResult(
            id=user.id,
            email=user.email,
            full_name=user.full_name,
            username=user.username,
            avatar=user.avatar,
            roles=roles,
            token=token,
        )

    def authenticate(self, identifier: str, password: str) -> str:
        """Check account state and password, then return a signed bearer token.

        Order matters: lockout is checked before confirmation, and both before
        the password, so a locked account fails even with the right password.
        """
        user = self._resolve(identifier.strip())
        if _is_locked(user):
            logger.warning("Authentication refused for locked account: id=%s until=%s", user.id, user.lockout_end)
            raise AccountLockedError()
        if not user.email_confirmed:
            raise UnconfirmedAccountError()
        if not self.directory.verify_password(user.id, password):
            logger.warning("Invalid password: id=%s", user.id)
            raise InvalidCredentialsError()

        roles = self.directory.roles_of(user.id)
        return create_access_token(self.token_config, build_claims(user, roles))

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, registration: Registration) -> list[str] | None:
        """Create a user with the default role.

        Returns None on success or the directory's validation errors. The new
        account starts unconfirmed.
        """
        try:
            user = self.directory.create(registration)
        except UserValidationError as exc:
            logger.info("Registration rejected for %s: %d error(s)", registration.username, len(exc.errors))
            return exc.errors

        try:
            self.directory.assign_role(user.id, DEFAULT_ROLE)
        except DirectoryError as exc:
            logger.warning("Role assignment failed for id=%s (%s); rolling back", user.id, exc)
            self._rollback_registration(user)
            raise RegistrationFailedError() from exc

        logger.info("Registered user: id=%s username=%s", user.id, user.username)
        return None

    def _rollback_registration(self, user: User) -> None:
        try:
            self.directory.delete(user.id)
        except DirectoryError as exc:
            logger.error("Rollback failed, user left without a role: id=%s (%s)", user.id, exc)
            raise InconsistentStateError(user.id) from exc

    # ------------------------------------------------------------------
    # Email confirmation
    # ------------------------------------------------------------------

    def send_email_confirmation(self, identifier: str, callback_url: str) -> bool:
        """Email a confirmation link built from callback_url. Returns dispatch success."""
        user = self._resolve(identifier.strip())
        if _is_locked(user):
            raise AccountLockedError()

        token = create_confirmation_token(self.token_config, user)
        link = _with_query(callback_url, token=token)
        sent = self.mailer.send(
            user.email,
            confirmation_subject(self.app_name),
            render_confirmation_email(link, self.app_name),
        )
        if not sent:
            logger.warning("Confirmation email dispatch failed: id=%s", user.id)
        return sent

    def confirm_email(self, token: str) -> User:
        """Mark the account behind a confirmation token as confirmed. Idempotent."""
        payload = decode_confirmation_token(self.token_config, token)
        if payload is None:
            raise InvalidConfirmationTokenError()
        user = self.directory.find_by_id(payload["sub"])
        if user is None:
            raise UserNotFoundError(payload["sub"])
        if not user.email_confirmed:
            self.directory.confirm_email(user.id)
            user.email_confirmed = True
            logger.info("Email confirmed: id=%s", user.id)
        return user

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def is_in_role(self, user_id: str, role: str) -> bool:
        if self.directory.find_by_id(user_id) is None:
            return False
        wanted = role.upper()
        return any(r.upper() == wanted for r in self.directory.roles_of(user_id))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve(self, identifier: str) -> User:
        """Username first, then email."""
        user = self.directory.find_by_username(identifier)
        if user is None:
            user = self.directory.find_by_email(identifier)
        if user is None:
            raise UserNotFoundError(identifier)
        return user


def _is_locked(user: User) -> bool:
    return user.lockout_end is not None and user.lockout_end > datetime.now(timezone.utc)


def _with_query(url: str, **params: str) -> str:
    """Return url with params set in its query string, keeping any others."""
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in params]
    query.extend(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))
