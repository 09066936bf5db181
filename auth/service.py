"""
auth/service.py -- Signup, login and password lifecycle orchestration.

AuthService ties the leaves together: passwords (bcrypt), reset_tokens
(HMAC), tokens (JWT) and AccountStore. It is transport-agnostic: every
operation is a coroutine that returns an AuthResult or raises an AuthError,
and api/routes/v1/auth.py maps those onto HTTP.

State is per request, never per account. An account has no "logged in"
state; a successful signup, login, reset or password change just mints a
new stateless session token.

Security:
  [C1] login() runs bcrypt even when the email is unknown, so response time
       does not reveal which emails are registered.
  [C2] login() raises the same InvalidCredentialsError for unknown email,
       wrong password and inactive account.
  [C3] request_password_reset() returns normally for unknown emails, with no
       store mutation and no delivery call.
  [C4] The raw reset token is handed to the mailer and nothing else. It is
       never logged and never stored.
  [C5] A failed delivery rolls back the just-stored reset token and raises
       EmailDeliveryError. The rollback only clears that token, never one a
       concurrent request stored after it.

Concurrency: bcrypt, reset-token generation and HMAC hashing, and the store
calls that hash (create, set_password) run on the bounded hash pool via
run_in_hash_pool(); the event loop only ever waits on them.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone

from auth.errors import (
    EmailDeliveryError,
    InvalidCredentialsError,
    ResetTokenExpiredError,
    ResetTokenInvalidError,
    ValidationError,
)
from auth.mailer import PasswordResetMailer
from auth.models import DEFAULT_ROLE, ROLES, Account
from auth.passwords import run_in_hash_pool, verify_dummy, verify_password
from auth.reset_tokens import generate_reset_token, hash_reset_token, reset_token_matches
from auth.store import AccountStore, normalize_email
from auth.tokens import issue_session_token
from core.config import Settings, get_settings

logger = logging.getLogger("natours.auth.service")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# bcrypt rejects (or silently truncates, depending on version) longer input.
_BCRYPT_MAX_BYTES = 72


@dataclass(frozen=True)
class AuthResult:
    account: Account
    token: str


class AuthService:
    def __init__(self, store: AccountStore, mailer: PasswordResetMailer, settings: Settings | None = None) -> None:
        self.store = store
        self.mailer = mailer
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_new_password(self, password: str, password_confirm: str | None) -> None:
        min_length = self.settings.password_min_length
        if len(password) < min_length:
            raise ValidationError(f"Password must be at least {min_length} characters long.")
        if len(password.encode("utf-8")) > _BCRYPT_MAX_BYTES:
            raise ValidationError(f"Password must be at most {_BCRYPT_MAX_BYTES} bytes long.")
        if password_confirm is not None and password != password_confirm:
            raise ValidationError("Passwords are not the same.")

    @staticmethod
    def _validate_email(email: str) -> str:
        normalized = normalize_email(email)
        if not _EMAIL_RE.match(normalized):
            raise ValidationError("Please provide a valid email.")
        return normalized

    def _issue(self, account: Account) -> AuthResult:
        return AuthResult(account=account, token=issue_session_token(account.id))

    # ------------------------------------------------------------------
    # Signup / login
    # ------------------------------------------------------------------

    async def signup(
        self,
        email: str,
        password: str,
        password_confirm: str,
        role: str | None = None,
        name: str | None = None,
    ) -> AuthResult:
        """Create an account and log it in.

        Raises ValidationError for a bad email, unknown role, short password
        or mismatched confirmation; DuplicateEmailError if the email is taken.
        """
        normalized = self._validate_email(email)
        role = role or DEFAULT_ROLE
        if role not in ROLES:
            raise ValidationError(f"Role must be one of: {', '.join(ROLES)}.")
        self._validate_new_password(password, password_confirm)

        account = await run_in_hash_pool(self.store.create, normalized, password, role, name)
        logger.info("Signup completed (account=%s)", account.id)
        return self._issue(account)

    async def login(self, email: str, password: str) -> AuthResult:
        """Authenticate with email and password [C1][C2]."""
        account = self.store.find_by_email(email) if email else None
        if account is None or not account.is_active:
            # Equalize timing -- do NOT return before running bcrypt [C1]
            await run_in_hash_pool(verify_dummy, password)
            logger.info("Login failed (unknown or inactive email)")
            raise InvalidCredentialsError()
        if not await run_in_hash_pool(verify_password, password, account.password_hash):
            logger.info("Login failed (account=%s)", account.id)
            raise InvalidCredentialsError()
        logger.info("Login succeeded (account=%s)", account.id)
        return self._issue(account)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    async def request_password_reset(self, email: str) -> None:
        """Start a reset for the account with this email, if there is one [C3]."""
        account = self.store.find_by_email(email) if email else None
        if account is None or not account.is_active:
            logger.info("Password reset requested for unknown email")
            return

        reset = await run_in_hash_pool(generate_reset_token)
        self.store.set_reset_token(account.id, reset.hashed, reset.expires_at)
        try:
            await self.mailer.send_password_reset_email(account, reset.raw)  # [C4]
        except Exception as exc:
            # [C5] roll back, then surface a typed error
            self.store.clear_reset_token(account.id, reset.hashed)
            logger.error("Password reset email failed (account=%s): %s", account.id, type(exc).__name__)
            raise EmailDeliveryError() from exc
        logger.info("Password reset requested (account=%s)", account.id)

    async def confirm_password_reset(
        self,
        raw_token: str,
        new_password: str,
        password_confirm: str | None = None,
    ) -> AuthResult:
        """Consume a reset token and set a new password.

        The token is cleared by the password update itself, so a replay
        finds no account and fails with ResetTokenInvalidError.
        """
        if not raw_token:
            raise ResetTokenInvalidError()
        token_hash = await run_in_hash_pool(hash_reset_token, raw_token)
        account = self.store.find_by_reset_token_hash(token_hash)
        if account is None or not account.is_active:
            raise ResetTokenInvalidError()
        if not await run_in_hash_pool(reset_token_matches, raw_token, account.reset_token_hash):
            raise ResetTokenInvalidError()
        expires_at = account.reset_token_expires_at
        if expires_at is None or expires_at <= datetime.now(timezone.utc):
            raise ResetTokenExpiredError()
        self._validate_new_password(new_password, password_confirm)

        updated = await run_in_hash_pool(self.store.set_password, account.id, new_password)
        if updated is None:
            # Account deleted between lookup and update.
            raise ResetTokenInvalidError()
        logger.info("Password reset completed (account=%s)", account.id)
        return self._issue(updated)

    # ------------------------------------------------------------------
    # Password change
    # ------------------------------------------------------------------

    async def change_password(
        self,
        account: Account,
        current_password: str,
        new_password: str,
        password_confirm: str | None = None,
    ) -> AuthResult:
        """Change the password of an already-authenticated account.

        Every token issued before this call stops passing the request guard.
        """
        if not await run_in_hash_pool(verify_password, current_password, account.password_hash):
            logger.info("Password change rejected (account=%s)", account.id)
            raise InvalidCredentialsError()
        self._validate_new_password(new_password, password_confirm)

        updated = await run_in_hash_pool(self.store.set_password, account.id, new_password)
        if updated is None:
            raise InvalidCredentialsError()
        return self._issue(updated)
