"""
auth/dependencies.py -- Request guard and FastAPI Depends() helpers.

Token sources are checked in priority order:
  1. Authorization: Bearer <token> header -- API clients.
  2. Session cookie (Settings.auth_cookie_name, default "jwt") -- browsers.

protect() is the hard gate: it returns the Account or raises
UnauthenticatedError. Every internal failure (missing token, tampered token,
expired token, account deleted or deactivated, password changed after the
token was issued) collapses into that one error; the reason is logged but
never sent to the client.

is_logged_in() is the soft variant used to adjust presentation without
blocking: any failure returns None, including a store error (which is
logged with its traceback).

restrict_to() is pure role checking, no I/O.

get_current_account() and require_roles() adapt these for FastAPI
dependency injection:
    @router.get("/protected")
    async def route(account: Account = Depends(get_current_account)): ...

    @router.delete("/tours/{id}")
    async def route(account: Account = Depends(require_roles("admin", "lead-guide"))): ...

Layer rule: no imports from api/. May import Request from fastapi because
this module is part of the dependency injection system.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import Depends, Request
from sqlalchemy.exc import SQLAlchemyError

from auth.errors import AuthError, ForbiddenError, TokenExpiredError, TokenInvalidError, UnauthenticatedError
from auth.models import Account
from auth.store import AccountStore
from auth.tokens import verify_session_token
from core.config import get_settings

logger = logging.getLogger("natours.auth.guard")


def extract_token(request: Request) -> str | None:
    """Return the bearer token from the header, falling back to the cookie."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return request.cookies.get(get_settings().auth_cookie_name) or None


def protect(request: Request) -> Account:
    """Resolve the request to an active Account or raise UnauthenticatedError."""
    token = extract_token(request)
    if not token:
        raise UnauthenticatedError("no_token")

    try:
        claims = verify_session_token(token)
    except TokenExpiredError as exc:
        raise UnauthenticatedError("token_expired") from exc
    except TokenInvalidError as exc:
        raise UnauthenticatedError("token_invalid") from exc

    store: AccountStore = request.app.state.account_store
    account = store.find_by_id(claims.subject_id)
    if account is None or not account.is_active:
        logger.info("Token for missing or inactive account rejected (sub=%s)", claims.subject_id)
        raise UnauthenticatedError("account_gone")

    # The only early revocation mechanism: a password change after issuance.
    if account.password_changed_at is not None and account.password_changed_at > claims.issued_at:
        logger.info("Token predates password change (account=%s)", account.id)
        raise UnauthenticatedError("password_changed")

    request.state.account = account
    return account


def is_logged_in(request: Request) -> Account | None:
    """Like protect(), but returns None instead of raising."""
    try:
        return protect(request)
    except AuthError:
        return None
    except SQLAlchemyError:
        logger.exception("Account lookup failed while checking optional login")
        return None


def restrict_to(account: Account, *roles: str) -> None:
    """Raise ForbiddenError unless account.role is one of roles."""
    if account.role not in roles:
        raise ForbiddenError()


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------


def get_current_account(request: Request) -> Account:
    """Require authentication. The AuthError handler turns failures into 401."""
    return protect(request)


def require_roles(*roles: str) -> Callable[..., Account]:
    """Build a dependency that requires authentication and one of roles."""

    def dependency(account: Account = Depends(get_current_account)) -> Account:
        restrict_to(account, *roles)
        return account

    return dependency
