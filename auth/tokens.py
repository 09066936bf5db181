"""
auth/tokens.py -- Session token codec (JWT) and the auth cookie helper.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       only sub (account id), iat and exp. Role and email are deliberately
       left out: the guard re-reads the account on every request, so a role
       change takes effect immediately instead of at token expiry.

  iat is written as a float with sub-second precision. The request guard
  compares it against Account.password_changed_at; whole seconds would let a
  token issued in the same second as a password change survive the change.

  Tokens are never persisted. There is no revocation list: a token stays
  valid until exp unless the account's password changes after iat.

  verify_session_token() raises only TokenInvalidError / TokenExpiredError.
  No python-jose exception escapes this module.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import TokenExpiredError, TokenInvalidError
from auth.models import SessionClaims
from core.config import get_settings

logger = logging.getLogger("natours.auth.tokens")

_settings = get_settings()

_ALGORITHM = "HS256"

_DECODE_OPTIONS = {
    "require_sub": True,
    "require_iat": True,
    "require_exp": True,
}

# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def issue_session_token(subject_id: str, issued_at: datetime | None = None, expire_seconds: int = 0) -> str:
    """Encode a signed session token for the given account id.

    Args:
        subject_id:     Account.id stored as the JWT subject claim.
        issued_at:      Issue time. Defaults to now; tests pass a past time
                        to produce already-expired tokens.
        expire_seconds: Token lifetime. If 0 (default), uses
                        Settings.token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    iat = issued_at or datetime.now(timezone.utc)
    exp = iat + timedelta(seconds=duration)
    payload = {
        "sub": subject_id,
        "iat": iat.timestamp(),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def verify_session_token(token: str) -> SessionClaims:
    """Check signature and expiry and return the token's claims.

    Raises:
        TokenExpiredError: signature is good but exp is in the past.
        TokenInvalidError: bad signature, malformed token, missing claims.
    """
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM], options=_DECODE_OPTIONS)
    except ExpiredSignatureError as exc:
        raise TokenExpiredError() from exc
    except (JWTError, TypeError, ValueError) as exc:
        raise TokenInvalidError() from exc

    subject_id = payload.get("sub")
    if not isinstance(subject_id, str) or not subject_id:
        raise TokenInvalidError()
    try:
        issued_at = datetime.fromtimestamp(float(payload["iat"]), tz=timezone.utc)
        expires_at = datetime.fromtimestamp(float(payload["exp"]), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError) as exc:
        raise TokenInvalidError() from exc
    return SessionClaims(subject_id=subject_id, issued_at=issued_at, expires_at=expires_at)


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation.
    secure: only sent over HTTPS when SECURE_COOKIES=true (production).
    max_age: matches the token expiry so both expire together.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    response.set_cookie(
        _settings.auth_cookie_name,
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=duration,
    )


def clear_auth_cookie(response) -> None:
    response.delete_cookie(_settings.auth_cookie_name)
