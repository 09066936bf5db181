"""
auth/reset_tokens.py -- One-time password-reset tokens.

secrets.token_hex(32) gives 256 bits of entropy. We store
HMAC-SHA256(SECRET_KEY, raw_token) so lookup is O(1) by hash and a leaked
database alone is not enough to forge a reset link. bcrypt's intentional
slowness is unnecessary here: the token is high-entropy and single-use, so
there is nothing to brute-force.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone

from auth.models import ResetToken
from core.config import get_settings

_settings = get_settings()


def hash_reset_token(raw_token: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, raw_token) as a hex string."""
    return hmac.new(
        _settings.secret_key.encode(),
        raw_token.encode(),
        hashlib.sha256,
    ).hexdigest()


def generate_reset_token(expire_seconds: int = 0) -> ResetToken:
    """Generate a raw token, its storable hash, and its absolute expiry.

    Args:
        expire_seconds: Validity window. If 0 (default), uses
                        Settings.reset_token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.reset_token_expire_seconds
    raw = secrets.token_hex(32)
    return ResetToken(
        raw=raw,
        hashed=hash_reset_token(raw),
        expires_at=datetime.now(timezone.utc) + timedelta(seconds=duration),
    )


def reset_token_matches(raw_token: str, stored_hash: str | None) -> bool:
    """Constant-time comparison of a presented raw token against a stored hash."""
    if not raw_token or not stored_hash:
        return False
    return hmac.compare_digest(hash_reset_token(raw_token), stored_hash)
