"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores and the
service do the work; these only own the domain shape.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

# Closed set of account roles, lowest privilege first.
ROLES: tuple[str, ...] = ("user", "guide", "lead-guide", "admin")
DEFAULT_ROLE = "user"


@dataclass
class Account:
    """A registered identity.

    password_hash is a bcrypt digest; the plaintext is never kept anywhere.

    reset_token_hash / reset_token_expires_at are set together when a reset
    is requested and cleared together by any password mutation or by a failed
    email delivery. password_changed_at stays None until the first change and
    is what the request guard compares session tokens against.
    """

    id: str
    email: str
    password_hash: str
    role: str = DEFAULT_ROLE
    name: str | None = None
    password_changed_at: datetime | None = None
    reset_token_hash: str | None = None
    reset_token_expires_at: datetime | None = None
    is_active: bool = True
    created_at: datetime | None = None

    def public_fields(self) -> dict:
        """Fields safe to return to clients. No hashes, no reset state."""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
        }


@dataclass(frozen=True)
class SessionClaims:
    """Verified contents of a session token."""

    subject_id: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class ResetToken:
    """A freshly generated password-reset token.

    raw goes to the user by email and is never stored or logged. hashed is
    what the account record keeps.
    """

    raw: str
    hashed: str
    expires_at: datetime

    def __repr__(self) -> str:
        return f"ResetToken(hashed={self.hashed!r}, expires_at={self.expires_at!r})"
