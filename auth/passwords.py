"""
auth/passwords.py -- Password hashing and the bounded hashing pool.

Security design decisions:
  bcrypt directly (no passlib wrapper). Bcrypt is the right choice for
  low-entropy secrets because its cost factor makes brute force expensive.
  The salt is generated per call and embedded in the digest, so verification
  needs nothing but the digest itself.

  bcrypt is CPU-bound. Under the asyncio event loop it must never run inline,
  or one login stalls every other in-flight request. run_in_hash_pool()
  dispatches to a ThreadPoolExecutor bounded by Settings.hash_workers; bcrypt
  releases the GIL while hashing, so the pool gives real parallelism.

  _DUMMY_HASH enables timing equalization in AuthService.login() so response
  time does not reveal whether an email is registered [C1].

Layer rule: no imports from api/.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import TypeVar

import bcrypt

from core.config import get_settings

logger = logging.getLogger("natours.auth.passwords")

_settings = get_settings()

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a salted bcrypt digest of the given plaintext password.

    bcrypt only looks at the first 72 bytes. The API layer caps password
    fields at 72 characters (Pydantic max_length) to stay clear of silent
    truncation for ASCII input.
    """
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext matches the digest. Never raises."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        # Malformed digest (e.g. a corrupted row) is a mismatch, not a crash.
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("natours_timing_dummy")


def verify_dummy(plain: str) -> bool:
    """Burn one bcrypt check against a fixed digest. Always returns False."""
    verify_password(plain, _DUMMY_HASH)
    return False


# ---------------------------------------------------------------------------
# Bounded hashing pool
# ---------------------------------------------------------------------------

_pool: ThreadPoolExecutor | None = None
_pool_lock = threading.Lock()


def _get_pool() -> ThreadPoolExecutor:
    global _pool
    with _pool_lock:
        if _pool is None:
            _pool = ThreadPoolExecutor(
                max_workers=_settings.hash_workers,
                thread_name_prefix="pwhash",
            )
            logger.debug("Hash pool started (%d workers)", _settings.hash_workers)
        return _pool


def shutdown_hash_pool() -> None:
    """Stop the pool. A later call to run_in_hash_pool() starts a new one."""
    global _pool
    with _pool_lock:
        pool, _pool = _pool, None
    if pool is not None:
        pool.shutdown(wait=True)


async def run_in_hash_pool(fn: Callable[..., T], *args, **kwargs) -> T:
    """Run a blocking, hash-heavy callable on the pool and await its result.

    If the awaiting request is abandoned the job still runs to completion;
    its result is simply discarded.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_get_pool(), functools.partial(fn, *args, **kwargs))


async def hash_password_async(plain: str) -> str:
    return await run_in_hash_pool(hash_password, plain)


async def verify_password_async(plain: str, hashed: str) -> bool:
    return await run_in_hash_pool(verify_password, plain, hashed)
