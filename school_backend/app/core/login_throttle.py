"""
Login lockout backed by Redis.

Failed attempts are counted per ``email:ip`` key. Once the count reaches
``login_max_attempts`` the key is locked for ``login_lockout_seconds``.
Both keys carry a TTL so state expires on its own and is shared between
all API workers.
"""

import logging
from school_backend.app.core.config import settings
from school_backend.app.core.exceptions import TooManyAttemptsError
from school_backend.app.core.redis_client import get_redis

logger = logging.getLogger(__name__)

ATTEMPTS_PREFIX = "login:attempts:"
LOCK_PREFIX = "login:lock:"


def throttle_key(email: str, ip_address: str) -> str:
    return f"{email.strip().lower()}:{ip_address or 'unknown'}"


async def ensure_not_locked(key: str) -> None:
    """Raise TooManyAttemptsError while the key is locked out."""
    client = await get_redis()
    ttl = await client.ttl(f"{LOCK_PREFIX}{key}")
    if ttl is not None and ttl > 0:
        raise TooManyAttemptsError(retry_after=ttl)


async def register_failure(key: str) -> int:
    """Count a failed attempt; lock the key when the limit is reached."""
    client = await get_redis()
    attempts_key = f"{ATTEMPTS_PREFIX}{key}"
    
    attempts = await client.incr(attempts_key)
    if attempts == 1:
        await client.expire(attempts_key, settings.login_lockout_seconds)
    
    if attempts >= settings.login_max_attempts:
        await client.setex(f"{LOCK_PREFIX}{key}", settings.login_lockout_seconds, str(attempts))
        await client.delete(attempts_key)
        logger.warning("Login locked for %s after %s failed attempts", key, attempts)
    
    return attempts


async def clear_failures(key: str) -> None:
    client = await get_redis()
    await client.delete(f"{ATTEMPTS_PREFIX}{key}")
