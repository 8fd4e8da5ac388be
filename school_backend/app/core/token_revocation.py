"""
Token Revocation System using Redis.

Logged-out tokens are blacklisted until they would have expired anyway.
"""

import logging
from redis.exceptions import RedisError
from school_backend.app.core.redis_client import get_redis
from school_backend.app.core.config import settings

logger = logging.getLogger(__name__)

# Redis key prefix for blacklisted tokens
TOKEN_BLACKLIST_PREFIX = "blacklist:token:"
USER_TOKENS_PREFIX = "user:tokens:"


async def revoke_token(token: str, user_id: int) -> bool:
    """
    Revoke a specific JWT token by adding it to the blacklist.
    
    Returns:
        True if successfully revoked, False otherwise
    """
    client = await get_redis()
    try:
        await client.setex(
            f"{TOKEN_BLACKLIST_PREFIX}{token}",
            settings.access_token_expire_minutes * 60,
            str(user_id)
        )
        return True
    except RedisError as e:
        logger.error("Error revoking token for user %s: %s", user_id, e)
        return False


async def is_token_revoked(token: str) -> bool:
    client = await get_redis()
    try:
        return await client.exists(f"{TOKEN_BLACKLIST_PREFIX}{token}") > 0
    except RedisError as e:
        # Redis outage should not lock every user out
        logger.error("Error checking token revocation: %s", e)
        return False


async def revoke_all_user_tokens(user_id: int) -> bool:
    """
    Revoke every active token of a user.
    
    Called when an account is deleted so that open sessions end immediately.
    """
    client = await get_redis()
    try:
        await client.setex(
            f"{USER_TOKENS_PREFIX}{user_id}:revoked",
            settings.access_token_expire_minutes * 60,
            "1"
        )
        return True
    except RedisError as e:
        logger.error("Error revoking all tokens for user %s: %s", user_id, e)
        return False


async def are_user_tokens_revoked(user_id: int) -> bool:
    client = await get_redis()
    try:
        return await client.exists(f"{USER_TOKENS_PREFIX}{user_id}:revoked") > 0
    except RedisError as e:
        logger.error("Error checking user token revocation: %s", e)
        return False
