"""
Token Revocation System using Redis.

Implements token blacklisting to immediately invalidate JWT tokens
when users log out or are suspended.
"""

import logging
from redis.exceptions import RedisError
import vems.app.core.redis_client as redis_store
from vems.app.core.config import settings

logger = logging.getLogger(__name__)

TOKEN_BLACKLIST_PREFIX = "blacklist:token:"
USER_TOKENS_PREFIX = "user:tokens:"


def _ttl_seconds() -> int:
    # Tokens expire on their own after this window
    return settings.access_token_expire_minutes * 60


async def revoke_token(token: str, user_id: int) -> bool:
    """
    Revoke a specific JWT token by adding it to the blacklist.

    Args:
        token: The JWT token string to revoke
        user_id: User ID who owns the token

    Returns:
        True if successfully revoked, False otherwise
    """
    try:
        await redis_store.redis_client.setex(f"{TOKEN_BLACKLIST_PREFIX}{token}", _ttl_seconds(), str(user_id))
        return True
    except (RedisError, OSError) as e:
        logger.error("Error revoking token for user %s: %s", user_id, e)
        return False


async def is_token_revoked(token: str) -> bool:
    """
    Check if a token has been revoked.

    Redis being unreachable is treated as "not revoked"; the database
    status check in ``get_current_user`` still applies.
    """
    try:
        exists = await redis_store.redis_client.exists(f"{TOKEN_BLACKLIST_PREFIX}{token}")
        return exists > 0
    except (RedisError, OSError) as e:
        logger.error("Error checking token revocation: %s", e)
        return False


async def revoke_all_user_tokens(user_id: int) -> bool:
    """
    Revoke all active tokens for a specific user.

    Called when a user is deactivated or suspended to terminate every session.
    """
    try:
        await redis_store.redis_client.setex(f"{USER_TOKENS_PREFIX}{user_id}:revoked", _ttl_seconds(), "1")
        return True
    except (RedisError, OSError) as e:
        logger.error("Error revoking all tokens for user %s: %s", user_id, e)
        return False


async def are_user_tokens_revoked(user_id: int) -> bool:
    """Check if all tokens for a user have been revoked."""
    try:
        exists = await redis_store.redis_client.exists(f"{USER_TOKENS_PREFIX}{user_id}:revoked")
        return exists > 0
    except (RedisError, OSError) as e:
        logger.error("Error checking user token revocation: %s", e)
        return False


async def clear_user_token_revocation(user_id: int) -> bool:
    """
    Clear the global token revocation flag for a user.

    Called when a suspended user is reactivated.
    """
    try:
        await redis_store.redis_client.delete(f"{USER_TOKENS_PREFIX}{user_id}:revoked")
        return True
    except (RedisError, OSError) as e:
        logger.error("Error clearing token revocation for user %s: %s", user_id, e)
        return False
