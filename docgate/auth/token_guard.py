"""
Token guard utility for client-side expiration checking.
Prevents unnecessary tool calls and exchanges with expired tokens.

Nothing here verifies signatures: these helpers read the exp claim of tokens
the client already holds, without any network call.
"""
import logging
import time
from typing import Optional

from docgate.auth.codec import decode_unverified
from docgate.auth.errors import MalformedTokenError, TokenExpiredError

logger = logging.getLogger(__name__)


def token_exp_soon(token: str, skew_sec: int = 0, now: Optional[float] = None) -> bool:
    """
    Check if token is expired or will expire within skew_sec seconds.

    Args:
        token: JWT token string
        skew_sec: Number of seconds before expiration to consider "soon"
        now: Current UNIX time (defaults to time.time())

    Returns:
        True if token expires within skew_sec seconds (or is unreadable),
        False otherwise
    """
    try:
        payload = decode_unverified(token)
    except MalformedTokenError:
        return True

    exp = payload.get('exp')
    if not isinstance(exp, (int, float)):
        logger.warning("JWT token missing numeric 'exp' claim")
        return True

    current_time = time.time() if now is None else now
    time_until_exp = exp - current_time

    # Strict: a token whose exp equals now is already expired
    is_expiring_soon = time_until_exp <= skew_sec
    if is_expiring_soon:
        logger.debug(f"Token expires in {time_until_exp:.1f}s (skew: {skew_sec}s)")

    return is_expiring_soon


def ensure_token_or_401(token: Optional[str], skew_sec: int = 0) -> str:
    """
    Ensure token is present and not expired.

    Returns:
        The token, unchanged

    Raises:
        TokenExpiredError: If token is missing, expired, or expiring within skew_sec
    """
    if not token:
        logger.warning("No access token available")
        raise TokenExpiredError("SESSION_EXPIRED")

    if token_exp_soon(token, skew_sec):
        logger.warning("Access token is expired or expiring soon")
        raise TokenExpiredError("SESSION_EXPIRED")

    return token


def get_token_info(token: str, now: Optional[float] = None) -> dict:
    """
    Get token information including expiration time and remaining lifetime.

    Returns:
        Dictionary with token info:
        - sub: Subject (if present)
        - exp: Expiration timestamp
        - iat: Issued at timestamp (if present)
        - remaining_seconds: Seconds until expiration
        - is_expired: Boolean indicating if token is expired
    """
    current_time = time.time() if now is None else now
    try:
        payload = decode_unverified(token)
    except MalformedTokenError as e:
        return {
            'sub': None,
            'exp': None,
            'iat': None,
            'remaining_seconds': None,
            'is_expired': True,
            'error': str(e),
        }

    exp = payload.get('exp')
    has_exp = isinstance(exp, (int, float))
    return {
        'sub': payload.get('sub'),
        'exp': exp,
        'iat': payload.get('iat'),
        'remaining_seconds': exp - current_time if has_exp else None,
        'is_expired': current_time >= exp if has_exp else True,
    }
