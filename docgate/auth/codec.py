"""
Compact signed token codec for tokens minted by this service.

Tokens are HS256 JWS structures (header.payload.signature) keyed by a single
shared secret. Expiry is checked here against an injectable clock so every
verifier in the chain uses the same strict rule: a token is expired once
now >= exp.
"""
import base64
import json
import logging
import time
from typing import Optional

import jwt

from docgate.auth.errors import (
    MalformedTokenError,
    SignatureInvalidError,
    TokenExpiredError,
)

logger = logging.getLogger(__name__)

ALGORITHM = 'HS256'


def derive_signing_key(passphrase: str) -> bytes:
    """
    Turn the configured passphrase into the HMAC key.

    Every minting and verifying call site goes through this function so the
    auth endpoint, the inline authorizer and the tool server agree on the key.
    """
    if not passphrase:
        raise ValueError("Signing passphrase must not be empty")
    return passphrase.encode('utf-8')


def sign(claims: dict, secret: bytes) -> str:
    """
    Sign a claim set.

    Args:
        claims: JSON-serialisable claims.
        secret: Key from derive_signing_key().

    Returns:
        Compact JWS string.
    """
    return jwt.encode(claims, secret, algorithm=ALGORITHM, headers={'typ': 'JWT'})


def verify(token: str, secret: bytes, now: Optional[float] = None) -> dict:
    """
    Verify signature and expiry of a token minted by sign().

    Args:
        token: Compact JWS string.
        secret: Key from derive_signing_key().
        now: Current UNIX time (defaults to time.time()).

    Returns:
        Decoded claims.

    Raises:
        MalformedTokenError: Wrong segment count, undecodable parts or wrong alg.
        SignatureInvalidError: Signature mismatch.
        TokenExpiredError: exp missing or not in the future.
    """
    if not isinstance(token, str) or token.count('.') != 2:
        raise MalformedTokenError("Token must have three segments")

    try:
        header = jwt.get_unverified_header(token)
    except jwt.DecodeError as e:
        raise MalformedTokenError(f"Undecodable token header: {e}")
    if header.get('alg') != ALGORITHM:
        raise MalformedTokenError(f"Unexpected algorithm: {header.get('alg')}")

    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            options={
                'verify_exp': False,
                'verify_iat': False,
                'verify_aud': False,
                'verify_iss': False,
            },
        )
    except jwt.InvalidSignatureError as e:
        raise SignatureInvalidError(str(e))
    except jwt.DecodeError as e:
        raise MalformedTokenError(str(e))
    except jwt.InvalidTokenError as e:
        raise MalformedTokenError(str(e))

    check_expiry(claims, now)
    return claims


def check_expiry(claims: dict, now: Optional[float] = None) -> None:
    """Raise TokenExpiredError unless claims['exp'] is strictly in the future."""
    exp = claims.get('exp')
    if exp is None:
        raise TokenExpiredError("Token has no exp claim")
    try:
        exp = float(exp)
    except (TypeError, ValueError):
        raise MalformedTokenError("exp claim is not numeric")

    current_time = time.time() if now is None else now
    if current_time >= exp:
        raise TokenExpiredError(f"Token expired {current_time - exp:.0f}s ago")


def decode_unverified(token: str) -> dict:
    """
    Decode a token payload without signature verification.

    Only for logging and local expiry checks; never for trust decisions.

    Raises:
        MalformedTokenError: If the token format is invalid.
    """
    parts = token.split('.') if isinstance(token, str) else []
    if len(parts) != 3:
        raise MalformedTokenError("Invalid JWT format: expected 3 parts separated by dots")

    payload_b64 = parts[1]
    payload_b64 += '=' * (-len(payload_b64) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(payload_b64))
    except (ValueError, UnicodeDecodeError) as e:
        logger.debug(f"Failed to decode JWT payload: {e}")
        raise MalformedTokenError(f"Invalid JWT token: {e}")

    if not isinstance(payload, dict):
        raise MalformedTokenError("JWT payload is not an object")
    return payload
