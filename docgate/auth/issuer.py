"""
Minting and verification of service access tokens for the document tool API.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Optional

from docgate.auth import codec, errors
from docgate.auth.registry import IssuedTokenRegistry
from docgate.auth.verifier import VerificationResult, audience_matches

logger = logging.getLogger(__name__)

ACCESS_TOKEN_AUDIENCE = 'atko-mcp-document-server'
ACCESS_TOKEN_ISSUER = 'atko-mcp-auth-server'
ACCESS_TOKEN_SCOPE = 'documents:read documents:write'
ACCESS_TOKEN_LIFETIME = 3600


@dataclass(frozen=True)
class IssuedToken:
    """A freshly minted access token and its response metadata."""
    access_token: str
    subject: str
    token_id: str
    expires_at: int
    scope: str = ACCESS_TOKEN_SCOPE
    token_type: str = 'Bearer'
    expires_in: int = ACCESS_TOKEN_LIFETIME

    def to_response(self) -> dict:
        """Body fields of a successful /oauth/token response."""
        return {
            'access_token': self.access_token,
            'token_type': self.token_type,
            'expires_in': self.expires_in,
            'scope': self.scope,
            'subject': self.subject,
        }


class AccessTokenIssuer:
    """
    Mints short-lived, single-audience bearer tokens for verified subjects.

    Every minted token id is registered before the token is handed out, so a
    verifier sharing the same registry never sees a freshly issued token as
    unknown.
    """

    def __init__(
        self,
        secret: bytes,
        registry: Optional[IssuedTokenRegistry] = None,
        audience: str = ACCESS_TOKEN_AUDIENCE,
        issuer: str = ACCESS_TOKEN_ISSUER,
        scope: str = ACCESS_TOKEN_SCOPE,
        lifetime: int = ACCESS_TOKEN_LIFETIME,
    ):
        if not secret:
            raise errors.Unconfigured("Access token issuer needs a signing secret")
        self._secret = secret
        self.registry = registry if registry is not None else IssuedTokenRegistry(default_ttl=lifetime)
        self.audience = audience
        self.issuer = issuer
        self.scope = scope
        self.lifetime = lifetime

    def issue(self, subject: str, now: Optional[float] = None) -> IssuedToken:
        """
        Mint an access token for a verified subject.

        Args:
            subject: The sub claim copied from the verified grant.
            now: Issuance time (defaults to time.time()).

        Returns:
            IssuedToken with the signed token and Bearer metadata.
        """
        if not subject:
            raise ValueError("subject is required to issue an access token")

        issued_at = int(time.time() if now is None else now)
        expires_at = issued_at + self.lifetime
        token_id = str(uuid.uuid4())

        claims = {
            'sub': subject,
            'aud': self.audience,
            'iss': self.issuer,
            'jti': token_id,
            'iat': issued_at,
            'exp': expires_at,
            'scope': self.scope,
        }
        access_token = codec.sign(claims, self._secret)
        self.registry.register(token_id, expires_at)

        logger.info(f"Issued access token jti={token_id} for subject={subject}")
        return IssuedToken(
            access_token=access_token,
            subject=subject,
            token_id=token_id,
            expires_at=expires_at,
            scope=self.scope,
            expires_in=self.lifetime,
        )

    def verify(self, token: Optional[str], now: Optional[float] = None) -> VerificationResult:
        """
        Verify an access token presented to the document tool API.

        Signature and expiry come from the codec; audience and issuer must be
        this service's; the token id must be in the registry.
        """
        try:
            claims = codec.verify(token, self._secret, now=now)
        except errors.TokenError as e:
            logger.debug(f"Access token rejected: {e.code} ({e})")
            return VerificationResult.failure(e.code)

        if claims.get('iss') != self.issuer:
            return VerificationResult.failure(errors.ISSUER_MISMATCH)
        if not audience_matches(claims.get('aud'), self.audience):
            return VerificationResult.failure(errors.AUDIENCE_MISMATCH)
        if not claims.get('sub'):
            return VerificationResult.failure(errors.MALFORMED)
        if not self.registry.is_registered(claims.get('jti')):
            logger.warning(f"Access token rejected: jti={claims.get('jti')} was not issued here")
            return VerificationResult.failure(errors.UNREGISTERED_TOKEN)

        return VerificationResult(
            valid=True,
            subject=claims['sub'],
            audience=self.audience,
            issuer=self.issuer,
            expiry=int(claims['exp']),
            claims=claims,
        )
