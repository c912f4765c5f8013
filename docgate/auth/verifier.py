"""
Verification of delegated-authorization grants (ID-JAG tokens).

Grants are minted and signed by the identity provider, not by this system, so
signing keys come from the provider's published JWKS. The verifier checks, in
order: structure and signature, expiry, issuer, audience. Failures are
returned as a VerificationResult and never raised; callers treat every
failure the same way ("untrusted caller").
"""
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Iterable, Optional

import jwt

from docgate.auth import errors
from docgate.auth.codec import check_expiry

logger = logging.getLogger(__name__)

GRANT_ALGORITHMS = ('RS256', 'ES256')
JWKS_CACHE_SECONDS = 300

KeyResolver = Callable[[str], Any]


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of verifying a grant or an access token."""
    valid: bool
    error: Optional[str] = None
    subject: Optional[str] = None
    email: Optional[str] = None
    audience: Optional[str] = None
    issuer: Optional[str] = None
    expiry: Optional[int] = None
    claims: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failure(cls, error: str) -> 'VerificationResult':
        return cls(valid=False, error=error)

    def to_dict(self) -> dict:
        return asdict(self)


def audience_matches(aud: Any, expected: str) -> bool:
    """Exact audience match; a single-element list holding expected also matches."""
    if isinstance(aud, str):
        return aud == expected
    if isinstance(aud, (list, tuple)):
        return len(aud) == 1 and aud[0] == expected
    return False


def jwks_key_resolver(jwks_url: str) -> KeyResolver:
    """
    Build a key resolver backed by the identity provider's JWKS endpoint.

    Keys are cached in-process and refetched when an unknown kid shows up.
    """
    client = jwt.PyJWKClient(jwks_url, cache_keys=True, lifespan=JWKS_CACHE_SECONDS)

    def resolve(token: str) -> Any:
        return client.get_signing_key_from_jwt(token).key

    return resolve


class DelegatedGrantVerifier:
    """Verifies ID-JAG grants against a configured issuer and audience."""

    def __init__(
        self,
        issuer: str,
        audience: str,
        jwks_url: Optional[str] = None,
        key_resolver: Optional[KeyResolver] = None,
        algorithms: Iterable[str] = GRANT_ALGORITHMS,
        clock: Callable[[], float] = time.time,
    ):
        if not issuer or not audience:
            raise errors.Unconfigured("Grant verifier needs an expected issuer and audience")
        if key_resolver is None:
            if not jwks_url:
                raise errors.Unconfigured("Grant verifier needs a JWKS URL or a key resolver")
            key_resolver = jwks_key_resolver(jwks_url)

        self.issuer = issuer
        self.audience = audience
        self.algorithms = tuple(algorithms)
        self._resolve_key = key_resolver
        self._clock = clock

    def verify(self, token: Optional[str]) -> VerificationResult:
        """
        Verify a raw grant.

        Args:
            token: Compact JWS grant as issued by the identity provider.

        Returns:
            VerificationResult with subject, email, audience, issuer and expiry
            on success, or valid=False and an error code.
        """
        try:
            return self._verify(token)
        except Exception:
            logger.exception("Unexpected error while verifying grant")
            return VerificationResult.failure(errors.MALFORMED)

    def _verify(self, token: Optional[str]) -> VerificationResult:
        if not isinstance(token, str) or token.count('.') != 2:
            return VerificationResult.failure(errors.MALFORMED)

        try:
            header = jwt.get_unverified_header(token)
        except jwt.DecodeError:
            return VerificationResult.failure(errors.MALFORMED)

        algorithm = header.get('alg')
        if algorithm not in self.algorithms:
            logger.warning(f"Grant rejected: unsupported algorithm {algorithm}")
            return VerificationResult.failure(errors.MALFORMED)

        try:
            key = self._resolve_key(token)
        except (jwt.PyJWKClientError, jwt.InvalidTokenError) as e:
            logger.warning(f"Grant rejected: no signing key ({e})")
            return VerificationResult.failure(errors.SIGNATURE_INVALID)

        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=[algorithm],
                options={
                    'verify_exp': False,
                    'verify_iat': False,
                    'verify_nbf': False,
                    'verify_aud': False,
                    'verify_iss': False,
                },
            )
        except jwt.InvalidSignatureError:
            return VerificationResult.failure(errors.SIGNATURE_INVALID)
        except jwt.InvalidTokenError:
            return VerificationResult.failure(errors.MALFORMED)

        try:
            check_expiry(claims, self._clock())
        except errors.TokenError as e:
            return VerificationResult.failure(e.code)

        if claims.get('iss') != self.issuer:
            logger.warning(f"Grant rejected: issuer {claims.get('iss')!r} != {self.issuer!r}")
            return VerificationResult.failure(errors.ISSUER_MISMATCH)

        if not audience_matches(claims.get('aud'), self.audience):
            logger.warning(f"Grant rejected: audience {claims.get('aud')!r} != {self.audience!r}")
            return VerificationResult.failure(errors.AUDIENCE_MISMATCH)

        subject = claims.get('sub')
        if not subject:
            return VerificationResult.failure(errors.MALFORMED)

        return VerificationResult(
            valid=True,
            subject=subject,
            email=claims.get('email'),
            audience=self.audience,
            issuer=claims['iss'],
            expiry=int(claims['exp']),
            claims=claims,
        )


class IdentityTokenVerifier(DelegatedGrantVerifier):
    """
    Verifies employee ID tokens presented to the assistant API.

    ID tokens come from the same identity provider as grants and are signed
    with the same published keys; their audience is the assistant's OAuth
    client_id.
    """

    def __init__(self, issuer: str, client_id: str, **kwargs):
        super().__init__(issuer=issuer, audience=client_id, **kwargs)
