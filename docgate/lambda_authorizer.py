"""
API Gateway token authorizer for the inline-authorizer topology.

The gateway hands the caller's Authorization header and the target method ARN
to handler(); the ID-JAG grant in the header is verified in place, without a
round-trip to the auth server, and an allow/deny policy is returned. The
gateway attaches the policy's context map to the forwarded request.

With INLINE_AUTHORIZER_MINT=true an allowed decision also carries a service
access token in context['serviceAccessToken']. It is meant for an external
next hop behind the gateway that checks it with codec.verify() and the shared
JWT_SECRET (signature and expiry). The token is registered in
this process's registry alone, so registry-gated verifiers such as the
gateway tool API will not accept it, and lambda_handler does not read it.
"""
import logging
import os
from typing import Any, Optional

from docgate.auth.codec import derive_signing_key
from docgate.auth.issuer import AccessTokenIssuer
from docgate.auth.verifier import DelegatedGrantVerifier
from docgate.config import Settings

logger = logging.getLogger(__name__)

ANONYMOUS = 'anonymous'
BEARER_PREFIX = 'Bearer '


def generate_policy(principal_id: str, effect: str, resource: str, context: dict) -> dict:
    """Build an IAM policy document for API Gateway."""
    return {
        'principalId': principal_id,
        'policyDocument': {
            'Version': '2012-10-17',
            'Statement': [
                {
                    'Action': 'execute-api:Invoke',
                    'Effect': effect,
                    'Resource': resource,
                }
            ],
        },
        'context': context,
    }


class InlineAuthorizer:
    """
    Verifies a bearer grant and returns an allow/deny decision.

    With an issuer, an allowed decision also carries a freshly minted service
    access token for an external next hop in context['serviceAccessToken'].
    """

    def __init__(self, verifier: DelegatedGrantVerifier, issuer: Optional[AccessTokenIssuer] = None):
        self.verifier = verifier
        self.issuer = issuer

    def authorize(self, authorization_token: Optional[str], method_arn: str) -> dict:
        try:
            if not authorization_token or not authorization_token.startswith(BEARER_PREFIX):
                logger.info("Missing or invalid authorization header")
                return self.deny(method_arn)

            grant = authorization_token[len(BEARER_PREFIX):].strip()
            result = self.verifier.verify(grant)
            if not result.valid or not result.subject:
                logger.warning(f"ID-JAG grant verification failed: {result.error}")
                return self.deny(method_arn)

            logger.info(f"ID-JAG grant verified: sub={result.subject}, email={result.email}, aud={result.audience}")
            context = {'userId': result.subject, 'verified': 'true'}
            if self.issuer is not None:
                context['serviceAccessToken'] = self.issuer.issue(result.subject).access_token
            return generate_policy(result.subject, 'Allow', method_arn, context)

        except Exception:
            logger.exception("Authorizer error")
            return self.deny(method_arn)

    @staticmethod
    def deny(method_arn: str) -> dict:
        return generate_policy(ANONYMOUS, 'Deny', method_arn, {'userId': ANONYMOUS, 'verified': 'false'})

    @classmethod
    def from_settings(cls, settings: Settings, mint: bool = False) -> 'InlineAuthorizer':
        settings.require('okta_issuer', 'id_jag_audience')
        verifier = DelegatedGrantVerifier(
            issuer=settings.okta_issuer,
            audience=settings.id_jag_audience,
            jwks_url=settings.jwks_url,
        )
        issuer = None
        if mint:
            settings.require('jwt_secret')
            issuer = AccessTokenIssuer(derive_signing_key(settings.jwt_secret))
        return cls(verifier, issuer)


_authorizer: Optional[InlineAuthorizer] = None


def get_authorizer() -> InlineAuthorizer:
    """Build the process-wide authorizer on first use."""
    global _authorizer
    if _authorizer is None:
        mint = os.getenv('INLINE_AUTHORIZER_MINT', 'false').lower() == 'true'
        _authorizer = InlineAuthorizer.from_settings(Settings.from_env(dotenv=False), mint=mint)
    return _authorizer


def handler(event: dict, context: Any) -> dict:
    """
    Lambda entry point for a TOKEN authorizer.

    Expected event keys: authorizationToken ("Bearer <grant>"), methodArn.
    """
    return get_authorizer().authorize(event.get('authorizationToken'), event.get('methodArn', '*'))
