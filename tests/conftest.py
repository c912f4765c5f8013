"""
Shared fixtures: an RSA-signed grant factory standing in for the identity
provider, a controllable clock, and the issuer/verifier pair built on them.
"""
import time
import uuid

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from docgate.auth.codec import derive_signing_key
from docgate.auth.issuer import AccessTokenIssuer
from docgate.auth.registry import IssuedTokenRegistry
from docgate.auth.verifier import DelegatedGrantVerifier, IdentityTokenVerifier

OKTA_ISSUER = 'https://atko.okta.com'
GRANT_AUDIENCE = 'https://mcp-auth.atko.example'
CLIENT_ID = 'employee-assistant'
JWT_SECRET = 'unit-test-signing-secret-0123456789abcdef'

_UNSET = object()


class FakeClock:
    """Callable clock starting at the real current time."""

    def __init__(self, now: float = None):
        self.now = float(int(time.time())) if now is None else now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture(scope='session')
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope='session')
def other_rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_grant(rsa_key, clock):
    """
    Build an ID-JAG grant signed like the identity provider would.

    Pass a claim as None to leave it out.
    """
    def _make(sub=_UNSET, email='alice@atko.com', aud=GRANT_AUDIENCE, iss=OKTA_ISSUER,
              lifetime=300, key=None, algorithm='RS256', **extra):
        issued_at = int(clock())
        claims = {
            'sub': '00u1alice' if sub is _UNSET else sub,
            'email': email,
            'aud': aud,
            'iss': iss,
            'iat': issued_at,
            'exp': issued_at + lifetime,
            'jti': str(uuid.uuid4()),
            'client_id': 'employee-assistant',
            **extra,
        }
        claims = {name: value for name, value in claims.items() if value is not None}
        return jwt.encode(claims, key or rsa_key, algorithm=algorithm, headers={'kid': 'test-key'})
    return _make


@pytest.fixture
def grant_verifier(rsa_key, clock):
    public_key = rsa_key.public_key()
    return DelegatedGrantVerifier(
        issuer=OKTA_ISSUER,
        audience=GRANT_AUDIENCE,
        key_resolver=lambda token: public_key,
        clock=clock,
    )


@pytest.fixture
def make_identity_token(make_grant):
    """Employee ID token for the assistant client, signed like the identity provider would."""
    def _make(sub='00u1alice', **claims):
        claims.setdefault('aud', CLIENT_ID)
        claims.setdefault('lifetime', 3600)
        return make_grant(sub=sub, **claims)
    return _make


@pytest.fixture
def identity_verifier(rsa_key, clock):
    public_key = rsa_key.public_key()
    return IdentityTokenVerifier(
        issuer=OKTA_ISSUER,
        client_id=CLIENT_ID,
        key_resolver=lambda token: public_key,
        clock=clock,
    )


@pytest.fixture
def registry(clock):
    return IssuedTokenRegistry(clock=clock)


@pytest.fixture
def issuer(registry):
    return AccessTokenIssuer(derive_signing_key(JWT_SECRET), registry=registry)
