"""
Token issuing and verification package.
"""
from docgate.auth.errors import (
    ExchangeFailed,
    IdentityRejected,
    TokenAcquisitionError,
    TokenExpiredError,
    Unconfigured
)
from docgate.auth.issuer import AccessTokenIssuer, IssuedToken
from docgate.auth.registry import IssuedTokenRegistry
from docgate.auth.token_guard import (
    ensure_token_or_401,
    token_exp_soon,
    get_token_info
)
from docgate.auth.verifier import DelegatedGrantVerifier, IdentityTokenVerifier, VerificationResult

__all__ = [
    'AccessTokenIssuer',
    'DelegatedGrantVerifier',
    'ExchangeFailed',
    'IdentityRejected',
    'IdentityTokenVerifier',
    'IssuedToken',
    'IssuedTokenRegistry',
    'TokenAcquisitionError',
    'TokenExpiredError',
    'Unconfigured',
    'VerificationResult',
    'ensure_token_or_401',
    'get_token_info',
    'token_exp_soon'
]
