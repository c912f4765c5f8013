"""
Error codes and exceptions for the token exchange chain.

Verification never raises these outward; verifiers catch them and report the
code in a VerificationResult. Acquisition errors are raised to the caller.
"""

MALFORMED = 'malformed'
SIGNATURE_INVALID = 'signature_invalid'
EXPIRED = 'expired'
ISSUER_MISMATCH = 'issuer_mismatch'
AUDIENCE_MISMATCH = 'audience_mismatch'
UNREGISTERED_TOKEN = 'unregistered_token'
EXCHANGE_FAILED = 'exchange_failed'
UNCONFIGURED = 'unconfigured'
IDENTITY_REJECTED = 'identity_rejected'


class TokenError(Exception):
    """Base class for token parsing and signature failures."""
    code = MALFORMED


class MalformedTokenError(TokenError):
    """Raised when a token is not a well-formed compact JWS."""
    code = MALFORMED


class SignatureInvalidError(TokenError):
    """Raised when a token's signature does not verify."""
    code = SIGNATURE_INVALID


class TokenExpiredError(TokenError):
    """Raised when a token's exp claim has passed."""
    code = EXPIRED


class TokenAcquisitionError(Exception):
    """Base class for failures while acquiring tokens for a caller."""
    code = EXCHANGE_FAILED

    def __init__(self, description: str):
        super().__init__(description)
        self.description = description


class ExchangeFailed(TokenAcquisitionError):
    """A token exchange hop answered with a non-success response."""
    code = EXCHANGE_FAILED


class Unconfigured(TokenAcquisitionError):
    """A required URL, credential or secret is missing."""
    code = UNCONFIGURED


class IdentityRejected(TokenAcquisitionError):
    """The caller's ID token failed verification."""
    code = IDENTITY_REJECTED


ConfigurationError = Unconfigured
