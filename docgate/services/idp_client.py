"""
Identity provider client for the ID token -> ID-JAG grant exchange (RFC 8693).
"""
import logging
from dataclasses import dataclass
from typing import Optional

import requests

from docgate.auth.errors import ExchangeFailed, Unconfigured

logger = logging.getLogger(__name__)

TOKEN_EXCHANGE_GRANT = 'urn:ietf:params:oauth:grant-type:token-exchange'
ID_JAG_TOKEN_TYPE = 'urn:ietf:params:oauth:token-type:id-jag'
ID_TOKEN_TYPE = 'urn:ietf:params:oauth:token-type:id_token'

REQUEST_TIMEOUT = 10


@dataclass(frozen=True)
class GrantResponse:
    """Token exchange response carrying the delegated grant."""
    access_token: str
    token_type: str = 'N_A'
    issued_token_type: str = ID_JAG_TOKEN_TYPE
    expires_in: Optional[int] = None


class IdentityProviderClient:
    """Exchanges an employee's ID token for a cross-app access grant."""

    def __init__(self, issuer: str, client_id: str, client_secret: str,
                 session: Optional[requests.Session] = None, timeout: int = REQUEST_TIMEOUT):
        if not issuer or not client_id or not client_secret:
            raise Unconfigured("Identity provider issuer, client id and client secret are required")
        self.issuer = issuer.rstrip('/')
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = f"{self.issuer}/oauth2/v1/token"
        self.session = session or requests.Session()
        self.timeout = timeout

    def exchange_id_token(self, identity_token: str, audience: str) -> GrantResponse:
        """
        Exchange an ID token for an ID-JAG grant scoped to audience.

        Args:
            identity_token: The employee's ID token from sign-in.
            audience: The resource application the grant is for.

        Returns:
            GrantResponse with the grant in access_token.

        Raises:
            ExchangeFailed: On network errors, non-2xx answers or a body
                without access_token.
        """
        form = {
            'grant_type': TOKEN_EXCHANGE_GRANT,
            'requested_token_type': ID_JAG_TOKEN_TYPE,
            'subject_token': identity_token,
            'subject_token_type': ID_TOKEN_TYPE,
            'audience': audience,
            'client_id': self.client_id,
            'client_secret': self.client_secret,
        }

        logger.info(f"Exchanging ID token for ID-JAG grant (audience={audience})")
        try:
            response = self.session.post(
                self.token_url,
                data=form,
                headers={'Accept': 'application/json'},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Identity provider token exchange failed: {e}")
            raise ExchangeFailed(f"Identity provider unreachable: {e}")

        body = _json_or_empty(response)
        if not response.ok:
            description = body.get('error_description') or body.get('error') or response.reason
            logger.error(f"Identity provider rejected token exchange: {response.status_code} {description}")
            raise ExchangeFailed(f"ID-JAG exchange failed: {description}")

        grant = body.get('access_token')
        if not grant:
            raise ExchangeFailed("ID-JAG exchange failed: response carried no access_token")

        logger.info(
            f"ID-JAG grant obtained: issued_token_type={body.get('issued_token_type')}, "
            f"expires_in={body.get('expires_in')}"
        )
        return GrantResponse(
            access_token=grant,
            token_type=body.get('token_type', 'N_A'),
            issued_token_type=body.get('issued_token_type', ID_JAG_TOKEN_TYPE),
            expires_in=body.get('expires_in'),
        )


def _json_or_empty(response: requests.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
