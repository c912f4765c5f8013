"""
Client-side token orchestration for document tool calls.

Sequences the two exchanges of the delegation chain:

    ID token --(identity provider)--> ID-JAG grant --(/oauth/token)--> access token

and caches the result for one session. Two deployment topologies are
supported:

* direct-exchange: the grant is traded at the auth server for a service
  access token on every acquire() call; staleness of that token is the
  tool server's concern.
* inline-authorizer: the grant itself is the bearer credential, checked by
  the gateway authorizer on every request. A cached grant is reused until
  its exp passes; this is the only cache short-circuit.

Nothing here retries. A failed acquire() is final for that call; callers
retry through refresh().
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import requests

from docgate.auth.codec import decode_unverified
from docgate.auth.errors import ExchangeFailed, IdentityRejected, MalformedTokenError, Unconfigured
from docgate.auth.token_guard import get_token_info, token_exp_soon
from docgate.auth.verifier import DelegatedGrantVerifier, jwks_key_resolver
from docgate.config import DIRECT_EXCHANGE, INLINE_AUTHORIZER, Settings, normalize_topology
from docgate.services.idp_client import IdentityProviderClient

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10
SESSION_IDLE_SECONDS = 900


@dataclass(frozen=True)
class TokenPair:
    """Tokens held for one session after a successful acquire()."""
    grant: str
    topology: str
    subject: Optional[str] = None
    access_token: Optional[str] = None

    @property
    def bearer(self) -> str:
        """Credential to present to the tool API for this topology."""
        return self.access_token if self.topology == DIRECT_EXCHANGE else self.grant


class TokenOrchestrator:
    """Acquires, caches and refreshes the tokens for one employee session."""

    def __init__(
        self,
        idp_client: IdentityProviderClient,
        audience: str,
        topology: str = DIRECT_EXCHANGE,
        auth_server_url: Optional[str] = None,
        verifier: Optional[DelegatedGrantVerifier] = None,
        session: Optional[requests.Session] = None,
        timeout: int = REQUEST_TIMEOUT,
        clock=time.time,
    ):
        self.idp_client = idp_client
        self.audience = audience
        self.topology = normalize_topology(topology)
        self.auth_server_url = auth_server_url.rstrip('/') if auth_server_url else None
        self.verifier = verifier
        self.session = session or requests.Session()
        self.timeout = timeout
        self._clock = clock
        self._cached: Optional[TokenPair] = None
        # One exchange at a time per session
        self._lock = threading.RLock()

    @classmethod
    def from_settings(cls, settings: Settings, session: Optional[requests.Session] = None) -> 'TokenOrchestrator':
        settings.require('okta_issuer', 'id_jag_audience', 'client_id', 'client_secret')
        if settings.topology == DIRECT_EXCHANGE:
            settings.require('auth_server_url')

        session = session or requests.Session()
        idp_client = IdentityProviderClient(
            settings.okta_issuer, settings.client_id, settings.client_secret, session=session
        )
        verifier = DelegatedGrantVerifier(
            issuer=settings.okta_issuer,
            audience=settings.id_jag_audience,
            key_resolver=jwks_key_resolver(settings.jwks_url),
        )
        return cls(
            idp_client,
            audience=settings.id_jag_audience,
            topology=settings.topology,
            auth_server_url=settings.auth_server_url,
            verifier=verifier,
            session=session,
        )

    @property
    def cached(self) -> Optional[TokenPair]:
        return self._cached

    def acquire(self, identity_token: str) -> TokenPair:
        """
        Return tokens for the session, exchanging as needed.

        Args:
            identity_token: The employee's ID token.

        Returns:
            TokenPair whose bearer is the credential for tool calls.

        Raises:
            ExchangeFailed: The identity provider or the auth server refused.
            Unconfigured: The auth server URL is missing in direct-exchange mode.
        """
        if not identity_token:
            raise ExchangeFailed("An identity token is required")

        with self._lock:
            if self.topology == INLINE_AUTHORIZER and self._grant_valid(self._cached):
                logger.debug("Reusing cached ID-JAG grant")
                return self._cached

            if self.topology == DIRECT_EXCHANGE and not self.auth_server_url:
                raise Unconfigured("MCP auth server URL is not configured")

            logger.info("Step 1: exchanging ID token for ID-JAG grant")
            grant = self.idp_client.exchange_id_token(identity_token, self.audience).access_token
            subject = self._check_grant(grant)

            if self.topology == INLINE_AUTHORIZER:
                pair = TokenPair(grant=grant, topology=self.topology, subject=subject)
            else:
                logger.info("Step 3: exchanging ID-JAG grant for MCP access token")
                token_data = self._exchange_grant(grant)
                pair = TokenPair(
                    grant=grant,
                    topology=self.topology,
                    subject=token_data.get('subject') or subject,
                    access_token=token_data['access_token'],
                )

            self._cached = pair
            logger.info(f"Tokens ready for subject={pair.subject} ({self.topology})")
            return pair

    def refresh(self, identity_token: str) -> TokenPair:
        """Drop cached tokens and acquire fresh ones."""
        with self._lock:
            self.clear()
            return self.acquire(identity_token)

    def clear(self) -> None:
        with self._lock:
            self._cached = None

    def has_valid_token(self) -> bool:
        return self._grant_valid(self._cached)

    def get_token_info(self) -> dict:
        """
        Describe the cached tokens without any network call.

        Validity is the cached grant's exp compared to the current time. The
        cache is read once without the session lock, so inspection never waits
        on an exchange in flight.
        """
        pair = self._cached
        info = get_token_info(pair.grant, now=self._clock()) if pair else {}
        return {
            'hasValidToken': self._grant_valid(pair),
            'cachedGrant': pair.grant if pair else None,
            'topology': self.topology,
            'subject': pair.subject if pair else None,
            'expiresAt': info.get('exp'),
        }

    def _grant_valid(self, pair: Optional[TokenPair]) -> bool:
        if pair is None:
            return False
        return not token_exp_soon(pair.grant, skew_sec=0, now=self._clock())

    def _check_grant(self, grant: str) -> Optional[str]:
        """
        Self-verify the grant and return its subject.

        The identity provider is trusted, so a failed check is only logged.
        """
        if self.verifier is not None:
            logger.info("Step 2: verifying ID-JAG grant")
            result = self.verifier.verify(grant)
            if result.valid:
                return result.subject
            logger.warning(f"ID-JAG grant self-verification failed: {result.error}")

        try:
            return decode_unverified(grant).get('sub')
        except MalformedTokenError:
            return None

    def _exchange_grant(self, grant: str) -> dict:
        url = f"{self.auth_server_url}/oauth/token"
        try:
            response = self.session.post(
                url,
                json={'id_jag_token': grant},
                headers={'Content-Type': 'application/json'},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"MCP auth server unreachable: {e}")
            raise ExchangeFailed(f"MCP auth failed: {e}")

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if not response.ok:
            description = body.get('error_description') or response.reason
            logger.error(f"MCP auth server rejected grant: {response.status_code} {description}")
            raise ExchangeFailed(f"MCP auth failed: {description}")

        if not body.get('access_token'):
            raise ExchangeFailed("MCP auth failed: response carried no access_token")

        logger.info(f"Token type processed: {body.get('token_type_processed')}")
        return body


class OrchestratorPool:
    """
    One TokenOrchestrator per employee, keyed by the verified subject of the
    caller's ID token.

    Entries idle for longer than idle_seconds are dropped on the next lookup
    unless they still hold an unexpired grant.
    """

    def __init__(
        self,
        factory: Callable[[], TokenOrchestrator],
        identity_verifier: DelegatedGrantVerifier,
        idle_seconds: int = SESSION_IDLE_SECONDS,
        clock=time.time,
    ):
        self._factory = factory
        self._identity_verifier = identity_verifier
        self._idle_seconds = idle_seconds
        self._clock = clock
        # subject -> (orchestrator, last used)
        self._orchestrators: Dict[str, Tuple[TokenOrchestrator, float]] = {}
        self._lock = threading.Lock()

    def session_key(self, identity_token: str) -> str:
        """
        Verify the ID token and return its subject.

        Raises:
            IdentityRejected: Bad signature, wrong issuer or audience, expired.
        """
        result = self._identity_verifier.verify(identity_token)
        if not result.valid:
            logger.warning(f"ID token rejected: {result.error}")
            raise IdentityRejected(f"Identity token rejected: {result.error}")
        return result.subject

    def get(self, identity_token: str) -> TokenOrchestrator:
        key = self.session_key(identity_token)
        now = self._clock()
        with self._lock:
            self._sweep(now)
            entry = self._orchestrators.get(key)
            if entry is None:
                logger.info(f"Creating token orchestrator for session {key}")
                orchestrator = self._factory()
            else:
                orchestrator = entry[0]
            self._orchestrators[key] = (orchestrator, now)
            return orchestrator

    def find(self, identity_token: str) -> Optional[TokenOrchestrator]:
        """Return the existing orchestrator for this employee, if any."""
        key = self.session_key(identity_token)
        now = self._clock()
        with self._lock:
            self._sweep(now)
            entry = self._orchestrators.get(key)
            if entry is None:
                return None
            self._orchestrators[key] = (entry[0], now)
            return entry[0]

    def _sweep(self, now: float) -> None:
        idle = [
            key for key, (orchestrator, last_used) in self._orchestrators.items()
            if now - last_used >= self._idle_seconds and not orchestrator.has_valid_token()
        ]
        for key in idle:
            del self._orchestrators[key]
        if idle:
            logger.debug(f"Dropped {len(idle)} idle token orchestrator(s)")

    def __len__(self) -> int:
        with self._lock:
            return len(self._orchestrators)
