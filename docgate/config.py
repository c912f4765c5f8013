"""
Environment-driven configuration shared by every docgate service.

Values come from the process environment, optionally seeded from a .env file.
Security-relevant settings have no placeholder defaults: each service calls
Settings.require() at startup for the variables it needs and refuses to run
without them.
"""
import logging
import os
from dataclasses import dataclass, fields
from typing import Optional

from dotenv import load_dotenv

from docgate.auth.errors import ConfigurationError

logger = logging.getLogger(__name__)

DIRECT_EXCHANGE = 'direct-exchange'
INLINE_AUTHORIZER = 'inline-authorizer'

# Deployment-mode names used by older environments
TOPOLOGY_ALIASES = {
    'vercel': DIRECT_EXCHANGE,
    'direct': DIRECT_EXCHANGE,
    DIRECT_EXCHANGE: DIRECT_EXCHANGE,
    'lambda': INLINE_AUTHORIZER,
    'inline': INLINE_AUTHORIZER,
    INLINE_AUTHORIZER: INLINE_AUTHORIZER,
}

MIN_SECRET_LENGTH = 32

# Settings attribute -> environment variable
ENV_VARS = {
    'okta_issuer': 'OKTA_ISSUER',
    'id_jag_audience': 'ID_JAG_AUDIENCE',
    'jwks_url': 'OKTA_JWKS_URL',
    'jwt_secret': 'JWT_SECRET',
    'client_id': 'ID_JAG_CLIENT_ID',
    'client_secret': 'ID_JAG_CLIENT_SECRET',
    'auth_server_url': 'MCP_AUTH_SERVER_URL',
    'mcp_server_url': 'MCP_SERVER_URL',
    'topology': 'MCP_DEPLOYMENT_MODE',
    'document_database_url': 'DOCUMENT_DATABASE_URL',
    'openai_api_key': 'OPENAI_API_KEY',
    'openai_model': 'OPENAI_MODEL',
    'log_level': 'LOG_LEVEL',
    'flask_secret_key': 'SECRET_KEY',
    'port': 'PORT',
}


def normalize_topology(value: Optional[str]) -> str:
    """Map a deployment-mode string to DIRECT_EXCHANGE or INLINE_AUTHORIZER."""
    topology = TOPOLOGY_ALIASES.get((value or DIRECT_EXCHANGE).strip().lower())
    if topology is None:
        raise ConfigurationError(
            f"Unknown deployment mode {value!r}; expected {DIRECT_EXCHANGE} or {INLINE_AUTHORIZER}"
        )
    return topology


@dataclass
class Settings:
    okta_issuer: Optional[str] = None
    id_jag_audience: Optional[str] = None
    jwks_url: Optional[str] = None
    jwt_secret: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    auth_server_url: Optional[str] = None
    mcp_server_url: Optional[str] = None
    topology: str = DIRECT_EXCHANGE
    document_database_url: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_model: str = 'gpt-4'
    log_level: str = 'INFO'
    flask_secret_key: Optional[str] = None
    port: int = 5000

    def __post_init__(self):
        self.topology = normalize_topology(self.topology)
        if self.okta_issuer:
            self.okta_issuer = self.okta_issuer.rstrip('/')
        if self.okta_issuer and not self.jwks_url:
            self.jwks_url = f"{self.okta_issuer}/oauth2/v1/keys"
        for name in ('auth_server_url', 'mcp_server_url', 'document_database_url'):
            value = getattr(self, name)
            if value:
                setattr(self, name, value.rstrip('/'))

    @classmethod
    def from_env(cls, dotenv: bool = True) -> 'Settings':
        """
        Build settings from the environment.

        Args:
            dotenv: Load a .env file first (existing variables win).
        """
        if dotenv:
            load_dotenv()

        values = {}
        for field in fields(cls):
            raw = os.getenv(ENV_VARS[field.name])
            if raw is None or raw == '':
                continue
            values[field.name] = int(raw) if field.name == 'port' else raw
        return cls(**values)

    def require(self, *names: str) -> 'Settings':
        """
        Fail fast unless every named setting is present.

        Raises:
            ConfigurationError: Listing every missing environment variable.
        """
        missing = [ENV_VARS[name] for name in names if not getattr(self, name)]
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

        if 'jwt_secret' in names and len(self.jwt_secret) < MIN_SECRET_LENGTH:
            raise ConfigurationError(f"JWT_SECRET must be at least {MIN_SECRET_LENGTH} characters")
        return self

    def describe(self) -> dict:
        """Settings summary with secrets masked, for startup logging."""
        masked = {'jwt_secret', 'client_secret', 'openai_api_key', 'flask_secret_key'}
        summary = {}
        for field in fields(self):
            value = getattr(self, field.name)
            if field.name in masked:
                summary[field.name] = 'SET' if value else None
            else:
                summary[field.name] = value
        return summary
