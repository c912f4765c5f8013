"""
Flask application factories for the docgate services.

gateway:   /oauth/token, /health and the document tool API under /mcp, all
           sharing one issued-token registry.
assistant: the employee chat API under /api.
"""
import logging
from typing import Callable, Optional

from flask import Flask
from werkzeug.middleware.proxy_fix import ProxyFix

from docgate.auth.codec import derive_signing_key
from docgate.auth.issuer import AccessTokenIssuer
from docgate.auth.verifier import DelegatedGrantVerifier, IdentityTokenVerifier
from docgate.config import Settings
from docgate.services import assistant
from docgate.services.document_tools import DocumentClient
from docgate.services.orchestrator import OrchestratorPool, TokenOrchestrator
from docgate.services.tool_client import ToolClient

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'


def configure_logging(level: str = 'INFO') -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def _base_app(settings: Settings) -> Flask:
    app = Flask(__name__)
    if settings.flask_secret_key:
        app.secret_key = settings.flask_secret_key

    # Trust one layer of reverse proxy headers
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)
    return app


def create_gateway_app(
    settings: Optional[Settings] = None,
    grant_verifier: Optional[DelegatedGrantVerifier] = None,
    issuer: Optional[AccessTokenIssuer] = None,
    document_client: Optional[DocumentClient] = None,
) -> Flask:
    """
    Build the auth server and tool API in one process.

    Args:
        settings: Configuration (read from the environment when omitted).
        grant_verifier: ID-JAG verifier; built from OKTA_ISSUER/ID_JAG_AUDIENCE
            when omitted.
        issuer: Access token issuer; built from JWT_SECRET when omitted.
        document_client: Document database client; built from
            DOCUMENT_DATABASE_URL when omitted and configured.

    Raises:
        ConfigurationError: A required setting is missing.
    """
    settings = settings or Settings.from_env()

    if grant_verifier is None:
        settings.require('okta_issuer', 'id_jag_audience')
        grant_verifier = DelegatedGrantVerifier(
            issuer=settings.okta_issuer,
            audience=settings.id_jag_audience,
            jwks_url=settings.jwks_url,
        )
    if issuer is None:
        settings.require('jwt_secret')
        issuer = AccessTokenIssuer(derive_signing_key(settings.jwt_secret))
    if document_client is None and settings.document_database_url:
        document_client = DocumentClient(settings.document_database_url)
    if document_client is None:
        logger.warning("DOCUMENT_DATABASE_URL not set; document tools will answer 503")

    app = _base_app(settings)
    app.extensions['docgate'] = {
        'settings': settings,
        'grant_verifier': grant_verifier,
        'issuer': issuer,
        'document_client': document_client,
    }

    from docgate.routes.oauth_routes import oauth_bp
    from docgate.routes.tool_routes import tools_bp
    app.register_blueprint(oauth_bp)
    app.register_blueprint(tools_bp, url_prefix='/mcp')

    logger.info(f"Gateway app ready: audience={grant_verifier.audience}, issuer={grant_verifier.issuer}")
    return app


def create_assistant_app(
    settings: Optional[Settings] = None,
    orchestrator_factory: Optional[Callable[[], TokenOrchestrator]] = None,
    tool_client: Optional[ToolClient] = None,
    identity_verifier: Optional[DelegatedGrantVerifier] = None,
) -> Flask:
    """
    Build the employee assistant API.

    Args:
        settings: Configuration (read from the environment when omitted).
        orchestrator_factory: Builds one TokenOrchestrator per employee;
            defaults to TokenOrchestrator.from_settings.
        tool_client: Client for the tool API at MCP_SERVER_URL.
        identity_verifier: Checks the employee ID token on every request;
            built from OKTA_ISSUER/ID_JAG_CLIENT_ID when omitted.

    Raises:
        ConfigurationError: A required setting is missing.
    """
    settings = settings or Settings.from_env()
    settings.require('openai_api_key')

    if orchestrator_factory is None:
        # Fail at startup rather than on the first chat request
        TokenOrchestrator.from_settings(settings)

        def orchestrator_factory():
            return TokenOrchestrator.from_settings(settings)
    if tool_client is None:
        settings.require('mcp_server_url')
        tool_client = ToolClient(settings.mcp_server_url)
    if identity_verifier is None:
        settings.require('okta_issuer', 'client_id')
        identity_verifier = IdentityTokenVerifier(
            issuer=settings.okta_issuer,
            client_id=settings.client_id,
            jwks_url=settings.jwks_url,
        )

    assistant.configure_client(settings.openai_api_key)

    app = _base_app(settings)
    app.extensions['docgate'] = {
        'settings': settings,
        'orchestrators': OrchestratorPool(orchestrator_factory, identity_verifier),
        'tool_client': tool_client,
    }

    from docgate.routes.chat_routes import chat_bp
    app.register_blueprint(chat_bp)

    logger.info(f"Assistant app ready: topology={settings.topology}, model={settings.openai_model}")
    return app
