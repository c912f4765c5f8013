"""
Route tests for the gateway app: /oauth/token, /health and the /mcp tool API.
"""
from unittest.mock import MagicMock, patch

import pytest

from docgate.auth.codec import derive_signing_key
from docgate.auth.errors import ConfigurationError
from docgate.auth.issuer import AccessTokenIssuer
from docgate.auth.registry import IssuedTokenRegistry
from docgate.config import Settings
from docgate.server import create_gateway_app
from docgate.services.document_tools import DocumentServiceError

from conftest import GRANT_AUDIENCE, JWT_SECRET

POLICY = {
    'id': 'doc-1',
    'title': 'Remote Work Policy',
    'content': 'Employees may work remotely up to three days a week. ' * 20,
    'category': 'HR',
    'author': 'People Team',
    'tags': ['remote', 'policy'],
    'createdDate': '2024-01-10T00:00:00Z',
    'updatedDate': '2024-03-01T00:00:00Z',
}


@pytest.fixture
def document_client():
    return MagicMock()


@pytest.fixture
def app(grant_verifier, issuer, document_client):
    app = create_gateway_app(Settings(), grant_verifier=grant_verifier, issuer=issuer, document_client=document_client)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def _bearer(token):
    return {'Authorization': f"Bearer {token}"}


class TestOAuthToken:
    """POST /oauth/token"""

    def test_missing_grant_is_400(self, client):
        response = client.post('/oauth/token', json={})

        assert response.status_code == 400
        assert response.get_json()['error'] == 'invalid_request'

    def test_invalid_grant_is_401(self, client, make_grant):
        response = client.post('/oauth/token', json={'id_jag_token': make_grant(aud='https://other.example')})

        assert response.status_code == 401
        assert response.get_json() == {
            'error': 'invalid_token',
            'error_description': 'Invalid or expired ID-JAG token',
        }

    def test_expired_grant_is_401(self, client, make_grant, clock):
        grant = make_grant(lifetime=10)
        clock.advance(10)

        assert client.post('/oauth/token', json={'id_jag_token': grant}).status_code == 401

    def test_valid_grant_is_exchanged(self, client, make_grant, issuer):
        response = client.post('/oauth/token', json={'id_jag_token': make_grant()})

        assert response.status_code == 200
        body = response.get_json()
        assert body['token_type'] == 'Bearer'
        assert body['expires_in'] == 3600
        assert body['scope'] == 'documents:read documents:write'
        assert body['subject'] == '00u1alice'
        assert body['token_type_processed'] == 'ID-JAG'
        assert issuer.verify(body['access_token']).subject == '00u1alice'

    def test_form_encoded_grant(self, client, make_grant):
        response = client.post('/oauth/token', data={'id_jag_token': make_grant()})
        assert response.status_code == 200

    def test_issuer_failure_is_500(self, client, make_grant, issuer):
        with patch.object(issuer, 'issue', side_effect=RuntimeError('signing backend down')):
            response = client.post('/oauth/token', json={'id_jag_token': make_grant()})

        assert response.status_code == 500
        assert response.get_json()['error'] == 'server_error'


class TestHealth:
    """GET /health"""

    def test_health(self, client):
        body = client.get('/health').get_json()

        assert body['status'] == 'ok'
        assert body['service'] == 'atko-mcp-auth-server'
        assert body['supported_tokens'] == ['ID-JAG']
        assert body['audience'] == GRANT_AUDIENCE
        assert 'timestamp' in body


class TestToolDiscovery:
    """Unauthenticated /mcp endpoints."""

    def test_info(self, client):
        body = client.get('/mcp/info').get_json()
        assert body['name'] == 'atko-document-server'
        assert body['capabilities']['tools'] == ['search_documents', 'create_document']

    def test_tools(self, client):
        tools = client.get('/mcp/tools').get_json()['tools']
        assert [tool['name'] for tool in tools] == ['search_documents', 'create_document']

    def test_health(self, client):
        assert client.get('/mcp/health').get_json()['documentDatabase'] == 'configured'


class TestToolCall:
    """POST /mcp/tools/call requires an access token issued by this gateway."""

    def test_missing_authorization(self, client):
        response = client.post('/mcp/tools/call', json={'tool': 'search_documents', 'arguments': {'query': 'pto'}})

        assert response.status_code == 401
        assert response.get_json()['error'] == 'access_denied'

    def test_grant_is_not_accepted(self, client, make_grant):
        response = client.post('/mcp/tools/call', json={'tool': 'search_documents'}, headers=_bearer(make_grant()))
        assert response.status_code == 401

    def test_token_from_another_issuer(self, client, clock):
        stranger = AccessTokenIssuer(derive_signing_key(JWT_SECRET), registry=IssuedTokenRegistry(clock=clock))
        token = stranger.issue('00u1alice').access_token

        response = client.post('/mcp/tools/call', json={'tool': 'search_documents'}, headers=_bearer(token))
        assert response.status_code == 401

    def test_search(self, client, issuer, document_client):
        document_client.search_documents.return_value = [POLICY]
        token = issuer.issue('00u1alice').access_token

        response = client.post(
            '/mcp/tools/call',
            json={'tool': 'search_documents', 'arguments': {'query': 'remote work', 'limit': 500}},
            headers=_bearer(token),
        )

        assert response.status_code == 200
        result = response.get_json()['result']
        assert result['count'] == 1
        assert result['documents'][0]['content'].endswith('...')
        assert len(result['documents'][0]['content']) == 503
        document_client.search_documents.assert_called_once_with(
            q='remote work', category=None, author=None, tags=None, limit=50
        )

    def test_create(self, client, issuer, document_client):
        document_client.create_document.return_value = dict(POLICY, version=1)
        token = issuer.issue('00u1alice').access_token

        response = client.post('/mcp/tools/call', json={
            'tool': 'create_document',
            'arguments': {'title': 'Remote Work Policy', 'content': 'Text', 'category': 'HR', 'author': 'Alice'},
        }, headers=_bearer(token))

        assert response.status_code == 201
        assert response.get_json()['result']['document']['version'] == 1

    def test_unknown_tool(self, client, issuer):
        token = issuer.issue('00u1alice').access_token
        response = client.post('/mcp/tools/call', json={'tool': 'delete_everything'}, headers=_bearer(token))

        assert response.status_code == 400
        assert response.get_json()['error'] == 'Unknown tool'

    def test_downstream_failure(self, client, issuer, document_client):
        document_client.search_documents.side_effect = DocumentServiceError('Failed to search documents: timeout')
        token = issuer.issue('00u1alice').access_token

        response = client.post('/mcp/tools/call', json={
            'tool': 'search_documents', 'arguments': {'category': 'HR'}
        }, headers=_bearer(token))

        assert response.status_code == 500

    def test_document_database_not_configured(self, grant_verifier, issuer):
        client = create_gateway_app(Settings(), grant_verifier=grant_verifier, issuer=issuer).test_client()
        token = issuer.issue('00u1alice').access_token

        response = client.post('/mcp/tools/call', json={
            'tool': 'search_documents', 'arguments': {'query': 'benefits'}
        }, headers=_bearer(token))

        assert response.status_code == 503
        assert client.get('/mcp/health').get_json()['documentDatabase'] == 'not configured'


class TestGatewayConfiguration:
    """create_gateway_app() fails fast on missing configuration."""

    def test_missing_secret(self, grant_verifier):
        with pytest.raises(ConfigurationError, match='JWT_SECRET'):
            create_gateway_app(Settings(), grant_verifier=grant_verifier)

    def test_missing_grant_settings(self):
        with pytest.raises(ConfigurationError, match='OKTA_ISSUER'):
            create_gateway_app(Settings(jwt_secret=JWT_SECRET))


def test_subject_is_copied_from_grant(client, make_grant):
    response = client.post('/oauth/token', json={'id_jag_token': make_grant(sub='u1')})

    assert response.status_code == 200
    assert response.get_json()['subject'] == 'u1'


def test_garbage_grant_is_401(client):
    assert client.post('/oauth/token', json={'id_jag_token': 'garbage'}).status_code == 401
