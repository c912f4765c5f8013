"""
Tests for the API Gateway authorizer and the Lambda tool handler.
"""
import json
from unittest.mock import MagicMock, patch

import pytest

from docgate import lambda_authorizer, lambda_handler
from docgate.auth import codec
from docgate.auth.codec import derive_signing_key
from docgate.auth.issuer import AccessTokenIssuer
from docgate.lambda_authorizer import InlineAuthorizer

from conftest import JWT_SECRET

METHOD_ARN = 'arn:aws:execute-api:us-east-1:123456789012:api-id/prod/POST/mcp/tools/call'


class TestInlineAuthorizer:
    """Allow/deny decisions for ID-JAG bearer grants."""

    def test_valid_grant_is_allowed(self, grant_verifier, make_grant):
        policy = InlineAuthorizer(grant_verifier).authorize(f"Bearer {make_grant()}", METHOD_ARN)

        assert policy['principalId'] == '00u1alice'
        statement = policy['policyDocument']['Statement'][0]
        assert statement == {'Action': 'execute-api:Invoke', 'Effect': 'Allow', 'Resource': METHOD_ARN}
        assert policy['context'] == {'userId': '00u1alice', 'verified': 'true'}

    @pytest.mark.parametrize('header', [None, '', 'Basic dXNlcjpwYXNz', 'bearer lowercase-scheme'])
    def test_missing_or_wrong_scheme_is_denied(self, grant_verifier, header):
        policy = InlineAuthorizer(grant_verifier).authorize(header, METHOD_ARN)

        assert policy['principalId'] == 'anonymous'
        assert policy['policyDocument']['Statement'][0]['Effect'] == 'Deny'
        assert policy['context'] == {'userId': 'anonymous', 'verified': 'false'}

    def test_invalid_grant_is_denied(self, grant_verifier, make_grant):
        policy = InlineAuthorizer(grant_verifier).authorize(f"Bearer {make_grant(iss='https://evil.example')}", METHOD_ARN)
        assert policy['policyDocument']['Statement'][0]['Effect'] == 'Deny'

    def test_expired_grant_is_denied(self, grant_verifier, make_grant, clock):
        grant = make_grant(lifetime=30)
        clock.advance(30)

        policy = InlineAuthorizer(grant_verifier).authorize(f"Bearer {grant}", METHOD_ARN)
        assert policy['principalId'] == 'anonymous'

    def test_minting_variant_adds_service_token(self, grant_verifier, make_grant, issuer):
        policy = InlineAuthorizer(grant_verifier, issuer).authorize(f"Bearer {make_grant()}", METHOD_ARN)

        service_token = policy['context']['serviceAccessToken']
        assert issuer.verify(service_token).subject == '00u1alice'

    def test_minted_token_verifies_with_shared_secret(self, grant_verifier, make_grant, issuer):
        policy = InlineAuthorizer(grant_verifier, issuer).authorize(f"Bearer {make_grant()}", METHOD_ARN)

        claims = codec.verify(policy['context']['serviceAccessToken'], derive_signing_key(JWT_SECRET))
        assert claims['sub'] == '00u1alice'

    def test_minted_token_is_not_accepted_by_another_registry(self, grant_verifier, make_grant, issuer):
        policy = InlineAuthorizer(grant_verifier, issuer).authorize(f"Bearer {make_grant()}", METHOD_ARN)
        gateway_issuer = AccessTokenIssuer(derive_signing_key(JWT_SECRET))

        result = gateway_issuer.verify(policy['context']['serviceAccessToken'])
        assert result.error == 'unregistered_token'

    def test_unexpected_error_is_denied(self, make_grant):
        verifier = MagicMock()
        verifier.verify.side_effect = RuntimeError('boom')

        policy = InlineAuthorizer(verifier).authorize(f"Bearer {make_grant()}", METHOD_ARN)
        assert policy['policyDocument']['Statement'][0]['Effect'] == 'Deny'

    def test_handler_reads_event(self, grant_verifier, make_grant):
        with patch.object(lambda_authorizer, 'get_authorizer', return_value=InlineAuthorizer(grant_verifier)):
            policy = lambda_authorizer.handler(
                {'type': 'TOKEN', 'authorizationToken': f"Bearer {make_grant()}", 'methodArn': METHOD_ARN},
                None,
            )
        assert policy['policyDocument']['Statement'][0]['Effect'] == 'Allow'


def _event(path, method='GET', body=None, authorizer=None):
    return {
        'path': path,
        'httpMethod': method,
        'body': json.dumps(body) if body is not None else None,
        'requestContext': {'authorizer': authorizer} if authorizer is not None else {},
    }


VERIFIED = {'userId': '00u1alice', 'verified': 'true'}


class TestLambdaToolHandler:
    """API Gateway proxy routes under /mcp."""

    def test_preflight(self):
        response = lambda_handler.handler(_event('/mcp/tools/call', 'OPTIONS'), None)

        assert response['statusCode'] == 200
        assert response['headers']['Access-Control-Allow-Origin'] == '*'
        assert response['body'] == ''

    def test_info_and_tools(self):
        info = json.loads(lambda_handler.handler(_event('/mcp/info'), None)['body'])
        tools = json.loads(lambda_handler.handler(_event('/mcp/tools'), None)['body'])

        assert info['capabilities']['tools'] == ['search_documents', 'create_document']
        assert len(tools['tools']) == 2

    def test_health_reports_database(self, monkeypatch):
        monkeypatch.delenv('DOCUMENT_DATABASE_URL', raising=False)
        body = json.loads(lambda_handler.handler(_event('/mcp/health'), None)['body'])

        assert body['environment'] == 'lambda'
        assert body['documentDatabase'] == 'not configured'

    @pytest.mark.parametrize('authorizer', [None, {}, {'userId': 'anonymous', 'verified': 'false'}])
    def test_tool_call_needs_verified_caller(self, authorizer):
        event = _event('/mcp/tools/call', 'POST', {'tool': 'search_documents'}, authorizer)
        response = lambda_handler.handler(event, None)

        assert response['statusCode'] == 401
        assert json.loads(response['body'])['error'] == 'access_denied'

    def test_verified_tool_call(self):
        document_client = MagicMock()
        document_client.search_documents.return_value = [{'id': '1', 'title': 'PTO Policy', 'content': 'Accrual'}]
        event = _event('/mcp/tools/call', 'POST', {'tool': 'search_documents', 'arguments': {'query': 'pto'}}, VERIFIED)

        with patch.object(lambda_handler, 'get_document_client', return_value=document_client):
            response = lambda_handler.handler(event, None)

        assert response['statusCode'] == 200
        assert json.loads(response['body'])['result']['documents'][0]['title'] == 'PTO Policy'

    def test_tool_call_without_database(self):
        event = _event('/mcp/tools/call', 'POST', {'tool': 'search_documents', 'arguments': {'query': 'pto'}}, VERIFIED)

        with patch.object(lambda_handler, 'get_document_client', return_value=None):
            assert lambda_handler.handler(event, None)['statusCode'] == 503

    def test_invalid_body(self):
        event = _event('/mcp/tools/call', 'POST', authorizer=VERIFIED)
        event['body'] = '{not json'

        assert lambda_handler.handler(event, None)['statusCode'] == 400

    def test_unknown_path(self):
        response = lambda_handler.handler(_event('/mcp/admin', 'DELETE'), None)

        assert response['statusCode'] == 404
        assert 'DELETE /mcp/admin' in json.loads(response['body'])['message']
