"""
API Gateway proxy handler for the document tools (inline-authorizer topology).

The gateway runs lambda_authorizer.handler first and forwards its context in
requestContext.authorizer; tool calls are only served for verified callers.
Only userId and verified are read from that context; a minted
serviceAccessToken is left for other next hops.
"""
import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Optional

from docgate.services.document_tools import TOOL_CATALOGUE, TOOL_NAMES, DocumentClient, call_tool

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    'Content-Type': 'application/json',
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET, POST, PUT, DELETE, OPTIONS',
    'Access-Control-Allow-Headers': 'Content-Type, Authorization',
}

_document_client: Optional[DocumentClient] = None


def get_document_client() -> Optional[DocumentClient]:
    """Document database client, or None when DOCUMENT_DATABASE_URL is unset."""
    global _document_client
    if _document_client is None:
        base_url = os.getenv('DOCUMENT_DATABASE_URL')
        if base_url:
            _document_client = DocumentClient(base_url)
    return _document_client


def _response(status: int, body: Any) -> dict:
    return {
        'statusCode': status,
        'headers': dict(CORS_HEADERS),
        'body': body if isinstance(body, str) else json.dumps(body),
    }


def _authorized_user(event: dict) -> Optional[str]:
    authorizer = (event.get('requestContext') or {}).get('authorizer') or {}
    if not authorizer.get('userId') or authorizer.get('verified') != 'true':
        return None
    return authorizer['userId']


def _tools_call(event: dict) -> dict:
    user_id = _authorized_user(event)
    if user_id is None:
        return _response(401, {
            'error': 'access_denied',
            'error_description': 'User not authorized by Lambda Authorizer'
        })
    logger.info(f"User authorized by Lambda Authorizer: {user_id}")

    try:
        body = json.loads(event.get('body') or '{}')
    except ValueError:
        return _response(400, {'error': 'Invalid request', 'message': 'Body must be JSON'})
    if not isinstance(body, dict):
        return _response(400, {'error': 'Invalid request', 'message': 'Body must be a JSON object'})

    logger.info(f"MCP tool call: {body.get('tool')}")
    status, payload = call_tool(body.get('tool'), body.get('arguments'), get_document_client())
    return _response(status, payload)


def handler(event: dict, context: Any) -> dict:
    """Lambda entry point for the /mcp/* proxy routes."""
    try:
        path = event.get('path')
        method = event.get('httpMethod')
        logger.info(f"Lambda request: {method} {path}")

        if method == 'OPTIONS':
            return _response(200, '')

        if path == '/mcp/info' and method == 'GET':
            return _response(200, {
                'name': 'atko-document-server',
                'version': '1.0.0',
                'description': 'MCP Server for Atko Internal Document Database (Lambda)',
                'capabilities': {'tools': TOOL_NAMES}
            })

        if path == '/mcp/health' and method == 'GET':
            return _response(200, {
                'status': 'healthy',
                'timestamp': datetime.now(timezone.utc).isoformat(),
                'environment': 'lambda',
                'documentDatabase': 'configured' if os.getenv('DOCUMENT_DATABASE_URL') else 'not configured'
            })

        if path == '/mcp/tools' and method == 'GET':
            return _response(200, {'tools': TOOL_CATALOGUE})

        if path == '/mcp/tools/call' and method == 'POST':
            return _tools_call(event)

        return _response(404, {
            'error': 'Not found',
            'message': f"Endpoint {method} {path} not found"
        })

    except Exception as e:
        logger.exception("Lambda handler error")
        return _response(500, {
            'error': 'Internal server error',
            'message': str(e)
        })
