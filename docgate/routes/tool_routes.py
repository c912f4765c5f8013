from datetime import datetime, timezone

from flask import Blueprint, current_app, g, jsonify, request
import logging

from docgate.services.document_tools import TOOL_CATALOGUE, TOOL_NAMES, call_tool
from docgate.utils.auth_utils import require_access_token

tools_bp = Blueprint('tools', __name__)
logger = logging.getLogger(__name__)


@tools_bp.route('/info')
def info():
    """MCP server info"""
    return jsonify({
        'name': 'atko-document-server',
        'version': '1.0.0',
        'description': 'MCP Server for Atko Internal Document Database',
        'capabilities': {'tools': TOOL_NAMES}
    })


@tools_bp.route('/tools')
def list_tools():
    return jsonify({'tools': TOOL_CATALOGUE})


@tools_bp.route('/health')
def tools_health():
    document_client = current_app.extensions['docgate']['document_client']
    return jsonify({
        'status': 'healthy',
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'documentDatabase': 'configured' if document_client is not None else 'not configured'
    })


@tools_bp.route('/tools/call', methods=['POST'])
@require_access_token
def tools_call():
    """Run one document tool on behalf of the token's subject"""
    try:
        body = request.get_json(silent=True) or {}
        tool = body.get('tool')
        logger.info(f"MCP tool call: {tool} by {g.user['sub']}")

        status, payload = call_tool(tool, body.get('arguments'), current_app.extensions['docgate']['document_client'])
        return jsonify(payload), status

    except Exception as e:
        logger.exception("MCP tool call error")
        return jsonify({
            'error': 'Internal server error',
            'message': str(e)
        }), 500
