from flask import Blueprint, current_app, jsonify, request
import logging

from docgate.auth.errors import IdentityRejected, TokenAcquisitionError
from docgate.services import assistant
from docgate.services.tool_client import ToolCallError
from docgate.utils.auth_utils import bearer_token_from_request

chat_bp = Blueprint('chat', __name__, url_prefix='/api')
logger = logging.getLogger(__name__)

DOCUMENT_SEARCH_LIMIT = 3


def _components():
    return current_app.extensions['docgate']


def _authentication_required():
    return jsonify({'error': 'Authentication required'}), 401


def _search_context(tool_client, bearer: str, user_query: str) -> str:
    """Search documents for the user's question; failures only cost the context."""
    try:
        logger.info(f"Searching documents for query: {user_query[:80]}")
        search = tool_client.search_documents(
            bearer,
            query=assistant.extract_search_query(user_query),
            limit=DOCUMENT_SEARCH_LIMIT,
        )
        result = search.get('result') or {}
        documents = result.get('documents') or []
        if result.get('success') and documents:
            logger.info(f"Found {len(documents)} relevant documents")
            return assistant.format_document_context(documents)
        logger.info("No relevant documents found")
    except (ToolCallError, ValueError) as e:
        logger.error(f"Document search failed: {e}")
    return ''


def _create_document(tool_client, bearer: str, user_query: str, reply: str) -> str:
    """Save the reply as a document on explicit request; returns a note for the user."""
    if not assistant.is_document_creation_request(user_query):
        return ''

    title = assistant.extract_document_title(user_query, reply)
    try:
        tool_client.create_document(
            bearer,
            title=title,
            content=reply,
            category='Company',
            author='Employee Assistant',
            tags=['ai-generated', 'employee-request'],
            is_public=True,
        )
    except ToolCallError as e:
        logger.error(f"Document creation failed: {e}")
        return "\n\n*Note: I wasn't able to save this as a document, but the information above should still be helpful.*"

    logger.info(f"Document {title!r} created")
    return f"\n\n*Document \"{title}\" has been created and saved to the company database.*"


@chat_bp.route('/chat', methods=['POST'])
def chat():
    """Answer one chat turn, grounded in company documents where relevant"""
    identity_token = bearer_token_from_request()
    if identity_token is None:
        return _authentication_required()

    body = request.get_json(silent=True) or {}
    messages = body.get('messages')
    if not isinstance(messages, list) or not messages or not isinstance(messages[-1], dict):
        return jsonify({'error': 'messages must be a non-empty list'}), 400
    user_query = messages[-1].get('content') or ''

    components = _components()
    try:
        orchestrator = components['orchestrators'].get(identity_token)
    except IdentityRejected:
        return _authentication_required()

    try:
        tokens = orchestrator.acquire(identity_token)
        logger.info(f"MCP authentication successful for user: {tokens.subject}")
    except TokenAcquisitionError as e:
        logger.error(f"MCP authentication failed: {e}")
        return jsonify({'error': 'Failed to authenticate with document server'}), 503

    try:
        tool_client = components['tool_client']
        document_context = ''
        if assistant.should_search_documents(user_query):
            document_context = _search_context(tool_client, tokens.bearer, user_query)

        reply = assistant.generate_reply(
            messages, document_context, model=components['settings'].openai_model
        )
        reply += _create_document(tool_client, tokens.bearer, user_query, reply)

        return jsonify({
            'role': 'assistant',
            'content': reply,
            'idJagToken': tokens.grant
        })

    except Exception:
        logger.exception("Chat error")
        return jsonify({'error': 'Failed to generate a response'}), 500


@chat_bp.route('/mcp', methods=['POST'])
def mcp_proxy():
    """Proxy one tool call with the session's cached credential"""
    identity_token = bearer_token_from_request()
    if identity_token is None:
        return _authentication_required()

    body = request.get_json(silent=True) or {}
    tool = body.get('tool')
    if not tool:
        return jsonify({'error': 'Tool name is required'}), 400

    try:
        orchestrator = _components()['orchestrators'].find(identity_token)
    except IdentityRejected:
        return _authentication_required()

    try:
        tokens = orchestrator.cached if orchestrator else None
        logger.info(f"MCP API: calling tool {tool}")
        result = _components()['tool_client'].call_tool(
            tool, body.get('arguments') or {}, tokens.bearer if tokens else None
        )
        return jsonify(result)

    except (ToolCallError, TokenAcquisitionError) as e:
        logger.error(f"MCP API error: {e}")
        return jsonify({
            'error': 'MCP tool call failed',
            'message': str(e)
        }), 500


@chat_bp.route('/token-info')
def token_info():
    """Cached token state for the token-inspection widget (no network calls)"""
    identity_token = bearer_token_from_request()
    if identity_token is None:
        return _authentication_required()

    try:
        orchestrator = _components()['orchestrators'].find(identity_token)
    except IdentityRejected:
        return _authentication_required()

    if orchestrator is None:
        return jsonify({
            'hasValidToken': False,
            'cachedGrant': None,
            'topology': _components()['settings'].topology,
            'subject': None,
            'expiresAt': None
        })
    return jsonify(orchestrator.get_token_info())


@chat_bp.route('/token-refresh', methods=['POST'])
def token_refresh():
    """Discard cached tokens and run the exchange again"""
    identity_token = bearer_token_from_request()
    if identity_token is None:
        return _authentication_required()

    try:
        orchestrator = _components()['orchestrators'].get(identity_token)
    except IdentityRejected:
        return _authentication_required()

    try:
        orchestrator.refresh(identity_token)
    except TokenAcquisitionError as e:
        logger.error(f"Token refresh failed: {e}")
        return jsonify({
            'error': 'Failed to refresh tokens',
            'message': str(e)
        }), 503

    return jsonify(orchestrator.get_token_info())
