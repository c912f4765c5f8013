from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify, request
import logging

from docgate.auth.codec import decode_unverified
from docgate.auth.errors import MalformedTokenError

oauth_bp = Blueprint('oauth', __name__)
logger = logging.getLogger(__name__)

SERVICE_NAME = 'atko-mcp-auth-server'


def _components():
    return current_app.extensions['docgate']


def _log_grant_details(grant: str):
    """Log the ID-JAG fields useful for auditing; never the token itself."""
    try:
        payload = decode_unverified(grant)
    except MalformedTokenError:
        logger.warning("Could not decode ID-JAG token payload for logging")
        return

    exp = payload.get('exp')
    expires = datetime.fromtimestamp(exp, tz=timezone.utc).isoformat() if isinstance(exp, (int, float)) else 'N/A'
    logger.info(
        f"ID-JAG token details: jti={payload.get('jti')}, aud={payload.get('aud')}, "
        f"client_id={payload.get('client_id', 'N/A')}, expires={expires}"
    )


@oauth_bp.route('/oauth/token', methods=['POST'])
def token():
    """Exchange a verified ID-JAG grant for an MCP access token"""
    try:
        body = request.get_json(silent=True) or request.form
        id_jag_token = body.get('id_jag_token') if body else None

        if not id_jag_token:
            return jsonify({
                'error': 'invalid_request',
                'error_description': 'id_jag_token is required. Legacy ID tokens are no longer supported.'
            }), 400

        components = _components()
        verification = components['grant_verifier'].verify(id_jag_token)

        if not verification.valid or not verification.subject:
            logger.warning(f"ID-JAG token rejected: {verification.error}")
            return jsonify({
                'error': 'invalid_token',
                'error_description': 'Invalid or expired ID-JAG token'
            }), 401

        logger.info(f"Issuing MCP access token for user: {verification.subject} ({verification.email})")
        _log_grant_details(id_jag_token)

        issued = components['issuer'].issue(verification.subject)

        response = issued.to_response()
        response['token_type_processed'] = 'ID-JAG'
        return jsonify(response)

    except Exception:
        logger.exception("Token generation error")
        return jsonify({
            'error': 'server_error',
            'error_description': 'Failed to generate access token'
        }), 500


@oauth_bp.route('/health')
def health():
    """Health check"""
    return jsonify({
        'status': 'ok',
        'service': SERVICE_NAME,
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'supported_tokens': ['ID-JAG'],
        'audience': _components()['grant_verifier'].audience
    })
