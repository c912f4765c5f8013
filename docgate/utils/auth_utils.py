"""
Authentication utilities for the Flask applications
"""
import logging
from functools import wraps
from typing import Optional

from flask import current_app, g, jsonify, request

logger = logging.getLogger(__name__)


def bearer_token_from_request() -> Optional[str]:
    """Return the token from an 'Authorization: Bearer <token>' header, or None."""
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        return None
    token = auth_header[len('Bearer '):].strip()
    return token or None


def require_access_token(f):
    """
    Decorator to require a valid service access token on a route.

    The verified subject and claims are stored on flask.g as `user`.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token_from_request()
        if token is None:
            logger.info(f"Rejected {request.endpoint}: missing or invalid authorization header")
            return jsonify({
                'error': 'access_denied',
                'error_description': 'Missing or invalid authorization header'
            }), 401

        issuer = current_app.extensions['docgate']['issuer']
        result = issuer.verify(token)
        if not result.valid:
            logger.info(f"Rejected {request.endpoint}: access token {result.error}")
            return jsonify({
                'error': 'access_denied',
                'error_description': 'Invalid or expired access token'
            }), 401

        g.user = {'sub': result.subject, 'payload': result.claims}
        return f(*args, **kwargs)
    return decorated_function
