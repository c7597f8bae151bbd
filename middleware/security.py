# middleware/security.py
"""
Security Middleware for Request Processing
"""

from flask import current_app, g, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from functools import wraps
import logging

from core.errors import UnauthorizedError
from core.security_manager import ACCESS

logger = logging.getLogger(__name__)

# Request rate limiter, bound to the app in create_app
limiter = Limiter(key_func=get_remote_address)


def auth_rate_limit():
    return current_app.config.get('AUTH_RATE_LIMIT', '5 per minute')


def security_headers(response):
    """Add security headers to all responses"""
    for header, value in current_app.config.get('SECURITY_HEADERS', {}).items():
        response.headers.setdefault(header, value)
    return response


def _bearer_token():
    header = request.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


def require_auth(f):
    """Decorator to require a valid access token; sets g.current_user"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        security_manager = current_app.security_manager
        token = _bearer_token()
        if token is None:
            security_manager.log_security_event('unauthorized_access_attempt', {
                'endpoint': request.endpoint,
                'method': request.method
            })
            raise UnauthorizedError('Token is required')

        try:
            g.current_user = security_manager.decode_token(token, expected_type=ACCESS)
        except UnauthorizedError as e:
            security_manager.log_security_event('token_rejected', {
                'endpoint': request.endpoint,
                'reason': e.message
            })
            raise

        return f(*args, **kwargs)
    return decorated_function
