# api/auth.py
"""
Authentication API: registration, login and token refresh
"""

from flask import Blueprint, current_app, jsonify, request
import logging

from api.schemas import LoginSchema, RefreshSchema, RegisterSchema, load_or_raise
from middleware.security import auth_rate_limit, limiter

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)


def _token_response(tokens, message: str, status_code: int = 200):
    return jsonify({
        'success': True,
        'message': message,
        'accessToken': tokens.access_token,
        'refreshToken': tokens.refresh_token
    }), status_code


@auth_bp.route('/register', methods=['POST'])
@limiter.limit(auth_rate_limit)
def register():
    """
    Create an account and sign the first token pair
    """
    data = load_or_raise(RegisterSchema(), request.get_json(silent=True))
    tokens = current_app.account_service.register(data['name'], data['email'], data['password'])
    logger.info(f"Registered account {data['email']}")
    return _token_response(tokens, 'User registered successfully', 201)


@auth_bp.route('/login', methods=['POST'])
@limiter.limit(auth_rate_limit)
def login():
    data = load_or_raise(LoginSchema(), request.get_json(silent=True))
    tokens = current_app.account_service.login(data['email'], data['password'])
    return _token_response(tokens, 'Login successful')


@auth_bp.route('/refresh', methods=['POST'])
@limiter.limit(auth_rate_limit)
def refresh():
    """Exchange a refresh token for a new pair; the old refresh token stops working"""
    data = load_or_raise(RefreshSchema(), request.get_json(silent=True))
    tokens = current_app.account_service.refresh(data['refresh_token'])
    return _token_response(tokens, 'Token refreshed successfully')


@auth_bp.route('/status', methods=['GET'])
def status():
    return jsonify({'success': True, 'message': 'Auth service is running'})
