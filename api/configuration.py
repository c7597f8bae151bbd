# api/configuration.py
"""
Per-account SMTP configuration API
"""

from flask import Blueprint, current_app, g, jsonify, request
import logging

from api.schemas import ConfigurationSchema, load_or_raise
from middleware.security import require_auth
from services.stores import SECRET_MASK

configuration_bp = Blueprint('configuration', __name__)
logger = logging.getLogger(__name__)


@configuration_bp.route('', methods=['GET'])
@require_auth
def get_configuration():
    configuration = current_app.configuration_store.get(g.current_user.id)
    return jsonify({'success': True, 'data': configuration.to_dict()})


@configuration_bp.route('', methods=['POST'])
@require_auth
def create_configuration():
    values = load_or_raise(ConfigurationSchema(), request.get_json(silent=True))
    configuration = current_app.configuration_store.create(g.current_user.id, values)
    logger.info(f"Email configuration created for account {g.current_user.id}")
    return jsonify({
        'success': True,
        'message': 'Configuration saved successfully',
        'data': configuration.to_dict()
    }), 201


@configuration_bp.route('', methods=['PUT'])
@require_auth
def update_configuration():
    """
    Partial update of the supplied keys

    An omitted or masked SMTP_PASS keeps the stored password.
    """
    payload = request.get_json(silent=True)
    if isinstance(payload, dict) and payload.get('SMTP_PASS') in ('', SECRET_MASK):
        payload = {k: v for k, v in payload.items() if k != 'SMTP_PASS'}
    values = load_or_raise(ConfigurationSchema(), payload, partial=True)
    configuration = current_app.configuration_store.update(g.current_user.id, values)
    logger.info(f"Email configuration updated for account {g.current_user.id}")
    return jsonify({
        'success': True,
        'message': 'Configuration updated successfully',
        'data': configuration.to_dict()
    })
