# api/emails.py
"""
Outreach dispatch API
"""

from collections import Counter
import logging

from flask import Blueprint, current_app, g, jsonify, request

from api.schemas import SendEmailSchema, load_or_raise
from core.database_models import RecruiterStatus
from middleware.security import require_auth

emails_bp = Blueprint('emails', __name__)
logger = logging.getLogger(__name__)


@emails_bp.route('/send', methods=['POST'])
@require_auth
def send_batch():
    """Send to every recruiter of the caller, sequentially and rate gated"""
    summary = current_app.dispatcher.send_batch(g.current_user.id)
    return jsonify({
        'success': True,
        'message': 'Email processing completed',
        'details': summary.to_dict()
    })


@emails_bp.route('/status', methods=['GET'])
@require_auth
def status():
    recruiters = current_app.recruiter_store.list_for_account(g.current_user.id)
    counts = Counter(r.status for r in recruiters)
    return jsonify({
        'success': True,
        'data': [r.to_dict() for r in recruiters],
        'summary': {state: counts.get(state, 0) for state in RecruiterStatus.ALL}
    })


@emails_bp.route('/<int:recruiter_id>', methods=['POST'])
@require_auth
def send_one(recruiter_id):
    # An empty body means useAI=false
    payload = request.get_json(silent=True)
    options = load_or_raise(SendEmailSchema(), payload if payload is not None else {})
    outcome = current_app.dispatcher.send_one(g.current_user.id, recruiter_id, options['use_ai'])
    return jsonify(outcome.to_dict())
