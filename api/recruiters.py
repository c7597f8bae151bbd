# api/recruiters.py
"""
Recruiter contacts API
"""

import csv
import io
import logging
import os

from flask import Blueprint, current_app, g, jsonify, request

from api.schemas import RecruiterSchema, flatten_messages, load_or_raise
from core.errors import ValidationError
from marshmallow import ValidationError as SchemaError
from middleware.security import require_auth

recruiters_bp = Blueprint('recruiters', __name__)
logger = logging.getLogger(__name__)


@recruiters_bp.route('', methods=['GET'])
@require_auth
def list_recruiters():
    recruiters = current_app.recruiter_store.list_for_account(g.current_user.id)
    return jsonify({'success': True, 'data': [r.to_dict() for r in recruiters]})


@recruiters_bp.route('', methods=['POST'])
@require_auth
def create_recruiter():
    data = load_or_raise(RecruiterSchema(), request.get_json(silent=True))
    recruiter = current_app.recruiter_store.create(g.current_user.id, data)
    return jsonify({'success': True, 'data': recruiter.to_dict()}), 201


@recruiters_bp.route('/bulk', methods=['POST'])
@require_auth
def bulk_create_recruiters():
    """All-or-nothing insert of a JSON array of recruiters"""
    payload = request.get_json(silent=True)
    if not isinstance(payload, list) or not payload:
        raise ValidationError('Request body must be a non-empty array of recruiters')
    rows = load_or_raise(RecruiterSchema(many=True), payload)
    count = current_app.recruiter_store.create_many(g.current_user.id, rows)
    logger.info(f"Bulk added {count} recruiters for account {g.current_user.id}")
    return jsonify({
        'success': True,
        'message': f'Successfully added {count} recruiters',
        'count': count
    }), 201


@recruiters_bp.route('/upload', methods=['POST'])
@require_auth
def upload_recruiters():
    """
    Import recruiters from an uploaded CSV file with name, email and company
    columns; rows that fail validation are skipped and reported
    """
    upload = request.files.get('file')
    if upload is None or not upload.filename:
        raise ValidationError('A CSV file is required in the "file" field')

    extension = os.path.splitext(upload.filename)[1].lower()
    if extension not in current_app.config.get('UPLOAD_EXTENSIONS', {'.csv'}):
        raise ValidationError(f'Unsupported file type: {extension or "none"}')

    try:
        text = upload.read().decode('utf-8-sig')
    except UnicodeDecodeError:
        raise ValidationError('CSV file must be UTF-8 encoded')

    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        raise ValidationError('CSV file is empty')

    schema = RecruiterSchema()
    rows, skipped = [], []
    for line_no, raw in enumerate(reader, start=2):
        normalized = {(k or '').strip().lower(): (v or '').strip() for k, v in raw.items()}
        try:
            rows.append(schema.load(normalized))
        except SchemaError as e:
            logger.warning(f"Skipping invalid CSV row {line_no}: {e.messages}")
            skipped.append({'row': line_no, 'errors': flatten_messages(e.messages)})

    count = current_app.recruiter_store.create_many(g.current_user.id, rows) if rows else 0
    return jsonify({
        'success': True,
        'message': f'Successfully added {count} recruiters',
        'count': count,
        'skipped': skipped
    }), 201 if count else 200


@recruiters_bp.route('/<int:recruiter_id>', methods=['PUT'])
@require_auth
def update_recruiter(recruiter_id):
    data = load_or_raise(RecruiterSchema(), request.get_json(silent=True))
    recruiter = current_app.recruiter_store.update(g.current_user.id, recruiter_id, data)
    return jsonify({
        'success': True,
        'message': 'Recruiter updated successfully',
        'data': recruiter.to_dict()
    })


@recruiters_bp.route('/<int:recruiter_id>', methods=['DELETE'])
@require_auth
def delete_recruiter(recruiter_id):
    current_app.recruiter_store.delete(g.current_user.id, recruiter_id)
    return jsonify({'success': True, 'message': 'Recruiter deleted successfully'})
