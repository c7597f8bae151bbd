"""
Tests for the per-account SMTP configuration endpoints
"""

from sqlalchemy import select

from conftest import VALID_CONFIG
from core.database_models import Configuration
from services.stores import SECRET_MASK


def _stored_row(app):
    with app.session_factory() as session:
        return session.execute(select(Configuration)).scalar_one()


def test_get_before_save_is_not_found(client, auth_headers):
    response = client.get('/api/config', headers=auth_headers)

    assert response.status_code == 404
    assert response.get_json()['message'] == 'Email configuration not found'


def test_create_masks_password_in_response(client, auth_headers):
    response = client.post('/api/config', json=VALID_CONFIG, headers=auth_headers)

    assert response.status_code == 201
    data = response.get_json()['data']
    assert data['SMTP_HOST'] == 'smtp.devmail.io'
    assert data['SMTP_PORT'] == 587
    assert data['EMAIL_RATE_LIMIT'] == 30
    assert data['SMTP_PASS'] == SECRET_MASK


def test_password_is_encrypted_at_rest(app, client, configured_headers):
    row = _stored_row(app)

    assert row.smtp_pass != VALID_CONFIG['SMTP_PASS']
    assert app.security_manager.decrypt_sensitive_data(row.smtp_pass) == VALID_CONFIG['SMTP_PASS']


def test_second_create_conflicts(client, configured_headers):
    response = client.post('/api/config', json=VALID_CONFIG, headers=configured_headers)

    assert response.status_code == 409


def test_update_without_configuration_is_not_found(client, auth_headers):
    response = client.put('/api/config', json={'EMAIL_SUBJECT': 'Hello'}, headers=auth_headers)

    assert response.status_code == 404


def test_partial_update_keeps_other_fields(app, client, configured_headers):
    response = client.put('/api/config',
                          json={'EMAIL_SUBJECT': 'Backend roles', 'EMAIL_RATE_LIMIT': 10},
                          headers=configured_headers)

    assert response.status_code == 200
    data = response.get_json()['data']
    assert data['EMAIL_SUBJECT'] == 'Backend roles'
    assert data['EMAIL_RATE_LIMIT'] == 10
    assert data['SMTP_HOST'] == VALID_CONFIG['SMTP_HOST']
    stored = app.configuration_store.get(1)
    assert stored.smtp_pass == VALID_CONFIG['SMTP_PASS']


def test_masked_password_on_update_keeps_stored_secret(app, client, configured_headers):
    fetched = client.get('/api/config', headers=configured_headers).get_json()['data']
    fetched['SMTP_HOST'] = 'smtp.other-relay.io'

    response = client.put('/api/config', json=fetched, headers=configured_headers)

    assert response.status_code == 200
    stored = app.configuration_store.get(1)
    assert stored.smtp_host == 'smtp.other-relay.io'
    assert stored.smtp_pass == VALID_CONFIG['SMTP_PASS']


def test_new_password_is_stored(app, client, configured_headers):
    client.put('/api/config', json={'SMTP_PASS': 'rotated-password'}, headers=configured_headers)

    assert app.configuration_store.get(1).smtp_pass == 'rotated-password'


def test_invalid_values_report_each_field(client, auth_headers):
    payload = dict(VALID_CONFIG, SMTP_PORT=70000, EMAIL_RATE_LIMIT=0, EMAIL_FROM='not an address')

    response = client.post('/api/config', json=payload, headers=auth_headers)

    assert response.status_code == 400
    fields = {e['field'] for e in response.get_json()['errors']}
    assert fields == {'SMTP_PORT', 'EMAIL_RATE_LIMIT', 'EMAIL_FROM'}


def test_missing_fields_are_required(client, auth_headers):
    response = client.post('/api/config', json={'SMTP_HOST': 'smtp.devmail.io'},
                           headers=auth_headers)

    assert response.status_code == 400
    fields = {e['field'] for e in response.get_json()['errors']}
    assert {'SMTP_PORT', 'SMTP_USER', 'SMTP_PASS', 'EMAIL_FROM',
            'EMAIL_SUBJECT', 'EMAIL_RATE_LIMIT'} <= fields


def test_configuration_is_per_account(client, configured_headers, register):
    other = register(email='bob@devmail.io', name='Bob')

    response = client.get('/api/config', headers=other)

    assert response.status_code == 404
