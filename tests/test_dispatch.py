"""
Tests for single sends, batch runs, body selection and the per-account rate gate
"""

import jwt
import pytest

from conftest import VALID_CONFIG, StubGenerator
from core.errors import ConfigurationInvalid, DeliveryError
from services.stores import OutreachConfiguration


def _send(client, headers, recruiter_id, **payload):
    return client.post(f'/api/emails/{recruiter_id}', headers=headers, json=payload)


class TestSendOne:
    def test_first_contact_updates_recruiter(self, client, configured_headers, add_recruiter, outbox):
        recruiter = add_recruiter(configured_headers, name='Jane Doe', company='Acme')

        response = _send(client, configured_headers, recruiter['id'])

        assert response.status_code == 200
        body = response.get_json()
        assert body['success'] is True
        assert body['message'] == 'Email sent successfully to jane@acme-recruiting.com'
        assert body['isAiGenerated'] is False
        assert body['aiFallback'] is False
        assert body['executionTimeMs'] >= 0
        assert body['recruiter']['reachOutFrequency'] == 1
        assert body['recruiter']['status'] == 'sent'
        assert body['recruiter']['lastReachOutDate'] is not None

        [message] = outbox.messages
        assert message.to == 'jane@acme-recruiting.com'
        assert message.subject == VALID_CONFIG['EMAIL_SUBJECT']
        assert 'Hi Jane Doe' in message.html
        assert 'opportunities at Acme' in message.html
        assert 'Alice Walker' in message.html

    def test_second_send_uses_follow_up_body(self, client, configured_headers, add_recruiter, outbox):
        recruiter = add_recruiter(configured_headers)
        _send(client, configured_headers, recruiter['id'])

        response = _send(client, configured_headers, recruiter['id'])

        assert response.get_json()['recruiter']['reachOutFrequency'] == 2
        first, second = outbox.messages
        assert 'follow up' not in first.html
        assert 'follow up on my earlier note' in second.html

    def test_empty_body_means_static(self, client, configured_headers, add_recruiter, generator):
        recruiter = add_recruiter(configured_headers)

        response = client.post(f"/api/emails/{recruiter['id']}", headers=configured_headers)

        assert response.status_code == 200
        assert response.get_json()['isAiGenerated'] is False
        assert generator.contexts == []

    def test_failed_delivery_leaves_recruiter_unchanged(self, client, configured_headers,
                                                        add_recruiter, outbox):
        recruiter = add_recruiter(configured_headers)
        outbox.fail_for.add(recruiter['email'])

        response = _send(client, configured_headers, recruiter['id'])

        assert response.status_code == 500
        body = response.get_json()
        assert body['success'] is False
        assert body['status'] == 'error'
        assert 'Mailbox unavailable' in body['message']

        [stored] = client.get('/api/recruiters', headers=configured_headers).get_json()['data']
        assert stored['reachOutFrequency'] == 0
        assert stored['lastReachOutDate'] is None
        assert stored['status'] == 'pending'

    def test_without_configuration_is_not_found(self, client, auth_headers, add_recruiter, outbox):
        recruiter = add_recruiter(auth_headers)

        response = _send(client, auth_headers, recruiter['id'])

        assert response.status_code == 404
        assert response.get_json()['message'] == 'Email configuration not found'
        assert outbox.messages == []

    def test_unknown_recruiter_is_not_found(self, client, configured_headers):
        response = _send(client, configured_headers, 999)

        assert response.status_code == 404


class TestGeneratedBodies:
    def test_generated_body_is_sanitized_and_sent(self, app, client, configured_headers,
                                                  add_recruiter, outbox):
        app.dispatcher.body_generator = StubGenerator(
            body="```html\n<p>Hello Jane,</p><script>alert(1)</script><p>Let's talk.</p>\n```")
        recruiter = add_recruiter(configured_headers)

        response = _send(client, configured_headers, recruiter['id'], useAI=True)

        body = response.get_json()
        assert body['isAiGenerated'] is True
        assert body['aiFallback'] is False
        [message] = outbox.messages
        assert message.html.startswith('<p>Hello Jane,</p>')
        assert '<script>' not in message.html
        assert '```' not in message.html

    def test_generator_receives_recruiter_context(self, app, client, configured_headers,
                                                  add_recruiter):
        stub = app.dispatcher.body_generator = StubGenerator(body='<p>Hi</p>')
        recruiter = add_recruiter(configured_headers, name='Jane Doe', company='Acme')

        _send(client, configured_headers, recruiter['id'], useAI=True)

        [context] = stub.contexts
        assert context.recruiter_name == 'Jane Doe'
        assert context.company == 'Acme'
        assert context.sender_name == 'Alice Walker'
        assert context.sender_email == 'alice@devmail.io'
        assert context.reach_out_count == 0

    def test_generation_failure_falls_back_to_static(self, client, configured_headers,
                                                     add_recruiter, outbox, generator):
        recruiter = add_recruiter(configured_headers)

        response = _send(client, configured_headers, recruiter['id'], useAI=True)

        assert response.status_code == 200
        body = response.get_json()
        assert body['isAiGenerated'] is True
        assert body['aiFallback'] is True
        assert len(generator.contexts) == 1
        assert 'Hi Jane Doe' in outbox.messages[0].html

    def test_unexpected_generator_error_still_falls_back(self, app, client, configured_headers,
                                                         add_recruiter, outbox):
        app.dispatcher.body_generator = StubGenerator(error=RuntimeError('boom'))
        recruiter = add_recruiter(configured_headers)

        response = _send(client, configured_headers, recruiter['id'], useAI=True)

        assert response.status_code == 200
        assert response.get_json()['aiFallback'] is True

    def test_blank_generated_body_falls_back(self, app, client, configured_headers,
                                             add_recruiter, outbox):
        app.dispatcher.body_generator = StubGenerator(body='```html\n```')
        recruiter = add_recruiter(configured_headers)

        response = _send(client, configured_headers, recruiter['id'], useAI=True)

        assert response.get_json()['aiFallback'] is True
        assert 'Hi Jane Doe' in outbox.messages[0].html

    def test_no_generator_configured_falls_back(self, app, client, configured_headers,
                                                add_recruiter):
        app.dispatcher.body_generator = None
        recruiter = add_recruiter(configured_headers)

        response = _send(client, configured_headers, recruiter['id'], useAI=True)

        assert response.get_json()['aiFallback'] is True


class TestSendBatch:
    def _add_many(self, client, headers, count):
        rows = [{'name': f'Recruiter {i}', 'email': f'r{i}@acme-recruiting.com', 'company': f'Co {i}'}
                for i in range(count)]
        client.post('/api/recruiters/bulk', json=rows, headers=headers)
        return rows

    def test_empty_batch(self, client, configured_headers, outbox):
        response = client.post('/api/emails/send', headers=configured_headers)

        assert response.status_code == 200
        body = response.get_json()
        assert body['message'] == 'Email processing completed'
        assert body['details'] == {'sent': 0, 'failed': 0, 'errors': []}
        assert outbox.messages == []

    def test_batch_respects_rate_limit(self, client, configured_headers, outbox, clock):
        self._add_many(client, configured_headers, 7)
        started = clock.now

        response = client.post('/api/emails/send', headers=configured_headers)

        assert response.get_json()['details']['sent'] == 7
        starts = [m.started_at for m in outbox.messages]
        gaps = [b - a for a, b in zip(starts, starts[1:])]
        # 30 emails per minute is one every 2 seconds
        assert all(gap >= 2.0 for gap in gaps)
        assert clock.now - started >= 12.0

    def test_batch_sends_in_stored_order(self, client, configured_headers, outbox):
        rows = self._add_many(client, configured_headers, 3)

        client.post('/api/emails/send', headers=configured_headers)

        assert outbox.recipients == [r['email'] for r in rows]

    def test_batch_continues_after_failures(self, client, configured_headers, outbox):
        self._add_many(client, configured_headers, 4)
        outbox.fail_for.add('r1@acme-recruiting.com')

        response = client.post('/api/emails/send', headers=configured_headers)

        details = response.get_json()['details']
        assert details['sent'] == 3
        assert details['failed'] == 1
        assert details['errors'][0]['email'] == 'r1@acme-recruiting.com'
        assert 'Mailbox unavailable' in details['errors'][0]['error']
        assert len(outbox.messages) == 4

        status = client.get('/api/emails/status', headers=configured_headers).get_json()
        assert status['summary'] == {'pending': 0, 'sent': 3, 'failed': 1}
        failed = [r for r in status['data'] if r['status'] == 'failed'][0]
        assert failed['reachOutFrequency'] == 0

    def test_recruiter_deleted_mid_batch_does_not_abort_run(self, app, client, configured_headers, outbox):
        self._add_many(client, configured_headers, 3)
        listed = client.get('/api/recruiters', headers=configured_headers).get_json()['data']
        by_email = {r['email']: r['id'] for r in listed}
        account_id = jwt.decode(configured_headers['Authorization'].split()[1],
                                options={'verify_signature': False})['id']

        def delete_first(to_address):
            if to_address == 'r0@acme-recruiting.com':
                app.recruiter_store.delete(account_id, by_email[to_address])

        outbox.after_send = delete_first
        response = client.post('/api/emails/send', headers=configured_headers)

        assert response.status_code == 200
        assert response.get_json()['details'] == {'sent': 3, 'failed': 0, 'errors': []}
        assert outbox.recipients == [f'r{i}@acme-recruiting.com' for i in range(3)]

        remaining = client.get('/api/recruiters', headers=configured_headers).get_json()['data']
        assert [r['email'] for r in remaining] == ['r1@acme-recruiting.com', 'r2@acme-recruiting.com']
        assert all(r['status'] == 'sent' and r['reachOutFrequency'] == 1 for r in remaining)

    def test_batch_uses_static_bodies_even_for_follow_ups(self, client, configured_headers,
                                                          outbox, generator):
        self._add_many(client, configured_headers, 2)
        client.post('/api/emails/send', headers=configured_headers)

        client.post('/api/emails/send', headers=configured_headers)

        assert generator.contexts == []
        assert len(outbox.messages) == 4
        assert all('follow up' in m.html for m in outbox.messages[2:])
        recruiters = client.get('/api/recruiters', headers=configured_headers).get_json()['data']
        assert [r['reachOutFrequency'] for r in recruiters] == [2, 2]

    def test_batch_without_configuration_fails_before_sending(self, client, auth_headers, outbox):
        self._add_many(client, auth_headers, 2)

        response = client.post('/api/emails/send', headers=auth_headers)

        assert response.status_code == 404
        assert outbox.messages == []


class TestRateGateSharing:
    def test_single_sends_share_the_batch_gate(self, client, configured_headers,
                                               add_recruiter, outbox, clock):
        first = add_recruiter(configured_headers, email='a@acme-recruiting.com')
        second = add_recruiter(configured_headers, email='b@acme-recruiting.com')

        _send(client, configured_headers, first['id'])
        _send(client, configured_headers, second['id'])

        a, b = outbox.messages
        assert b.started_at - a.started_at >= 2.0

    def test_accounts_do_not_wait_on_each_other(self, client, configured_headers, register,
                                                add_recruiter, outbox, clock):
        other = register(email='bob@devmail.io', name='Bob')
        client.post('/api/config', json=dict(VALID_CONFIG, EMAIL_FROM='bob@devmail.io'), headers=other)
        mine = add_recruiter(configured_headers, email='a@acme-recruiting.com')
        theirs = add_recruiter(other, email='b@acme-recruiting.com')

        _send(client, configured_headers, mine['id'])
        _send(client, other, theirs['id'])

        assert clock.sleeps == []


class TestSettingsValidation:
    def test_incomplete_stored_configuration(self, app, outbox):
        configuration = OutreachConfiguration(
            account_id=1, smtp_host='', smtp_port=587, smtp_user='alice', smtp_pass='',
            email_from='alice@devmail.io', email_subject='Hello', email_rate_limit=0)

        with pytest.raises(ConfigurationInvalid) as excinfo:
            outbox.factory(configuration)

        fields = {e['field'] for e in excinfo.value.errors}
        assert fields == {'SMTP_HOST', 'SMTP_PASS', 'EMAIL_RATE_LIMIT'}

    def test_delivery_error_propagates_from_engine(self, app, configured_headers,
                                                   add_recruiter, outbox):
        recruiter = add_recruiter(configured_headers)
        outbox.fail_for.add(recruiter['email'])

        with pytest.raises(DeliveryError):
            app.dispatcher.send_one(1, recruiter['id'])

        assert app.recruiter_store.get_for_account(1, recruiter['id']).reach_out_frequency == 0
