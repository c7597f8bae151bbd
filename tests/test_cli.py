from unittest.mock import patch

import pytest
import requests

import cli
from client.api import OutreachAPIError


@pytest.fixture
def api():
    with patch.object(cli, 'OutreachAPI') as api_class:
        yield api_class.return_value


def _run(*argv):
    return cli.main(['--email', 'alice@devmail.io', '--password', 'secret123', *argv])


def test_config_set_creates_when_missing(api):
    api.get_configuration.return_value = None

    assert _run('config', 'set', '--host', 'smtp.devmail.io', '--port', '587',
                '--smtp-password', 'app-pass', '--rate-limit', '20') == 0

    api.login.assert_called_once_with('alice@devmail.io', 'secret123')
    api.save_configuration.assert_called_once_with({
        'SMTP_HOST': 'smtp.devmail.io', 'SMTP_PORT': 587,
        'SMTP_PASS': 'app-pass', 'EMAIL_RATE_LIMIT': 20})


def test_config_set_updates_existing(api):
    api.get_configuration.return_value = {'SMTP_HOST': 'smtp.devmail.io'}

    assert _run('config', 'set', '--subject', 'Hello') == 0

    api.update_configuration.assert_called_once_with({'EMAIL_SUBJECT': 'Hello'})


def test_send_passes_ai_flag(api, capsys):
    api.send_one.return_value = {'success': True, 'message': 'Email sent successfully to jane@acme-recruiting.com',
                                 'aiFallback': True}

    assert _run('send', '3', '--ai') == 0

    api.send_one.assert_called_once_with(3, use_ai=True)
    assert 'static body used' in capsys.readouterr().out


def test_api_errors_become_exit_code(api, capsys):
    api.list_recruiters.side_effect = OutreachAPIError('Token is required', status_code=401)

    assert _run('recruiters') == 1
    assert 'Token is required' in capsys.readouterr().out


def test_transport_errors_become_exit_code(api, capsys):
    api.send_batch.side_effect = requests.ReadTimeout('read timed out')

    assert _run('batch') == 1
    out = capsys.readouterr().out
    assert '✗ Request failed' in out
    assert 'read timed out' in out


def test_send_all_requires_configuration(api, capsys):
    api.has_configured = False

    assert _run('send-all') == 1
    assert 'Configure SMTP first' in capsys.readouterr().out


def test_missing_credentials_exit(api):
    with patch.dict('os.environ', {}, clear=True):
        with pytest.raises(SystemExit):
            cli.main(['--email', 'alice@devmail.io', 'recruiters'])
