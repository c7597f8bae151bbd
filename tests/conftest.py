"""
Shared fixtures: a testing app on a per-test SQLite file, a recording SMTP
transport and a fake clock for the rate gate, so nothing real is mailed and
nothing really sleeps.
"""

import threading
from dataclasses import dataclass
from typing import List, Optional

import pytest

from app import create_app
from core.errors import BodyGenerationError, DeliveryError
from core.mail_transport import SMTPSettings, SMTPTransport, SendReceipt
from services.body_generator import BodyGenerator
from services.rate_gate import RateGate

VALID_CONFIG = {
    'SMTP_HOST': 'smtp.devmail.io',
    'SMTP_PORT': 587,
    'SMTP_USER': 'alice@devmail.io',
    'SMTP_PASS': 'app-password-123',
    'EMAIL_FROM': 'Alice Walker <alice@devmail.io>',
    'EMAIL_SUBJECT': 'Full-stack engineer interested in your team',
    'EMAIL_RATE_LIMIT': 30,  # one email every 2 seconds
}


class FakeClock:
    """Monotonic clock that only moves when something sleeps"""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []
        self._lock = threading.Lock()

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        with self._lock:
            self.sleeps.append(seconds)
            self.now += seconds


@dataclass
class SentMessage:
    to: str
    html: str
    subject: str
    from_address: str
    started_at: float


class Outbox:
    """Collects messages handed to the transport; addresses in fail_for bounce"""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.messages: List[SentMessage] = []
        self.fail_for = set()
        self.configurations = []
        self.after_send = None

    def factory(self, configuration, timeout: float = 60.0, html_to_text=None):
        self.configurations.append(configuration)
        settings = SMTPSettings.from_configuration(configuration, timeout=timeout)
        return RecordingTransport(settings, self, html_to_text)

    @property
    def recipients(self) -> List[str]:
        return [m.to for m in self.messages]


class RecordingTransport(SMTPTransport):
    def __init__(self, settings, outbox: Outbox, html_to_text=None):
        super().__init__(settings, html_to_text=html_to_text)
        self.outbox = outbox

    def send(self, to_address, html_body):
        self.outbox.messages.append(SentMessage(
            to=to_address,
            html=html_body,
            subject=self.settings.subject,
            from_address=self.settings.from_address,
            started_at=self.outbox.clock.monotonic(),
        ))
        if to_address in self.outbox.fail_for:
            raise DeliveryError(f"SMTP error 550 (Mailbox unavailable): rejected {to_address}",
                                smtp_code=550)
        if self.outbox.after_send is not None:
            self.outbox.after_send(to_address)
        return SendReceipt(message_id=f"<{len(self.outbox.messages)}@devmail.io>", response='250 OK')


class StubGenerator(BodyGenerator):
    """Returns a canned body, or raises when error is set"""

    def __init__(self, body: Optional[str] = None, error: Optional[Exception] = None):
        self.body = body
        self.error = error
        self.contexts = []

    def generate(self, context):
        self.contexts.append(context)
        if self.error is not None:
            raise self.error
        return self.body


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def outbox(clock):
    return Outbox(clock)


@pytest.fixture
def generator():
    return StubGenerator(error=BodyGenerationError('generation backend offline'))


@pytest.fixture
def app_overrides(tmp_path):
    return {
        'DATABASE_URL': f"sqlite:///{tmp_path / 'outreach-test.db'}",
        'RECRUITER_CSV_PATH': str(tmp_path / 'recruiters.csv'),
    }


@pytest.fixture
def app(app_overrides, outbox, clock, generator):
    app = create_app('testing', app_overrides)
    app.dispatcher.transport_factory = outbox.factory
    app.dispatcher.rate_gate = RateGate(clock=clock.monotonic, sleep=clock.sleep)
    app.dispatcher.body_generator = generator
    yield app
    app.db_engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def register(client):
    """Register an account and return its bearer headers"""
    def _register(email='alice@devmail.io', name='Alice Walker', password='secret123'):
        response = client.post('/api/auth/register',
                               json={'name': name, 'email': email, 'password': password})
        assert response.status_code == 201, response.get_json()
        return {'Authorization': f"Bearer {response.get_json()['accessToken']}"}
    return _register


@pytest.fixture
def auth_headers(register):
    return register()


@pytest.fixture
def configured_headers(client, auth_headers):
    response = client.post('/api/config', json=VALID_CONFIG, headers=auth_headers)
    assert response.status_code == 201, response.get_json()
    return auth_headers


@pytest.fixture
def add_recruiter(client):
    def _add(headers, name='Jane Doe', email='jane@acme-recruiting.com', company='Acme'):
        response = client.post('/api/recruiters',
                               json={'name': name, 'email': email, 'company': company},
                               headers=headers)
        assert response.status_code == 201, response.get_json()
        return response.get_json()['data']
    return _add
