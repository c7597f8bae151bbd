# client/api.py
"""
REST client for the outreach service
"""

import logging
import os
import threading
from typing import Any, Dict, List, Optional

import jwt
import requests

logger = logging.getLogger(__name__)


class OutreachAPIError(Exception):
    """Non-2xx response from the service"""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload or {}

    @property
    def errors(self) -> List[Dict[str, str]]:
        return self.payload.get('errors') or []


class OutreachAPI:
    """
    Token-holding wrapper around the /api endpoints

    An access token rejected with 401 is refreshed once with the stored
    refresh token and the request retried. Dispatch calls use
    dispatch_timeout, which has no read limit by default: the server holds
    them behind the per-account rate gate for as long as sending takes.
    """

    def __init__(self, base_url: str, timeout: float = 120.0,
                 session: Optional[requests.Session] = None,
                 dispatch_timeout: Any = (10.0, None)):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.dispatch_timeout = dispatch_timeout
        self.session = session or requests.Session()
        self.access_token: Optional[str] = None
        self.refresh_token: Optional[str] = None
        self._refresh_lock = threading.Lock()

    # Auth

    def _store_tokens(self, body: Dict[str, Any]) -> Dict[str, Any]:
        self.access_token = body['accessToken']
        self.refresh_token = body['refreshToken']
        return body

    def register(self, name: str, email: str, password: str) -> Dict[str, Any]:
        return self._store_tokens(self._request(
            'POST', '/auth/register', json={'name': name, 'email': email, 'password': password},
            authenticated=False))

    def login(self, email: str, password: str) -> Dict[str, Any]:
        return self._store_tokens(self._request(
            'POST', '/auth/login', json={'email': email, 'password': password},
            authenticated=False))

    def refresh(self) -> Dict[str, Any]:
        if not self.refresh_token:
            raise OutreachAPIError('No refresh token available', status_code=401)
        return self._store_tokens(self._request(
            'POST', '/auth/refresh', json={'refreshToken': self.refresh_token},
            authenticated=False))

    @property
    def has_configured(self) -> bool:
        """Configuration flag carried in the access token (unverified read)"""
        if not self.access_token:
            return False
        try:
            claims = jwt.decode(self.access_token, options={'verify_signature': False})
        except jwt.InvalidTokenError:
            return False
        return bool(claims.get('has_configured'))

    # Transport

    def _request(self, method: str, path: str, authenticated: bool = True,
                 retry_on_401: bool = True, **kwargs) -> Any:
        headers = kwargs.pop('headers', {})
        kwargs.setdefault('timeout', self.timeout)
        used_token = self.access_token if authenticated else None
        if used_token:
            headers['Authorization'] = f'Bearer {used_token}'

        response = self.session.request(method, f'{self.base_url}/api{path}',
                                        headers=headers, **kwargs)

        if response.status_code == 401 and authenticated and retry_on_401 and self.refresh_token:
            with self._refresh_lock:
                # Concurrent callers share one refresh per rejected token
                if self.access_token == used_token:
                    logger.debug("Access token rejected, refreshing")
                    self.refresh()
            return self._request(method, path, authenticated=True, retry_on_401=False, **kwargs)

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not response.ok:
            message = body.get('message') if isinstance(body, dict) else None
            raise OutreachAPIError(message or f'HTTP {response.status_code}',
                                   status_code=response.status_code,
                                   payload=body if isinstance(body, dict) else None)
        return body

    # Configuration

    def get_configuration(self) -> Optional[Dict[str, Any]]:
        try:
            return self._request('GET', '/config')['data']
        except OutreachAPIError as e:
            if e.status_code == 404:
                return None
            raise

    def save_configuration(self, values: Dict[str, Any]) -> Dict[str, Any]:
        return self._request('POST', '/config', json=values)['data']

    def update_configuration(self, values: Dict[str, Any]) -> Dict[str, Any]:
        return self._request('PUT', '/config', json=values)['data']

    # Recruiters

    def list_recruiters(self) -> List[Dict[str, Any]]:
        return self._request('GET', '/recruiters')['data']

    def add_recruiter(self, name: str, email: str, company: str) -> Dict[str, Any]:
        return self._request('POST', '/recruiters',
                             json={'name': name, 'email': email, 'company': company})['data']

    def add_recruiters(self, recruiters: List[Dict[str, str]]) -> int:
        return self._request('POST', '/recruiters/bulk', json=recruiters)['count']

    def upload_recruiters(self, path: str) -> Dict[str, Any]:
        with open(path, 'rb') as handle:
            content = handle.read()
        return self._request('POST', '/recruiters/upload',
                             files={'file': (os.path.basename(path), content, 'text/csv')})

    def update_recruiter(self, recruiter_id: int, name: str, email: str, company: str) -> Dict[str, Any]:
        return self._request('PUT', f'/recruiters/{recruiter_id}',
                             json={'name': name, 'email': email, 'company': company})['data']

    def delete_recruiter(self, recruiter_id: int) -> None:
        self._request('DELETE', f'/recruiters/{recruiter_id}')

    # Dispatch

    def send_one(self, recruiter_id: int, use_ai: bool = False) -> Dict[str, Any]:
        return self._request('POST', f'/emails/{recruiter_id}', json={'useAI': use_ai},
                             timeout=self.dispatch_timeout)

    def send_batch(self) -> Dict[str, Any]:
        return self._request('POST', '/emails/send', timeout=self.dispatch_timeout)

    def status(self) -> Dict[str, Any]:
        return self._request('GET', '/emails/status')
