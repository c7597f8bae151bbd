# client/dashboard.py
"""
Dashboard state and the grouped "send all" action

Sending to everyone resets every recruiter to idle, then sends in groups of
BATCH_SIZE: the SendOne calls of one group run concurrently and the next
group starts only after the whole group has finished.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

import requests

from client.api import OutreachAPI, OutreachAPIError

logger = logging.getLogger(__name__)

BATCH_SIZE = 5
SEND_FAILED = 'Failed to send email'


class EmailStatus(Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class EmailState:
    status: EmailStatus = EmailStatus.IDLE
    error: Optional[str] = None
    ai_fallback: bool = False


@dataclass
class SendAllReport:
    succeeded: int
    failed: int
    groups: int


class EmailDashboard:
    """Client-side view of an account's recruiters and their send states"""

    def __init__(self,
                 api: OutreachAPI,
                 use_ai: bool = False,
                 batch_size: int = BATCH_SIZE,
                 on_change: Optional[Callable[[int, EmailState], None]] = None):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.api = api
        self.use_ai = use_ai
        self.batch_size = batch_size
        self.on_change = on_change
        self.recruiters: List[dict] = []
        self.states: Dict[int, EmailState] = {}
        self.is_sending_all = False
        self._lock = threading.Lock()

    def refresh(self) -> List[dict]:
        """Reload recruiters; known states are kept, new recruiters start idle"""
        recruiters = self.api.list_recruiters()
        with self._lock:
            self.recruiters = recruiters
            self.states = {r['id']: self.states.get(r['id'], EmailState()) for r in recruiters}
        return recruiters

    def toggle_ai(self) -> bool:
        self.use_ai = not self.use_ai
        return self.use_ai

    def add_recruiter(self, name: str, email: str, company: str) -> dict:
        recruiter = self.api.add_recruiter(name, email, company)
        self.refresh()
        return recruiter

    def delete_recruiter(self, recruiter_id: int) -> None:
        self.api.delete_recruiter(recruiter_id)
        self.refresh()

    def state_of(self, recruiter_id: int) -> EmailState:
        with self._lock:
            return self.states.get(recruiter_id, EmailState())

    def _set_state(self, recruiter_id: int, state: EmailState) -> None:
        with self._lock:
            self.states[recruiter_id] = state
        if self.on_change is not None:
            self.on_change(recruiter_id, state)

    def _merge_recruiter(self, updated: dict) -> None:
        with self._lock:
            self.recruiters = [updated if r['id'] == updated['id'] else r for r in self.recruiters]

    def send_one(self, recruiter_id: int) -> EmailState:
        """Send to one recruiter and track its state through loading to success or error"""
        self._set_state(recruiter_id, EmailState(EmailStatus.LOADING))
        try:
            body = self.api.send_one(recruiter_id, self.use_ai)
        except OutreachAPIError as e:
            logger.warning(f"Send to recruiter {recruiter_id} failed: {e.message}")
            state = EmailState(EmailStatus.ERROR, error=e.message or SEND_FAILED)
        except requests.RequestException as e:
            logger.warning(f"Send to recruiter {recruiter_id} failed: {e}")
            state = EmailState(EmailStatus.ERROR, error=SEND_FAILED)
        else:
            if body.get('success'):
                if body.get('recruiter'):
                    self._merge_recruiter(body['recruiter'])
                state = EmailState(EmailStatus.SUCCESS, ai_fallback=bool(body.get('aiFallback')))
            else:
                state = EmailState(EmailStatus.ERROR, error=body.get('message') or SEND_FAILED)

        self._set_state(recruiter_id, state)
        return state

    def send_all(self) -> SendAllReport:
        """
        Send to every listed recruiter, BATCH_SIZE at a time

        States from earlier runs are reset to idle first.
        """
        with self._lock:
            ids = [r['id'] for r in self.recruiters]
            self.states = {rid: EmailState() for rid in ids}

        self.is_sending_all = True
        succeeded = failed = groups = 0
        try:
            for start in range(0, len(ids), self.batch_size):
                group = ids[start:start + self.batch_size]
                groups += 1
                logger.info(f"Sending group {groups} ({len(group)} recruiters)")
                with ThreadPoolExecutor(max_workers=len(group)) as pool:
                    results = list(pool.map(self.send_one, group))
                succeeded += sum(1 for s in results if s.status == EmailStatus.SUCCESS)
                failed += sum(1 for s in results if s.status == EmailStatus.ERROR)
        finally:
            self.is_sending_all = False

        return SendAllReport(succeeded=succeeded, failed=failed, groups=groups)
