# services/stores.py
"""
Recruiter and configuration persistence

The dispatch engine and API depend only on the RecruiterStore and
ConfigurationStore interfaces. Every operation takes the owning account id
and rejects records that belong to another account.
"""

import csv
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from cryptography.fernet import InvalidToken
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from core.database import session_scope
from core.database_models import Configuration, Recruiter, RecruiterStatus, isoformat
from core.errors import ConfigurationInvalid, ConflictError, NotFoundError

logger = logging.getLogger(__name__)

RECRUITER_NOT_FOUND = 'Recruiter not found or you do not have permission to access it'
CONFIGURATION_NOT_FOUND = 'Email configuration not found'

CONFIGURATION_FIELDS = (
    'smtp_host', 'smtp_port', 'smtp_user', 'smtp_pass',
    'email_from', 'email_subject', 'email_rate_limit',
)

SECRET_MASK = '********'


@dataclass
class RecruiterRecord:
    """Recruiter contact as seen by the dispatch engine and the API"""
    id: int
    account_id: int
    name: str
    company: str
    email: str
    reach_out_frequency: int = 0
    last_reach_out_date: Optional[datetime] = None
    status: str = RecruiterStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'company': self.company,
            'email': self.email,
            'reachOutFrequency': self.reach_out_frequency,
            'lastReachOutDate': isoformat(self.last_reach_out_date),
            'status': self.status,
        }


@dataclass
class OutreachConfiguration:
    """Decrypted per-account SMTP and messaging settings"""
    account_id: int
    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_pass: str
    email_from: str
    email_subject: str
    email_rate_limit: int

    def to_dict(self, reveal_secret: bool = False) -> Dict[str, Any]:
        return {
            'SMTP_HOST': self.smtp_host,
            'SMTP_PORT': self.smtp_port,
            'SMTP_USER': self.smtp_user,
            'SMTP_PASS': self.smtp_pass if reveal_secret else SECRET_MASK,
            'EMAIL_FROM': self.email_from,
            'EMAIL_SUBJECT': self.email_subject,
            'EMAIL_RATE_LIMIT': self.email_rate_limit,
        }


class RecruiterStore(ABC):
    """Account-scoped recruiter persistence"""

    @abstractmethod
    def list_for_account(self, account_id: int) -> List[RecruiterRecord]:
        """All of the account's recruiters in stored order"""

    @abstractmethod
    def get_for_account(self, account_id: int, recruiter_id: int) -> RecruiterRecord:
        """Raises NotFoundError when missing or owned by another account"""

    @abstractmethod
    def create(self, account_id: int, data: Dict[str, str]) -> RecruiterRecord:
        pass

    @abstractmethod
    def create_many(self, account_id: int, rows: List[Dict[str, str]]) -> int:
        """Insert all rows or none; returns the number inserted"""

    @abstractmethod
    def update(self, account_id: int, recruiter_id: int, data: Dict[str, str]) -> RecruiterRecord:
        pass

    @abstractmethod
    def delete(self, account_id: int, recruiter_id: int) -> None:
        pass

    @abstractmethod
    def record_delivery(self, account_id: int, recruiter_id: int, sent_at: datetime) -> RecruiterRecord:
        """Increment the reach-out counter, stamp the contact time, mark sent"""

    @abstractmethod
    def record_failure(self, account_id: int, recruiter_id: int) -> RecruiterRecord:
        """Mark the recruiter failed; counter and timestamp are untouched"""


class ConfigurationStore(ABC):
    """Account-scoped SMTP configuration persistence (one per account)"""

    @abstractmethod
    def exists(self, account_id: int) -> bool:
        pass

    @abstractmethod
    def get(self, account_id: int) -> OutreachConfiguration:
        """Raises NotFoundError when the account has no configuration"""

    @abstractmethod
    def create(self, account_id: int, values: Dict[str, Any]) -> OutreachConfiguration:
        """Raises ConflictError when a configuration already exists"""

    @abstractmethod
    def update(self, account_id: int, values: Dict[str, Any]) -> OutreachConfiguration:
        """Partial update; raises NotFoundError when absent"""


def _recruiter_record(row: Recruiter) -> RecruiterRecord:
    return RecruiterRecord(
        id=row.id,
        account_id=row.user_id,
        name=row.name,
        company=row.company,
        email=row.email,
        reach_out_frequency=row.reach_out_frequency or 0,
        last_reach_out_date=row.last_reach_out_date,
        status=row.status or RecruiterStatus.PENDING,
    )


class SqlRecruiterStore(RecruiterStore):
    """Recruiters as relational rows"""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    @staticmethod
    def _scoped(session, account_id: int, recruiter_id: int) -> Recruiter:
        row = session.execute(
            select(Recruiter).where(Recruiter.id == recruiter_id, Recruiter.user_id == account_id)
        ).scalar_one_or_none()
        if row is None:
            raise NotFoundError(RECRUITER_NOT_FOUND)
        return row

    def list_for_account(self, account_id):
        with session_scope(self.session_factory) as session:
            rows = session.execute(
                select(Recruiter).where(Recruiter.user_id == account_id).order_by(Recruiter.id)
            ).scalars().all()
            return [_recruiter_record(row) for row in rows]

    def get_for_account(self, account_id, recruiter_id):
        with session_scope(self.session_factory) as session:
            return _recruiter_record(self._scoped(session, account_id, recruiter_id))

    def create(self, account_id, data):
        with session_scope(self.session_factory) as session:
            row = Recruiter(user_id=account_id, name=data['name'], company=data['company'],
                            email=data['email'], reach_out_frequency=0,
                            status=RecruiterStatus.PENDING)
            session.add(row)
            session.flush()
            return _recruiter_record(row)

    def create_many(self, account_id, rows):
        with session_scope(self.session_factory) as session:
            session.add_all([
                Recruiter(user_id=account_id, name=r['name'], company=r['company'],
                          email=r['email'], reach_out_frequency=0,
                          status=RecruiterStatus.PENDING)
                for r in rows
            ])
        return len(rows)

    def update(self, account_id, recruiter_id, data):
        with session_scope(self.session_factory) as session:
            row = self._scoped(session, account_id, recruiter_id)
            for field in ('name', 'company', 'email'):
                if field in data:
                    setattr(row, field, data[field])
            session.flush()
            return _recruiter_record(row)

    def delete(self, account_id, recruiter_id):
        with session_scope(self.session_factory) as session:
            session.delete(self._scoped(session, account_id, recruiter_id))

    def record_delivery(self, account_id, recruiter_id, sent_at):
        with session_scope(self.session_factory) as session:
            # Single-row increment so concurrent sends never lose a count
            result = session.execute(
                update(Recruiter)
                .where(Recruiter.id == recruiter_id, Recruiter.user_id == account_id)
                .values(reach_out_frequency=Recruiter.reach_out_frequency + 1,
                        last_reach_out_date=sent_at,
                        status=RecruiterStatus.SENT)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFoundError(RECRUITER_NOT_FOUND)
            return _recruiter_record(self._scoped(session, account_id, recruiter_id))

    def record_failure(self, account_id, recruiter_id):
        with session_scope(self.session_factory) as session:
            row = self._scoped(session, account_id, recruiter_id)
            row.status = RecruiterStatus.FAILED
            session.flush()
            return _recruiter_record(row)


class CsvRecruiterStore(RecruiterStore):
    """
    Recruiters kept in a single flat CSV file

    Every write rewrites the whole snapshot through a temporary file, so a
    crash mid-write leaves the previous snapshot intact.
    """

    COLUMNS = ['Id', 'AccountId', 'Name', 'Email', 'Company',
               'ReachOutCount', 'Status', 'LastContactDate']

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.RLock()

    def _read(self) -> List[RecruiterRecord]:
        if not os.path.exists(self.path):
            return []
        records = []
        with open(self.path, newline='', encoding='utf-8') as handle:
            for line_no, row in enumerate(csv.DictReader(handle), start=2):
                try:
                    last = row.get('LastContactDate') or None
                    records.append(RecruiterRecord(
                        id=int(row['Id']),
                        account_id=int(row['AccountId']),
                        name=row['Name'],
                        company=row.get('Company') or '',
                        email=row['Email'],
                        reach_out_frequency=int(row.get('ReachOutCount') or 0),
                        last_reach_out_date=datetime.fromisoformat(last) if last else None,
                        status=(row.get('Status') or RecruiterStatus.PENDING).lower(),
                    ))
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"Skipping malformed row {line_no} in {self.path}: {e}")
        return records

    def _write(self, records: List[RecruiterRecord]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp_path = tempfile.mkstemp(prefix='.recruiters-', suffix='.csv', dir=directory)
        try:
            with os.fdopen(fd, 'w', newline='', encoding='utf-8') as handle:
                writer = csv.DictWriter(handle, fieldnames=self.COLUMNS)
                writer.writeheader()
                for r in records:
                    writer.writerow({
                        'Id': r.id,
                        'AccountId': r.account_id,
                        'Name': r.name,
                        'Email': r.email,
                        'Company': r.company,
                        'ReachOutCount': r.reach_out_frequency,
                        'Status': r.status.capitalize(),
                        'LastContactDate': isoformat(r.last_reach_out_date) or '',
                    })
            os.replace(tmp_path, self.path)
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    @staticmethod
    def _find(records, account_id, recruiter_id) -> RecruiterRecord:
        for record in records:
            if record.id == recruiter_id and record.account_id == account_id:
                return record
        raise NotFoundError(RECRUITER_NOT_FOUND)

    def list_for_account(self, account_id):
        with self._lock:
            return [r for r in self._read() if r.account_id == account_id]

    def get_for_account(self, account_id, recruiter_id):
        with self._lock:
            return self._find(self._read(), account_id, recruiter_id)

    def create(self, account_id, data):
        with self._lock:
            records = self._read()
            next_id = max((r.id for r in records), default=0) + 1
            record = RecruiterRecord(id=next_id, account_id=account_id, name=data['name'],
                                     company=data['company'], email=data['email'])
            records.append(record)
            self._write(records)
            return record

    def create_many(self, account_id, rows):
        with self._lock:
            records = self._read()
            next_id = max((r.id for r in records), default=0) + 1
            for offset, data in enumerate(rows):
                records.append(RecruiterRecord(id=next_id + offset, account_id=account_id,
                                               name=data['name'], company=data['company'],
                                               email=data['email']))
            self._write(records)
            return len(rows)

    def update(self, account_id, recruiter_id, data):
        with self._lock:
            records = self._read()
            record = self._find(records, account_id, recruiter_id)
            for field in ('name', 'company', 'email'):
                if field in data:
                    setattr(record, field, data[field])
            self._write(records)
            return record

    def delete(self, account_id, recruiter_id):
        with self._lock:
            records = self._read()
            record = self._find(records, account_id, recruiter_id)
            records.remove(record)
            self._write(records)

    def record_delivery(self, account_id, recruiter_id, sent_at):
        with self._lock:
            records = self._read()
            record = self._find(records, account_id, recruiter_id)
            record.reach_out_frequency += 1
            record.last_reach_out_date = sent_at
            record.status = RecruiterStatus.SENT
            self._write(records)
            return record

    def record_failure(self, account_id, recruiter_id):
        with self._lock:
            records = self._read()
            record = self._find(records, account_id, recruiter_id)
            record.status = RecruiterStatus.FAILED
            self._write(records)
            return record


class SqlConfigurationStore(ConfigurationStore):
    """Configuration rows with the SMTP password encrypted at rest"""

    def __init__(self, session_factory, security_manager):
        self.session_factory = session_factory
        self.security_manager = security_manager

    def _to_record(self, row: Configuration) -> OutreachConfiguration:
        try:
            password = self.security_manager.decrypt_sensitive_data(row.smtp_pass)
        except InvalidToken:
            raise ConfigurationInvalid([{
                'field': 'SMTP_PASS',
                'message': 'Stored SMTP password cannot be decrypted; save the configuration again',
            }])
        return OutreachConfiguration(
            account_id=row.user_id,
            smtp_host=row.smtp_host,
            smtp_port=row.smtp_port,
            smtp_user=row.smtp_user,
            smtp_pass=password,
            email_from=row.email_from,
            email_subject=row.email_subject,
            email_rate_limit=row.email_rate_limit,
        )

    @staticmethod
    def _row(session, account_id: int) -> Optional[Configuration]:
        return session.execute(
            select(Configuration).where(Configuration.user_id == account_id)
        ).scalar_one_or_none()

    def _apply(self, row: Configuration, values: Dict[str, Any]) -> None:
        for field in CONFIGURATION_FIELDS:
            if field not in values:
                continue
            value = values[field]
            if field == 'smtp_pass':
                if value in (None, '', SECRET_MASK):
                    continue
                value = self.security_manager.encrypt_sensitive_data(value)
            setattr(row, field, value)

    def exists(self, account_id):
        with session_scope(self.session_factory) as session:
            return self._row(session, account_id) is not None

    def get(self, account_id):
        with session_scope(self.session_factory) as session:
            row = self._row(session, account_id)
            if row is None:
                raise NotFoundError(CONFIGURATION_NOT_FOUND)
            return self._to_record(row)

    def create(self, account_id, values):
        try:
            with session_scope(self.session_factory) as session:
                if self._row(session, account_id) is not None:
                    raise ConflictError('Email configuration already exists')
                row = Configuration(user_id=account_id)
                self._apply(row, values)
                session.add(row)
                session.flush()
                return self._to_record(row)
        except IntegrityError:
            raise ConflictError('Email configuration already exists')

    def update(self, account_id, values):
        with session_scope(self.session_factory) as session:
            row = self._row(session, account_id)
            if row is None:
                raise NotFoundError(CONFIGURATION_NOT_FOUND)
            self._apply(row, values)
            session.flush()
            return self._to_record(row)


def build_recruiter_store(config, session_factory) -> RecruiterStore:
    """Select the recruiter backend named by RECRUITER_BACKEND"""
    backend = (config.get('RECRUITER_BACKEND') or 'sql').lower()
    if backend == 'csv':
        logger.info(f"Recruiters stored in CSV file {config['RECRUITER_CSV_PATH']}")
        return CsvRecruiterStore(config['RECRUITER_CSV_PATH'])
    if backend != 'sql':
        raise ValueError(f"Unknown RECRUITER_BACKEND: {backend}")
    return SqlRecruiterStore(session_factory)
