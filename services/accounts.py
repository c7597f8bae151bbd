# services/accounts.py
"""
Account registration, login and token refresh
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from core.database import session_scope
from core.database_models import Configuration, User
from core.errors import ConflictError, UnauthorizedError
from core.security_manager import REFRESH, SecurityManager, TokenPair

logger = logging.getLogger(__name__)


class AccountService:
    """Credential flows backed by the users table"""

    def __init__(self, session_factory, security_manager: SecurityManager):
        self.session_factory = session_factory
        self.security = security_manager

    @staticmethod
    def _has_configured(session, user_id: int) -> bool:
        return session.execute(
            select(Configuration.id).where(Configuration.user_id == user_id)
        ).first() is not None

    def _issue(self, session, user: User) -> TokenPair:
        """Sign a new pair and rotate the stored refresh-token hash"""
        tokens = self.security.issue_token_pair(
            user.id, user.email, user.name, self._has_configured(session, user.id)
        )
        user.refresh_token_hash = self.security.hash_password(tokens.refresh_token)
        return tokens

    def register(self, name: str, email: str, password: str) -> TokenPair:
        email = email.strip().lower()
        try:
            with session_scope(self.session_factory) as session:
                existing = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
                if existing is not None:
                    raise ConflictError('User already exists')

                user = User(name=name.strip(), email=email,
                            password_hash=self.security.hash_password(password))
                session.add(user)
                session.flush()
                tokens = self._issue(session, user)
        except IntegrityError:
            raise ConflictError('User already exists')

        self.security.log_security_event('account_registered', {'email': email})
        return tokens

    def login(self, email: str, password: str) -> TokenPair:
        email = email.strip().lower()
        with session_scope(self.session_factory) as session:
            user = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
            if user is None or not self.security.verify_password(password, user.password_hash):
                self.security.log_security_event('login_failed', {'email': email})
                raise UnauthorizedError('Invalid credentials')
            tokens = self._issue(session, user)

        self.security.log_security_event('login_success', {'user_id': user.id})
        return tokens

    def refresh(self, refresh_token: str) -> TokenPair:
        claims = self.security.decode_token(refresh_token, expected_type=REFRESH)
        with session_scope(self.session_factory) as session:
            user = session.get(User, claims.id)
            if user is None or not self.security.verify_password(refresh_token, user.refresh_token_hash):
                self.security.log_security_event('refresh_rejected', {'user_id': claims.id})
                raise UnauthorizedError('Invalid refresh token')
            return self._issue(session, user)
