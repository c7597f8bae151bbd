# core/security_manager.py
"""
Security Manager for the outreach service
Covers:
- Password and refresh-token hashing (PBKDF2)
- Encryption of SMTP credentials at rest (Fernet)
- Access / refresh token issue and verification (JWT)
- Security audit logging
"""

import base64
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional

import jwt
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from flask import has_request_context, request

from core.errors import UnauthorizedError

# Configure logging
logger = logging.getLogger(__name__)

HASH_SCHEME = 'pbkdf2_sha256'
ACCESS = 'access'
REFRESH = 'refresh'


@dataclass
class TokenPair:
    """Access and refresh token issued together"""
    access_token: str
    refresh_token: str


@dataclass
class TokenClaims:
    """Verified token payload"""
    id: int
    email: str
    name: str
    type: str
    has_configured: bool


class SecurityManager:
    """
    Credential handling for accounts and stored SMTP secrets
    """

    def __init__(self, config: Mapping[str, Any]):
        """
        Initialize security manager

        Args:
            config: Mapping with the keys defined on config.security.SecurityConfig
        """
        self.jwt_secret = config['JWT_SECRET']
        self.jwt_refresh_secret = config['JWT_REFRESH_SECRET']
        self.jwt_algorithm = config.get('JWT_ALGORITHM', 'HS256')
        self.access_token_ttl = config.get('ACCESS_TOKEN_TTL', timedelta(hours=1))
        self.refresh_token_ttl = config.get('REFRESH_TOKEN_TTL', timedelta(days=7))
        self.password_iterations = int(config.get('PASSWORD_HASH_ITERATIONS', 200000))

        self.cipher = None
        self._init_encryption(config['ENCRYPTION_KEY'])

        logger.info("SecurityManager initialized")

    def _init_encryption(self, master_key: str):
        """Derive the Fernet key from the configured master key"""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=b'outreach_smtp_secret_salt',
            iterations=100000,
        )
        key = base64.urlsafe_b64encode(kdf.derive(master_key.encode()))
        self.cipher = Fernet(key)

    def encrypt_sensitive_data(self, data: str) -> str:
        """
        Encrypt sensitive data with authenticated encryption

        Args:
            data: Plain text data to encrypt

        Returns:
            Fernet token as text
        """
        return self.cipher.encrypt(str(data).encode('utf-8')).decode('ascii')

    def decrypt_sensitive_data(self, encrypted_data: str) -> str:
        """
        Decrypt data produced by encrypt_sensitive_data

        Raises:
            cryptography.fernet.InvalidToken: the data was tampered with or
                encrypted under a different key
        """
        try:
            return self.cipher.decrypt(encrypted_data.encode('ascii')).decode('utf-8')
        except InvalidToken:
            logger.error("Decryption failed: token invalid for the configured key")
            raise

    def hash_password(self, password: str, salt: Optional[str] = None,
                      iterations: Optional[int] = None) -> str:
        """
        Hash a secret with PBKDF2-SHA256

        Returns:
            Encoded hash of the form 'pbkdf2_sha256$<iterations>$<salt>$<digest>'
        """
        if salt is None:
            salt = secrets.token_hex(16)
        iterations = iterations or self.password_iterations

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt.encode(),
            iterations=iterations,
        )
        digest = base64.b64encode(kdf.derive(password.encode())).decode()
        return f"{HASH_SCHEME}${iterations}${salt}${digest}"

    def verify_password(self, password: str, encoded: Optional[str]) -> bool:
        """Check a secret against a hash produced by hash_password"""
        if not encoded:
            return False
        try:
            scheme, iterations, salt, _ = encoded.split('$', 3)
        except ValueError:
            return False
        if scheme != HASH_SCHEME or not iterations.isdigit():
            return False
        computed = self.hash_password(password, salt, int(iterations))
        return hmac.compare_digest(encoded, computed)

    def issue_token_pair(self, user_id: int, email: str, name: str,
                         has_configured: bool) -> TokenPair:
        """Sign a fresh access/refresh pair for an account"""
        now = datetime.now(timezone.utc)
        claims = {
            'id': user_id,
            'email': email,
            'name': name,
            'has_configured': bool(has_configured),
            'iat': now,
        }
        access = jwt.encode(
            {**claims, 'type': ACCESS, 'exp': now + self.access_token_ttl},
            self.jwt_secret, algorithm=self.jwt_algorithm,
        )
        # jti keeps every refresh token unique so rotation invalidates the old one
        refresh = jwt.encode(
            {**claims, 'type': REFRESH, 'jti': secrets.token_hex(16),
             'exp': now + self.refresh_token_ttl},
            self.jwt_refresh_secret, algorithm=self.jwt_algorithm,
        )
        return TokenPair(access_token=access, refresh_token=refresh)

    def decode_token(self, token: str, expected_type: str = ACCESS) -> TokenClaims:
        """
        Verify signature, expiry and type tag of a token

        Raises:
            UnauthorizedError: on any verification failure
        """
        secret = self.jwt_secret if expected_type == ACCESS else self.jwt_refresh_secret
        try:
            payload = jwt.decode(token, secret, algorithms=[self.jwt_algorithm])
        except jwt.ExpiredSignatureError:
            raise UnauthorizedError('Token has expired')
        except jwt.InvalidTokenError:
            raise UnauthorizedError('Invalid token')

        if payload.get('type') != expected_type:
            raise UnauthorizedError('Invalid token type')

        try:
            return TokenClaims(
                id=int(payload['id']),
                email=payload['email'],
                name=payload['name'],
                type=payload['type'],
                has_configured=bool(payload.get('has_configured', False)),
            )
        except (KeyError, TypeError, ValueError):
            raise UnauthorizedError('Invalid token')

    def log_security_event(self, event_type: str, details: Dict[str, Any] = None):
        """
        Log security event for audit trail

        Args:
            event_type: Type of security event
            details: Additional event details
        """
        source_ip = 'system'
        resource = 'system'
        if has_request_context():
            source_ip = request.remote_addr or 'unknown'
            resource = request.endpoint or request.path

        logger.info(f"Security event {event_type} from {source_ip} on {resource}: {details or {}}")


def init_security_manager(app) -> SecurityManager:
    """Create the security manager for an application"""
    manager = SecurityManager(app.config)
    app.security_manager = manager
    return manager
