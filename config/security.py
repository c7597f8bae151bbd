# config/security.py
"""
Security settings shared by every environment
"""

import os
import secrets
from datetime import timedelta


class SecurityConfig:
    """Security configuration settings"""

    # Encryption of SMTP secrets at rest
    ENCRYPTION_KEY = os.environ.get('ENCRYPTION_KEY') or secrets.token_urlsafe(32)
    SECRET_KEY = os.environ.get('SECRET_KEY') or secrets.token_urlsafe(32)

    # Bearer tokens
    JWT_SECRET = os.environ.get('JWT_SECRET') or secrets.token_urlsafe(32)
    JWT_REFRESH_SECRET = os.environ.get('JWT_REFRESH_SECRET') or secrets.token_urlsafe(32)
    JWT_ALGORITHM = 'HS256'
    ACCESS_TOKEN_TTL = timedelta(hours=1)
    REFRESH_TOKEN_TTL = timedelta(days=7)

    # Password hashing
    PASSWORD_HASH_ITERATIONS = int(os.environ.get('PASSWORD_HASH_ITERATIONS', 200000))
    MIN_PASSWORD_LENGTH = 6

    # Request rate limiting (Flask-Limiter)
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')
    RATELIMIT_STRATEGY = 'fixed-window'
    RATELIMIT_HEADERS_ENABLED = True
    AUTH_RATE_LIMIT = os.environ.get('AUTH_RATE_LIMIT', '5 per minute')

    # Security headers
    SECURITY_HEADERS = {
        'X-Content-Type-Options': 'nosniff',
        'X-Frame-Options': 'DENY',
        'X-XSS-Protection': '1; mode=block',
        'Strict-Transport-Security': 'max-age=31536000; includeSubDomains',
        'Content-Security-Policy': "default-src 'none'; frame-ancestors 'none'",
        'Referrer-Policy': 'strict-origin-when-cross-origin',
        'Permissions-Policy': 'camera=(), microphone=(), geolocation=()'
    }

    # File upload security
    MAX_CONTENT_LENGTH = 2 * 1024 * 1024  # 2MB
    UPLOAD_EXTENSIONS = {'.csv', '.txt'}


class ProductionSecurityConfig(SecurityConfig):
    """Hardened settings for deployments behind a reverse proxy"""

    PROXY_FIX = True
