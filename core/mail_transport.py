# core/mail_transport.py
"""
SMTP transport built from an account's stored configuration

A transport is created per dispatch call from the caller's current
configuration and holds no state between calls.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate, parseaddr
from typing import Callable, List, Optional

import aiosmtplib
from email_validator import validate_email, EmailNotValidError

from core.errors import ConfigurationInvalid, DeliveryError
from core.smtp_responses import classify_reply

logger = logging.getLogger(__name__)

IMPLICIT_TLS_PORT = 465


@dataclass
class SMTPSettings:
    """Validated SMTP settings for one account"""
    host: str
    port: int
    username: str
    password: str
    from_address: str
    from_name: str
    subject: str
    rate_limit: int  # emails per minute
    timeout: float = 60.0

    @property
    def min_delay(self) -> float:
        """Minimum seconds between two sends"""
        return 60.0 / self.rate_limit

    @property
    def sender_domain(self) -> str:
        return self.from_address.rsplit('@', 1)[-1]

    @classmethod
    def from_configuration(cls, configuration, timeout: float = 60.0) -> 'SMTPSettings':
        """
        Validate a stored configuration

        Raises:
            ConfigurationInvalid: listing every missing or malformed field
        """
        errors: List[dict] = []

        def required(field: str, value) -> str:
            text = '' if value is None else str(value).strip()
            if not text:
                errors.append({'field': field, 'message': f'{field} is required'})
            return text

        host = required('SMTP_HOST', configuration.smtp_host)
        username = required('SMTP_USER', configuration.smtp_user)
        subject = required('EMAIL_SUBJECT', configuration.email_subject)
        raw_from = required('EMAIL_FROM', configuration.email_from)
        password = configuration.smtp_pass or ''
        if not password:
            errors.append({'field': 'SMTP_PASS', 'message': 'SMTP_PASS is required'})

        port = _positive_int(configuration.smtp_port)
        if port is None or port > 65535:
            errors.append({'field': 'SMTP_PORT', 'message': 'SMTP_PORT must be a number between 1 and 65535'})

        rate_limit = _positive_int(configuration.email_rate_limit)
        if rate_limit is None:
            errors.append({'field': 'EMAIL_RATE_LIMIT', 'message': 'EMAIL_RATE_LIMIT must be a positive number of emails per minute'})

        from_name, from_address = parseaddr(raw_from)
        if raw_from:
            try:
                from_address = validate_email(from_address, check_deliverability=False).normalized
            except EmailNotValidError as e:
                errors.append({'field': 'EMAIL_FROM', 'message': f'EMAIL_FROM is not a valid address: {e}'})

        if errors:
            raise ConfigurationInvalid(errors)

        return cls(
            host=host,
            port=port,
            username=username,
            password=password,
            from_address=from_address,
            from_name=from_name or from_address.split('@', 1)[0],
            subject=subject,
            rate_limit=rate_limit,
            timeout=timeout,
        )


def _positive_int(value) -> Optional[int]:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


@dataclass
class SendReceipt:
    """Accepted message"""
    message_id: str
    response: str


class SMTPTransport:
    """
    Sends single HTML messages through the configured SMTP relay
    """

    def __init__(self, settings: SMTPSettings, html_to_text: Optional[Callable[[str], str]] = None):
        self.settings = settings
        self.html_to_text = html_to_text

    def build_message(self, to_address: str, html_body: str) -> MIMEMultipart:
        """Create a multipart/alternative message with text and HTML parts"""
        msg = MIMEMultipart('alternative')
        msg['Subject'] = self.settings.subject
        msg['From'] = formataddr((self.settings.from_name, self.settings.from_address))
        msg['To'] = to_address
        msg['Date'] = formatdate(localtime=True)
        msg['Message-ID'] = f"<{uuid.uuid4()}@{self.settings.sender_domain}>"

        if self.html_to_text is not None:
            msg.attach(MIMEText(self.html_to_text(html_body), 'plain', 'utf-8'))
        msg.attach(MIMEText(html_body, 'html', 'utf-8'))
        return msg

    def send(self, to_address: str, html_body: str) -> SendReceipt:
        """
        Deliver one message

        Raises:
            DeliveryError: connection, authentication or relay rejection
        """
        msg = self.build_message(to_address, html_body)
        logger.debug(f"Sending email via SMTP {self.settings.host}:{self.settings.port} to {to_address}")
        response = asyncio.run(_async_send_smtp(msg, self.settings))
        return SendReceipt(message_id=msg['Message-ID'], response=response)


async def _async_send_smtp(msg: MIMEMultipart, settings: SMTPSettings) -> str:
    """
    Async SMTP session: connect, (START)TLS, authenticate, send, quit
    """
    implicit_tls = settings.port == IMPLICIT_TLS_PORT
    smtp = aiosmtplib.SMTP(
        hostname=settings.host,
        port=settings.port,
        timeout=settings.timeout,
        use_tls=implicit_tls,
        # None upgrades with STARTTLS whenever the server offers it
        start_tls=False if implicit_tls else None,
    )

    try:
        async with smtp:
            await smtp.login(settings.username, settings.password)
            _, response = await smtp.send_message(msg)
            return response
    except aiosmtplib.SMTPResponseException as e:
        reply = classify_reply(e.code)
        raise DeliveryError(
            f"SMTP error {e.code} ({reply.description}): {e.message}",
            smtp_code=e.code,
            transient=reply.transient,
        ) from e
    except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
        raise DeliveryError(f"SMTP delivery failed: {e}", transient=True) from e


def build_transport(configuration, timeout: float = 60.0,
                    html_to_text: Optional[Callable[[str], str]] = None) -> SMTPTransport:
    """Validate a stored configuration and wrap it in a transport"""
    settings = SMTPSettings.from_configuration(configuration, timeout=timeout)
    return SMTPTransport(settings, html_to_text=html_to_text)
