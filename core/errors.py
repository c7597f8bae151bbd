# core/errors.py
"""
Application error taxonomy

Every error that should reach an API caller derives from AppError and carries
the HTTP status code and the 'fail' / 'error' status string used in response
bodies. The application factory maps these to a uniform JSON body.
"""

from typing import Any, Dict, List, Optional


class AppError(Exception):
    """Base class for errors surfaced to API callers"""

    status_code = 500
    status = 'error'

    def __init__(self, message: str, errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors

    def to_dict(self) -> Dict[str, Any]:
        body = {
            'success': False,
            'status': self.status,
            'message': self.message,
        }
        if self.errors:
            body['errors'] = self.errors
        return body


class ValidationError(AppError):
    """Malformed or incomplete input"""
    status_code = 400
    status = 'fail'


class ConfigurationInvalid(ValidationError):
    """Stored SMTP configuration is missing fields or has malformed values"""

    def __init__(self, errors: List[Dict[str, str]]):
        super().__init__('Incomplete email configuration', errors=errors)


class UnauthorizedError(AppError):
    status_code = 401
    status = 'fail'


class NotFoundError(AppError):
    status_code = 404
    status = 'fail'


class ConflictError(AppError):
    status_code = 409
    status = 'fail'


class InternalError(AppError):
    status_code = 500
    status = 'error'


class DeliveryError(InternalError):
    """SMTP delivery failed for one message"""

    def __init__(self, message: str, smtp_code: Optional[int] = None, transient: bool = False):
        super().__init__(message)
        self.smtp_code = smtp_code
        self.transient = transient


class BodyGenerationError(Exception):
    """Text generation backend failed or returned an unusable response"""
