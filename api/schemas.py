# api/schemas.py
"""
Request payload schemas
"""

from email.utils import parseaddr
from typing import Any, Dict, List

from email_validator import validate_email, EmailNotValidError
from flask import current_app
from marshmallow import EXCLUDE, Schema, fields, validate, validates
from marshmallow import ValidationError as SchemaError

from core.errors import ValidationError

NON_EMPTY = validate.Length(min=1)


class StrippedString(fields.String):
    """String field that trims surrounding whitespace"""

    def _deserialize(self, value, attr, data, **kwargs):
        result = super()._deserialize(value, attr, data, **kwargs)
        return result.strip() if isinstance(result, str) else result


class RegisterSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    name = StrippedString(required=True, validate=validate.Length(min=1, max=120))
    email = fields.Email(required=True)
    password = fields.String(required=True)

    @validates('password')
    def validate_password(self, value, **kwargs):
        min_length = current_app.config['MIN_PASSWORD_LENGTH']
        if len(value) < min_length:
            raise SchemaError(f'Shorter than minimum length {min_length}.')


class LoginSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    email = fields.Email(required=True)
    password = fields.String(required=True, validate=NON_EMPTY)


class RefreshSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    refresh_token = fields.String(required=True, data_key='refreshToken', validate=NON_EMPTY)


class RecruiterSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    name = StrippedString(required=True, validate=NON_EMPTY)
    email = fields.Email(required=True)
    company = StrippedString(required=True, validate=NON_EMPTY)


class ConfigurationSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    smtp_host = StrippedString(required=True, data_key='SMTP_HOST', validate=NON_EMPTY)
    smtp_port = fields.Integer(required=True, data_key='SMTP_PORT',
                               validate=validate.Range(min=1, max=65535))
    smtp_user = StrippedString(required=True, data_key='SMTP_USER', validate=NON_EMPTY)
    smtp_pass = fields.String(required=True, data_key='SMTP_PASS', validate=NON_EMPTY)
    email_from = StrippedString(required=True, data_key='EMAIL_FROM', validate=NON_EMPTY)
    email_subject = StrippedString(required=True, data_key='EMAIL_SUBJECT', validate=NON_EMPTY)
    email_rate_limit = fields.Integer(required=True, data_key='EMAIL_RATE_LIMIT',
                                      validate=validate.Range(min=1))

    @validates('email_from')
    def validate_email_from(self, value, **kwargs):
        # Accepts 'Name <address>' as well as a bare address
        _, address = parseaddr(value)
        try:
            validate_email(address, check_deliverability=False)
        except EmailNotValidError as e:
            raise SchemaError(f'Not a valid sender address: {e}')


class SendEmailSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    use_ai = fields.Boolean(load_default=False, data_key='useAI')


def flatten_messages(messages: Any, prefix: str = '') -> List[Dict[str, str]]:
    """Turn marshmallow's nested message dict into [{field, message}]"""
    errors = []
    if isinstance(messages, dict):
        for key, value in messages.items():
            name = f"{prefix}.{key}" if prefix else str(key)
            errors.extend(flatten_messages(value, name))
    elif isinstance(messages, list):
        for message in messages:
            if isinstance(message, (dict, list)):
                errors.extend(flatten_messages(message, prefix))
            else:
                errors.append({'field': prefix or '_schema', 'message': str(message)})
    else:
        errors.append({'field': prefix or '_schema', 'message': str(messages)})
    return errors


def load_or_raise(schema: Schema, payload: Any, **kwargs):
    """Validate a payload, converting schema errors to the API error type"""
    if payload is None:
        raise ValidationError('Request body must be valid JSON')
    try:
        return schema.load(payload, **kwargs)
    except SchemaError as e:
        raise ValidationError('Validation failed', errors=flatten_messages(e.messages))
