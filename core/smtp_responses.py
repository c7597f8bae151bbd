# SMTP reply-code classification (RFC 5321 section 4.2)

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class ResponseCategory(Enum):
    """SMTP Response Categories based on RFC 5321"""
    SUCCESS = "success"
    TEMP_FAIL = "temp_fail"
    PERM_FAIL = "perm_fail"
    UNKNOWN = "unknown"


@dataclass
class SMTPReply:
    """Classified SMTP reply"""
    code: Optional[int]
    category: ResponseCategory
    description: str

    @property
    def transient(self) -> bool:
        return self.category == ResponseCategory.TEMP_FAIL


# Replies commonly returned while submitting through a provider relay
KNOWN_REPLIES: Dict[int, str] = {
    421: 'Service not available, closing transmission channel',
    450: 'Mailbox unavailable (busy or temporarily blocked)',
    451: 'Local error in processing; try again later',
    452: 'Insufficient system storage',
    454: 'TLS not available due to temporary reason',
    500: 'Syntax error, command unrecognized',
    501: 'Syntax error in parameters or arguments',
    503: 'Bad sequence of commands',
    530: 'Authentication required',
    534: 'Authentication mechanism is too weak',
    535: 'Authentication credentials invalid',
    550: 'Mailbox unavailable or message rejected by policy',
    551: 'User not local',
    552: 'Message exceeds storage allocation',
    553: 'Mailbox name not allowed',
    554: 'Transaction failed',
}


def classify_reply(code: Optional[int]) -> SMTPReply:
    """Map a numeric reply code to its category and a short description"""
    if code is None:
        return SMTPReply(None, ResponseCategory.UNKNOWN, 'No SMTP reply received')

    first_digit = code // 100
    if first_digit in (2, 3):
        category = ResponseCategory.SUCCESS
    elif first_digit == 4:
        category = ResponseCategory.TEMP_FAIL
    elif first_digit == 5:
        category = ResponseCategory.PERM_FAIL
    else:
        category = ResponseCategory.UNKNOWN

    description = KNOWN_REPLIES.get(code)
    if description is None:
        description = {
            ResponseCategory.SUCCESS: 'Accepted',
            ResponseCategory.TEMP_FAIL: 'Temporary failure',
            ResponseCategory.PERM_FAIL: 'Permanent failure',
        }.get(category, 'Unrecognized reply')
    return SMTPReply(code, category, description)
