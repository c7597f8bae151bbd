# services/body_generator.py
"""
Message body selection for outreach emails

A body is either one of the static templates (first contact or follow-up)
or text produced by a generation backend. Generation is behind the
BodyGenerator interface so tests can stub it.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import requests

from core.errors import BodyGenerationError

logger = logging.getLogger(__name__)


class BodyKind(Enum):
    FIRST_CONTACT = "first_contact"
    FOLLOW_UP = "follow_up"
    GENERATED = "generated"


@dataclass
class OutreachContext:
    """Everything a body needs to address one recruiter"""
    recruiter_name: str
    company: str
    sender_name: str
    sender_email: str
    reach_out_count: int = 0

    @property
    def is_follow_up(self) -> bool:
        return self.reach_out_count > 0

    def as_template_variables(self) -> dict:
        return {
            'recruiter_name': self.recruiter_name,
            'company': self.company,
            'sender_name': self.sender_name,
            'sender_email': self.sender_email,
            'reach_out_count': self.reach_out_count,
        }


@dataclass
class MessageBody:
    """Resolved body for one send"""
    kind: BodyKind
    html: str
    ai_requested: bool = False
    ai_fallback: bool = False


class BodyGenerator(ABC):
    """Produces a message body from an outreach context"""

    @abstractmethod
    def generate(self, context: OutreachContext) -> str:
        """
        Returns:
            Raw body text or HTML

        Raises:
            BodyGenerationError: backend unavailable or response unusable
        """


PROMPT_TEMPLATE = (
    "Write a short, professional cold email (HTML paragraphs only, no subject line) "
    "to {recruiter_name}, a recruiter at {company}, expressing interest in full-stack "
    "engineering roles. {follow_up}"
    "Keep the sender name as {sender_name}, email: {sender_email}. "
    "Do not include placeholders."
)


def build_prompt(context: OutreachContext) -> str:
    follow_up = ("This is a polite follow-up to an earlier email that has not been answered yet. "
                 if context.is_follow_up else "")
    return PROMPT_TEMPLATE.format(
        recruiter_name=context.recruiter_name,
        company=context.company,
        follow_up=follow_up,
        sender_name=context.sender_name,
        sender_email=context.sender_email,
    )


class ChatCompletionBodyGenerator(BodyGenerator):
    """
    Generator backed by an OpenAI-compatible /v1/chat/completions endpoint
    (LM Studio, llama.cpp server, vLLM and similar)
    """

    def __init__(self,
                 api_url: str,
                 model: str,
                 temperature: float = 0.7,
                 timeout: float = 30.0,
                 session: Optional[requests.Session] = None):
        self.api_url = api_url
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self.session = session or requests.Session()

    def generate(self, context: OutreachContext) -> str:
        payload = {
            'model': self.model,
            'messages': [
                {'role': 'system', 'content': 'You write concise, friendly job outreach emails.'},
                {'role': 'user', 'content': build_prompt(context)},
            ],
            'temperature': self.temperature,
            'max_tokens': -1,
            'stream': False,
        }

        try:
            response = self.session.post(self.api_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise BodyGenerationError(f"Generation request failed: {e}") from e
        except ValueError as e:
            raise BodyGenerationError("Generation response is not JSON") from e

        try:
            content = data['choices'][0]['message']['content']
        except (KeyError, IndexError, TypeError) as e:
            raise BodyGenerationError("Generation response has no message content") from e

        if not isinstance(content, str) or not content.strip():
            raise BodyGenerationError("Generation response content is empty")
        return content
