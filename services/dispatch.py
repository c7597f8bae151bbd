# services/dispatch.py
"""
Outreach dispatch: single and batch sends with rate gating and state updates
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from core.database_models import utcnow
from core.errors import BodyGenerationError, NotFoundError
from core.mail_transport import SMTPTransport, build_transport
from core.template_engine import FIRST_CONTACT_TEMPLATE, FOLLOW_UP_TEMPLATE, OutreachTemplateEngine
from services.body_generator import BodyGenerator, BodyKind, MessageBody, OutreachContext
from services.rate_gate import RateGate
from services.stores import ConfigurationStore, RecruiterRecord, RecruiterStore

logger = logging.getLogger(__name__)


@dataclass
class SendOutcome:
    """Result of a successful single send"""
    recruiter: RecruiterRecord
    is_ai_generated: bool
    ai_fallback: bool
    execution_time_ms: int
    message_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': True,
            'message': f"Email sent successfully to {self.recruiter.email}",
            'isAiGenerated': self.is_ai_generated,
            'aiFallback': self.ai_fallback,
            'executionTimeMs': self.execution_time_ms,
            'recruiter': self.recruiter.to_dict(),
        }


@dataclass
class BatchSummary:
    """Aggregated outcomes of one batch run"""
    sent: int = 0
    failed: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'sent': self.sent, 'failed': self.failed, 'errors': list(self.errors)}


class OutreachDispatcher:
    """
    Sends outreach emails for an account

    Each call builds its transport from the account's current configuration.
    Sends for one account pass through a shared RateGate keyed by account id,
    so single sends and batch runs of the same account never crowd each other
    while other accounts are unaffected.
    """

    def __init__(self,
                 recruiters: RecruiterStore,
                 configurations: ConfigurationStore,
                 template_engine: OutreachTemplateEngine,
                 body_generator: Optional[BodyGenerator] = None,
                 transport_factory: Callable[..., SMTPTransport] = build_transport,
                 rate_gate: Optional[RateGate] = None,
                 smtp_timeout: float = 60.0):
        self.recruiters = recruiters
        self.configurations = configurations
        self.template_engine = template_engine
        self.body_generator = body_generator
        self.transport_factory = transport_factory
        self.rate_gate = rate_gate or RateGate()
        self.smtp_timeout = smtp_timeout

    def _open_transport(self, account_id: int) -> SMTPTransport:
        configuration = self.configurations.get(account_id)
        return self.transport_factory(
            configuration,
            timeout=self.smtp_timeout,
            html_to_text=self.template_engine.html_to_text,
        )

    @staticmethod
    def _context(recruiter: RecruiterRecord, transport: SMTPTransport) -> OutreachContext:
        return OutreachContext(
            recruiter_name=recruiter.name,
            company=recruiter.company,
            sender_name=transport.settings.from_name,
            sender_email=transport.settings.from_address,
            reach_out_count=recruiter.reach_out_frequency,
        )

    def static_body(self, context: OutreachContext) -> MessageBody:
        if context.is_follow_up:
            kind, template = BodyKind.FOLLOW_UP, FOLLOW_UP_TEMPLATE
        else:
            kind, template = BodyKind.FIRST_CONTACT, FIRST_CONTACT_TEMPLATE
        html = self.template_engine.render(template, context.as_template_variables())
        return MessageBody(kind=kind, html=html)

    def compose(self, context: OutreachContext, use_ai: bool) -> MessageBody:
        """
        Resolve the body for one send

        Generation failures never abort a send: the static body for the
        recruiter's reach-out count is used instead.
        """
        if not use_ai:
            return self.static_body(context)

        try:
            if self.body_generator is None:
                raise BodyGenerationError("No generation backend configured")
            html = self.template_engine.sanitize_html(self.body_generator.generate(context))
            if not html:
                raise BodyGenerationError("Generated body is empty after sanitizing")
            return MessageBody(kind=BodyKind.GENERATED, html=html, ai_requested=True)
        except Exception as e:
            logger.warning(f"AI body generation failed, using static body: {e}")
            body = self.static_body(context)
            body.ai_requested = True
            body.ai_fallback = True
            return body

    def _deliver(self, account_id: int, transport: SMTPTransport,
                 recruiter: RecruiterRecord, body: MessageBody):
        with self.rate_gate.slot(account_id, transport.settings.min_delay):
            return transport.send(recruiter.email, body.html)

    def send_one(self, account_id: int, recruiter_id: int, use_ai: bool = False) -> SendOutcome:
        """
        Send to one recruiter, then record the delivery

        Raises:
            NotFoundError: recruiter or configuration missing for this account
            ConfigurationInvalid: stored configuration incomplete
            DeliveryError: SMTP failure; recruiter state is left unchanged
        """
        started = time.perf_counter()
        recruiter = self.recruiters.get_for_account(account_id, recruiter_id)
        transport = self._open_transport(account_id)

        body = self.compose(self._context(recruiter, transport), use_ai)
        receipt = self._deliver(account_id, transport, recruiter, body)
        updated = self.recruiters.record_delivery(account_id, recruiter.id, utcnow())

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.info(f"Email sent to {recruiter.email} (body={body.kind.value}, ai={use_ai}) in {elapsed_ms}ms")
        return SendOutcome(
            recruiter=updated,
            is_ai_generated=use_ai,
            ai_fallback=body.ai_fallback,
            execution_time_ms=elapsed_ms,
            message_id=receipt.message_id,
        )

    def send_batch(self, account_id: int) -> BatchSummary:
        """
        Send static bodies to every recruiter of the account, one at a time

        Configuration problems fail before anything is sent. Per-recruiter
        delivery failures are recorded in the summary and the run continues.
        A recruiter deleted while the batch runs still counts by its delivery
        outcome, but its row is not updated.
        """
        transport = self._open_transport(account_id)
        recruiters = self.recruiters.list_for_account(account_id)
        summary = BatchSummary()
        handled = set()

        logger.info(f"Batch for account {account_id}: {len(recruiters)} recruiters, "
                    f"min delay {transport.settings.min_delay:.2f}s")

        for recruiter in recruiters:
            if recruiter.id in handled:
                continue
            handled.add(recruiter.id)

            body = self.static_body(self._context(recruiter, transport))
            try:
                self._deliver(account_id, transport, recruiter, body)
            except Exception as e:
                logger.error(f"Batch send to {recruiter.email} failed: {e}", exc_info=True)
                summary.failed += 1
                summary.errors.append({'email': recruiter.email, 'error': str(e)})
                self._record_outcome(self.recruiters.record_failure, account_id, recruiter)
                continue

            summary.sent += 1
            self._record_outcome(self.recruiters.record_delivery, account_id, recruiter, utcnow())

        logger.info(f"Batch for account {account_id} completed: sent={summary.sent} failed={summary.failed}")
        return summary

    def _record_outcome(self, record: Callable[..., Any], account_id: int,
                        recruiter: RecruiterRecord, *args) -> None:
        try:
            record(account_id, recruiter.id, *args)
        except NotFoundError:
            logger.warning(f"Recruiter {recruiter.id} ({recruiter.email}) was deleted during the batch, "
                           f"outcome not stored")
