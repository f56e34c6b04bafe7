"""
Webhook pipeline: verify -> parse -> normalize -> lock -> admit -> reconcile.
"""
import json
import logging

from billing_sync.billing.deadline import Deadline
from billing_sync.billing.events import Outcome, Unhandled, WebhookResult
from billing_sync.errors import BillingError, ValidationError

logger = logging.getLogger(__name__)


class WebhookPipeline:
    def __init__(self, verifiers, normalizer, ledger, reconciler, locks, deadline_seconds=8):
        self.verifiers = verifiers
        self.normalizer = normalizer
        self.ledger = ledger
        self.reconciler = reconciler
        self.locks = locks
        self.deadline_seconds = deadline_seconds

    def handle(self, provider, raw_body: bytes, signature_header) -> WebhookResult:
        deadline = Deadline(self.deadline_seconds)

        verifier = self.verifiers.get(provider)
        if verifier is None:
            raise ValidationError(f"Unknown provider {provider!r}")
        verifier.verify(raw_body, signature_header)

        payload = self._parse(raw_body)
        event = self.normalizer.normalize(provider, payload)

        if isinstance(event, Unhandled):
            logger.info(
                "Ignoring webhook",
                extra={"provider": provider, "event_type": event.event_type, "reason": event.reason},
            )
            return WebhookResult(Outcome.IGNORED, event_type=event.event_type)

        with self.locks.hold(event.lock_key, deadline):
            admission = self.ledger.admit(
                provider,
                event.fingerprint,
                event.event_type,
                raw_body.decode("utf-8", errors="replace"),
            )
            if not admission.admitted:
                return WebhookResult(Outcome.DUPLICATE, event.fingerprint, event.event_type)

            try:
                outcome = self.reconciler.reconcile(event, admission.record_id, deadline)
            except BillingError as e:
                logger.warning(
                    "Webhook left unprocessed",
                    extra={**event.log_context(), "error": e.message, "status": e.status_code},
                )
                self.ledger.record_failure(admission.record_id, e.message)
                raise

        return WebhookResult(outcome, event.fingerprint, event.event_type)

    @staticmethod
    def _parse(raw_body):
        try:
            return json.loads(raw_body)
        except (UnicodeDecodeError, ValueError):
            raise ValidationError("Webhook body is not valid JSON")
