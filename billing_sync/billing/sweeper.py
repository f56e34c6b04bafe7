import json
import logging

from sqlalchemy.exc import SQLAlchemyError

from billing_sync.billing.events import Outcome, Unhandled
from billing_sync.billing.locks import UserLocks
from billing_sync.errors import BillingError, TransientStoreError
from billing_sync.extensions import db

logger = logging.getLogger(__name__)


class WebhookSweeper:
    """
    Finishes ledger rows that were admitted but never processed, e.g. after a
    crash or a transient store failure the provider did not retry.
    """

    def __init__(self, normalizer, ledger, reconciler, locks=None):
        self.normalizer = normalizer
        self.ledger = ledger
        self.reconciler = reconciler
        self.locks = locks or UserLocks()

    def reprocess_pending(self, older_than_seconds=0, limit=100):
        counts = {"reprocessed": 0, "failed": 0, "skipped": 0}

        for record in self.ledger.pending(older_than_seconds, limit=limit):
            if not self.ledger.claim(record):
                counts["skipped"] += 1
                continue

            record_id = record.id
            try:
                event = self.normalizer.normalize(record.provider, json.loads(record.payload))
                if isinstance(event, Unhandled):
                    self._close_ignored(record_id, event)
                    counts["skipped"] += 1
                    continue

                with self.locks.hold(event.lock_key):
                    outcome = self.reconciler.reconcile(event, record_id)
            except (BillingError, ValueError) as e:
                counts["failed"] += 1
                message = getattr(e, "message", str(e))
                self.ledger.record_failure(record_id, message)
                logger.warning(
                    "Sweep could not finish webhook",
                    extra={"record_id": record_id, "error": message},
                )
                continue

            counts["reprocessed"] += 1
            logger.info("Sweep finished webhook", extra={"record_id": record_id, "outcome": outcome.value})

        logger.info("Webhook sweep complete", extra=counts)
        return counts

    def _close_ignored(self, record_id, event):
        """A stored payload that no longer maps to a canonical event is closed as ignored."""
        try:
            self.ledger.mark_processed(record_id, Outcome.IGNORED)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Could not close ignored webhook", extra={"record_id": record_id, "error": str(e)})
            raise TransientStoreError("Webhook ledger unavailable")

        logger.info(
            "Sweep closed unhandled webhook",
            extra={"record_id": record_id, "event_type": event.event_type, "reason": event.reason},
        )
