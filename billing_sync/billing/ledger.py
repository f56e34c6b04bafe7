"""
Idempotency ledger for inbound webhooks.

``admit`` commits the ledger row on its own so that concurrent deliveries of
the same fingerprint race on the unique constraint, not on application state.
``mark_processed`` is called inside the reconciler's transaction and commits
with the state change.

An unprocessed row carries a lease (``locked_until``) while a delivery works
on it. A failed attempt releases the lease so the provider's retry, or the
sweep, can claim the row again.
"""
import logging
from datetime import timedelta

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from billing_sync.billing.events import Admission
from billing_sync.errors import TransientStoreError
from billing_sync.extensions import db
from billing_sync.models import WebhookEvent
from billing_sync.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 2000


class IdempotencyLedger:
    def __init__(self, reclaim_after_seconds=60):
        self.reclaim_after_seconds = reclaim_after_seconds

    def _lease_end(self, now):
        return now + timedelta(seconds=self.reclaim_after_seconds)

    def admit(self, provider, fingerprint, event_type, payload) -> Admission:
        now = utcnow()
        record = WebhookEvent(
            provider=provider,
            event_type=event_type,
            fingerprint=fingerprint,
            payload=payload,
            processed=False,
            received_at=now,
            attempted_at=now,
            attempts=1,
            locked_until=self._lease_end(now),
        )

        try:
            db.session.add(record)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            return self._admit_known(fingerprint)
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Ledger insert failed", extra={"fingerprint": fingerprint, "error": str(e)})
            raise TransientStoreError("Webhook ledger unavailable")

        logger.info("Webhook admitted", extra={"fingerprint": fingerprint, "provider": provider})
        return Admission(admitted=True, record_id=record.id)

    def _admit_known(self, fingerprint) -> Admission:
        try:
            existing = WebhookEvent.query.filter_by(fingerprint=fingerprint).first()
            if existing is None:
                # unique violation on a row this session cannot see yet
                raise TransientStoreError("Webhook ledger contention")

            if existing.processed:
                logger.info("Duplicate webhook", extra={"fingerprint": fingerprint})
                return Admission.duplicate(existing.id)

            if existing.locked_until and existing.locked_until > utcnow():
                logger.info(
                    "Webhook already in flight",
                    extra={"fingerprint": fingerprint, "attempts": existing.attempts},
                )
                return Admission.duplicate(existing.id)

            if not self.claim(existing):
                return Admission.duplicate(existing.id)
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Ledger lookup failed", extra={"fingerprint": fingerprint, "error": str(e)})
            raise TransientStoreError("Webhook ledger unavailable")

        logger.warning(
            "Reclaimed unprocessed webhook",
            extra={"fingerprint": fingerprint, "record_id": existing.id},
        )
        return Admission(admitted=True, record_id=existing.id, reclaimed=True)

    def claim(self, record) -> bool:
        """
        Take the lease on an unprocessed row. Compare-and-swap on ``attempts``,
        so of two claimers exactly one wins.
        """
        now = utcnow()
        result = db.session.execute(
            update(WebhookEvent)
            .where(
                WebhookEvent.id == record.id,
                WebhookEvent.processed.is_(False),
                WebhookEvent.attempts == record.attempts,
                or_(WebhookEvent.locked_until.is_(None), WebhookEvent.locked_until <= now),
            )
            .values(
                attempted_at=now,
                attempts=WebhookEvent.attempts + 1,
                locked_until=self._lease_end(now),
            )
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        return result.rowcount == 1

    def mark_processed(self, record_id, outcome) -> bool:
        """
        Flag the row processed inside the caller's transaction.

        Returns False when another worker already finished it.
        """
        result = db.session.execute(
            update(WebhookEvent)
            .where(WebhookEvent.id == record_id, WebhookEvent.processed.is_(False))
            .values(
                processed=True,
                processed_at=utcnow(),
                outcome=getattr(outcome, "value", outcome),
                locked_until=None,
                last_error=None,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def record_failure(self, record_id, error):
        """Store the error and release the lease after the reconcile rolled back."""
        try:
            db.session.execute(
                update(WebhookEvent)
                .where(WebhookEvent.id == record_id, WebhookEvent.processed.is_(False))
                .values(last_error=str(error)[:MAX_ERROR_LENGTH], locked_until=None)
                .execution_options(synchronize_session=False)
            )
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            # the lease still expires on its own after reclaim_after_seconds
            logger.error(
                "Could not record webhook failure",
                extra={"record_id": record_id, "error": str(e)},
            )

    def pending(self, older_than_seconds=0, limit=100):
        """Unprocessed rows nobody holds a lease on, oldest first."""
        now = utcnow()
        cutoff = now - timedelta(seconds=older_than_seconds)
        return (
            WebhookEvent.query.filter(
                WebhookEvent.processed.is_(False),
                WebhookEvent.received_at <= cutoff,
                or_(WebhookEvent.locked_until.is_(None), WebhookEvent.locked_until <= now),
            )
            .order_by(WebhookEvent.received_at.asc(), WebhookEvent.id.asc())
            .limit(limit)
            .all()
        )

    def get(self, record_id):
        return db.session.get(WebhookEvent, record_id)
