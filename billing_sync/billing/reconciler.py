"""
Subscription reconciler.

Applies canonical events to Subscription, Profile and PaymentRecord. Each
event is one transaction that also flips the ledger row to processed, so the
state change and the idempotency flag commit together or not at all.
"""
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from billing_sync.billing.events import EventKind, Outcome
from billing_sync.billing.state_machine import (
    SubscriptionStatus,
    coerce_status,
    profile_status_for,
    transition,
)
from billing_sync.errors import (
    BillingError,
    InvalidStateTransition,
    NotFoundError,
    TransientStoreError,
)
from billing_sync.extensions import db
from billing_sync.models import PaymentRecord, Profile, Subscription
from billing_sync.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


class SubscriptionReconciler:
    def __init__(self, ledger, max_attempts=3):
        self.ledger = ledger
        self.max_attempts = max(1, max_attempts)
        self.handlers = {
            EventKind.CHECKOUT_COMPLETED: self._on_checkout_completed,
            EventKind.SUBSCRIPTION_ACTIVATED: self._on_subscription_activated,
            EventKind.PAYMENT_SUCCEEDED: self._on_payment_succeeded,
            EventKind.SUBSCRIPTION_CANCELLED: self._on_subscription_cancelled,
        }

    def reconcile(self, event, record_id, deadline=None) -> Outcome:
        """
        Apply ``event`` and mark ledger row ``record_id`` processed.

        Version conflicts and unique violations are retried from a fresh read.
        Anything else rolls back and propagates.
        """
        context = event.log_context()

        for attempt in range(1, self.max_attempts + 1):
            try:
                if deadline is not None:
                    deadline.check()

                outcome = self._apply_once(event)

                if deadline is not None:
                    deadline.check()

                if not self.ledger.mark_processed(record_id, outcome):
                    db.session.rollback()
                    logger.info("Event finished by another worker", extra=context)
                    return Outcome.DUPLICATE

                db.session.commit()

            except (StaleDataError, IntegrityError) as e:
                db.session.rollback()
                logger.warning(
                    "Reconcile conflict, retrying",
                    extra={**context, "attempt": attempt, "error": str(e)},
                )
                if attempt == self.max_attempts:
                    raise TransientStoreError("Subscription update kept conflicting")
                continue

            except BillingError:
                db.session.rollback()
                raise

            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error("Reconcile failed", extra={**context, "error": str(e)})
                raise TransientStoreError("Subscription store unavailable")

            logger.info("Event reconciled", extra={**context, "outcome": outcome.value})
            return outcome

    def _apply_once(self, event) -> Outcome:
        handler = self.handlers[event.kind]
        try:
            return handler(event)
        except InvalidStateTransition as e:
            # nothing from this event is kept; the ledger row still closes
            db.session.rollback()
            logger.warning(
                "Event would make an invalid transition, skipping",
                extra={**event.log_context(), "error": e.message},
            )
            return Outcome.SKIPPED

    # -------------------------------------------------
    # Handlers
    # -------------------------------------------------

    def _on_checkout_completed(self, event):
        subscription = Subscription.find_external(event.provider, event.external_subscription_id)
        user_id = subscription.user_id if subscription else self._resolve_user_id(event)
        if not user_id:
            raise NotFoundError("No user found for checkout")

        if subscription is None:
            subscription = Subscription.for_user(user_id)

        if subscription is not None and self._is_other_live_subscription(subscription, event):
            logger.warning(
                "Checkout would create a second live subscription, skipping",
                extra={**event.log_context(), "existing_subscription": subscription.external_subscription_id},
            )
            return Outcome.SKIPPED

        if subscription is not None and self._is_stale(subscription, event):
            self._record_payment(subscription, event)
            return Outcome.STALE

        status = transition(
            subscription.status if subscription else None,
            self._reported_status(event),
        )

        profile = self._profile(user_id)
        if subscription is None:
            subscription = Subscription(user_id=user_id, created_at=utcnow())
            db.session.add(subscription)

        subscription.provider = event.provider
        subscription.external_subscription_id = event.external_subscription_id
        subscription.external_price_id = event.price_id or subscription.external_price_id
        subscription.external_customer_id = (
            event.external_customer_id or subscription.external_customer_id
        )
        subscription.status = status.value
        subscription.refresh_period(event.period_start, event.period_end)
        subscription.touch(event.occurred_at)

        profile.set_customer_id(event.provider, event.external_customer_id)
        profile.subscription_status = profile_status_for(status).value

        db.session.flush()
        self._record_payment(subscription, event)
        return Outcome.APPLIED

    def _on_subscription_activated(self, event):
        subscription = self._require_subscription(event)
        if self._is_stale(subscription, event):
            return Outcome.STALE

        self._activate(subscription, event)
        return Outcome.APPLIED

    def _on_payment_succeeded(self, event):
        subscription = self._require_subscription(event)

        # payments are append-only, even for events that are too old to move state
        self._record_payment(subscription, event)
        if self._is_stale(subscription, event):
            return Outcome.STALE

        self._activate(subscription, event)
        return Outcome.APPLIED

    def _on_subscription_cancelled(self, event):
        subscription = self._require_subscription(event)
        if self._is_stale(subscription, event):
            return Outcome.STALE

        if subscription.status == SubscriptionStatus.CANCELLED.value:
            return Outcome.NOOP

        status = transition(subscription.status, SubscriptionStatus.CANCELLED)
        subscription.status = status.value
        subscription.refresh_period(event.period_start, event.period_end)
        subscription.touch(event.occurred_at)

        self._profile(subscription.user_id).subscription_status = profile_status_for(status).value
        return Outcome.APPLIED

    # -------------------------------------------------
    # Helpers
    # -------------------------------------------------

    def _activate(self, subscription, event):
        status = transition(subscription.status, SubscriptionStatus.ACTIVE)
        subscription.status = status.value
        subscription.refresh_period(event.period_start, event.period_end)
        if event.price_id:
            subscription.external_price_id = event.price_id
        subscription.touch(event.occurred_at)

        profile = self._profile(subscription.user_id)
        profile.set_customer_id(subscription.provider, event.external_customer_id)
        profile.subscription_status = profile_status_for(status).value

    @staticmethod
    def _reported_status(event):
        """Provider-reported status for a checkout, ``active`` when absent or unknown."""
        try:
            return coerce_status(event.status) or SubscriptionStatus.ACTIVE
        except ValueError:
            return SubscriptionStatus.ACTIVE

    def _resolve_user_id(self, event):
        if event.user_id:
            return event.user_id
        profile = Profile.find_by_customer(event.provider, event.external_customer_id)
        return profile.id if profile else None

    def _require_subscription(self, event):
        subscription = Subscription.find_external(event.provider, event.external_subscription_id)
        if subscription is None:
            user_id = self._resolve_user_id(event)
            candidate = Subscription.for_user(user_id)
            if (
                candidate is not None
                and candidate.provider == event.provider
                and candidate.external_subscription_id == event.external_subscription_id
            ):
                subscription = candidate

        if subscription is None:
            raise NotFoundError(
                f"Subscription {event.provider}:{event.external_subscription_id} not found"
            )
        return subscription

    @staticmethod
    def _is_other_live_subscription(subscription, event):
        if subscription.status != SubscriptionStatus.ACTIVE.value:
            return False
        return (subscription.provider, subscription.external_subscription_id) != (
            event.provider,
            event.external_subscription_id,
        )

    @staticmethod
    def _is_stale(subscription, event):
        return subscription.is_stale(event.occurred_at)

    @staticmethod
    def _profile(user_id):
        profile = db.session.get(Profile, user_id)
        if profile is None:
            profile = Profile(id=user_id)
            db.session.add(profile)
        return profile

    @staticmethod
    def _record_payment(subscription, event):
        payment = event.payment
        if payment is None or PaymentRecord.exists(payment.external_payment_id):
            return False

        db.session.add(
            PaymentRecord(
                user_id=subscription.user_id,
                subscription_id=subscription.id,
                provider=event.provider,
                external_payment_id=payment.external_payment_id,
                amount=payment.amount,
                currency=payment.currency,
                status=payment.status,
                payment_method=payment.payment_method,
            )
        )
        return True
