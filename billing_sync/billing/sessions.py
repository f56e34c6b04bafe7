"""
Checkout, portal and cancellation requests against Stripe.

None of these mutate local subscription state: the webhooks that follow are
the only writers.
"""
import logging

import stripe

from billing_sync.billing.state_machine import Provider
from billing_sync.config import normalize_plan_id
from billing_sync.errors import (
    ConfigurationError,
    ForbiddenError,
    NotFoundError,
    ProviderError,
    ValidationError,
)
from billing_sync.extensions import db
from billing_sync.models import Profile, Subscription

logger = logging.getLogger(__name__)


class BillingSessionService:
    def __init__(self, stripe_client, price_ids, site_url, portal_return_path="/account/subscription"):
        self.stripe_client = stripe_client
        self.price_ids = {normalize_plan_id(plan): price for plan, price in (price_ids or {}).items()}
        self.site_url = (site_url or "").rstrip("/")
        self.portal_return_path = portal_return_path

    def _client(self):
        if self.stripe_client is None:
            raise ConfigurationError("STRIPE_SECRET_KEY is not configured")
        return self.stripe_client

    def _absolute(self, path):
        if not self.site_url:
            raise ConfigurationError("SITE_URL is not configured")
        path = path or "/"
        if path.startswith(("http://", "https://")):
            # only same-site redirects
            if not path.startswith(self.site_url + "/") and path != self.site_url:
                raise ValidationError("returnUrl must stay on this site")
            return path
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.site_url}{path}"

    def price_for(self, plan_id):
        price_id = self.price_ids.get(normalize_plan_id(plan_id))
        if not price_id:
            raise ConfigurationError(f"No Stripe price configured for plan {plan_id!r}")
        return price_id

    # -------------------------------------------------
    # Checkout
    # -------------------------------------------------

    def create_checkout_session(self, user_id, plan_id, return_path=None) -> str:
        if not user_id:
            raise ValidationError("userId is required")
        if not plan_id:
            raise ValidationError("planId is required")

        price_id = self.price_for(plan_id)
        return_url = self._absolute(return_path)
        metadata = {"userId": str(user_id), "planId": str(plan_id), "priceId": price_id}

        params = {
            "mode": "subscription",
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": return_url,
            "cancel_url": return_url,
            "client_reference_id": str(user_id),
            "metadata": metadata,
            "subscription_data": {"metadata": dict(metadata)},
        }

        profile = db.session.get(Profile, str(user_id))
        customer_id = profile.customer_id_for(Provider.STRIPE) if profile else None
        if customer_id:
            params["customer"] = customer_id

        try:
            session = self._client().checkout.sessions.create(params=params)
        except stripe.StripeError as e:
            logger.error(
                "Failed to create checkout session",
                exc_info=True,
                extra={"user_id": user_id, "price_id": price_id, "stripe_error": str(e)},
            )
            raise ProviderError("Could not create checkout session")

        logger.info(
            "Stripe checkout session created",
            extra={"session_id": session.id, "user_id": user_id, "price_id": price_id},
        )
        return session.url

    # -------------------------------------------------
    # Customer portal
    # -------------------------------------------------

    def create_portal_session(self, user_id) -> str:
        if not user_id:
            raise ValidationError("userId is required")

        subscription = Subscription.for_user(str(user_id))
        if subscription is None:
            raise NotFoundError("No subscription found")
        if subscription.provider != Provider.STRIPE.value:
            raise ValidationError("Billing portal is only available for Stripe subscriptions")

        customer_id = subscription.external_customer_id or self._customer_from_stripe(subscription)
        return_url = self._absolute(self.portal_return_path)

        try:
            session = self._client().billing_portal.sessions.create(
                params={"customer": customer_id, "return_url": return_url}
            )
        except stripe.StripeError as e:
            logger.error(
                "Failed to create portal session",
                exc_info=True,
                extra={"user_id": user_id, "stripe_error": str(e)},
            )
            raise ProviderError("Could not create portal session")

        logger.info("Stripe portal session created", extra={"user_id": user_id})
        return session.url

    def _customer_from_stripe(self, subscription):
        try:
            remote = self._client().subscriptions.retrieve(subscription.external_subscription_id)
        except stripe.StripeError as e:
            logger.error(
                "Failed to retrieve subscription",
                exc_info=True,
                extra={
                    "subscription_id": subscription.external_subscription_id,
                    "stripe_error": str(e),
                },
            )
            raise ProviderError("Could not look up subscription")

        customer = remote.customer
        customer_id = customer if isinstance(customer, str) else getattr(customer, "id", None)
        if not customer_id:
            raise NotFoundError("No Stripe customer for subscription")
        return customer_id

    # -------------------------------------------------
    # Cancellation
    # -------------------------------------------------

    def cancel_subscription(self, subscription_external_id, user_id=None) -> str:
        """
        Schedule cancellation at period end. When ``user_id`` is given the
        subscription must belong to that user.
        """
        if not subscription_external_id:
            raise ValidationError("subscriptionId is required")

        subscription = Subscription.find_external(Provider.STRIPE.value, subscription_external_id)
        if subscription is None:
            raise NotFoundError("Subscription not found")
        if user_id is not None and subscription.user_id != str(user_id):
            logger.warning(
                "Cancellation refused for subscription owned by another user",
                extra={"subscription_id": subscription_external_id, "user_id": user_id},
            )
            raise ForbiddenError("Subscription belongs to another user")

        try:
            self._client().subscriptions.update(
                subscription_external_id, params={"cancel_at_period_end": True}
            )
        except stripe.StripeError as e:
            logger.error(
                "Failed to cancel subscription",
                exc_info=True,
                extra={"subscription_id": subscription_external_id, "stripe_error": str(e)},
            )
            raise ProviderError("Could not cancel subscription")

        logger.info(
            "Stripe subscription cancellation scheduled",
            extra={"subscription_id": subscription_external_id, "user_id": subscription.user_id},
        )
        return "Subscription cancellation scheduled."
