"""
Builds the billing components once per app and wires them together.
"""
import logging
from dataclasses import dataclass

import stripe

from billing_sync.billing.ledger import IdempotencyLedger
from billing_sync.billing.locks import UserLocks
from billing_sync.billing.normalizer import EventNormalizer
from billing_sync.billing.pipeline import WebhookPipeline
from billing_sync.billing.reconciler import SubscriptionReconciler
from billing_sync.billing.sessions import BillingSessionService
from billing_sync.billing.signatures import HmacSignatureVerifier, StripeSignatureVerifier
from billing_sync.billing.state_machine import Provider
from billing_sync.billing.sweeper import WebhookSweeper
from billing_sync.extensions import init_redis
from billing_sync.middleware.access_gate import AccessGate

logger = logging.getLogger(__name__)


@dataclass
class BillingServices:
    pipeline: WebhookPipeline
    ledger: IdempotencyLedger
    reconciler: SubscriptionReconciler
    sessions: BillingSessionService
    access_gate: AccessGate
    sweeper: WebhookSweeper


def build_stripe_client(config):
    secret_key = config.get("STRIPE_SECRET_KEY")
    if not secret_key:
        logger.warning("STRIPE_SECRET_KEY not set, checkout and portal sessions disabled")
        return None
    return stripe.StripeClient(secret_key, max_network_retries=2)


def build_services(app, stripe_client=None, redis_client=None):
    """
    Create the component bundle and store it in ``app.extensions["billing"]``.
    Clients may be injected, e.g. mocks in tests.
    """
    config = app.config

    if stripe_client is None:
        stripe_client = build_stripe_client(config)
    if redis_client is None:
        redis_client = init_redis(app)

    normalizer = EventNormalizer()
    ledger = IdempotencyLedger(reclaim_after_seconds=config["WEBHOOK_RECLAIM_AFTER_SECONDS"])
    reconciler = SubscriptionReconciler(ledger, max_attempts=config["RECONCILE_MAX_ATTEMPTS"])
    locks = UserLocks(redis_client, ttl_seconds=config["USER_LOCK_TTL_SECONDS"])

    verifiers = {
        Provider.STRIPE.value: StripeSignatureVerifier(
            config.get("STRIPE_WEBHOOK_SECRET"),
            tolerance_seconds=config["STRIPE_WEBHOOK_TOLERANCE_SECONDS"],
        ),
        Provider.ZOHO.value: HmacSignatureVerifier(config.get("ZOHO_WEBHOOK_SECRET")),
    }

    services = BillingServices(
        pipeline=WebhookPipeline(
            verifiers,
            normalizer,
            ledger,
            reconciler,
            locks,
            deadline_seconds=config["WEBHOOK_DEADLINE_SECONDS"],
        ),
        ledger=ledger,
        reconciler=reconciler,
        sessions=BillingSessionService(
            stripe_client,
            config.get("STRIPE_PRICE_IDS"),
            config.get("SITE_URL"),
            config.get("PORTAL_RETURN_PATH", "/account/subscription"),
        ),
        access_gate=AccessGate(),
        sweeper=WebhookSweeper(normalizer, ledger, reconciler, locks),
    )

    app.extensions["billing"] = services
    logger.info(
        "Billing services initialized",
        extra={"user_locks": locks.enabled, "stripe_client": stripe_client is not None},
    )
    return services
