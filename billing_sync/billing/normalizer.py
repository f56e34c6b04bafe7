"""
Provider payload -> CanonicalEvent.

Pure translation: nothing here touches the store or calls a provider.
"""
import hashlib
import json
import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from billing_sync.billing.events import CanonicalEvent, EventKind, PaymentInfo, Unhandled
from billing_sync.billing.state_machine import Provider, SubscriptionStatus
from billing_sync.errors import ValidationError
from billing_sync.utils.timeutils import from_unix, parse_iso

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

STRIPE_ACTIVE_STATUSES = {"active", "trialing"}
STRIPE_CANCELLED_STATUSES = {"canceled", "cancelled"}

ZOHO_ACTIVE_STATUSES = {"live", "trial", "non_renewing"}
ZOHO_CANCELLED_STATUSES = {"cancelled", "expired"}


def fingerprint_for(provider, payload, event_id=None):
    """
    ``<provider>:<event id>`` when the provider sent one, otherwise a SHA-256
    over the canonical JSON form of the payload.
    """
    if event_id:
        return f"{provider}:{event_id}"
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return f"{provider}:sha256:{digest}"


def _money(value, *, minor_units):
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}")
    if minor_units:
        amount = amount / 100
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def _first(items):
    return items[0] if items else None


def _require(value, name, event_type):
    if not value:
        raise ValidationError(f"{event_type}: missing {name}")
    return value


class EventNormalizer:
    def normalize(self, provider, payload):
        if not isinstance(payload, dict):
            raise ValidationError("Webhook payload must be a JSON object")

        provider = Provider(provider)
        if provider is Provider.STRIPE:
            return self._normalize_stripe(payload)
        return self._normalize_zoho(payload)

    # -------------------------------------------------
    # Stripe
    # -------------------------------------------------

    def _normalize_stripe(self, payload):
        event_type = payload.get("type")
        if not event_type:
            raise ValidationError("Stripe event without a type")

        obj = (payload.get("data") or {}).get("object")
        if not isinstance(obj, dict):
            raise ValidationError(f"{event_type}: missing data.object")

        base = {
            "provider": Provider.STRIPE.value,
            "event_type": event_type,
            "fingerprint": fingerprint_for(Provider.STRIPE.value, payload, payload.get("id")),
            "occurred_at": from_unix(payload.get("created")),
        }

        if event_type == "checkout.session.completed":
            return self._stripe_checkout(obj, base)

        if event_type in ("customer.subscription.created", "customer.subscription.updated"):
            status = obj.get("status")
            if status in STRIPE_ACTIVE_STATUSES:
                return self._stripe_subscription(obj, base, EventKind.SUBSCRIPTION_ACTIVATED)
            if event_type == "customer.subscription.updated" and status in STRIPE_CANCELLED_STATUSES:
                return self._stripe_subscription(obj, base, EventKind.SUBSCRIPTION_CANCELLED)
            return Unhandled(Provider.STRIPE.value, event_type, reason=f"status_{status}")

        if event_type == "customer.subscription.deleted":
            return self._stripe_subscription(obj, base, EventKind.SUBSCRIPTION_CANCELLED)

        if event_type in ("invoice.paid", "invoice.payment_succeeded"):
            return self._stripe_invoice(obj, base)

        return Unhandled(Provider.STRIPE.value, event_type)

    def _stripe_checkout(self, obj, base):
        event_type = base["event_type"]
        subscription_id = obj.get("subscription")
        if not subscription_id:
            # one-off payment checkouts are not subscriptions
            return Unhandled(Provider.STRIPE.value, event_type, reason="not_subscription_mode")

        metadata = obj.get("metadata") or {}
        user_id = metadata.get("userId") or obj.get("client_reference_id")
        customer_id = obj.get("customer")
        if not user_id and not customer_id:
            raise ValidationError(f"{event_type}: missing metadata.userId")

        payment = None
        payment_id = obj.get("invoice") or obj.get("payment_intent")
        if payment_id and obj.get("amount_total") is not None:
            methods = obj.get("payment_method_types") or []
            payment = PaymentInfo(
                external_payment_id=payment_id,
                amount=_money(obj["amount_total"], minor_units=True),
                currency=(obj.get("currency") or "usd").lower(),
                payment_method=_first(methods),
            )

        return CanonicalEvent(
            kind=EventKind.CHECKOUT_COMPLETED,
            external_subscription_id=subscription_id,
            user_id=user_id,
            external_customer_id=customer_id,
            plan_id=metadata.get("planId"),
            price_id=metadata.get("priceId"),
            payment=payment,
            metadata=dict(metadata),
            **base,
        )

    def _stripe_subscription(self, obj, base, kind):
        subscription_id = _require(obj.get("id"), "subscription id", base["event_type"])
        item = _first((obj.get("items") or {}).get("data") or []) or {}
        metadata = obj.get("metadata") or {}

        return CanonicalEvent(
            kind=kind,
            external_subscription_id=subscription_id,
            user_id=metadata.get("userId"),
            external_customer_id=obj.get("customer"),
            plan_id=metadata.get("planId"),
            price_id=(item.get("price") or {}).get("id"),
            status=obj.get("status"),
            period_start=from_unix(obj.get("current_period_start") or item.get("current_period_start")),
            period_end=from_unix(obj.get("current_period_end") or item.get("current_period_end")),
            metadata=dict(metadata),
            **base,
        )

    def _stripe_invoice(self, obj, base):
        event_type = base["event_type"]
        details = (obj.get("parent") or {}).get("subscription_details") or obj.get(
            "subscription_details"
        ) or {}
        subscription_id = obj.get("subscription") or details.get("subscription")
        if not subscription_id:
            return Unhandled(Provider.STRIPE.value, event_type, reason="invoice_without_subscription")

        invoice_id = _require(obj.get("id"), "invoice id", event_type)
        amount = obj.get("amount_paid")
        if amount is None:
            raise ValidationError(f"{event_type}: missing amount_paid")

        line = _first((obj.get("lines") or {}).get("data") or []) or {}
        period = line.get("period") or {}
        metadata = details.get("metadata") or {}

        return CanonicalEvent(
            kind=EventKind.PAYMENT_SUCCEEDED,
            external_subscription_id=subscription_id,
            user_id=metadata.get("userId"),
            external_customer_id=obj.get("customer"),
            period_start=from_unix(period.get("start")),
            period_end=from_unix(period.get("end")),
            payment=PaymentInfo(
                external_payment_id=invoice_id,
                amount=_money(amount, minor_units=True),
                currency=(obj.get("currency") or "usd").lower(),
            ),
            metadata=dict(metadata),
            **base,
        )

    # -------------------------------------------------
    # Zoho Billing
    # -------------------------------------------------

    _ZOHO_SUBSCRIPTION_KINDS = {
        "subscription.created": EventKind.CHECKOUT_COMPLETED,
        "subscription.activated": EventKind.SUBSCRIPTION_ACTIVATED,
        "subscription.cancelled": EventKind.SUBSCRIPTION_CANCELLED,
    }

    def _normalize_zoho(self, payload):
        event_type = payload.get("event_type")
        if not event_type:
            raise ValidationError("Zoho event without an event_type")

        data = (payload.get("payload") or {}).get("data")
        if not isinstance(data, dict):
            raise ValidationError(f"{event_type}: missing payload.data")

        try:
            occurred_at = parse_iso(payload.get("event_time"))
        except ValueError:
            raise ValidationError(f"{event_type}: invalid event_time")

        base = {
            "provider": Provider.ZOHO.value,
            "event_type": event_type,
            "fingerprint": fingerprint_for(Provider.ZOHO.value, payload, payload.get("event_id")),
            "occurred_at": occurred_at,
        }

        kind = self._ZOHO_SUBSCRIPTION_KINDS.get(event_type)
        if kind is not None:
            return self._zoho_subscription(data, base, kind)
        if event_type == "payment.success":
            return self._zoho_payment(data, base)

        return Unhandled(Provider.ZOHO.value, event_type)

    @staticmethod
    def _zoho_status(raw, kind):
        if kind is EventKind.SUBSCRIPTION_CANCELLED:
            return SubscriptionStatus.CANCELLED.value
        raw = (raw or "").lower()
        if not raw or raw in ZOHO_ACTIVE_STATUSES:
            return SubscriptionStatus.ACTIVE.value
        if raw in ZOHO_CANCELLED_STATUSES:
            return SubscriptionStatus.CANCELLED.value
        return SubscriptionStatus.INCOMPLETE.value

    def _zoho_subscription(self, data, base, kind):
        event_type = base["event_type"]
        subscription = data.get("subscription")
        if not isinstance(subscription, dict):
            raise ValidationError(f"{event_type}: missing subscription")

        subscription_id = _require(subscription.get("subscription_id"), "subscription_id", event_type)
        customer_id = subscription.get("customer_id") or (subscription.get("customer") or {}).get(
            "customer_id"
        )
        if not customer_id:
            raise ValidationError(f"{event_type}: missing customer_id")

        try:
            period_start = parse_iso(subscription.get("current_term_starts_at"))
            period_end = parse_iso(subscription.get("current_term_ends_at"))
        except ValueError:
            raise ValidationError(f"{event_type}: invalid term dates")

        return CanonicalEvent(
            kind=kind,
            external_subscription_id=subscription_id,
            user_id=subscription.get("reference_id") or None,
            external_customer_id=customer_id,
            plan_id=(subscription.get("plan") or {}).get("plan_code"),
            price_id=(subscription.get("plan") or {}).get("plan_code"),
            status=self._zoho_status(subscription.get("status"), kind),
            period_start=period_start,
            period_end=period_end,
            **base,
        )

    def _zoho_payment(self, data, base):
        event_type = base["event_type"]
        payment = data.get("payment")
        if not isinstance(payment, dict):
            raise ValidationError(f"{event_type}: invalid payment data")

        payment_id = _require(payment.get("payment_id"), "payment_id", event_type)
        subscription_id = _require(payment.get("subscription_id"), "subscription_id", event_type)
        if payment.get("amount") is None:
            raise ValidationError(f"{event_type}: missing amount")

        try:
            period_start = parse_iso(payment.get("period_start"))
            period_end = parse_iso(payment.get("period_end"))
        except ValueError:
            raise ValidationError(f"{event_type}: invalid period dates")

        return CanonicalEvent(
            kind=EventKind.PAYMENT_SUCCEEDED,
            external_subscription_id=subscription_id,
            external_customer_id=payment.get("customer_id"),
            period_start=period_start,
            period_end=period_end,
            payment=PaymentInfo(
                external_payment_id=payment_id,
                amount=_money(payment["amount"], minor_units=False),
                currency=(payment.get("currency") or payment.get("currency_code") or "usd").lower(),
                payment_method=payment.get("payment_method") or payment.get("payment_mode"),
                status="success",
            ),
            **base,
        )
