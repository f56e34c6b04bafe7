"""
Webhook signature verification.

Verification always runs over the raw request bytes, before the body is parsed
and before anything is written.
"""
import hashlib
import hmac
import logging
from abc import ABC, abstractmethod

import stripe

from billing_sync.errors import AuthenticationError, ConfigurationError

logger = logging.getLogger(__name__)


class SignatureVerifier(ABC):
    provider = None

    @abstractmethod
    def verify(self, raw_body: bytes, signature_header: str | None) -> None:
        """Raise AuthenticationError unless the header signs ``raw_body``."""


class StripeSignatureVerifier(SignatureVerifier):
    """``Stripe-Signature: t=<ts>,v1=<hex>`` with a timestamp tolerance."""

    provider = "stripe"

    def __init__(self, secret: str | None, tolerance_seconds: int = 300):
        self.secret = secret
        self.tolerance_seconds = tolerance_seconds

    def verify(self, raw_body: bytes, signature_header: str | None) -> None:
        if not self.secret:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET is not configured")
        if not signature_header:
            raise AuthenticationError("Missing Stripe-Signature header")

        try:
            payload = raw_body.decode("utf-8")
        except UnicodeDecodeError:
            raise AuthenticationError("Webhook body is not valid UTF-8")

        try:
            stripe.WebhookSignature.verify_header(
                payload,
                signature_header,
                self.secret,
                self.tolerance_seconds,
            )
        except stripe.SignatureVerificationError as e:
            logger.warning(
                "Stripe signature rejected",
                extra={"provider": self.provider, "reason": str(e)},
            )
            raise AuthenticationError("Invalid Stripe signature")


class HmacSignatureVerifier(SignatureVerifier):
    """Hex HMAC of the raw body, as sent by Zoho Billing in ``Zoho-Signature``."""

    provider = "zoho"

    def __init__(self, secret: str | None, digestmod=hashlib.sha256):
        self.secret = secret
        self.digestmod = digestmod

    def sign(self, raw_body: bytes) -> str:
        return hmac.new(self.secret.encode(), raw_body, self.digestmod).hexdigest()

    def verify(self, raw_body: bytes, signature_header: str | None) -> None:
        if not self.secret:
            raise ConfigurationError("ZOHO_WEBHOOK_SECRET is not configured")
        if not signature_header:
            raise AuthenticationError("Missing Zoho-Signature header")

        computed = self.sign(raw_body)
        if not hmac.compare_digest(computed.encode(), signature_header.strip().lower().encode()):
            logger.warning("Zoho signature rejected", extra={"provider": self.provider})
            raise AuthenticationError("Invalid Zoho signature")
