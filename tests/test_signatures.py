import time

import pytest

from billing_sync.billing.signatures import (
    HmacSignatureVerifier,
    SignatureVerifier,
    StripeSignatureVerifier,
)
from billing_sync.errors import AuthenticationError, ConfigurationError
from factories import STRIPE_WEBHOOK_SECRET, ZOHO_WEBHOOK_SECRET, sign_stripe, sign_zoho

BODY = b'{"id":"evt_1","type":"invoice.paid"}'


def test_stripe_signature_accepts_valid_header():
    verifier = StripeSignatureVerifier(STRIPE_WEBHOOK_SECRET)
    verifier.verify(BODY, sign_stripe(BODY))


def test_stripe_signature_rejects_tampered_body():
    verifier = StripeSignatureVerifier(STRIPE_WEBHOOK_SECRET)
    header = sign_stripe(BODY)

    with pytest.raises(AuthenticationError):
        verifier.verify(BODY.replace(b"evt_1", b"evt_2"), header)


def test_stripe_signature_rejects_wrong_secret():
    verifier = StripeSignatureVerifier(STRIPE_WEBHOOK_SECRET)

    with pytest.raises(AuthenticationError):
        verifier.verify(BODY, sign_stripe(BODY, secret="whsec_other"))


def test_stripe_signature_rejects_old_timestamp():
    verifier = StripeSignatureVerifier(STRIPE_WEBHOOK_SECRET, tolerance_seconds=300)
    header = sign_stripe(BODY, timestamp=int(time.time()) - 3600)

    with pytest.raises(AuthenticationError):
        verifier.verify(BODY, header)


@pytest.mark.parametrize("header", [None, "", "garbage", "t=abc,v1=123"])
def test_stripe_signature_rejects_missing_or_malformed_header(header):
    verifier = StripeSignatureVerifier(STRIPE_WEBHOOK_SECRET)

    with pytest.raises(AuthenticationError):
        verifier.verify(BODY, header)


def test_stripe_signature_without_secret_is_configuration_error():
    with pytest.raises(ConfigurationError):
        StripeSignatureVerifier(None).verify(BODY, sign_stripe(BODY))


def test_zoho_signature_accepts_valid_header():
    HmacSignatureVerifier(ZOHO_WEBHOOK_SECRET).verify(BODY, sign_zoho(BODY))


def test_zoho_signature_is_case_insensitive_hex():
    HmacSignatureVerifier(ZOHO_WEBHOOK_SECRET).verify(BODY, sign_zoho(BODY).upper())


def test_zoho_signature_rejects_tampered_body():
    verifier = HmacSignatureVerifier(ZOHO_WEBHOOK_SECRET)

    with pytest.raises(AuthenticationError):
        verifier.verify(BODY + b" ", sign_zoho(BODY))


def test_zoho_signature_rejects_missing_header():
    with pytest.raises(AuthenticationError):
        HmacSignatureVerifier(ZOHO_WEBHOOK_SECRET).verify(BODY, None)


def test_zoho_signature_without_secret_is_configuration_error():
    with pytest.raises(ConfigurationError):
        HmacSignatureVerifier("").verify(BODY, sign_zoho(BODY))


def test_verifier_base_requires_verify():
    with pytest.raises(TypeError):
        SignatureVerifier()

    assert isinstance(HmacSignatureVerifier(ZOHO_WEBHOOK_SECRET), SignatureVerifier)
