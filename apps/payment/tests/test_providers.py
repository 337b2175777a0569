from decimal import Decimal
from unittest.mock import MagicMock

import requests
from django.core.cache import cache
from django.test import SimpleTestCase, TestCase, override_settings

from apps.payment.exceptions import PaymentProviderError, PaymentValidationError
from apps.payment.models import PaymentStatus
from apps.payment.services.providers import (
    MoMoProvider,
    ProviderRegistry,
    StripeProvider,
    ZaloPayProvider,
)
from apps.payment.utils.signature import canonical_payload, sign_payload, verify_signature

from .factories import create_default_plans, create_payment, create_subscription, create_user


class SignatureTestCase(SimpleTestCase):
    def test_canonical_payload_ignores_key_order_and_signature(self):
        first = canonical_payload({"b": 2, "a": 1, "signature": "x"})
        second = canonical_payload({"a": 1, "b": 2})
        self.assertEqual(first, second)
        self.assertEqual(first, '{"a":1,"b":2}')

    def test_verify_signature(self):
        payload = {"order_id": "42", "amount": 99000}
        signature = sign_payload(payload, "secret")

        self.assertTrue(verify_signature(payload, signature, "secret"))
        self.assertFalse(verify_signature(payload, signature, "other-secret"))
        self.assertFalse(verify_signature({**payload, "amount": 1}, signature, "secret"))
        self.assertFalse(verify_signature(payload, None, "secret"))

    def test_missing_secret_accepts_everything(self):
        self.assertTrue(verify_signature({"a": 1}, None, ""))
        self.assertTrue(verify_signature({"a": 1}, "garbage", ""))


class ProviderRegistryTestCase(SimpleTestCase):
    def test_lookup_by_method_or_slug(self):
        registry = ProviderRegistry()

        self.assertIsInstance(registry.get("STRIPE"), StripeProvider)
        self.assertIsInstance(registry.get("stripe"), StripeProvider)
        self.assertIsInstance(registry.get("MoMo"), MoMoProvider)
        self.assertIs(registry.get("ZALOPAY"), registry.get("zalopay"))

    def test_unknown_provider(self):
        with self.assertRaises(PaymentValidationError):
            ProviderRegistry().get("paypal")

    def test_event_mapping(self):
        stripe = StripeProvider()
        zalopay = ZaloPayProvider()

        self.assertEqual(stripe.map_event("payment_intent.succeeded"), PaymentStatus.SUCCESS)
        self.assertEqual(stripe.map_event("payment_intent.payment_failed"), PaymentStatus.FAILED)
        self.assertIsNone(stripe.map_event("payment.success"))
        self.assertEqual(zalopay.map_event("payment.failed"), PaymentStatus.FAILED)


@override_settings(STRIPE_API_KEY="sk_test_123", STRIPE_BASE_URL="https://stripe.test")
class LiveProviderTestCase(TestCase):
    def setUp(self):
        cache.clear()
        user = create_user()
        subscription = create_subscription(user, create_default_plans()["Pro"])
        self.payment = create_payment(subscription, external_id="pi_live_1")
        self.http = MagicMock()
        self.provider = StripeProvider(http_client=self.http)

    def test_initialize_posts_to_gateway(self):
        self.http.post.return_value.json.return_value = {
            "id": "pi_live_2",
            "url": "https://checkout.stripe.test/cs_1",
            "session_id": "cs_1",
        }

        result = self.provider.initialize(self.payment)

        self.assertEqual(result.external_id, "pi_live_2")
        self.assertEqual(result.metadata, {"checkout_url": "https://checkout.stripe.test/cs_1", "session_id": "cs_1"})
        args, kwargs = self.http.post.call_args
        self.assertEqual(args[0], "https://stripe.test/v1/payments")
        self.assertEqual(kwargs["json"]["reference"], str(self.payment.id))
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer sk_test_123")

    def test_missing_reference_is_an_error(self):
        self.http.post.return_value.json.return_value = {"status": "ok"}

        with self.assertRaises(PaymentProviderError):
            self.provider.initialize(self.payment)

    def test_network_and_http_errors_are_wrapped(self):
        self.http.post.side_effect = requests.ConnectionError("connection refused")
        with self.assertRaises(PaymentProviderError):
            self.provider.initialize(self.payment)

        self.http.post.side_effect = None
        self.http.post.return_value.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
        with self.assertRaises(PaymentProviderError):
            self.provider.refund(self.payment, Decimal("1000"))

    def test_invalid_json_is_wrapped(self):
        self.http.post.return_value.json.side_effect = ValueError("not json")

        with self.assertRaises(PaymentProviderError):
            self.provider.initialize(self.payment)

    def test_refund_calls_refund_endpoint(self):
        self.http.post.return_value.json.return_value = {"refund_id": "re_1", "status": "succeeded"}

        result = self.provider.refund(self.payment, Decimal("5000"), "requested")

        self.assertEqual(result["refund_id"], "re_1")
        args, kwargs = self.http.post.call_args
        self.assertEqual(args[0], "https://stripe.test/v1/payments/pi_live_1/refunds")
        self.assertEqual(kwargs["json"], {"amount": "5000", "reason": "requested"})
