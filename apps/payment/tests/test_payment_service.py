import uuid
from decimal import Decimal
from unittest.mock import patch

from django.core.cache import cache
from django.test import TestCase, override_settings

from apps.payment.exceptions import (
    InvalidWebhookSignature,
    PaymentNotFound,
    PaymentProviderError,
    PaymentValidationError,
    RefundFailed,
)
from apps.payment.models import PaymentStatus, PaymentTransaction, PaymentWebhookEvent
from apps.payment.services.payment_service import PaymentService
from apps.payment.services.providers import ProviderRegistry, StripeProvider
from apps.payment.utils.signature import sign_payload, webhook_envelope
from apps.subscription.exceptions import SubscriptionNotFound
from apps.subscription.models import SubscriptionStatus, UsageQuota, UserSubscription
from apps.subscription.services.usage_service import UsageService

from .factories import (
    create_default_plans,
    create_payment,
    create_subscription,
    create_user,
)


class PaymentTestMixin:
    def setUp(self):
        cache.clear()
        self.service = PaymentService()
        self.plans = create_default_plans()
        self.user = create_user()
        self.subscription = create_subscription(self.user, self.plans["Pro"])

    def set_status(self, status):
        UserSubscription.objects.filter(id=self.subscription.id).update(status=status)

    def subscription_status(self):
        return UserSubscription.objects.get(id=self.subscription.id).status


class CreatePaymentTestCase(PaymentTestMixin, TestCase):
    def test_stripe_payment_gets_checkout_reference(self):
        payment = self.service.create_payment(self.user.id, self.subscription.id, "99000", "STRIPE")

        self.assertEqual(payment.status, PaymentStatus.PENDING)
        self.assertEqual(payment.amount, Decimal("99000"))
        self.assertEqual(payment.currency, "VND")
        self.assertEqual(payment.external_id, f"pi_mock_{payment.id}")
        self.assertIn("checkout_url", payment.metadata)
        self.assertEqual(payment.metadata["session_id"], f"cs_test_{payment.id}")

    def test_momo_and_zalopay_references(self):
        momo = self.service.create_payment(self.user.id, self.subscription.id, 99000, "MOMO")
        zalopay = self.service.create_payment(
            self.user.id, self.subscription.id, 99000, "ZALOPAY", metadata={"campaign": "tet"}
        )

        self.assertEqual(momo.external_id, f"momo_{momo.id}")
        self.assertIn("pay_url", momo.metadata)
        self.assertIn("qr_code", momo.metadata)
        self.assertEqual(zalopay.external_id, f"zp_{zalopay.id}")
        self.assertIn("order_url", zalopay.metadata)
        self.assertEqual(zalopay.metadata["campaign"], "tet")

    def test_amount_bounds(self):
        for amount in ("999", "50000001", "abc", None):
            with self.assertRaises(PaymentValidationError):
                self.service.create_payment(self.user.id, self.subscription.id, amount, "STRIPE")
        self.assertFalse(PaymentTransaction.objects.exists())

        self.service.create_payment(self.user.id, self.subscription.id, "1000", "STRIPE")
        self.service.create_payment(self.user.id, self.subscription.id, "50000000", "STRIPE")
        self.assertEqual(PaymentTransaction.objects.count(), 2)

    def test_unknown_method(self):
        with self.assertRaises(PaymentValidationError):
            self.service.create_payment(self.user.id, self.subscription.id, 99000, "PAYPAL")

    def test_subscription_must_exist_and_belong_to_payer(self):
        with self.assertRaises(SubscriptionNotFound):
            self.service.create_payment(self.user.id, uuid.uuid4(), 99000, "STRIPE")

        intruder = create_user("intruder")
        with self.assertRaises(PaymentValidationError):
            self.service.create_payment(intruder.id, self.subscription.id, 99000, "STRIPE")

    def test_provider_failure_marks_payment_failed(self):
        with patch.object(StripeProvider, "initialize", side_effect=PaymentProviderError("gateway down")):
            with self.assertRaises(PaymentProviderError):
                self.service.create_payment(self.user.id, self.subscription.id, 99000, "STRIPE")

        payment = PaymentTransaction.objects.get()
        self.assertEqual(payment.status, PaymentStatus.FAILED)
        self.assertEqual(payment.failure_reason, "gateway down")
        self.assertIsNone(payment.external_id)


class WebhookTestCase(PaymentTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.payment = create_payment(self.subscription, external_id="pi_123")

    def test_success_activates_subscription(self):
        self.set_status(SubscriptionStatus.PAST_DUE)

        result = self.service.handle_webhook("stripe", "payment_intent.succeeded", "pi_123", {"amount": 99000})

        self.assertEqual(result.status, "processed")
        self.assertEqual(result.payment_status, PaymentStatus.SUCCESS)
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, PaymentStatus.SUCCESS)
        self.assertIsNotNone(self.payment.processed_at)
        self.assertEqual(self.subscription_status(), SubscriptionStatus.ACTIVE)

        event = PaymentWebhookEvent.objects.get()
        self.assertTrue(event.processed)
        self.assertEqual(event.resulting_status, PaymentStatus.SUCCESS)

    def test_replayed_delivery_is_applied_once(self):
        self.set_status(SubscriptionStatus.PAST_DUE)
        activate = self.service.subscription_service.activate

        with patch.object(self.service.subscription_service, "activate", wraps=activate) as spy:
            first = self.service.handle_webhook("stripe", "payment_intent.succeeded", "pi_123")
            second = self.service.handle_webhook("STRIPE", "payment_intent.succeeded", "pi_123")

        self.assertEqual(first.status, "processed")
        self.assertEqual(second.status, "duplicate")
        self.assertEqual(second.payment_status, PaymentStatus.SUCCESS)
        spy.assert_called_once_with(self.payment.subscription_id)
        self.assertEqual(PaymentWebhookEvent.objects.count(), 1)

    def test_unknown_external_id_is_ignored(self):
        result = self.service.handle_webhook("stripe", "payment_intent.succeeded", "pi_unknown")

        self.assertEqual(result.status, "ignored")
        self.assertIsNone(result.payment_id)
        self.assertFalse(PaymentWebhookEvent.objects.exists())

    def test_external_id_is_scoped_to_provider(self):
        result = self.service.handle_webhook("momo", "payment.success", "pi_123")

        self.assertEqual(result.status, "ignored")
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, PaymentStatus.PENDING)

    def test_unmapped_event_is_recorded(self):
        result = self.service.handle_webhook("stripe", "charge.dispute.created", "pi_123")

        self.assertEqual(result.status, "unmapped")
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, PaymentStatus.PENDING)
        event = PaymentWebhookEvent.objects.get()
        self.assertEqual(event.process_error, "Unmapped event type: charge.dispute.created")

    def test_failure_keeps_subscription_by_default(self):
        result = self.service.handle_webhook(
            "stripe", "payment_intent.payment_failed", "pi_123", {"failure_reason": "card_declined"}
        )

        self.assertEqual(result.status, "processed")
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, PaymentStatus.FAILED)
        self.assertEqual(self.payment.failure_reason, "card_declined")
        self.assertEqual(self.subscription_status(), SubscriptionStatus.ACTIVE)

    @override_settings(BILLING_PAST_DUE_ON_FAILED_PAYMENT=True)
    def test_failure_marks_subscription_past_due_when_enabled(self):
        self.service.handle_webhook("stripe", "payment_intent.payment_failed", "pi_123")

        self.assertEqual(self.subscription_status(), SubscriptionStatus.PAST_DUE)
        self.assertFalse(UsageService().check_usage(self.user.id, "recipe_generation").can_use)

    def test_success_after_failure_is_applied(self):
        self.service.handle_webhook("stripe", "payment_intent.payment_failed", "pi_123")
        result = self.service.handle_webhook("stripe", "payment_intent.succeeded", "pi_123")

        self.assertEqual(result.status, "processed")
        self.assertEqual(result.payment_status, PaymentStatus.SUCCESS)

    def test_refunded_payment_is_not_revived(self):
        PaymentTransaction.objects.filter(id=self.payment.id).update(status=PaymentStatus.REFUNDED)

        result = self.service.handle_webhook("stripe", "payment_intent.succeeded", "pi_123")

        self.assertEqual(result.status, "unchanged")
        self.assertEqual(result.payment_status, PaymentStatus.REFUNDED)

    def test_unknown_provider(self):
        with self.assertRaises(PaymentValidationError):
            self.service.handle_webhook("paypal", "payment.success", "pi_123")


@override_settings(STRIPE_WEBHOOK_SECRET="whsec_test")
class WebhookSignatureTestCase(PaymentTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.service = PaymentService(providers=ProviderRegistry())
        self.payment = create_payment(self.subscription, external_id="pi_456")
        self.payload = {"id": "evt_1", "amount": 99000}

    def sign(self, event_type, external_id, payload):
        return sign_payload(webhook_envelope(event_type, external_id, payload), "whsec_test")

    def test_valid_signature_is_accepted(self):
        signature = self.sign("payment_intent.succeeded", "pi_456", self.payload)

        result = self.service.handle_webhook("stripe", "payment_intent.succeeded", "pi_456", self.payload, signature)

        self.assertEqual(result.status, "processed")

    def test_invalid_or_missing_signature_is_rejected(self):
        for signature in ("deadbeef", None, sign_payload(self.payload, "whsec_test")):
            with self.assertRaises(InvalidWebhookSignature):
                self.service.handle_webhook("stripe", "payment_intent.succeeded", "pi_456", self.payload, signature)

        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, PaymentStatus.PENDING)
        self.assertFalse(PaymentWebhookEvent.objects.exists())

    def test_signature_is_bound_to_payment_reference(self):
        UserSubscription.objects.filter(id=self.subscription.id).update(status=SubscriptionStatus.CANCELED)
        create_payment(self.subscription, external_id="pi_other")
        signature = self.sign("payment_intent.succeeded", "pi_other", {"id": "evt_other", "amount": 1000})

        with self.assertRaises(InvalidWebhookSignature):
            self.service.handle_webhook(
                "stripe", "payment_intent.succeeded", "pi_456", {"id": "evt_other", "amount": 1000}, signature
            )

        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, PaymentStatus.PENDING)
        self.assertEqual(self.subscription_status(), SubscriptionStatus.CANCELED)

    def test_signature_is_bound_to_event_type(self):
        signature = self.sign("payment_intent.payment_failed", "pi_456", self.payload)

        with self.assertRaises(InvalidWebhookSignature):
            self.service.handle_webhook("stripe", "payment_intent.succeeded", "pi_456", self.payload, signature)

        result = self.service.handle_webhook(
            "stripe", "payment_intent.payment_failed", "pi_456", self.payload, signature
        )
        self.assertEqual(result.payment_status, PaymentStatus.FAILED)


class RefundTestCase(PaymentTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.payment = create_payment(self.subscription, status=PaymentStatus.SUCCESS)

    def test_refund_successful_payment(self):
        UsageService().decrement_usage(self.user.id, "recipe_generation", 5)

        payment = self.service.refund(self.payment.id, reason="duplicate charge")

        self.assertEqual(payment.status, PaymentStatus.REFUNDED)
        self.assertEqual(payment.metadata["refund_reason"], "duplicate charge")
        self.assertEqual(payment.metadata["refund_amount"], "99000.00")
        self.assertEqual(payment.metadata["refund_reference"], f"rf_mock_{payment.id}")
        self.assertIn("refunded_at", payment.metadata)

        # access granted by the payment is left alone
        self.assertEqual(self.subscription_status(), SubscriptionStatus.ACTIVE)
        self.assertEqual(
            UsageQuota.objects.get(subscription=self.subscription, feature="recipe_generation").remaining,
            45,
        )

    def test_partial_refund(self):
        payment = self.service.refund(self.payment.id, amount="50000")

        self.assertEqual(payment.metadata["refund_amount"], "50000")

    def test_refund_amount_must_not_exceed_payment(self):
        for amount in ("100000", "0", "-5", "lots"):
            with self.assertRaises(PaymentValidationError):
                self.service.refund(self.payment.id, amount=amount)
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, PaymentStatus.SUCCESS)

    def test_only_successful_payments_can_be_refunded(self):
        failed = create_payment(self.subscription, status=PaymentStatus.FAILED)

        with self.assertRaises(PaymentValidationError):
            self.service.refund(failed.id)
        self.service.refund(self.payment.id)
        with self.assertRaises(PaymentValidationError):
            self.service.refund(self.payment.id)

    def test_provider_fault_keeps_payment_successful(self):
        with patch.object(StripeProvider, "refund", side_effect=PaymentProviderError("timeout")):
            with self.assertRaises(RefundFailed):
                self.service.refund(self.payment.id)

        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, PaymentStatus.SUCCESS)
        self.assertEqual(self.payment.failure_reason, "Refund failed: timeout")

    def test_unknown_payment(self):
        with self.assertRaises(PaymentNotFound):
            self.service.refund(uuid.uuid4())
        with self.assertRaises(PaymentNotFound):
            self.service.refund("garbage")


class PaymentQueriesTestCase(PaymentTestMixin, TestCase):
    def test_get_payment_checks_ownership(self):
        payment = create_payment(self.subscription)

        self.assertEqual(self.service.get_payment(payment.id, self.user.id).id, payment.id)
        with self.assertRaises(PaymentNotFound):
            self.service.get_payment(payment.id, create_user("other").id)

    def test_list_user_payments_is_paginated(self):
        for _ in range(3):
            create_payment(self.subscription)

        page = self.service.list_user_payments(self.user.id, page=2, limit=2)

        self.assertEqual(page["total"], 3)
        self.assertEqual(page["page"], 2)
        self.assertEqual(page["total_pages"], 2)
        self.assertEqual(len(page["payments"]), 1)

    def test_stats_count_revenue_from_successful_payments(self):
        create_payment(self.subscription, amount=Decimal("100000"), status=PaymentStatus.SUCCESS)
        create_payment(self.subscription, amount=Decimal("200000"), status=PaymentStatus.SUCCESS, payment_method="MOMO")
        create_payment(self.subscription, amount=Decimal("300000"), status=PaymentStatus.FAILED)
        create_payment(self.subscription, amount=Decimal("400000"), status=PaymentStatus.PENDING)

        stats = self.service.get_stats()

        self.assertEqual(stats["total_revenue"], Decimal("300000"))
        self.assertEqual(stats["total_transactions"], 4)
        self.assertEqual(stats["successful_transactions"], 2)
        self.assertEqual(stats["failed_transactions"], 1)
        self.assertEqual(stats["average_transaction_amount"], Decimal("150000.00"))
        self.assertEqual(stats["transactions_by_method"], {"MOMO": 1, "STRIPE": 3})
        self.assertEqual(stats["success_rate"], 50.0)
        self.assertEqual(len(stats["daily_revenue"]), 1)
        self.assertEqual(stats["daily_revenue"][0]["transactions"], 2)

    def test_stats_for_empty_range(self):
        stats = self.service.get_stats()

        self.assertEqual(stats["total_revenue"], Decimal("0"))
        self.assertEqual(stats["success_rate"], 0.0)
        self.assertEqual(stats["daily_revenue"], [])
