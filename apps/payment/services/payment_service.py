import logging
import math
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count, Sum
from django.db.models.functions import TruncDate
from django.utils import timezone

from apps.logs.utils import log_event
from apps.payment.exceptions import (
    InvalidWebhookSignature,
    PaymentNotFound,
    PaymentValidationError,
    RefundFailed,
)
from apps.payment.models import PaymentMethod, PaymentStatus, PaymentTransaction
from apps.payment.repositories.payment_repository import PaymentRepository
from apps.payment.services.providers import ProviderRegistry
from apps.payment.utils.signature import webhook_envelope
from apps.subscription.exceptions import SubscriptionNotFound
from apps.subscription.repositories.subscription_repository import SubscriptionRepository
from apps.subscription.services.subscription_service import SubscriptionService

logger = logging.getLogger("app.payment")

MIN_PAYMENT_AMOUNT = Decimal("1000")
MAX_PAYMENT_AMOUNT = Decimal("50000000")


@dataclass
class WebhookResult:
    status: str
    payment_id: Optional[str] = None
    payment_status: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class PaymentService:
    """Creates subscription payments and reconciles provider webhooks."""

    def __init__(
        self,
        repository: Optional[PaymentRepository] = None,
        providers: Optional[ProviderRegistry] = None,
        subscription_service: Optional[SubscriptionService] = None,
        subscription_repository: Optional[SubscriptionRepository] = None,
    ) -> None:
        self.repository = repository or PaymentRepository()
        self.providers = providers or ProviderRegistry()
        self.subscription_service = subscription_service or SubscriptionService()
        self.subscription_repository = subscription_repository or SubscriptionRepository()

    def create_payment(
        self,
        user_id,
        subscription_id,
        amount,
        payment_method: str,
        currency: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentTransaction:
        """
        Persist a PENDING payment and ask the provider for a checkout reference.

        Provider failures mark the payment FAILED and are re-raised; the
        caller decides whether to retry.
        """
        if payment_method not in PaymentMethod.values:
            raise PaymentValidationError(f"Invalid payment method. Must be one of: {PaymentMethod.values}")

        try:
            amount = Decimal(str(amount))
        except (InvalidOperation, TypeError, ValueError):
            raise PaymentValidationError("Invalid amount format")
        if amount < MIN_PAYMENT_AMOUNT or amount > MAX_PAYMENT_AMOUNT:
            raise PaymentValidationError(
                f"Amount must be between {MIN_PAYMENT_AMOUNT} and {MAX_PAYMENT_AMOUNT}"
            )

        subscription = self.subscription_repository.get_subscription(subscription_id)
        if subscription is None:
            raise SubscriptionNotFound("Subscription not found")
        if str(subscription.user_id) != str(user_id):
            raise PaymentValidationError("Cannot create payment for another user's subscription")

        payment = self.repository.create_transaction(
            user_id=user_id,
            subscription=subscription,
            amount=amount,
            currency=currency or getattr(settings, "BILLING_DEFAULT_CURRENCY", "VND"),
            payment_method=payment_method,
            status=PaymentStatus.PENDING,
            metadata=metadata or {},
        )

        provider = self.providers.get(payment_method)
        try:
            result = provider.initialize(payment)
        except Exception as exc:
            payment.status = PaymentStatus.FAILED
            payment.failure_reason = str(exc)
            payment.save(update_fields=["status", "failure_reason", "updated_at"])
            logger.error("Payment %s initialization failed at %s: %s", payment.id, payment_method, exc)
            raise

        payment.external_id = result.external_id
        payment.metadata = {**(payment.metadata or {}), **result.metadata}
        payment.save(update_fields=["external_id", "metadata", "updated_at"])

        log_event(
            "Payment created",
            channel="payment",
            context={"user_id": str(user_id), "payment_id": str(payment.id), "subscription_id": str(subscription.id)},
            extra={"amount": str(amount), "payment_method": payment_method, "external_id": payment.external_id},
        )
        return payment

    def handle_webhook(
        self,
        provider: str,
        event_type: str,
        external_id: str,
        payload: Optional[Dict[str, Any]] = None,
        signature: Optional[str] = None,
    ) -> WebhookResult:
        payload = payload or {}
        client = self.providers.get(provider)
        if not client.verify_signature(webhook_envelope(event_type, external_id, payload), signature):
            logger.warning("Rejected %s webhook %s for %s: invalid signature", client.slug, event_type, external_id)
            raise InvalidWebhookSignature("Invalid webhook signature")

        payment = self.repository.find_by_external_id(client.method, external_id)
        if payment is None:
            log_event(
                f"Payment not found for external ID: {external_id}",
                level=logging.WARNING,
                channel="payment",
                context={"provider": client.slug, "external_id": external_id},
                extra={"event_type": event_type},
            )
            return WebhookResult(status="ignored")

        new_status = client.map_event(event_type)
        with transaction.atomic():
            try:
                with transaction.atomic():
                    event = self.repository.record_webhook_event(
                        client.slug, event_type, external_id, payment, payload
                    )
            except IntegrityError:
                logger.info("Duplicate %s webhook %s for %s ignored", client.slug, event_type, external_id)
                return WebhookResult("duplicate", str(payment.id), payment.status)

            payment = self.repository.lock_transaction(payment.id)
            outcome = self._apply_status(payment, new_status, payload)

            event.processed = True
            event.resulting_status = payment.status
            if new_status is None:
                event.process_error = f"Unmapped event type: {event_type}"
            event.save(update_fields=["processed", "resulting_status", "process_error"])

        if outcome == "processed":
            log_event(
                f"Payment {payment.status.lower()} via {client.slug} webhook",
                channel="payment",
                context={"payment_id": str(payment.id), "subscription_id": str(payment.subscription_id)},
                extra={"event_type": event_type, "external_id": external_id},
            )
        return WebhookResult(outcome, str(payment.id), payment.status)

    def refund(self, payment_id, amount=None, reason: Optional[str] = None) -> PaymentTransaction:
        """Refund a successful payment. The subscription and its quota are left as they are."""
        refund_error: Optional[Exception] = None
        with transaction.atomic():
            payment = self.repository.lock_transaction(payment_id)
            if payment is None:
                raise PaymentNotFound("Payment not found")
            if payment.status != PaymentStatus.SUCCESS:
                raise PaymentValidationError("Can only refund successful payments")

            refund_amount = payment.amount
            if amount is not None:
                try:
                    refund_amount = Decimal(str(amount))
                except (InvalidOperation, TypeError, ValueError):
                    raise PaymentValidationError("Invalid refund amount")
                if refund_amount <= 0 or refund_amount > payment.amount:
                    raise PaymentValidationError("Refund amount must be positive and not exceed the paid amount")

            provider = self.providers.get(payment.payment_method)
            try:
                result = provider.refund(payment, refund_amount, reason)
            except Exception as exc:
                refund_error = exc
                payment.failure_reason = f"Refund failed: {exc}"
                payment.save(update_fields=["failure_reason", "updated_at"])
            else:
                payment.status = PaymentStatus.REFUNDED
                payment.metadata = {
                    **(payment.metadata or {}),
                    "refund_reason": reason,
                    "refund_amount": str(refund_amount),
                    "refunded_at": timezone.now().isoformat(),
                    "refund_reference": (result or {}).get("refund_id"),
                }
                payment.save(update_fields=["status", "metadata", "updated_at"])

        if refund_error is not None:
            logger.error("Refund of payment %s failed: %s", payment.id, refund_error)
            raise RefundFailed("Refund processing failed") from refund_error

        log_event(
            "Payment refunded",
            channel="payment",
            context={"payment_id": str(payment.id), "user_id": str(payment.user_id)},
            extra={"refund_amount": str(refund_amount), "reason": reason},
        )
        return payment

    def get_payment(self, payment_id, user_id) -> PaymentTransaction:
        payment = self.repository.get_transaction(payment_id)
        if payment is None or str(payment.user_id) != str(user_id):
            raise PaymentNotFound("Payment not found")
        return payment

    def list_user_payments(self, user_id, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        page = max(page, 1)
        limit = min(max(limit, 1), 100)
        payments, total = self.repository.list_user_transactions(user_id, (page - 1) * limit, limit)
        return {
            "payments": [self.serialize_payment(payment) for payment in payments],
            "total": total,
            "page": page,
            "total_pages": math.ceil(total / limit) if total else 0,
        }

    def get_stats(self, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None) -> Dict[str, Any]:
        qs = self.repository.transactions_between(start_date, end_date)
        successful = qs.filter(status=PaymentStatus.SUCCESS)

        total_transactions = qs.count()
        successful_count = successful.count()
        failed_count = qs.filter(status=PaymentStatus.FAILED).count()
        total_revenue = successful.aggregate(total=Sum("amount"))["total"] or Decimal("0")

        by_method = {
            row["payment_method"]: row["count"]
            for row in qs.values("payment_method").annotate(count=Count("id")).order_by("payment_method")
        }
        daily = (
            successful.annotate(day=TruncDate("created_at"))
            .values("day")
            .annotate(revenue=Sum("amount"), transactions=Count("id"))
            .order_by("day")
        )
        return {
            "total_revenue": total_revenue,
            "total_transactions": total_transactions,
            "successful_transactions": successful_count,
            "failed_transactions": failed_count,
            "average_transaction_amount": (
                (total_revenue / successful_count).quantize(Decimal("0.01")) if successful_count else Decimal("0")
            ),
            "transactions_by_method": by_method,
            "success_rate": round(successful_count / total_transactions * 100, 2) if total_transactions else 0.0,
            "daily_revenue": [
                {"date": row["day"].isoformat(), "revenue": row["revenue"], "transactions": row["transactions"]}
                for row in daily
            ],
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _apply_status(self, payment: PaymentTransaction, new_status: Optional[str], payload: Dict[str, Any]) -> str:
        if new_status is None:
            return "unmapped"
        # REFUNDED is terminal; late deliveries must not revive the payment
        if payment.status == new_status or payment.status == PaymentStatus.REFUNDED:
            return "unchanged"

        payment.status = new_status
        payment.processed_at = timezone.now()
        update_fields = ["status", "processed_at", "updated_at"]
        if new_status == PaymentStatus.FAILED:
            payment.failure_reason = payload.get("failure_reason") or "Payment failed at provider"
            update_fields.append("failure_reason")
        payment.save(update_fields=update_fields)

        if new_status == PaymentStatus.SUCCESS:
            self.subscription_service.activate(payment.subscription_id)
        elif new_status == PaymentStatus.FAILED and getattr(settings, "BILLING_PAST_DUE_ON_FAILED_PAYMENT", False):
            self.subscription_service.mark_past_due(payment.subscription_id)
        return "processed"

    @staticmethod
    def serialize_payment(payment: PaymentTransaction) -> Dict[str, Any]:
        return {
            "id": str(payment.id),
            "user_id": payment.user_id,
            "subscription_id": str(payment.subscription_id),
            "amount": payment.amount,
            "currency": payment.currency,
            "payment_method": payment.payment_method,
            "status": payment.status,
            "external_id": payment.external_id,
            "metadata": payment.metadata or {},
            "failure_reason": payment.failure_reason,
            "processed_at": payment.processed_at.isoformat() if payment.processed_at else None,
            "created_at": payment.created_at.isoformat(),
            "updated_at": payment.updated_at.isoformat(),
        }
