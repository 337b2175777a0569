from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from django.core.exceptions import ValidationError
from django.db.models import QuerySet

from apps.payment.models import PaymentTransaction, PaymentWebhookEvent


class PaymentRepository:
    """Repository layer for payment transactions and the webhook inbox"""

    @staticmethod
    def create_transaction(**fields) -> PaymentTransaction:
        return PaymentTransaction.objects.create(**fields)

    @staticmethod
    def get_transaction(payment_id) -> Optional[PaymentTransaction]:
        try:
            return PaymentTransaction.objects.get(id=payment_id)
        except (PaymentTransaction.DoesNotExist, ValidationError, ValueError):
            return None

    @staticmethod
    def lock_transaction(payment_id) -> Optional[PaymentTransaction]:
        """Must be called inside transaction.atomic()."""
        try:
            return PaymentTransaction.objects.select_for_update().get(id=payment_id)
        except (PaymentTransaction.DoesNotExist, ValidationError, ValueError):
            return None

    @staticmethod
    def find_by_external_id(payment_method: str, external_id: str) -> Optional[PaymentTransaction]:
        return PaymentTransaction.objects.filter(
            payment_method=payment_method,
            external_id=external_id,
        ).first()

    @staticmethod
    def list_user_transactions(user_id, offset: int, limit: int) -> Tuple[list, int]:
        qs = PaymentTransaction.objects.filter(user_id=user_id).order_by("-created_at")
        return list(qs[offset:offset + limit]), qs.count()

    @staticmethod
    def transactions_between(start_date: Optional[datetime], end_date: Optional[datetime]) -> QuerySet:
        qs = PaymentTransaction.objects.all()
        if start_date:
            qs = qs.filter(created_at__gte=start_date)
        if end_date:
            qs = qs.filter(created_at__lte=end_date)
        return qs

    @staticmethod
    def record_webhook_event(
        provider: str,
        event_type: str,
        external_id: str,
        transaction: PaymentTransaction,
        payload: Dict[str, Any],
    ) -> PaymentWebhookEvent:
        """Insert the inbox row; raises IntegrityError for a replayed delivery."""
        return PaymentWebhookEvent.objects.create(
            provider=provider,
            event_type=event_type,
            external_id=external_id,
            transaction=transaction,
            payload=payload or {},
        )
