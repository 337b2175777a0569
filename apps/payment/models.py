import uuid

from django.contrib.auth import get_user_model
from django.db import models
from django.db.models import Q

User = get_user_model()


class PaymentStatus(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    SUCCESS = 'SUCCESS', 'Success'
    FAILED = 'FAILED', 'Failed'
    REFUNDED = 'REFUNDED', 'Refunded'


class PaymentMethod(models.TextChoices):
    STRIPE = 'STRIPE', 'Stripe'
    MOMO = 'MOMO', 'MoMo'
    ZALOPAY = 'ZALOPAY', 'ZaloPay'


class PaymentTransaction(models.Model):
    """
    Append-mostly ledger of subscription payment attempts. Rows are never deleted;
    the provider reference (external_id) is unique per payment method.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='payment_transactions',
        db_comment="Payer"
    )
    subscription = models.ForeignKey(
        'subscription.UserSubscription',
        on_delete=models.PROTECT,
        related_name='payments'
    )
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    currency = models.CharField(max_length=10, default='VND')
    payment_method = models.CharField(max_length=20, choices=PaymentMethod.choices)
    status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING
    )
    external_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_comment="Provider reference; idempotency key for webhook replays"
    )
    metadata = models.JSONField(
        default=dict,
        blank=True,
        db_comment="Provider redirect/QR data, refund details"
    )
    failure_reason = models.TextField(null=True, blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'payment_transactions'
        db_table_comment = 'Subscription payment attempts and their reconciled status.'
        indexes = [
            models.Index(fields=['user'], name='idx_payment_tx_user'),
            models.Index(fields=['status'], name='idx_payment_tx_status'),
            models.Index(fields=['created_at'], name='idx_payment_tx_created'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['payment_method', 'external_id'],
                condition=Q(external_id__isnull=False),
                name='uq_payment_tx_method_external_id'
            )
        ]

    def __str__(self):
        return f"Payment {self.id} - {self.payment_method} - {self.status} - {self.amount}"


class PaymentWebhookEvent(models.Model):
    """
    Inbox of processed provider webhooks. The unique key makes a replayed
    delivery of the same event a no-op.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    provider = models.CharField(max_length=20, db_comment="stripe | momo | zalopay")
    event_type = models.CharField(max_length=100)
    external_id = models.CharField(max_length=255)
    transaction = models.ForeignKey(
        PaymentTransaction,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='webhook_events'
    )
    payload = models.JSONField(
        default=dict,
        blank=True,
        db_comment="Raw webhook body kept for debugging and reconciliation"
    )
    received_at = models.DateTimeField(auto_now_add=True)
    processed = models.BooleanField(default=False)
    resulting_status = models.CharField(max_length=20, null=True, blank=True)
    process_error = models.TextField(null=True, blank=True)

    class Meta:
        db_table = 'payment_webhook_events'
        db_table_comment = 'Inbox of provider webhook deliveries, one row per (provider, external_id, event_type).'
        constraints = [
            models.UniqueConstraint(
                fields=['provider', 'external_id', 'event_type'],
                name='uq_payment_webhook_delivery'
            )
        ]
        indexes = [
            models.Index(fields=['received_at'], name='idx_payment_webhook_received'),
        ]

    def __str__(self):
        return f"Webhook {self.provider}:{self.event_type} - {self.external_id} - Processed: {self.processed}"
