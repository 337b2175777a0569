import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('subscription', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='PaymentTransaction',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=18)),
                ('currency', models.CharField(default='VND', max_length=10)),
                ('payment_method', models.CharField(choices=[('STRIPE', 'Stripe'), ('MOMO', 'MoMo'), ('ZALOPAY', 'ZaloPay')], max_length=20)),
                ('status', models.CharField(choices=[('PENDING', 'Pending'), ('SUCCESS', 'Success'), ('FAILED', 'Failed'), ('REFUNDED', 'Refunded')], default='PENDING', max_length=20)),
                ('external_id', models.CharField(blank=True, db_comment='Provider reference; idempotency key for webhook replays', max_length=255, null=True)),
                ('metadata', models.JSONField(blank=True, db_comment='Provider redirect/QR data, refund details', default=dict)),
                ('failure_reason', models.TextField(blank=True, null=True)),
                ('processed_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('subscription', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='payments', to='subscription.usersubscription')),
                ('user', models.ForeignKey(db_comment='Payer', on_delete=django.db.models.deletion.CASCADE, related_name='payment_transactions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'payment_transactions',
                'db_table_comment': 'Subscription payment attempts and their reconciled status.',
                'indexes': [
                    models.Index(fields=['user'], name='idx_payment_tx_user'),
                    models.Index(fields=['status'], name='idx_payment_tx_status'),
                    models.Index(fields=['created_at'], name='idx_payment_tx_created'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('external_id__isnull', False)), fields=('payment_method', 'external_id'), name='uq_payment_tx_method_external_id'),
                ],
            },
        ),
        migrations.CreateModel(
            name='PaymentWebhookEvent',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('provider', models.CharField(db_comment='stripe | momo | zalopay', max_length=20)),
                ('event_type', models.CharField(max_length=100)),
                ('external_id', models.CharField(max_length=255)),
                ('payload', models.JSONField(blank=True, db_comment='Raw webhook body kept for debugging and reconciliation', default=dict)),
                ('received_at', models.DateTimeField(auto_now_add=True)),
                ('processed', models.BooleanField(default=False)),
                ('resulting_status', models.CharField(blank=True, max_length=20, null=True)),
                ('process_error', models.TextField(blank=True, null=True)),
                ('transaction', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='webhook_events', to='payment.paymenttransaction')),
            ],
            options={
                'db_table': 'payment_webhook_events',
                'db_table_comment': 'Inbox of provider webhook deliveries, one row per (provider, external_id, event_type).',
                'indexes': [models.Index(fields=['received_at'], name='idx_payment_webhook_received')],
                'constraints': [
                    models.UniqueConstraint(fields=('provider', 'external_id', 'event_type'), name='uq_payment_webhook_delivery'),
                ],
            },
        ),
    ]
