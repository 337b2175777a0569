import uuid
from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='SubscriptionPlan',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(db_comment='Plan name shown to users (Free, Pro, Premium)', max_length=50, unique=True)),
                ('description', models.TextField(blank=True, default='')),
                ('monthly_price', models.DecimalField(db_comment='Price per month', decimal_places=2, default=Decimal('0.00'), max_digits=18)),
                ('yearly_price', models.DecimalField(blank=True, db_comment='Price per year, empty when the plan is monthly only', decimal_places=2, max_digits=18, null=True)),
                ('is_active', models.BooleanField(default=True)),
                ('sort_order', models.IntegerField(default=0)),
                ('features', models.JSONField(blank=True, db_comment='Per-cycle limits (max_*) and boolean capability flags; -1 = unlimited', default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'subscription_plans',
                'db_table_comment': 'Subscription plans and their feature limits.',
                'ordering': ['sort_order', 'name'],
                'indexes': [models.Index(fields=['is_active', 'sort_order'], name='idx_plans_active_sort')],
            },
        ),
        migrations.CreateModel(
            name='UserSubscription',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('status', models.CharField(choices=[('ACTIVE', 'Active'), ('PAST_DUE', 'Past Due'), ('CANCELED', 'Canceled'), ('EXPIRED', 'Expired')], default='ACTIVE', max_length=20)),
                ('billing_cycle', models.CharField(choices=[('MONTHLY', 'Monthly'), ('YEARLY', 'Yearly')], default='MONTHLY', max_length=10)),
                ('start_date', models.DateTimeField()),
                ('next_billing_date', models.DateTimeField()),
                ('end_date', models.DateTimeField(blank=True, null=True)),
                ('auto_renew', models.BooleanField(default=True)),
                ('canceled_at', models.DateTimeField(blank=True, null=True)),
                ('quota_cycle', models.PositiveIntegerField(db_comment='Bumped on every quota reset; decrements are fenced on it', default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('plan', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='subscriptions', to='subscription.subscriptionplan')),
                ('user', models.OneToOneField(db_comment='Subscriber', on_delete=django.db.models.deletion.CASCADE, related_name='subscription', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'user_subscriptions',
                'db_table_comment': 'One subscription per user, with lifecycle state and billing dates.',
                'indexes': [
                    models.Index(fields=['status'], name='idx_user_subs_status'),
                    models.Index(fields=['next_billing_date'], name='idx_user_subs_next_billing'),
                ],
            },
        ),
        migrations.CreateModel(
            name='UsageQuota',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('feature', models.CharField(choices=[('recipe_generation', 'Recipe Generation'), ('video_generation', 'Video Generation'), ('community_post', 'Community Post'), ('community_comment', 'Community Comment')], max_length=40)),
                ('remaining', models.IntegerField(db_comment='Remaining uses in [0, plan limit]; -1 when the plan is unlimited', default=0)),
                ('cycle', models.PositiveIntegerField(db_comment='UserSubscription.quota_cycle this counter was written for', default=0)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('subscription', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='quotas', to='subscription.usersubscription')),
            ],
            options={
                'db_table': 'subscription_usage_quotas',
                'db_table_comment': 'Per-subscription, per-feature remaining quota counters.',
                'constraints': [models.UniqueConstraint(fields=('subscription', 'feature'), name='uq_usage_quota_subscription_feature')],
            },
        ),
    ]
