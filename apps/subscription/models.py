import uuid
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db import models

User = get_user_model()


class SubscriptionStatus(models.TextChoices):
    ACTIVE = 'ACTIVE', 'Active'
    PAST_DUE = 'PAST_DUE', 'Past Due'
    CANCELED = 'CANCELED', 'Canceled'
    EXPIRED = 'EXPIRED', 'Expired'


class BillingCycle(models.TextChoices):
    MONTHLY = 'MONTHLY', 'Monthly'
    YEARLY = 'YEARLY', 'Yearly'


class FeatureType(models.TextChoices):
    RECIPE_GENERATION = 'recipe_generation', 'Recipe Generation'
    VIDEO_GENERATION = 'video_generation', 'Video Generation'
    COMMUNITY_POST = 'community_post', 'Community Post'
    COMMUNITY_COMMENT = 'community_comment', 'Community Comment'


class SubscriptionPlan(models.Model):
    """
    Catalog entry. Read-only for the billing core; edited through the admin
    or the `seed_plans` command.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(
        max_length=50,
        unique=True,
        db_comment="Plan name shown to users (Free, Pro, Premium)"
    )
    description = models.TextField(blank=True, default='')
    monthly_price = models.DecimalField(
        max_digits=18,
        decimal_places=2,
        default=Decimal('0.00'),
        db_comment="Price per month"
    )
    yearly_price = models.DecimalField(
        max_digits=18,
        decimal_places=2,
        null=True,
        blank=True,
        db_comment="Price per year, empty when the plan is monthly only"
    )
    is_active = models.BooleanField(default=True)
    sort_order = models.IntegerField(default=0)
    features = models.JSONField(
        default=dict,
        blank=True,
        db_comment="Per-cycle limits (max_*) and boolean capability flags; -1 = unlimited"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'subscription_plans'
        db_table_comment = 'Subscription plans and their feature limits.'
        ordering = ['sort_order', 'name']
        indexes = [
            models.Index(fields=['is_active', 'sort_order'], name='idx_plans_active_sort'),
        ]

    def __str__(self):
        return f"{self.name} ({self.monthly_price}/month)"

    def limit_for(self, feature: str) -> int:
        from apps.subscription.constants import FEATURE_LIMIT_KEYS

        key = FEATURE_LIMIT_KEYS[feature]
        return int((self.features or {}).get(key, 0) or 0)

    def quota_limits(self) -> dict:
        return {feature: self.limit_for(feature) for feature in FeatureType.values}


class UserSubscription(models.Model):
    """
    One row per user. `usage_quota` lives in UsageQuota rows so that each
    counter can be decremented with a single conditional UPDATE.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        related_name='subscription',
        db_comment="Subscriber"
    )
    plan = models.ForeignKey(
        SubscriptionPlan,
        on_delete=models.PROTECT,
        related_name='subscriptions'
    )
    status = models.CharField(
        max_length=20,
        choices=SubscriptionStatus.choices,
        default=SubscriptionStatus.ACTIVE
    )
    billing_cycle = models.CharField(
        max_length=10,
        choices=BillingCycle.choices,
        default=BillingCycle.MONTHLY
    )
    start_date = models.DateTimeField()
    next_billing_date = models.DateTimeField()
    end_date = models.DateTimeField(null=True, blank=True)
    auto_renew = models.BooleanField(default=True)
    canceled_at = models.DateTimeField(null=True, blank=True)
    quota_cycle = models.PositiveIntegerField(
        default=0,
        db_comment="Bumped on every quota reset; decrements are fenced on it"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'user_subscriptions'
        db_table_comment = 'One subscription per user, with lifecycle state and billing dates.'
        indexes = [
            models.Index(fields=['status'], name='idx_user_subs_status'),
            models.Index(fields=['next_billing_date'], name='idx_user_subs_next_billing'),
        ]

    def __str__(self):
        return f"Subscription {self.id} - {self.user_id} - {self.status}"

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE

    @property
    def usage_quota(self) -> dict:
        return {quota.feature: quota.remaining for quota in self.quotas.all()}


class UsageQuota(models.Model):
    """Remaining uses of one feature for the current billing cycle."""
    subscription = models.ForeignKey(
        UserSubscription,
        on_delete=models.CASCADE,
        related_name='quotas'
    )
    feature = models.CharField(max_length=40, choices=FeatureType.choices)
    remaining = models.IntegerField(
        default=0,
        db_comment="Remaining uses in [0, plan limit]; -1 when the plan is unlimited"
    )
    cycle = models.PositiveIntegerField(
        default=0,
        db_comment="UserSubscription.quota_cycle this counter was written for"
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'subscription_usage_quotas'
        db_table_comment = 'Per-subscription, per-feature remaining quota counters.'
        constraints = [
            models.UniqueConstraint(
                fields=['subscription', 'feature'],
                name='uq_usage_quota_subscription_feature'
            )
        ]

    def __str__(self):
        return f"{self.subscription_id} {self.feature}: {self.remaining}"
