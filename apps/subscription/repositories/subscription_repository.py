from typing import Dict, List, Optional

from django.core.exceptions import ValidationError
from django.db.models import F, Value
from django.db.models.functions import Greatest

from apps.subscription.models import (
    SubscriptionPlan,
    SubscriptionStatus,
    UsageQuota,
    UserSubscription,
)


class SubscriptionRepository:
    """Data access for plans, subscriptions and usage quota rows."""

    @staticmethod
    def list_active_plans() -> List[SubscriptionPlan]:
        return list(SubscriptionPlan.objects.filter(is_active=True).order_by("sort_order", "name"))

    @staticmethod
    def get_plan(plan_id) -> Optional[SubscriptionPlan]:
        try:
            return SubscriptionPlan.objects.get(id=plan_id)
        except (SubscriptionPlan.DoesNotExist, ValidationError, ValueError):
            return None

    @staticmethod
    def get_subscription_for_user(user_id) -> Optional[UserSubscription]:
        return (
            UserSubscription.objects.select_related("plan")
            .filter(user_id=user_id)
            .first()
        )

    @staticmethod
    def get_subscription(subscription_id) -> Optional[UserSubscription]:
        try:
            return UserSubscription.objects.select_related("plan").get(id=subscription_id)
        except (UserSubscription.DoesNotExist, ValidationError, ValueError):
            return None

    @staticmethod
    def lock_subscription_for_user(user_id) -> Optional[UserSubscription]:
        """Must be called inside transaction.atomic()."""
        return (
            UserSubscription.objects.select_for_update()
            .select_related("plan")
            .filter(user_id=user_id)
            .first()
        )

    @staticmethod
    def lock_subscription(subscription_id) -> Optional[UserSubscription]:
        """Must be called inside transaction.atomic()."""
        try:
            return (
                UserSubscription.objects.select_for_update()
                .select_related("plan")
                .get(id=subscription_id)
            )
        except (UserSubscription.DoesNotExist, ValidationError, ValueError):
            return None

    @staticmethod
    def get_quota(subscription_id, feature: str) -> Optional[UsageQuota]:
        return UsageQuota.objects.filter(subscription_id=subscription_id, feature=feature).first()

    @staticmethod
    def get_quotas(subscription_id) -> Dict[str, int]:
        rows = UsageQuota.objects.filter(subscription_id=subscription_id).values_list("feature", "remaining")
        return dict(rows)

    @staticmethod
    def write_quotas(subscription: UserSubscription, limits: Dict[str, int], cycle: int) -> None:
        for feature, remaining in limits.items():
            UsageQuota.objects.update_or_create(
                subscription=subscription,
                feature=feature,
                defaults={"remaining": remaining, "cycle": cycle},
            )

    @staticmethod
    def decrement_quota(subscription_id, feature: str, cycle: int, amount: int) -> int:
        """
        Conditional decrement in one UPDATE statement.

        Returns the number of rows changed: 0 when the counter is exhausted,
        the subscription is no longer ACTIVE, or the cycle has moved on.
        """
        return (
            UsageQuota.objects.filter(
                subscription_id=subscription_id,
                feature=feature,
                cycle=cycle,
                remaining__gt=0,
                subscription__status=SubscriptionStatus.ACTIVE,
            )
            .update(remaining=Greatest(F("remaining") - amount, Value(0)))
        )

    @staticmethod
    def active_subscription_ids() -> List:
        return list(
            UserSubscription.objects.filter(status=SubscriptionStatus.ACTIVE)
            .order_by("created_at")
            .values_list("id", flat=True)
        )

    @staticmethod
    def due_subscription_ids(now, limit: Optional[int] = None) -> List:
        qs = (
            UserSubscription.objects.filter(
                status__in=[SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELED],
                next_billing_date__lte=now,
            )
            .order_by("next_billing_date")
            .values_list("id", flat=True)
        )
        if limit:
            qs = qs[:limit]
        return list(qs)
