from decimal import Decimal
from typing import Optional

from django.contrib.auth import get_user_model

from apps.subscription.constants import DEFAULT_PLANS
from apps.subscription.models import SubscriptionPlan, UserSubscription
from apps.subscription.services.subscription_service import SubscriptionService

User = get_user_model()


def create_user(username: str = "subscriber", *, is_staff: bool = False) -> User:
    return User.objects.create_user(
        username=username,
        email=f"{username}@example.com",
        password="testpass123",
        is_staff=is_staff,
    )


def create_plan(
    name: str = "Pro",
    *,
    monthly_price: Decimal = Decimal("99000"),
    yearly_price: Optional[Decimal] = Decimal("990000"),
    is_active: bool = True,
    sort_order: int = 2,
    **features,
) -> SubscriptionPlan:
    base = next((p["features"] for p in DEFAULT_PLANS if p["name"] == name), DEFAULT_PLANS[1]["features"])
    return SubscriptionPlan.objects.create(
        name=name,
        monthly_price=monthly_price,
        yearly_price=yearly_price,
        is_active=is_active,
        sort_order=sort_order,
        features={**base, **features},
    )


def create_default_plans() -> dict:
    plans = {}
    for plan_data in DEFAULT_PLANS:
        plans[plan_data["name"]] = SubscriptionPlan.objects.create(is_active=True, **plan_data)
    return plans


def create_subscription(user, plan: SubscriptionPlan, **kwargs) -> UserSubscription:
    SubscriptionService().create(user.id, plan.id, **kwargs)
    return UserSubscription.objects.select_related("plan").get(user=user)
