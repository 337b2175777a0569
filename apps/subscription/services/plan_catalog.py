import logging
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.core.cache import cache

from apps.subscription.constants import PLANS_CACHE_KEY
from apps.subscription.exceptions import PlanNotFound
from apps.subscription.models import SubscriptionPlan
from apps.subscription.repositories.subscription_repository import SubscriptionRepository

logger = logging.getLogger("app.billing")


class PlanCatalogService:
    """Read-only access to subscription plans, cached with a long TTL."""

    def __init__(self, repository: Optional[SubscriptionRepository] = None) -> None:
        self.repository = repository or SubscriptionRepository()

    def list_active_plans(self) -> List[Dict[str, Any]]:
        plans = cache.get(PLANS_CACHE_KEY)
        if plans is None:
            plans = [self.serialize_plan(plan) for plan in self.repository.list_active_plans()]
            cache.set(PLANS_CACHE_KEY, plans, getattr(settings, "BILLING_PLAN_CACHE_TTL", 3600))
        return plans

    def get_plan(self, plan_id, require_active: bool = False) -> SubscriptionPlan:
        plan = self.repository.get_plan(plan_id)
        if plan is None:
            raise PlanNotFound("Subscription plan not found")
        if require_active and not plan.is_active:
            raise PlanNotFound("Subscription plan not found or inactive")
        return plan

    def invalidate(self) -> None:
        cache.delete(PLANS_CACHE_KEY)
        logger.info("Plan catalog cache invalidated")

    @staticmethod
    def serialize_plan(plan: SubscriptionPlan) -> Dict[str, Any]:
        return {
            "id": str(plan.id),
            "name": plan.name,
            "description": plan.description,
            "monthly_price": plan.monthly_price,
            "yearly_price": plan.yearly_price,
            "is_active": plan.is_active,
            "sort_order": plan.sort_order,
            "features": plan.features or {},
        }
