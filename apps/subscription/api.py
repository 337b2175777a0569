from typing import List

from django.http import HttpRequest
from ninja import Router
from ninja.errors import HttpError

from core.jwt_auth import JWTAuth
from apps.subscription.schemas import (
    CapabilityAccessOut,
    CreateSubscriptionRequest,
    PlanOut,
    QuickStatusOut,
    QuotaResetOut,
    SubscriptionOut,
    SubscriptionStatsOut,
    UpdateSubscriptionRequest,
    UsageCheckOut,
    UsageDecrementRequest,
    UsageSummaryOut,
)
from apps.subscription.exceptions import SubscriptionNotFound
from apps.subscription.services.plan_catalog import PlanCatalogService
from apps.subscription.services.subscription_service import SubscriptionService
from apps.subscription.services.usage_service import UsageService

router = Router()
plan_catalog = PlanCatalogService()
subscription_service = SubscriptionService()
usage_service = UsageService()


def require_staff(request: HttpRequest):
    user = request.auth
    if not getattr(user, "is_staff", False):
        raise HttpError(403, "Admin privileges required")
    return user


@router.get("/plans", response=List[PlanOut])
def list_plans(request: HttpRequest):
    """Active plans ordered for display."""
    return plan_catalog.list_active_plans()


@router.get("/plans/{plan_id}", response=PlanOut)
def get_plan(request: HttpRequest, plan_id: str):
    plan = plan_catalog.get_plan(plan_id)
    return plan_catalog.serialize_plan(plan)


@router.get("/subscription", response=SubscriptionOut, auth=JWTAuth())
def get_my_subscription(request: HttpRequest):
    subscription = subscription_service.get_subscription(request.auth.id)
    if subscription is None:
        raise SubscriptionNotFound("Subscription not found")
    return subscription


@router.post("/subscription", response={201: SubscriptionOut}, auth=JWTAuth())
def create_subscription(request: HttpRequest, data: CreateSubscriptionRequest):
    subscription = subscription_service.create(
        request.auth.id,
        plan_id=data.plan_id,
        billing_cycle=data.billing_cycle,
        auto_renew=data.auto_renew,
    )
    return 201, subscription


@router.put("/subscription", response=SubscriptionOut, auth=JWTAuth())
def update_subscription(request: HttpRequest, data: UpdateSubscriptionRequest):
    return subscription_service.update(
        request.auth.id,
        plan_id=data.plan_id,
        status=data.status,
        billing_cycle=data.billing_cycle,
        auto_renew=data.auto_renew,
    )


@router.delete("/subscription", response=SubscriptionOut, auth=JWTAuth())
def cancel_subscription(request: HttpRequest):
    """Cancel the caller's subscription; auto-renew is switched off."""
    return subscription_service.cancel(request.auth.id)


@router.get("/usage/check/{feature}", response=UsageCheckOut, auth=JWTAuth())
def check_usage(request: HttpRequest, feature: str):
    return usage_service.check_usage(request.auth.id, feature).as_dict()


@router.post("/usage/decrement", response=UsageCheckOut, auth=JWTAuth())
def decrement_usage(request: HttpRequest, data: UsageDecrementRequest):
    return usage_service.decrement_usage(request.auth.id, data.feature, data.amount).as_dict()


@router.get("/usage/summary", response=UsageSummaryOut, auth=JWTAuth())
def usage_summary(request: HttpRequest):
    return usage_service.get_usage_summary(request.auth.id)


@router.get("/status", response=QuickStatusOut, auth=JWTAuth())
def quick_status(request: HttpRequest):
    return usage_service.get_quick_status(request.auth.id)


@router.get("/features/{capability}/access", response=CapabilityAccessOut, auth=JWTAuth())
def capability_access(request: HttpRequest, capability: str):
    return {
        "capability": capability,
        "has_access": usage_service.has_capability(request.auth.id, capability),
    }


@router.get("/admin/stats/subscriptions", response=SubscriptionStatsOut, auth=JWTAuth())
def subscription_stats(request: HttpRequest):
    require_staff(request)
    return subscription_service.get_subscription_stats()


@router.post("/admin/usage/reset-quotas", response=QuotaResetOut, auth=JWTAuth())
def reset_quotas(request: HttpRequest):
    """Start a fresh quota cycle for every ACTIVE subscription."""
    require_staff(request)
    return {"reset_count": usage_service.reset_all_user_quotas()}
