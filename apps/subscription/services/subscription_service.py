import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from django.conf import settings
from django.core.cache import cache
from django.db import IntegrityError, transaction
from django.db.models import Count, Sum
from django.utils import timezone

from apps.logs.utils import log_event
from apps.subscription.constants import SUBSCRIPTION_CACHE_KEY
from apps.subscription.exceptions import (
    BillingValidationError,
    SubscriptionConflict,
    SubscriptionNotFound,
)
from apps.subscription.models import (
    BillingCycle,
    SubscriptionStatus,
    UserSubscription,
)
from apps.subscription.repositories.subscription_repository import SubscriptionRepository
from apps.subscription.services.plan_catalog import PlanCatalogService
from apps.subscription.services.usage_service import UsageService
from apps.subscription.utils import add_billing_period

logger = logging.getLogger("app.billing")


class SubscriptionService:
    """Create, change and cancel a user's subscription; owns quota (re)initialization."""

    def __init__(
        self,
        repository: Optional[SubscriptionRepository] = None,
        plan_catalog: Optional[PlanCatalogService] = None,
        usage_service: Optional[UsageService] = None,
    ) -> None:
        self.repository = repository or SubscriptionRepository()
        self.plan_catalog = plan_catalog or PlanCatalogService(self.repository)
        self.usage_service = usage_service or UsageService(self.repository)

    def get_subscription(self, user_id) -> Optional[Dict[str, Any]]:
        cache_key = SUBSCRIPTION_CACHE_KEY.format(user_id=user_id)
        snapshot = cache.get(cache_key)
        if snapshot is not None:
            return snapshot

        subscription = self.repository.get_subscription_for_user(user_id)
        if subscription is None:
            return None
        snapshot = self._serialize_subscription(subscription)
        cache.set(cache_key, snapshot, getattr(settings, "BILLING_SUBSCRIPTION_CACHE_TTL", 300))
        return snapshot

    def create(
        self,
        user_id,
        plan_id,
        billing_cycle: str = BillingCycle.MONTHLY,
        auto_renew: bool = True,
    ) -> Dict[str, Any]:
        """Subscribe the user; a CANCELED/EXPIRED/PAST_DUE row is overwritten in place."""
        billing_cycle = self._coerce_billing_cycle(billing_cycle)
        plan = self.plan_catalog.get_plan(plan_id, require_active=True)

        with transaction.atomic():
            subscription = self.repository.lock_subscription_for_user(user_id)
            if subscription is not None and subscription.status == SubscriptionStatus.ACTIVE:
                raise SubscriptionConflict("User already has an active subscription")

            now = timezone.now()
            next_billing_date = add_billing_period(now, billing_cycle)
            if subscription is not None:
                subscription.plan = plan
                subscription.status = SubscriptionStatus.ACTIVE
                subscription.billing_cycle = billing_cycle
                subscription.start_date = now
                subscription.next_billing_date = next_billing_date
                subscription.end_date = None
                subscription.canceled_at = None
                subscription.auto_renew = auto_renew
                subscription.save()
            else:
                try:
                    with transaction.atomic():
                        subscription = UserSubscription.objects.create(
                            user_id=user_id,
                            plan=plan,
                            status=SubscriptionStatus.ACTIVE,
                            billing_cycle=billing_cycle,
                            start_date=now,
                            next_billing_date=next_billing_date,
                            auto_renew=auto_renew,
                        )
                except IntegrityError as exc:
                    # Lost a race with a concurrent create for the same user
                    raise SubscriptionConflict("User already has an active subscription") from exc

            self.usage_service.initialize_quota(subscription)

        self._invalidate(user_id)
        log_event(
            f"Subscription created on plan {plan.name}",
            channel="billing",
            context={"user_id": str(user_id), "subscription_id": str(subscription.id)},
            extra={"billing_cycle": billing_cycle, "auto_renew": auto_renew},
        )
        return self._serialize_subscription(subscription)

    def update(
        self,
        user_id,
        plan_id=None,
        status: Optional[str] = None,
        billing_cycle: Optional[str] = None,
        auto_renew: Optional[bool] = None,
    ) -> Dict[str, Any]:
        with transaction.atomic():
            subscription = self.repository.lock_subscription_for_user(user_id)
            if subscription is None:
                raise SubscriptionNotFound("Subscription not found")

            plan_changed = False
            if plan_id is not None and str(plan_id) != str(subscription.plan_id):
                subscription.plan = self.plan_catalog.get_plan(plan_id, require_active=True)
                plan_changed = True

            if billing_cycle is not None:
                billing_cycle = self._coerce_billing_cycle(billing_cycle)
                if billing_cycle != subscription.billing_cycle:
                    subscription.billing_cycle = billing_cycle
                    subscription.next_billing_date = add_billing_period(subscription.start_date, billing_cycle)

            if auto_renew is not None:
                subscription.auto_renew = auto_renew

            if status is not None:
                subscription.status = self._coerce_status(status)
                if subscription.status == SubscriptionStatus.CANCELED:
                    subscription.canceled_at = timezone.now()
                    subscription.auto_renew = False

            subscription.save()
            if plan_changed:
                self.usage_service.initialize_quota(subscription)

        self._invalidate(user_id)
        log_event(
            "Subscription updated",
            channel="billing",
            context={"user_id": str(user_id), "subscription_id": str(subscription.id)},
            extra={
                "plan_changed": plan_changed,
                "status": subscription.status,
                "billing_cycle": subscription.billing_cycle,
                "auto_renew": subscription.auto_renew,
            },
        )
        return self._serialize_subscription(subscription)

    def cancel(self, user_id) -> Dict[str, Any]:
        return self.update(user_id, status=SubscriptionStatus.CANCELED, auto_renew=False)

    def activate(self, subscription_id) -> bool:
        """Set the subscription ACTIVE after a successful payment. Returns False if it already was."""
        with transaction.atomic():
            subscription = self.repository.lock_subscription(subscription_id)
            if subscription is None:
                raise SubscriptionNotFound("Subscription not found")
            if subscription.status == SubscriptionStatus.ACTIVE:
                return False
            previous = subscription.status
            subscription.status = SubscriptionStatus.ACTIVE
            subscription.end_date = None
            subscription.save(update_fields=["status", "end_date", "updated_at"])

        self._invalidate(subscription.user_id)
        log_event(
            "Subscription activated by payment",
            channel="billing",
            context={"user_id": str(subscription.user_id), "subscription_id": str(subscription.id)},
            extra={"previous_status": previous},
        )
        return True

    def mark_past_due(self, subscription_id) -> bool:
        with transaction.atomic():
            subscription = self.repository.lock_subscription(subscription_id)
            if subscription is None:
                raise SubscriptionNotFound("Subscription not found")
            if subscription.status != SubscriptionStatus.ACTIVE:
                return False
            subscription.status = SubscriptionStatus.PAST_DUE
            subscription.save(update_fields=["status", "updated_at"])

        self._invalidate(subscription.user_id)
        logger.warning("Subscription %s marked past due after failed payment", subscription_id)
        return True

    def rollover_billing_cycles(self, now: Optional[datetime] = None, limit: Optional[int] = None) -> Dict[str, int]:
        """Renew or expire subscriptions whose billing date has passed."""
        now = now or timezone.now()
        processed = renewed = expired = 0

        for subscription_id in self.repository.due_subscription_ids(now, limit=limit):
            with transaction.atomic():
                subscription = self.repository.lock_subscription(subscription_id)
                if subscription is None or subscription.next_billing_date > now:
                    continue
                processed += 1

                if subscription.status == SubscriptionStatus.ACTIVE and subscription.auto_renew:
                    periods = 1
                    while add_billing_period(subscription.start_date, subscription.billing_cycle, periods) <= now:
                        periods += 1
                    subscription.next_billing_date = add_billing_period(
                        subscription.start_date, subscription.billing_cycle, periods
                    )
                    subscription.save(update_fields=["next_billing_date", "updated_at"])
                    self.usage_service.initialize_quota(subscription)
                    renewed += 1
                else:
                    subscription.status = SubscriptionStatus.EXPIRED
                    subscription.end_date = subscription.next_billing_date
                    subscription.auto_renew = False
                    subscription.save(update_fields=["status", "end_date", "auto_renew", "updated_at"])
                    expired += 1

            self._invalidate(subscription.user_id)

        log_event(
            "Billing cycle rollover finished",
            channel="billing",
            extra={"processed": processed, "renewed": renewed, "expired": expired},
        )
        return {"processed": processed, "renewed": renewed, "expired": expired}

    def get_subscription_stats(self) -> Dict[str, Any]:
        from apps.payment.models import PaymentStatus, PaymentTransaction

        total = UserSubscription.objects.count()
        active = UserSubscription.objects.filter(status=SubscriptionStatus.ACTIVE).count()

        month_start = timezone.now().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        revenue = (
            PaymentTransaction.objects.filter(status=PaymentStatus.SUCCESS, created_at__gte=month_start)
            .aggregate(total=Sum("amount"))["total"]
        ) or Decimal("0")

        by_plan = (
            UserSubscription.objects.filter(status=SubscriptionStatus.ACTIVE)
            .values("plan__name")
            .annotate(count=Count("id"))
            .order_by("plan__name")
        )
        return {
            "total_subscriptions": total,
            "active_subscriptions": active,
            "revenue_this_month": revenue,
            "subscribers_by_plan": {row["plan__name"]: row["count"] for row in by_plan},
            "retention_rate": round(active / total * 100, 2) if total else 0.0,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _coerce_billing_cycle(value: str) -> str:
        if value not in BillingCycle.values:
            raise BillingValidationError(f"Invalid billing cycle. Must be one of: {BillingCycle.values}")
        return BillingCycle(value).value

    @staticmethod
    def _coerce_status(value: str) -> str:
        if value not in SubscriptionStatus.values:
            raise BillingValidationError(f"Invalid status. Must be one of: {SubscriptionStatus.values}")
        return SubscriptionStatus(value).value

    @staticmethod
    def _invalidate(user_id) -> None:
        cache.delete(SUBSCRIPTION_CACHE_KEY.format(user_id=user_id))

    def _serialize_subscription(self, subscription: UserSubscription) -> Dict[str, Any]:
        plan = subscription.plan
        return {
            "id": str(subscription.id),
            "user_id": subscription.user_id,
            "plan_id": str(plan.id),
            "plan_name": plan.name,
            "status": subscription.status,
            "billing_cycle": subscription.billing_cycle,
            "start_date": subscription.start_date.isoformat(),
            "next_billing_date": subscription.next_billing_date.isoformat(),
            "end_date": subscription.end_date.isoformat() if subscription.end_date else None,
            "auto_renew": subscription.auto_renew,
            "canceled_at": subscription.canceled_at.isoformat() if subscription.canceled_at else None,
            "usage_quota": self.repository.get_quotas(subscription.id),
            "created_at": subscription.created_at.isoformat(),
            "updated_at": subscription.updated_at.isoformat(),
        }
