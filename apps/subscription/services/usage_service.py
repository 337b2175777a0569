import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Tuple

from django.core.cache import cache
from django.db import transaction

from apps.logs.utils import log_event
from apps.subscription.constants import (
    CAPABILITIES,
    FEATURE_LIMIT_KEYS,
    FREE_PLAN_LIMITS,
    FREE_PLAN_NAME,
    SUBSCRIPTION_CACHE_KEY,
    UNLIMITED,
    free_plan_message,
    suggested_plan_for,
    upgrade_message,
)
from apps.subscription.exceptions import (
    BillingValidationError,
    InvalidFeatureType,
    QuotaExceeded,
    StaleQuotaSnapshot,
    SubscriptionNotFound,
)
from apps.subscription.models import (
    FeatureType,
    SubscriptionStatus,
    UsageQuota,
    UserSubscription,
)
from apps.subscription.repositories.subscription_repository import SubscriptionRepository

logger = logging.getLogger("app.billing")


@dataclass
class UsageCheck:
    can_use: bool
    remaining: int
    total: int
    plan_name: str
    suggested_plan: Optional[str] = None
    message: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def denial_payload(self, feature: str) -> Dict[str, Any]:
        return {
            "suggested_plan": self.suggested_plan,
            "feature_type": feature,
            "remaining_quota": self.remaining,
            "total_quota": self.total,
        }


class UsageService:
    """Per-user, per-feature quota ledger."""

    def __init__(self, repository: Optional[SubscriptionRepository] = None) -> None:
        self.repository = repository or SubscriptionRepository()

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------
    def check_usage(self, user_id, feature: str) -> UsageCheck:
        check, _, _ = self._evaluate(user_id, self._coerce_feature(feature))
        return check

    def has_capability(self, user_id, capability: str) -> bool:
        # Numeric limits are enforced by check_usage, not here
        if capability in FEATURE_LIMIT_KEYS.values():
            return True

        subscription = self.repository.get_subscription_for_user(user_id)
        if subscription is None or subscription.status != SubscriptionStatus.ACTIVE:
            return False
        if capability not in CAPABILITIES:
            return False
        return bool((subscription.plan.features or {}).get(capability, False))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def decrement_usage(self, user_id, feature: str, amount: int = 1) -> UsageCheck:
        """
        Consume `amount` units of `feature` for the user.

        The pre-check only produces the denial message; the authoritative
        guard is the conditional UPDATE in the repository, which also fences
        on the quota cycle read here so that a reset in between is detected.
        """
        feature = self._coerce_feature(feature)
        if not isinstance(amount, int) or amount < 1:
            raise BillingValidationError("Usage amount must be a positive integer")

        check, subscription, quota = self._evaluate(user_id, feature)
        if not check.can_use:
            raise QuotaExceeded(
                check.message or "Usage quota exceeded for this feature",
                check.denial_payload(feature),
            )
        if check.total == UNLIMITED:
            return check

        updated = self.repository.decrement_quota(subscription.id, feature, quota.cycle, amount)
        if not updated:
            current = self.repository.get_quota(subscription.id, feature)
            if current is not None and current.cycle != quota.cycle:
                logger.warning(
                    "Discarded decrement for user %s feature %s: quota reset from cycle %s to %s",
                    user_id, feature, quota.cycle, current.cycle,
                )
                raise StaleQuotaSnapshot("Usage quota was reset while the request was in flight")
            latest = self.check_usage(user_id, feature)
            raise QuotaExceeded(
                latest.message or "Usage quota exceeded for this feature",
                latest.denial_payload(feature),
            )

        self._invalidate_snapshot(user_id)
        log_event(
            f"Usage recorded for {feature}",
            channel="billing",
            context={"user_id": str(user_id), "subscription_id": str(subscription.id), "feature": feature},
            extra={"amount": amount},
        )
        return self.check_usage(user_id, feature)

    def initialize_quota(self, subscription: UserSubscription) -> None:
        """
        Start a new quota cycle at the plan's full limits.

        Callers must hold the subscription row lock (select_for_update).
        """
        subscription.quota_cycle += 1
        subscription.save(update_fields=["quota_cycle", "updated_at"])
        self.repository.write_quotas(subscription, subscription.plan.quota_limits(), subscription.quota_cycle)
        self._invalidate_snapshot(subscription.user_id)

    def reset_quota_for_cycle(self, subscription_id) -> Dict[str, int]:
        with transaction.atomic():
            subscription = self.repository.lock_subscription(subscription_id)
            if subscription is None:
                raise SubscriptionNotFound("Subscription not found")
            self.initialize_quota(subscription)
        logger.info("Usage quota reset for subscription %s (cycle %s)", subscription_id, subscription.quota_cycle)
        return self.repository.get_quotas(subscription.id)

    def reset_all_user_quotas(self) -> int:
        reset = 0
        for subscription_id in self.repository.active_subscription_ids():
            try:
                self.reset_quota_for_cycle(subscription_id)
            except SubscriptionNotFound:
                continue
            reset += 1
        log_event(
            "Usage quotas reset for active subscriptions",
            channel="billing",
            extra={"reset_count": reset},
        )
        return reset

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------
    def get_usage_summary(self, user_id) -> Dict[str, Any]:
        subscription = self.repository.get_subscription_for_user(user_id)
        is_active = subscription is not None and subscription.status == SubscriptionStatus.ACTIVE
        features = []
        for feature in FeatureType.values:
            check, _, _ = self._evaluate(user_id, feature, subscription=subscription)
            features.append({
                "feature": feature,
                "remaining": check.remaining,
                "total": check.total,
                "can_use": check.can_use,
            })

        plan_features = (subscription.plan.features or {}) if is_active else {}
        return {
            "plan_name": subscription.plan.name if is_active else FREE_PLAN_NAME,
            "status": subscription.status if subscription else None,
            "is_free_tier": not is_active,
            "features": features,
            "capabilities": {cap: bool(plan_features.get(cap, False)) for cap in CAPABILITIES},
        }

    def current_plan_name(self, user_id) -> str:
        subscription = self.repository.get_subscription_for_user(user_id)
        if subscription is None or subscription.status != SubscriptionStatus.ACTIVE:
            return FREE_PLAN_NAME
        return subscription.plan.name

    def get_quick_status(self, user_id) -> Dict[str, Any]:
        subscription = self.repository.get_subscription_for_user(user_id)
        is_active = subscription is not None and subscription.status == SubscriptionStatus.ACTIVE

        def can_use(feature):
            return self._evaluate(user_id, feature, subscription=subscription)[0].can_use

        return {
            "is_active": is_active,
            "plan_name": subscription.plan.name if is_active else FREE_PLAN_NAME,
            "can_generate_recipe": can_use(FeatureType.RECIPE_GENERATION),
            "can_generate_video": can_use(FeatureType.VIDEO_GENERATION),
            "can_post_community": can_use(FeatureType.COMMUNITY_POST),
            "can_comment_community": can_use(FeatureType.COMMUNITY_COMMENT),
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    _MISSING = object()

    def _evaluate(
        self, user_id, feature: str, subscription=_MISSING
    ) -> Tuple[UsageCheck, Optional[UserSubscription], Optional[UsageQuota]]:
        if subscription is self._MISSING:
            subscription = self.repository.get_subscription_for_user(user_id)
        if subscription is None or subscription.status != SubscriptionStatus.ACTIVE:
            return self._free_tier_check(feature), subscription, None

        plan = subscription.plan
        total = plan.limit_for(feature)
        if total == UNLIMITED:
            return UsageCheck(True, UNLIMITED, UNLIMITED, plan.name), subscription, None

        quota = self.repository.get_quota(subscription.id, feature)
        remaining = quota.remaining if quota is not None else 0
        if remaining > 0:
            return UsageCheck(True, remaining, total, plan.name), subscription, quota
        check = UsageCheck(
            can_use=False,
            remaining=max(remaining, 0),
            total=total,
            plan_name=plan.name,
            suggested_plan=suggested_plan_for(plan.name),
            message=upgrade_message(feature, plan.name),
        )
        return check, subscription, quota

    @staticmethod
    def _free_tier_check(feature: str) -> UsageCheck:
        # Free usage is reported as already exhausted
        return UsageCheck(
            can_use=False,
            remaining=0,
            total=FREE_PLAN_LIMITS[feature],
            plan_name=FREE_PLAN_NAME,
            suggested_plan=suggested_plan_for(FREE_PLAN_NAME),
            message=free_plan_message(feature),
        )

    @staticmethod
    def _coerce_feature(feature: str) -> str:
        if feature not in FeatureType.values:
            raise InvalidFeatureType(
                f"Invalid feature type. Must be one of: {sorted(FeatureType.values)}"
            )
        return FeatureType(feature).value

    @staticmethod
    def _invalidate_snapshot(user_id) -> None:
        cache.delete(SUBSCRIPTION_CACHE_KEY.format(user_id=user_id))
