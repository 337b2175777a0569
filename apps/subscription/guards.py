"""
Request-time paywall.

Each protected operation is registered with a ProtectedOperation value
naming the metered feature and/or the plan capability it needs.
`enforce_then_run` checks access, runs the operation, and records one unit
of usage only after the operation returned.
"""
import functools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from apps.logs.utils import log_event
from apps.subscription.constants import (
    capability_message,
    suggested_plan_for,
)
from apps.subscription.exceptions import BillingError, PaywallDenied
from apps.subscription.models import FeatureType
from apps.subscription.services.usage_service import UsageService

logger = logging.getLogger("app.paywall")


@dataclass(frozen=True)
class ProtectedOperation:
    feature: Optional[str] = None
    premium_capability: Optional[str] = None


RECIPE_GENERATION = ProtectedOperation(feature=FeatureType.RECIPE_GENERATION)
VIDEO_GENERATION = ProtectedOperation(feature=FeatureType.VIDEO_GENERATION)
COMMUNITY_POST = ProtectedOperation(feature=FeatureType.COMMUNITY_POST)
COMMUNITY_COMMENT = ProtectedOperation(feature=FeatureType.COMMUNITY_COMMENT)
PDF_EXPORT = ProtectedOperation(premium_capability="export_to_pdf")
PREMIUM_TEMPLATE = ProtectedOperation(premium_capability="premium_templates")


class AccessGuard:
    def __init__(self, usage_service: Optional[UsageService] = None) -> None:
        self.usage_service = usage_service or UsageService()

    def check(self, user_id, registration: ProtectedOperation) -> None:
        """Raise PaywallDenied if the user may not run the operation."""
        if registration.feature:
            usage = self.usage_service.check_usage(user_id, registration.feature)
            if not usage.can_use:
                payload = usage.denial_payload(registration.feature)
                payload["premium_capability"] = registration.premium_capability
                self._log_denial(user_id, registration, usage.message)
                raise PaywallDenied(usage.message or "Feature access denied", payload)

        capability = registration.premium_capability
        if capability and not self.usage_service.has_capability(user_id, capability):
            plan_name = self.usage_service.current_plan_name(user_id)
            message = capability_message(capability)
            self._log_denial(user_id, registration, message)
            raise PaywallDenied(
                message,
                {
                    "suggested_plan": suggested_plan_for(plan_name),
                    "feature_type": registration.feature,
                    "remaining_quota": None,
                    "total_quota": None,
                    "premium_capability": capability,
                },
            )

    def enforce_then_run(
        self,
        user_id,
        registration: ProtectedOperation,
        operation: Callable[..., Any],
        *args,
        **kwargs,
    ) -> Any:
        self.check(user_id, registration)
        result = operation(*args, **kwargs)
        if registration.feature:
            self._record_usage(user_id, registration.feature)
        return result

    def _record_usage(self, user_id, feature: str) -> None:
        try:
            self.usage_service.decrement_usage(user_id, feature, 1)
        except BillingError as exc:
            logger.warning("Failed to record usage for user %s feature %s: %s", user_id, feature, exc)
        except Exception:
            logger.exception("Unexpected error recording usage for user %s feature %s", user_id, feature)

    @staticmethod
    def _log_denial(user_id, registration: ProtectedOperation, message: Optional[str]) -> None:
        log_event(
            message or "Feature access denied",
            channel="paywall",
            context={"user_id": str(user_id), "feature": registration.feature},
            extra={"premium_capability": registration.premium_capability},
        )


access_guard = AccessGuard()


def enforce_then_run(user_id, registration: ProtectedOperation, operation: Callable[..., Any], *args, **kwargs) -> Any:
    return access_guard.enforce_then_run(user_id, registration, operation, *args, **kwargs)


def paywall(registration: ProtectedOperation, guard: Optional[AccessGuard] = None):
    """Decorator for django-ninja views authenticated with JWTAuth."""

    def decorator(view):
        @functools.wraps(view)
        def wrapper(request, *args, **kwargs):
            return (guard or access_guard).enforce_then_run(
                request.auth.id, registration, view, request, *args, **kwargs
            )

        return wrapper

    return decorator
