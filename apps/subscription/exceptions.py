from typing import Any, Dict, Optional


class BillingError(Exception):
    """Base class for billing errors; the API turns these into JSON responses."""

    status_code = 400

    def __init__(self, message: str, payload: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.payload = payload or {}

    def to_response(self) -> Dict[str, Any]:
        return {"detail": self.message, **self.payload}


class BillingValidationError(BillingError):
    status_code = 400


class InvalidFeatureType(BillingValidationError):
    pass


class PlanNotFound(BillingError):
    status_code = 404


class SubscriptionNotFound(BillingError):
    status_code = 404


class SubscriptionConflict(BillingError):
    status_code = 409


class PaywallDenied(BillingError):
    """Policy denial; carries the upgrade guidance shown to the user."""

    status_code = 403

    def to_response(self) -> Dict[str, Any]:
        return {"message": self.message, "is_paywall_error": True, **self.payload}


class QuotaExceeded(PaywallDenied):
    pass


class StaleQuotaSnapshot(BillingError):
    """The quota was reset while a decrement was in flight."""

    status_code = 409
