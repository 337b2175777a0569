import logging

from ninja import NinjaAPI

from apps.payment.api import router as payment_router
from apps.subscription.api import router as subscription_router
from apps.subscription.exceptions import BillingError, PaywallDenied

logger = logging.getLogger("app")

api = NinjaAPI(title="Billing & Paywall API", version="1.0.0")

# Routers
api.add_router("/billing/", subscription_router, tags=["Subscriptions"])
api.add_router("/billing/", payment_router, tags=["Payments"])


@api.exception_handler(BillingError)
def billing_error_handler(request, exc: BillingError):
    if not isinstance(exc, PaywallDenied) and exc.status_code >= 500:
        logger.error("Billing error on %s: %s", request.path, exc.message)
    return api.create_response(request, exc.to_response(), status=exc.status_code)
