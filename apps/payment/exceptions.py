from apps.subscription.exceptions import BillingError, BillingValidationError


class PaymentValidationError(BillingValidationError):
    pass


class PaymentNotFound(BillingError):
    status_code = 404


class InvalidWebhookSignature(BillingError):
    status_code = 400


class PaymentProviderError(BillingError):
    """Provider call failed; the transaction keeps the reason in failure_reason."""

    status_code = 502


class RefundFailed(PaymentProviderError):
    pass
