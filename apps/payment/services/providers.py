import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional

import requests
from django.conf import settings

from apps.payment.exceptions import PaymentProviderError, PaymentValidationError
from apps.payment.models import PaymentMethod, PaymentStatus, PaymentTransaction
from apps.payment.utils.signature import verify_signature


@dataclass
class ProviderInitResult:
    external_id: str
    metadata: Dict[str, Any] = field(default_factory=dict)


class PaymentProvider:
    """
    Base client for a payment gateway.

    Without an API key configured the provider answers with sandbox data,
    the same way the SePay client works in development.
    """

    method: str = ""
    slug: str = ""
    settings_prefix: str = ""
    default_base_url: str = ""
    # webhook event type -> canonical PaymentStatus
    event_statuses: Dict[str, str] = {}

    def __init__(self, http_client=requests) -> None:
        self._http_client = http_client
        self.base_url = getattr(settings, f"{self.settings_prefix}_BASE_URL", self.default_base_url)
        self.api_key = getattr(settings, f"{self.settings_prefix}_API_KEY", "")
        self.webhook_secret = getattr(settings, f"{self.settings_prefix}_WEBHOOK_SECRET", "")
        self.timeout = getattr(settings, "PAYMENT_PROVIDER_TIMEOUT", 30)

    def initialize(self, transaction: PaymentTransaction) -> ProviderInitResult:
        if not self.api_key:
            return self._mock_initialize(transaction)
        data = self._post("/v1/payments", self._initialize_payload(transaction))
        external_id = data.get("id") or data.get("external_id")
        if not external_id:
            raise PaymentProviderError(f"{self.method} did not return a payment reference")
        return ProviderInitResult(external_id=str(external_id), metadata=self._initialize_metadata(data))

    def refund(self, transaction: PaymentTransaction, amount: Decimal, reason: Optional[str] = None) -> Dict[str, Any]:
        if not self.api_key:
            return {"refund_id": f"rf_mock_{transaction.id}", "status": "succeeded"}
        return self._post(
            f"/v1/payments/{transaction.external_id}/refunds",
            {"amount": str(amount), "reason": reason or ""},
        )

    def verify_signature(self, payload: Dict[str, Any], signature: Optional[str]) -> bool:
        return verify_signature(payload, signature, self.webhook_secret)

    def map_event(self, event_type: str) -> Optional[str]:
        return self.event_statuses.get(event_type)

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        headers = {
            'Authorization': f'Bearer {self.api_key}',
            'Content-Type': 'application/json'
        }
        try:
            response = self._http_client.post(url, json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            raise PaymentProviderError(f"{self.method} request failed: {exc}") from exc
        except ValueError as exc:
            raise PaymentProviderError(f"{self.method} returned an invalid response") from exc

    def _initialize_payload(self, transaction: PaymentTransaction) -> Dict[str, Any]:
        return {
            "reference": str(transaction.id),
            "amount": str(transaction.amount),
            "currency": transaction.currency,
        }

    def _initialize_metadata(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return {}

    def _mock_initialize(self, transaction: PaymentTransaction) -> ProviderInitResult:
        raise NotImplementedError


class StripeProvider(PaymentProvider):
    method = PaymentMethod.STRIPE
    slug = "stripe"
    settings_prefix = "STRIPE"
    default_base_url = "https://api.stripe.com"
    event_statuses = {
        "payment_intent.succeeded": PaymentStatus.SUCCESS,
        "payment_intent.payment_failed": PaymentStatus.FAILED,
    }

    def _initialize_metadata(self, data):
        return {"checkout_url": data.get("url", ""), "session_id": data.get("session_id", "")}

    def _mock_initialize(self, transaction):
        return ProviderInitResult(
            external_id=f"pi_mock_{transaction.id}",
            metadata={
                "checkout_url": f"https://checkout.stripe.com/pay/cs_test_{transaction.id}",
                "session_id": f"cs_test_{transaction.id}",
            },
        )


class MoMoProvider(PaymentProvider):
    method = PaymentMethod.MOMO
    slug = "momo"
    settings_prefix = "MOMO"
    default_base_url = "https://test-payment.momo.vn"
    event_statuses = {
        "payment.success": PaymentStatus.SUCCESS,
        "payment.failed": PaymentStatus.FAILED,
    }

    def _initialize_metadata(self, data):
        return {"pay_url": data.get("payUrl", ""), "qr_code": data.get("qrCodeUrl", "")}

    def _mock_initialize(self, transaction):
        return ProviderInitResult(
            external_id=f"momo_{transaction.id}",
            metadata={
                "pay_url": f"{self.base_url}/pay/{transaction.id}",
                "qr_code": f"{self.base_url}/qr/{transaction.id}",
            },
        )


class ZaloPayProvider(PaymentProvider):
    method = PaymentMethod.ZALOPAY
    slug = "zalopay"
    settings_prefix = "ZALOPAY"
    default_base_url = "https://sb-openapi.zalopay.vn"
    event_statuses = {
        "payment.success": PaymentStatus.SUCCESS,
        "payment.failed": PaymentStatus.FAILED,
    }

    def _initialize_metadata(self, data):
        return {"order_url": data.get("order_url", ""), "app_trans_id": data.get("app_trans_id", "")}

    def _mock_initialize(self, transaction):
        return ProviderInitResult(
            external_id=f"zp_{transaction.id}",
            metadata={
                "order_url": f"https://sandbox.zalopay.com.vn/pay/{transaction.id}",
                "app_trans_id": f"zp_{int(time.time() * 1000)}_{transaction.id}",
            },
        )


PROVIDER_CLASSES = (StripeProvider, MoMoProvider, ZaloPayProvider)


class ProviderRegistry:
    """Looks providers up by payment method (STRIPE) or webhook slug (stripe)."""

    def __init__(self, providers=None) -> None:
        providers = providers if providers is not None else [cls() for cls in PROVIDER_CLASSES]
        self._by_key: Dict[str, PaymentProvider] = {}
        for provider in providers:
            self._by_key[str(provider.method)] = provider
            self._by_key[provider.slug] = provider

    def get(self, key: str) -> PaymentProvider:
        provider = self._by_key.get(key) or self._by_key.get(str(key).lower())
        if provider is None:
            raise PaymentValidationError(f"Unsupported payment provider: {key}")
        return provider
