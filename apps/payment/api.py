import logging

from django.http import HttpRequest
from ninja import Query, Router

from core.jwt_auth import JWTAuth
from apps.payment.schemas import (
    CreatePaymentRequest,
    PaginatedPayments,
    PaymentOut,
    PaymentStatsOut,
    PaymentStatsQuery,
    RefundRequest,
    WebhookAckResponse,
    WebhookRequest,
)
from apps.payment.services.payment_service import PaymentService
from apps.subscription.api import require_staff

logger = logging.getLogger(__name__)

router = Router()
payment_service = PaymentService()


@router.post("/payments", response={201: PaymentOut}, auth=JWTAuth())
def create_payment(request: HttpRequest, data: CreatePaymentRequest):
    payment = payment_service.create_payment(
        request.auth.id,
        subscription_id=data.subscription_id,
        amount=data.amount,
        payment_method=data.payment_method,
        currency=data.currency,
        metadata=data.metadata,
    )
    return 201, payment_service.serialize_payment(payment)


@router.get("/payments", response=PaginatedPayments, auth=JWTAuth())
def list_payments(request: HttpRequest, page: int = 1, limit: int = 10):
    """Payments of the authenticated user, newest first."""
    return payment_service.list_user_payments(request.auth.id, page=page, limit=limit)


@router.get("/payments/{payment_id}", response=PaymentOut, auth=JWTAuth())
def get_payment(request: HttpRequest, payment_id: str):
    payment = payment_service.get_payment(payment_id, request.auth.id)
    return payment_service.serialize_payment(payment)


@router.post("/webhooks/{provider}", response=WebhookAckResponse)
def payment_webhook(request: HttpRequest, provider: str, data: WebhookRequest):
    """
    Provider callback. Every delivery is acknowledged, including unknown and
    replayed ones; only a bad signature is rejected.
    """
    signature = request.headers.get("X-Webhook-Signature") or data.signature
    result = payment_service.handle_webhook(
        provider,
        event_type=data.event_type,
        external_id=data.external_id,
        payload=data.payload,
        signature=signature,
    )
    return WebhookAckResponse(**result.as_dict())


@router.get("/admin/stats/payments", response=PaymentStatsOut, auth=JWTAuth())
def payment_stats(request: HttpRequest, filters: PaymentStatsQuery = Query(...)):
    require_staff(request)
    return payment_service.get_stats(filters.start_date, filters.end_date)


@router.post("/admin/payments/refund", response=PaymentOut, auth=JWTAuth())
def refund_payment(request: HttpRequest, data: RefundRequest):
    require_staff(request)
    payment = payment_service.refund(data.payment_id, amount=data.amount, reason=data.reason)
    logger.info("Payment %s refunded by admin %s", payment.id, request.auth.id)
    return payment_service.serialize_payment(payment)
