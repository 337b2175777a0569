from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from ninja import Schema
from pydantic import Field, field_validator


class CreatePaymentRequest(Schema):
    subscription_id: str
    amount: Decimal = Field(..., description="Between 1,000 and 50,000,000")
    payment_method: str = Field(..., description="STRIPE | MOMO | ZALOPAY")
    currency: Optional[str] = None
    metadata: dict = {}

    @field_validator("payment_method")
    def normalize_payment_method(cls, v):
        return v.upper()


class PaymentOut(Schema):
    id: str
    user_id: int
    subscription_id: str
    amount: Decimal
    currency: str
    payment_method: str
    status: str
    external_id: Optional[str] = None
    metadata: dict = {}
    failure_reason: Optional[str] = None
    processed_at: Optional[str] = None
    created_at: str
    updated_at: str


class PaginatedPayments(Schema):
    payments: List[PaymentOut]
    total: int
    page: int
    total_pages: int


class WebhookRequest(Schema):
    event_type: str
    external_id: str
    payload: dict = {}
    signature: Optional[str] = None


class WebhookAckResponse(Schema):
    received: bool = True
    status: str
    payment_id: Optional[str] = None
    payment_status: Optional[str] = None


class RefundRequest(Schema):
    payment_id: str
    amount: Optional[Decimal] = None
    reason: Optional[str] = None


class DailyRevenueOut(Schema):
    date: str
    revenue: Decimal
    transactions: int


class PaymentStatsOut(Schema):
    total_revenue: Decimal
    total_transactions: int
    successful_transactions: int
    failed_transactions: int
    average_transaction_amount: Decimal
    transactions_by_method: Dict[str, int]
    success_rate: float
    daily_revenue: List[DailyRevenueOut]


class PaymentStatsQuery(Schema):
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
