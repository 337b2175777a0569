from decimal import Decimal
from typing import Dict, List, Optional

from ninja import Schema
from pydantic import Field, field_validator


class PlanOut(Schema):
    id: str
    name: str
    description: str = ""
    monthly_price: Decimal
    yearly_price: Optional[Decimal] = None
    is_active: bool
    sort_order: int
    features: dict = {}


class SubscriptionOut(Schema):
    id: str
    user_id: int
    plan_id: str
    plan_name: str
    status: str
    billing_cycle: str
    start_date: str
    next_billing_date: str
    end_date: Optional[str] = None
    auto_renew: bool
    canceled_at: Optional[str] = None
    usage_quota: Dict[str, int] = {}
    created_at: str
    updated_at: str


class CreateSubscriptionRequest(Schema):
    plan_id: str
    billing_cycle: str = Field("MONTHLY", description="MONTHLY | YEARLY")
    auto_renew: bool = True

    @field_validator("billing_cycle")
    def normalize_billing_cycle(cls, v):
        return v.upper()


class UpdateSubscriptionRequest(Schema):
    plan_id: Optional[str] = None
    status: Optional[str] = None
    billing_cycle: Optional[str] = None
    auto_renew: Optional[bool] = None


class UsageCheckOut(Schema):
    can_use: bool
    remaining: int
    total: int
    plan_name: str
    suggested_plan: Optional[str] = None
    message: Optional[str] = None


class UsageDecrementRequest(Schema):
    feature: str = Field(..., description="recipe_generation | video_generation | community_post | community_comment")
    amount: int = Field(1, ge=1)


class FeatureUsageOut(Schema):
    feature: str
    remaining: int
    total: int
    can_use: bool


class UsageSummaryOut(Schema):
    plan_name: str
    status: Optional[str] = None
    is_free_tier: bool
    features: List[FeatureUsageOut]
    capabilities: Dict[str, bool]


class QuickStatusOut(Schema):
    is_active: bool
    plan_name: str
    can_generate_recipe: bool
    can_generate_video: bool
    can_post_community: bool
    can_comment_community: bool


class CapabilityAccessOut(Schema):
    capability: str
    has_access: bool


class SubscriptionStatsOut(Schema):
    total_subscriptions: int
    active_subscriptions: int
    revenue_this_month: Decimal
    subscribers_by_plan: Dict[str, int]
    retention_rate: float


class QuotaResetOut(Schema):
    reset_count: int
