from decimal import Decimal

from apps.subscription.models import FeatureType

UNLIMITED = -1

FREE_PLAN_NAME = "Free"
PRO_PLAN_NAME = "Pro"
PREMIUM_PLAN_NAME = "Premium"

FEATURE_LIMIT_KEYS = {
    FeatureType.RECIPE_GENERATION: "max_recipe_generations",
    FeatureType.VIDEO_GENERATION: "max_video_generations",
    FeatureType.COMMUNITY_POST: "max_community_posts",
    FeatureType.COMMUNITY_COMMENT: "max_community_comments",
}

FEATURE_DISPLAY_NAMES = {
    FeatureType.RECIPE_GENERATION: "recipe generation",
    FeatureType.VIDEO_GENERATION: "video generation",
    FeatureType.COMMUNITY_POST: "community posts",
    FeatureType.COMMUNITY_COMMENT: "community comments",
}

# Boolean plan flags checked by has_capability
CAPABILITIES = (
    "ai_suggestions",
    "premium_templates",
    "export_to_pdf",
    "priority_support",
)

# Used whenever the user has no ACTIVE subscription
FREE_PLAN_LIMITS = {
    FeatureType.RECIPE_GENERATION: 5,
    FeatureType.VIDEO_GENERATION: 1,
    FeatureType.COMMUNITY_POST: 3,
    FeatureType.COMMUNITY_COMMENT: 10,
}

PLANS_CACHE_KEY = "subscription:plans"
SUBSCRIPTION_CACHE_KEY = "user:{user_id}:subscription"

DEFAULT_PLANS = [
    {
        "name": FREE_PLAN_NAME,
        "description": "Basic features for getting started",
        "monthly_price": Decimal("0"),
        "yearly_price": None,
        "sort_order": 1,
        "features": {
            "max_recipe_generations": 5,
            "max_video_generations": 1,
            "max_community_posts": 3,
            "max_community_comments": 10,
            "ai_suggestions": False,
            "premium_templates": False,
            "export_to_pdf": False,
            "priority_support": False,
        },
    },
    {
        "name": PRO_PLAN_NAME,
        "description": "For home cooks who generate recipes every week",
        "monthly_price": Decimal("99000"),
        "yearly_price": Decimal("990000"),
        "sort_order": 2,
        "features": {
            "max_recipe_generations": 50,
            "max_video_generations": 10,
            "max_community_posts": 100,
            "max_community_comments": 500,
            "ai_suggestions": True,
            "premium_templates": True,
            "export_to_pdf": True,
            "priority_support": False,
        },
    },
    {
        "name": PREMIUM_PLAN_NAME,
        "description": "Unlimited recipes and every premium capability",
        "monthly_price": Decimal("199000"),
        "yearly_price": Decimal("1990000"),
        "sort_order": 3,
        "features": {
            "max_recipe_generations": UNLIMITED,
            "max_video_generations": 50,
            "max_community_posts": UNLIMITED,
            "max_community_comments": UNLIMITED,
            "ai_suggestions": True,
            "premium_templates": True,
            "export_to_pdf": True,
            "priority_support": True,
        },
    },
]


def suggested_plan_for(plan_name: str) -> str:
    if plan_name == FREE_PLAN_NAME:
        return PRO_PLAN_NAME
    return PREMIUM_PLAN_NAME


def upgrade_message(feature: str, plan_name: str) -> str:
    feature_name = FEATURE_DISPLAY_NAMES.get(feature, feature)
    return (
        f"You have reached your monthly limit for {feature_name}. "
        f"Upgrade to {suggested_plan_for(plan_name)} for higher limits."
    )


def free_plan_message(feature: str) -> str:
    return f"Free plan limit reached for {feature}. Upgrade to Pro for more features."


def capability_message(capability: str) -> str:
    return f"{capability} is only available for premium subscribers"
