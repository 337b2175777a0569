from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from apps.subscription.models import SubscriptionPlan
from apps.subscription.services.plan_catalog import PlanCatalogService


@receiver(post_save, sender=SubscriptionPlan)
@receiver(post_delete, sender=SubscriptionPlan)
def invalidate_plan_catalog(sender, instance, **kwargs):
    """Drop the cached plan list whenever a plan is edited."""
    PlanCatalogService().invalidate()
