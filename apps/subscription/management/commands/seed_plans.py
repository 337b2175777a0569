from django.core.management.base import BaseCommand
from django.db import transaction

from apps.subscription.constants import DEFAULT_PLANS
from apps.subscription.models import SubscriptionPlan


class Command(BaseCommand):
    help = 'Create or update the Free, Pro and Premium subscription plans'

    def handle(self, *args, **options):
        created_count = 0
        updated_count = 0

        with transaction.atomic():
            for plan_data in DEFAULT_PLANS:
                defaults = {key: value for key, value in plan_data.items() if key != 'name'}
                defaults['is_active'] = True
                plan, created = SubscriptionPlan.objects.update_or_create(
                    name=plan_data['name'],
                    defaults=defaults,
                )
                if created:
                    created_count += 1
                    self.stdout.write(f'  + {plan.name}')
                else:
                    updated_count += 1
                    self.stdout.write(f'  ~ {plan.name}')

        self.stdout.write(
            self.style.SUCCESS(f'Plans seeded: {created_count} created, {updated_count} updated')
        )
