"""
Management command that starts a fresh quota cycle for every ACTIVE subscription
"""
from django.core.management.base import BaseCommand

from apps.subscription.services.usage_service import UsageService


class Command(BaseCommand):
    help = 'Reset usage quotas of all active subscriptions to their plan limits'

    def handle(self, *args, **options):
        self.stdout.write('Resetting usage quotas...')

        reset_count = UsageService().reset_all_user_quotas()

        self.stdout.write(
            self.style.SUCCESS(f'Successfully reset quotas for {reset_count} subscriptions')
        )
