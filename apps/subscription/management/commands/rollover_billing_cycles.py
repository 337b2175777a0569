"""
Management command that renews or expires subscriptions past their billing date
"""
from django.core.management.base import BaseCommand

from apps.subscription.services.subscription_service import SubscriptionService


class Command(BaseCommand):
    help = 'Roll billing dates forward for auto-renewing subscriptions and expire the rest'

    def add_arguments(self, parser):
        parser.add_argument(
            '--limit',
            type=int,
            default=None,
            help='Maximum number of due subscriptions to process (default: all)'
        )

    def handle(self, *args, **options):
        result = SubscriptionService().rollover_billing_cycles(limit=options['limit'])

        self.stdout.write(
            self.style.SUCCESS(
                f"Processed {result['processed']} subscriptions: "
                f"{result['renewed']} renewed, {result['expired']} expired"
            )
        )
