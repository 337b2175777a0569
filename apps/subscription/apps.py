from django.apps import AppConfig


class SubscriptionConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.subscription'
    verbose_name = 'Subscription Plans & Usage'

    def ready(self):

        import apps.subscription.signals
