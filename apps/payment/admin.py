from django.contrib import admin

from .models import PaymentTransaction, PaymentWebhookEvent


@admin.register(PaymentTransaction)
class PaymentTransactionAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'payment_method', 'amount', 'currency', 'status', 'created_at']
    list_filter = ['payment_method', 'status', 'created_at']
    search_fields = ['id', 'external_id', 'user__email', 'user__username']
    readonly_fields = ['id', 'external_id', 'metadata', 'processed_at', 'created_at', 'updated_at']
    ordering = ['-created_at']


@admin.register(PaymentWebhookEvent)
class PaymentWebhookEventAdmin(admin.ModelAdmin):
    list_display = ['id', 'provider', 'event_type', 'external_id', 'processed', 'resulting_status', 'received_at']
    list_filter = ['provider', 'processed', 'received_at']
    search_fields = ['external_id', 'event_type']
    readonly_fields = ['id', 'received_at', 'payload']
    ordering = ['-received_at']
