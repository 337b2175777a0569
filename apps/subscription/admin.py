from django.contrib import admin

from .models import SubscriptionPlan, UsageQuota, UserSubscription


@admin.register(SubscriptionPlan)
class SubscriptionPlanAdmin(admin.ModelAdmin):
    list_display = ['name', 'monthly_price', 'yearly_price', 'is_active', 'sort_order', 'updated_at']
    list_filter = ['is_active']
    search_fields = ['name']
    readonly_fields = ['id', 'created_at', 'updated_at']
    ordering = ['sort_order']


class UsageQuotaInline(admin.TabularInline):
    model = UsageQuota
    extra = 0
    readonly_fields = ['feature', 'remaining', 'cycle', 'updated_at']
    can_delete = False


@admin.register(UserSubscription)
class UserSubscriptionAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'plan', 'status', 'billing_cycle', 'next_billing_date', 'auto_renew']
    list_filter = ['status', 'billing_cycle', 'plan', 'auto_renew']
    search_fields = ['user__email', 'user__username', 'id']
    readonly_fields = ['id', 'quota_cycle', 'created_at', 'updated_at']
    ordering = ['-created_at']
    inlines = [UsageQuotaInline]
