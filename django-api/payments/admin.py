from django.contrib import admin

from payments.models import CustomerIdentity


@admin.register(CustomerIdentity)
class CustomerIdentityAdmin(admin.ModelAdmin):
    list_display = ["vendor", "account_id", "customer_ref", "email", "created_at"]
    list_filter = ["vendor"]
    search_fields = ["account_id", "customer_ref", "email"]
    readonly_fields = ["vendor", "account_id", "customer_ref", "created_at"]
