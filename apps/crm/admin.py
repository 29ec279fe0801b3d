"""
Django admin configuration for customer and loyalty models.
"""

from django.contrib import admin

from .models import Customer, CustomerMembership, LoyaltyLedgerEntry, MembershipPlan


class CustomerMembershipInline(admin.TabularInline):
    model = CustomerMembership
    extra = 0
    fields = ["plan", "start_date", "end_date", "is_active"]


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    """Admin interface for Customer model."""

    list_display = [
        "get_full_name",
        "mobile",
        "store",
        "loyalty_points",
        "total_visits",
        "total_spent",
        "last_visit_at",
    ]
    list_filter = ["store"]
    search_fields = ["first_name", "last_name", "mobile", "email"]
    inlines = [CustomerMembershipInline]
    # Loyalty state is changed only by settlements
    readonly_fields = ["loyalty_points", "total_visits", "total_spent", "last_visit_at"]


@admin.register(MembershipPlan)
class MembershipPlanAdmin(admin.ModelAdmin):
    list_display = ["name", "store", "discount_percentage", "validity_days", "price", "is_active"]
    list_filter = ["store", "is_active"]


@admin.register(LoyaltyLedgerEntry)
class LoyaltyLedgerEntryAdmin(admin.ModelAdmin):
    list_display = ["customer", "points_delta", "balance_after", "transaction", "created_at"]
    search_fields = ["customer__first_name", "customer__mobile", "transaction__invoice_number"]

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request):
        return False
