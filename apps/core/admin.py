"""
Django admin configuration for stores and staff.
"""

from django.contrib import admin

from .models import Store, StoreStaff


class StoreStaffInline(admin.TabularInline):
    model = StoreStaff
    extra = 0
    fields = ["user", "role"]


@admin.register(Store)
class StoreAdmin(admin.ModelAdmin):
    """Admin interface for Store model."""

    list_display = ["name", "code", "tax_rate", "points_earn_rate", "is_active", "created_at"]
    list_filter = ["is_active"]
    search_fields = ["name", "code", "gst_number"]
    prepopulated_fields = {"code": ("name",)}
    inlines = [StoreStaffInline]
    fieldsets = [
        (
            "Basic Information",
            {
                "fields": ["name", "code", "address", "phone", "gst_number", "is_active"],
            },
        ),
        (
            "Billing",
            {
                "fields": ["tax_rate", "points_earn_rate"],
            },
        ),
    ]
