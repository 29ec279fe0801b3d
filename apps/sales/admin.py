"""
Django admin configuration for billing models.

Transactions are append-only, so the admin is read-only for them.
"""

from django.contrib import admin

from .models import InvoiceSequence, ReconciliationCase, Transaction, TransactionItem


class TransactionItemInline(admin.TabularInline):
    """Inline admin for TransactionItem model."""

    model = TransactionItem
    extra = 0
    can_delete = False
    fields = ["item_type", "item_name", "quantity", "unit_price", "total_price", "is_custom_price"]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    """Admin interface for Transaction model."""

    list_display = [
        "invoice_number",
        "store",
        "customer",
        "total_amount",
        "payment_method",
        "status",
        "created_at",
    ]
    list_filter = ["status", "payment_method", "store", "created_at"]
    search_fields = ["invoice_number", "customer__first_name", "customer__mobile"]
    date_hierarchy = "created_at"
    inlines = [TransactionItemInline]
    fieldsets = [
        (
            "Invoice",
            {
                "fields": ["id", "invoice_number", "store", "customer", "staff", "status"],
            },
        ),
        (
            "Amounts",
            {
                "fields": [
                    "subtotal",
                    "membership_discount",
                    "discount_amount",
                    "tax_rate",
                    "tax_amount",
                    "total_amount",
                    "payment_method",
                ],
            },
        ),
        (
            "Loyalty",
            {
                "fields": ["points_earned", "points_redeemed"],
            },
        ),
        (
            "Other",
            {
                "fields": ["notes", "created_at", "committed_at"],
            },
        ),
    ]

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(InvoiceSequence)
class InvoiceSequenceAdmin(admin.ModelAdmin):
    list_display = ["store", "period", "last_value", "updated_at"]
    list_filter = ["store"]
    readonly_fields = ["store", "period", "last_value", "updated_at"]


@admin.register(ReconciliationCase)
class ReconciliationCaseAdmin(admin.ModelAdmin):
    """Admin interface for ReconciliationCase model."""

    list_display = ["transaction", "stage", "status", "created_at", "resolved_at", "resolved_by"]
    list_filter = ["status", "stage", "created_at"]
    search_fields = ["transaction__invoice_number", "error_message"]
    readonly_fields = [
        "id",
        "transaction",
        "stage",
        "error_message",
        "status",
        "created_at",
        "resolved_at",
        "resolved_by",
    ]
