"""
Serializers for the billing API.
"""

from decimal import Decimal

from rest_framework import serializers

from .models import ReconciliationCase, Transaction, TransactionItem
from .pricing import ITEM_TYPES


class LineItemInputSerializer(serializers.Serializer):
    """Serializer for one cart line sent by the checkout screen."""

    item_type = serializers.ChoiceField(choices=ITEM_TYPES)
    item_id = serializers.UUIDField()
    name = serializers.CharField(required=False, allow_blank=True, max_length=255)
    quantity = serializers.IntegerField(min_value=1, default=1)
    unit_price = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=Decimal("0.00"),
        required=False,
        allow_null=True,
    )
    is_custom_price = serializers.BooleanField(default=False)

    def validate(self, data):
        """A custom price needs a price."""
        if data.get("is_custom_price") and data.get("unit_price") is None:
            raise serializers.ValidationError(
                {"unit_price": "Unit price is required when is_custom_price is set."}
            )
        return data


class SettlementPreviewSerializer(serializers.Serializer):
    """Serializer for pricing a cart without settling it."""

    store_id = serializers.UUIDField()
    customer_id = serializers.UUIDField(required=False, allow_null=True)
    # Empty carts are rejected by the engine with its own error code
    items = LineItemInputSerializer(many=True, allow_empty=True)
    points_to_redeem = serializers.IntegerField(min_value=0, default=0)


class SettlementSerializer(SettlementPreviewSerializer):
    """Serializer for settling a cart."""

    payment_method = serializers.ChoiceField(choices=Transaction.PAYMENT_METHOD_CHOICES)
    expected_total = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        required=False,
        allow_null=True,
    )
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class PricingResultSerializer(serializers.Serializer):
    """Serializer for a pricing breakdown."""

    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2)
    membership_discount = serializers.DecimalField(max_digits=12, decimal_places=2)
    points_redeemed = serializers.IntegerField()
    discount = serializers.DecimalField(max_digits=12, decimal_places=2)
    taxable_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=2)
    tax = serializers.DecimalField(max_digits=12, decimal_places=2)
    total = serializers.DecimalField(max_digits=12, decimal_places=2)
    points_earned = serializers.IntegerField()


class TransactionItemSerializer(serializers.ModelSerializer):
    """Serializer for transaction line items."""

    class Meta:
        model = TransactionItem
        fields = [
            "id",
            "item_type",
            "item_id",
            "item_name",
            "quantity",
            "unit_price",
            "total_price",
            "is_custom_price",
        ]
        read_only_fields = fields


class TransactionListSerializer(serializers.ModelSerializer):
    """Serializer for transaction list."""

    customer_name = serializers.SerializerMethodField()
    items_count = serializers.SerializerMethodField()

    class Meta:
        model = Transaction
        fields = [
            "id",
            "invoice_number",
            "store",
            "customer_name",
            "total_amount",
            "payment_method",
            "status",
            "items_count",
            "created_at",
        ]

    def get_customer_name(self, obj):
        """Get customer name or 'Walk-in' if no customer."""
        return obj.customer.get_full_name() if obj.customer else "Walk-in"

    def get_items_count(self, obj):
        return obj.items.count()


class TransactionDetailSerializer(serializers.ModelSerializer):
    """Serializer for a transaction with its items, as used for receipts."""

    items = TransactionItemSerializer(many=True, read_only=True)
    store_name = serializers.CharField(source="store.name", read_only=True)
    customer_name = serializers.SerializerMethodField()
    staff_name = serializers.CharField(source="staff.get_full_name", read_only=True)
    reconciliation_case = serializers.SerializerMethodField()

    class Meta:
        model = Transaction
        fields = [
            "id",
            "invoice_number",
            "store",
            "store_name",
            "customer",
            "customer_name",
            "staff",
            "staff_name",
            "items",
            "subtotal",
            "membership_discount",
            "discount_amount",
            "tax_rate",
            "tax_amount",
            "total_amount",
            "payment_method",
            "points_earned",
            "points_redeemed",
            "notes",
            "status",
            "reconciliation_case",
            "created_at",
            "committed_at",
        ]
        read_only_fields = fields

    def get_customer_name(self, obj):
        return obj.customer.get_full_name() if obj.customer else "Walk-in"

    def get_reconciliation_case(self, obj):
        case = ReconciliationCase.objects.filter(transaction=obj).only("id").first()
        return str(case.id) if case else None


class ReconciliationCaseSerializer(serializers.ModelSerializer):
    """Serializer for reconciliation cases."""

    invoice_number = serializers.CharField(source="transaction.invoice_number", read_only=True)
    store = serializers.UUIDField(source="transaction.store_id", read_only=True)
    total_amount = serializers.DecimalField(
        source="transaction.total_amount", max_digits=12, decimal_places=2, read_only=True
    )
    missing_side_effects = serializers.ListField(
        child=serializers.CharField(), read_only=True
    )

    class Meta:
        model = ReconciliationCase
        fields = [
            "id",
            "transaction",
            "invoice_number",
            "store",
            "total_amount",
            "stage",
            "missing_side_effects",
            "error_message",
            "status",
            "created_at",
            "resolved_at",
            "resolved_by",
        ]
        read_only_fields = fields
