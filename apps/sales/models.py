"""
Sales models for salon billing.

A settled bill is a Transaction header plus its TransactionItem rows, written
together in one database transaction. Rows are append-only: after the insert
only the settlement status may change.

Supporting rows:
- InvoiceSequence: per store, per day invoice counter
- ReconciliationCase: a recorded transaction whose stock or loyalty updates are missing
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from apps.core.models import Store
from apps.crm.models import Customer, LoyaltyLedgerEntry


class Transaction(models.Model):
    """
    Header of a settled bill.

    The settlement status follows
    pending -> header_written -> items_written -> side_effects_applied -> committed,
    with failed reachable from any state. A rejected settlement is rolled back
    with its header, so failed only ever describes an unsaved instance and is
    never stored. A transaction whose side effects failed waits in
    reconciliation_required until it is resolved.
    """

    # Payment methods
    CASH = "cash"
    CARD = "card"
    UPI = "upi"

    PAYMENT_METHOD_CHOICES = [
        (CASH, "Cash"),
        (CARD, "Card"),
        (UPI, "UPI"),
    ]

    # Settlement states
    PENDING = "pending"
    HEADER_WRITTEN = "header_written"
    ITEMS_WRITTEN = "items_written"
    SIDE_EFFECTS_APPLIED = "side_effects_applied"
    COMMITTED = "committed"
    FAILED = "failed"
    RECONCILIATION_REQUIRED = "reconciliation_required"

    STATUS_CHOICES = [
        (PENDING, "Pending"),
        (HEADER_WRITTEN, "Header Written"),
        (ITEMS_WRITTEN, "Items Written"),
        (SIDE_EFFECTS_APPLIED, "Side Effects Applied"),
        (COMMITTED, "Committed"),
        (FAILED, "Failed"),
        (RECONCILIATION_REQUIRED, "Reconciliation Required"),
    ]

    # Only these may change once the header exists
    MUTABLE_FIELDS = frozenset({"status", "committed_at"})

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for the transaction",
    )

    store = models.ForeignKey(
        Store,
        on_delete=models.PROTECT,
        related_name="transactions",
        help_text="Store where the bill was settled",
    )

    customer = models.ForeignKey(
        Customer,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="transactions",
        help_text="Customer billed (null for walk-in sales)",
    )

    staff = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="billed_transactions",
        help_text="Staff member who settled the bill",
    )

    invoice_number = models.CharField(
        max_length=50,
        help_text="Invoice number, unique within the store",
    )

    # Amounts
    subtotal = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
        help_text="Sum of all line items",
    )

    membership_discount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
        help_text="Discount from the customer's membership plan",
    )

    discount_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
        help_text="Total discount (membership plus redeemed points)",
    )

    tax_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        help_text="Tax percentage applied, as configured when the bill was settled",
    )

    tax_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
        help_text="Tax amount",
    )

    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
        help_text="Amount paid",
    )

    payment_method = models.CharField(
        max_length=10,
        choices=PAYMENT_METHOD_CHOICES,
        help_text="Payment method used",
    )

    # Loyalty
    points_earned = models.IntegerField(default=0, validators=[MinValueValidator(0)])

    points_redeemed = models.IntegerField(default=0, validators=[MinValueValidator(0)])

    notes = models.TextField(blank=True)

    status = FSMField(
        default=PENDING,
        choices=STATUS_CHOICES,
        help_text="Settlement status",
    )

    created_at = models.DateTimeField(auto_now_add=True)

    committed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the settlement completed with all side effects applied",
    )

    class Meta:
        db_table = "sales_transactions"
        ordering = ["-created_at"]
        verbose_name = "Transaction"
        verbose_name_plural = "Transactions"
        unique_together = [["store", "invoice_number"]]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(discount_amount__lte=models.F("subtotal")),
                name="transaction_discount_within_subtotal",
            ),
        ]
        indexes = [
            models.Index(fields=["store", "-created_at"], name="txn_store_date_idx"),
            models.Index(fields=["customer", "-created_at"], name="txn_customer_date_idx"),
            models.Index(fields=["status"], name="txn_status_idx"),
        ]

    def __str__(self):
        return f"{self.invoice_number} - {self.total_amount}"

    def save(self, *args, **kwargs):
        """
        Refuse to rewrite a stored transaction except for its status.
        """
        if not self._state.adding:
            update_fields = kwargs.get("update_fields")
            if update_fields is None or not set(update_fields) <= self.MUTABLE_FIELDS:
                raise ValueError(
                    f"Transaction {self.invoice_number} is immutable; only its status can change"
                )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Transactions are append-only and cannot be deleted")

    # FSM Transitions
    @transition(field=status, source=PENDING, target=HEADER_WRITTEN)
    def mark_header_written(self):
        """Header row inserted."""
        pass

    @transition(field=status, source=HEADER_WRITTEN, target=ITEMS_WRITTEN)
    def mark_items_written(self):
        """All line items inserted."""
        pass

    @transition(field=status, source=ITEMS_WRITTEN, target=SIDE_EFFECTS_APPLIED)
    def mark_side_effects_applied(self):
        """Stock and loyalty updates applied."""
        pass

    @transition(field=status, source=SIDE_EFFECTS_APPLIED, target=COMMITTED)
    def mark_committed(self):
        self.committed_at = timezone.now()

    @transition(field=status, source="*", target=FAILED)
    def mark_failed(self):
        """Settlement aborted; the row is rolled back, so this is never saved."""
        pass

    @transition(
        field=status,
        source=[HEADER_WRITTEN, ITEMS_WRITTEN],
        target=RECONCILIATION_REQUIRED,
    )
    def require_reconciliation(self):
        """Header and items kept but a side effect failed."""
        pass

    @transition(field=status, source=RECONCILIATION_REQUIRED, target=COMMITTED)
    def mark_reconciled(self):
        """Missing side effects were applied after the fact."""
        self.committed_at = timezone.now()

    def is_settled(self):
        return self.status == self.COMMITTED

    def needs_reconciliation(self):
        return self.status == self.RECONCILIATION_REQUIRED


class TransactionItem(models.Model):
    """
    One line of a settled bill. Immutable once written.
    """

    SERVICE = "service"
    PRODUCT = "product"

    ITEM_TYPE_CHOICES = [
        (SERVICE, "Service"),
        (PRODUCT, "Product"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    transaction = models.ForeignKey(
        Transaction,
        on_delete=models.PROTECT,
        related_name="items",
        help_text="Transaction this line belongs to",
    )

    item_type = models.CharField(max_length=10, choices=ITEM_TYPE_CHOICES)

    item_id = models.UUIDField(help_text="Service or product that was billed")

    item_name = models.CharField(
        max_length=255,
        help_text="Name at the time of sale",
    )

    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])

    unit_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
        help_text="Price per unit at the time of sale",
    )

    total_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
        help_text="unit_price x quantity",
    )

    is_custom_price = models.BooleanField(
        default=False,
        help_text="Whether staff overrode the catalog price",
    )

    class Meta:
        db_table = "sales_transaction_items"
        ordering = ["transaction", "item_type", "item_name"]
        verbose_name = "Transaction Item"
        verbose_name_plural = "Transaction Items"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1), name="transaction_item_quantity_positive"
            ),
        ]
        indexes = [
            models.Index(fields=["transaction"], name="txn_item_txn_idx"),
            models.Index(fields=["item_type", "item_id"], name="txn_item_ref_idx"),
        ]

    def __str__(self):
        return f"{self.item_name} x{self.quantity}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Transaction items are immutable")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Transaction items are append-only and cannot be deleted")


class InvoiceSequence(models.Model):
    """
    Invoice counter for one store on one day.

    The row is locked and incremented by the invoice sequencer; the unique
    (store, invoice_number) constraint on Transaction backs it up.
    """

    store = models.ForeignKey(
        Store,
        on_delete=models.CASCADE,
        related_name="invoice_sequences",
    )

    period = models.CharField(max_length=8, help_text="Local date as YYYYMMDD")

    last_value = models.PositiveIntegerField(
        default=0,
        help_text="Last sequence number handed out for this period",
    )

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "sales_invoice_sequences"
        verbose_name = "Invoice Sequence"
        verbose_name_plural = "Invoice Sequences"
        unique_together = [["store", "period"]]

    def __str__(self):
        return f"{self.store.code} {self.period}: {self.last_value}"


class ReconciliationCase(models.Model):
    """
    A recorded transaction whose stock or loyalty update did not go through.

    Opened by the transaction writer and closed once the missing side effects
    have been applied.
    """

    STAGE_STOCK = "stock"
    STAGE_LOYALTY = "loyalty"

    STAGE_CHOICES = [
        (STAGE_STOCK, "Stock"),
        (STAGE_LOYALTY, "Loyalty"),
    ]

    OPEN = "open"
    RESOLVED = "resolved"

    STATUS_CHOICES = [
        (OPEN, "Open"),
        (RESOLVED, "Resolved"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    transaction = models.OneToOneField(
        Transaction,
        on_delete=models.PROTECT,
        related_name="reconciliation_case",
    )

    stage = models.CharField(
        max_length=10,
        choices=STAGE_CHOICES,
        help_text="Side effect that was being applied when the failure happened",
    )

    error_message = models.TextField(help_text="Error raised by the failed side effect")

    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=OPEN)

    created_at = models.DateTimeField(auto_now_add=True)

    resolved_at = models.DateTimeField(null=True, blank=True)

    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="resolved_reconciliations",
    )

    class Meta:
        db_table = "sales_reconciliation_cases"
        ordering = ["-created_at"]
        verbose_name = "Reconciliation Case"
        verbose_name_plural = "Reconciliation Cases"
        indexes = [
            models.Index(fields=["status", "-created_at"], name="recon_status_date_idx"),
        ]

    def __str__(self):
        return f"{self.transaction.invoice_number} ({self.stage}, {self.status})"

    def missing_side_effects(self):
        """
        Side effects the transaction still lacks, in the order they apply.

        Read from the database rather than from stage: stock and loyalty are
        applied in one savepoint, so a loyalty failure also undoes the stock
        decrements.
        """
        txn = self.transaction
        missing = []
        if txn.items.filter(
            item_type=TransactionItem.PRODUCT, stock_movement__isnull=True
        ).exists():
            missing.append(self.STAGE_STOCK)
        if txn.customer_id and not LoyaltyLedgerEntry.objects.filter(transaction=txn).exists():
            missing.append(self.STAGE_LOYALTY)
        return missing

    def describe_missing(self):
        """E.g. "stock and loyalty updates", or "nothing" once all are applied."""
        missing = self.missing_side_effects()
        if not missing:
            return "nothing"
        noun = "update" if len(missing) == 1 else "updates"
        return f"{' and '.join(missing)} {noun}"

    def mark_as_resolved(self, user=None):
        """Close the case."""
        if self.status == self.RESOLVED:
            raise ValueError("Reconciliation case is already resolved")

        self.status = self.RESOLVED
        self.resolved_at = timezone.now()
        self.resolved_by = user
        self.save(update_fields=["status", "resolved_at", "resolved_by"])
