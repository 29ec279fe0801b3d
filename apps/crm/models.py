"""
CRM models for salon stores.

Covers the customer record and everything billing reads or writes on it:
- Loyalty state (points balance, visit count, lifetime spend)
- Membership plans and the customer's subscriptions to them
- The loyalty ledger, one entry per settled transaction

Loyalty state is owned by the Customer row and changed only by the loyalty
ledger as part of a settlement; nothing else caches it.
"""

import uuid
from datetime import timedelta
from decimal import Decimal

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone

from apps.core.models import Store


class Customer(models.Model):
    """
    Customer of a store with loyalty program state.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for the customer",
    )

    store = models.ForeignKey(
        Store,
        on_delete=models.CASCADE,
        related_name="customers",
        help_text="Store that owns this customer",
    )

    # Contact information
    first_name = models.CharField(max_length=100, help_text="Customer's first name")

    last_name = models.CharField(max_length=100, blank=True, help_text="Customer's last name")

    mobile = models.CharField(max_length=15, help_text="Customer's mobile number")

    email = models.EmailField(null=True, blank=True, help_text="Customer's email address")

    # Loyalty state
    loyalty_points = models.IntegerField(
        default=0,
        validators=[MinValueValidator(0)],
        help_text="Current loyalty points balance",
    )

    total_visits = models.IntegerField(
        default=0,
        validators=[MinValueValidator(0)],
        help_text="Number of settled transactions",
    )

    total_spent = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
        help_text="Total lifetime spend",
    )

    last_visit_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the customer last settled a transaction",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "crm_customers"
        ordering = ["-created_at"]
        verbose_name = "Customer"
        verbose_name_plural = "Customers"
        unique_together = [["store", "mobile"]]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(loyalty_points__gte=0), name="customer_points_non_negative"
            ),
            models.CheckConstraint(
                condition=models.Q(total_visits__gte=0), name="customer_visits_non_negative"
            ),
            models.CheckConstraint(
                condition=models.Q(total_spent__gte=0), name="customer_spent_non_negative"
            ),
        ]
        indexes = [
            models.Index(fields=["store", "mobile"], name="crm_cust_store_mobile_idx"),
        ]

    def __str__(self):
        return f"{self.get_full_name()} ({self.mobile})"

    def get_full_name(self):
        """Return the customer's full name."""
        return f"{self.first_name} {self.last_name}".strip()

    def get_active_membership(self, on_date=None):
        """
        Return the membership that applies on the given date, or None.

        When several overlap, the most recently started one wins.
        """
        on_date = on_date or timezone.localdate()
        return (
            self.memberships.select_related("plan")
            .filter(
                is_active=True,
                plan__is_active=True,
                start_date__lte=on_date,
                end_date__gte=on_date,
            )
            .order_by("-start_date", "-created_at")
            .first()
        )


class MembershipPlan(models.Model):
    """
    A paid membership that gives a percentage off every bill (Gold, Silver, VIP).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    store = models.ForeignKey(
        Store,
        on_delete=models.CASCADE,
        related_name="membership_plans",
        help_text="Store that sells this plan",
    )

    name = models.CharField(max_length=100, help_text="Plan name (e.g., Gold, Silver, VIP)")

    description = models.TextField(blank=True)

    discount_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00")), MaxValueValidator(Decimal("100.00"))],
        help_text="Percentage taken off the subtotal of every bill",
    )

    validity_days = models.PositiveIntegerField(default=365, help_text="Validity in days")

    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
        help_text="Price of the plan",
    )

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "crm_membership_plans"
        ordering = ["name"]
        verbose_name = "Membership Plan"
        verbose_name_plural = "Membership Plans"
        unique_together = [["store", "name"]]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(discount_percentage__gte=0)
                & models.Q(discount_percentage__lte=100),
                name="plan_discount_within_bounds",
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.discount_percentage}% off)"


class CustomerMembership(models.Model):
    """
    A customer's subscription to a membership plan for a date window.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    customer = models.ForeignKey(
        Customer,
        on_delete=models.CASCADE,
        related_name="memberships",
    )

    plan = models.ForeignKey(
        MembershipPlan,
        on_delete=models.PROTECT,
        related_name="subscriptions",
    )

    start_date = models.DateField(help_text="First day the membership applies")

    end_date = models.DateField(blank=True, help_text="Last day the membership applies")

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "crm_customer_memberships"
        ordering = ["-start_date"]
        verbose_name = "Customer Membership"
        verbose_name_plural = "Customer Memberships"
        indexes = [
            models.Index(
                fields=["customer", "is_active", "end_date"], name="crm_membership_window_idx"
            ),
        ]

    def __str__(self):
        return f"{self.customer} - {self.plan.name} ({self.start_date} to {self.end_date})"

    def save(self, *args, **kwargs):
        """
        Override save to derive the end date from the plan validity if not provided.
        """
        if not self.end_date and self.start_date:
            self.end_date = self.start_date + timedelta(days=self.plan.validity_days)
        super().save(*args, **kwargs)

    def is_current(self, on_date=None):
        on_date = on_date or timezone.localdate()
        return (
            self.is_active
            and self.plan.is_active
            and self.start_date <= on_date <= self.end_date
        )


class LoyaltyLedgerEntry(models.Model):
    """
    One loyalty adjustment applied to a customer.

    Entries tied to a transaction are unique per transaction, which is what
    guarantees the ledger is applied at most once per settlement.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    customer = models.ForeignKey(
        Customer,
        on_delete=models.PROTECT,
        related_name="ledger_entries",
    )

    transaction = models.OneToOneField(
        "sales.Transaction",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="loyalty_entry",
        help_text="Settlement that caused this adjustment",
    )

    points_delta = models.IntegerField(help_text="Net change to the balance (earned - redeemed)")

    points_earned = models.IntegerField(default=0, validators=[MinValueValidator(0)])

    points_redeemed = models.IntegerField(default=0, validators=[MinValueValidator(0)])

    visit_increment = models.IntegerField(default=0, validators=[MinValueValidator(0)])

    spend_increment = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
    )

    balance_after = models.IntegerField(help_text="Points balance right after this entry")

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "crm_loyalty_ledger"
        ordering = ["-created_at"]
        verbose_name = "Loyalty Ledger Entry"
        verbose_name_plural = "Loyalty Ledger Entries"
        indexes = [
            models.Index(fields=["customer", "-created_at"], name="loyalty_cust_date_idx"),
        ]

    def __str__(self):
        return f"{self.customer.get_full_name()}: {self.points_delta:+d} points"
