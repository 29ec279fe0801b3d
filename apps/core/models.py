"""
Core models for the salon billing platform.

Stores are the tenant boundary: every customer, catalog entry and transaction
belongs to exactly one store. Staff access to a store is granted through
StoreStaff rows.
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models


def default_tax_rate():
    return Decimal(str(getattr(settings, "BILLING_DEFAULT_TAX_RATE", "18.00")))


def default_points_earn_rate():
    return Decimal(str(getattr(settings, "BILLING_POINTS_EARN_RATE", "0.0100")))


class Store(models.Model):
    """
    A salon location.

    Carries the billing configuration used when settling transactions:
    the tax percentage applied to the discounted subtotal and the fraction
    of each total that is earned back as loyalty points.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for the store",
    )

    name = models.CharField(max_length=255, help_text="Store name")

    code = models.SlugField(
        unique=True,
        max_length=50,
        help_text="Short identifier for the store (e.g., 'andheri-west')",
    )

    address = models.TextField(blank=True, help_text="Store address")

    phone = models.CharField(max_length=20, blank=True, help_text="Store phone number")

    gst_number = models.CharField(max_length=20, blank=True, help_text="GST registration number")

    tax_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=default_tax_rate,
        validators=[MinValueValidator(Decimal("0.00")), MaxValueValidator(Decimal("100.00"))],
        help_text="Tax percentage applied to the discounted subtotal (e.g., 18.00 for 18% GST)",
    )

    points_earn_rate = models.DecimalField(
        max_digits=6,
        decimal_places=4,
        default=default_points_earn_rate,
        validators=[MinValueValidator(Decimal("0.0000")), MaxValueValidator(Decimal("1.0000"))],
        help_text="Fraction of the bill total earned as loyalty points (0.01 = 1 point per 100)",
    )

    is_active = models.BooleanField(default=True, help_text="Whether the store is active")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "stores"
        ordering = ["name"]
        verbose_name = "Store"
        verbose_name_plural = "Stores"
        indexes = [
            models.Index(fields=["is_active"], name="store_active_idx"),
        ]

    def __str__(self):
        return f"{self.name} ({self.code})"


class StoreStaff(models.Model):
    """
    Maps a user to a store they are allowed to bill for.
    """

    MANAGER = "manager"
    CASHIER = "cashier"

    ROLE_CHOICES = [
        (MANAGER, "Store Manager"),
        (CASHIER, "Cashier"),
    ]

    store = models.ForeignKey(
        Store,
        on_delete=models.CASCADE,
        related_name="staff",
        help_text="Store the user works at",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="store_memberships",
        help_text="Staff user",
    )

    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=CASHIER)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "store_staff"
        verbose_name = "Store Staff"
        verbose_name_plural = "Store Staff"
        unique_together = [["store", "user"]]

    def __str__(self):
        return f"{self.user} @ {self.store.code} ({self.role})"

    def is_manager(self):
        return self.role == self.MANAGER
