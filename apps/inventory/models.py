"""
Catalog and inventory models for salon stores.

A store sells two kinds of things at the counter:
- Services (haircut, facial, pedicure...) which carry a price but no stock
- Products (shampoo, serums...) which carry a price and a stock counter

Stock counters are only ever decremented by the stock adjuster during a
settlement; every decrement is recorded as a StockMovement tied to the
transaction line item that caused it.
"""

import uuid
from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models

from apps.core.models import Store


class Service(models.Model):
    """
    A bookable salon service in a store's catalog.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for the service",
    )

    store = models.ForeignKey(
        Store,
        on_delete=models.CASCADE,
        related_name="services",
        help_text="Store that offers this service",
    )

    name = models.CharField(max_length=255, help_text="Service name")

    category = models.CharField(
        max_length=100,
        blank=True,
        help_text="Service category (facial, pedicure, manicure, hair, etc.)",
    )

    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
        help_text="List price of the service",
    )

    duration_minutes = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Typical duration in minutes",
    )

    is_active = models.BooleanField(default=True, help_text="Whether the service can be billed")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "catalog_services"
        ordering = ["name"]
        verbose_name = "Service"
        verbose_name_plural = "Services"
        indexes = [
            models.Index(fields=["store", "is_active"], name="svc_store_active_idx"),
        ]

    def __str__(self):
        return f"{self.name} ({self.price})"


class Product(models.Model):
    """
    A retail product with a stock counter.

    The stock counter never goes below zero: the database enforces it with a
    check constraint and the stock adjuster only decrements when enough
    stock is available.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for the product",
    )

    store = models.ForeignKey(
        Store,
        on_delete=models.CASCADE,
        related_name="products",
        help_text="Store that stocks this product",
    )

    name = models.CharField(max_length=255, help_text="Product name")

    sku = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        help_text="Stock keeping unit, unique within the store",
    )

    brand = models.CharField(max_length=100, blank=True, help_text="Brand name")

    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
        help_text="Selling price",
    )

    cost = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal("0.00"))],
        help_text="Purchase cost",
    )

    stock = models.IntegerField(
        default=0,
        validators=[MinValueValidator(0)],
        help_text="Current quantity in stock",
    )

    min_stock = models.IntegerField(
        default=5,
        validators=[MinValueValidator(0)],
        help_text="Minimum quantity threshold for low stock alerts",
    )

    is_active = models.BooleanField(default=True, help_text="Whether the product can be billed")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "catalog_products"
        ordering = ["name"]
        verbose_name = "Product"
        verbose_name_plural = "Products"
        unique_together = [["store", "sku"]]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(stock__gte=0), name="product_stock_non_negative"
            ),
        ]
        indexes = [
            models.Index(fields=["store", "is_active"], name="prod_store_active_idx"),
            models.Index(fields=["store", "stock", "min_stock"], name="prod_low_stock_idx"),
        ]

    def __str__(self):
        return f"{self.name} ({self.stock} in stock)"

    def is_low_stock(self):
        """Check if product is at or below its minimum stock threshold."""
        return self.stock <= self.min_stock

    def can_deduct_quantity(self, quantity):
        """Check if we can deduct the specified quantity."""
        return self.stock >= quantity


class StockMovement(models.Model):
    """
    Record of one stock decrement caused by one transaction line item.

    The one-to-one link to the line item makes a second decrement for the
    same line impossible, which is what lets a partially failed settlement
    be completed later without double counting.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
    )

    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name="movements",
        help_text="Product whose stock changed",
    )

    transaction_item = models.OneToOneField(
        "sales.TransactionItem",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="stock_movement",
        help_text="Line item that caused the decrement",
    )

    quantity = models.PositiveIntegerField(help_text="Units removed from stock")

    stock_after = models.IntegerField(help_text="Stock level right after the decrement")

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "stock_movements"
        ordering = ["-created_at"]
        verbose_name = "Stock Movement"
        verbose_name_plural = "Stock Movements"
        indexes = [
            models.Index(fields=["product", "-created_at"], name="stockmove_prod_date_idx"),
        ]

    def __str__(self):
        return f"{self.product.name} -{self.quantity} (now {self.stock_after})"
