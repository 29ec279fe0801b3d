"""
Django admin configuration for catalog and stock models.
"""

from django.contrib import admin

from .models import Product, Service, StockMovement


@admin.register(Service)
class ServiceAdmin(admin.ModelAdmin):
    list_display = ["name", "store", "category", "price", "duration_minutes", "is_active"]
    list_filter = ["store", "category", "is_active"]
    search_fields = ["name", "category"]


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    """Admin interface for Product model."""

    list_display = ["name", "store", "sku", "brand", "price", "stock", "min_stock", "is_active"]
    list_filter = ["store", "brand", "is_active"]
    search_fields = ["name", "sku", "brand"]
    readonly_fields = ["id", "created_at", "updated_at"]


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = ["product", "quantity", "stock_after", "transaction_item", "created_at"]
    list_filter = ["created_at"]
    search_fields = ["product__name", "product__sku"]
    readonly_fields = ["product", "transaction_item", "quantity", "stock_after", "created_at"]
