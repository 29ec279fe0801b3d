"""
Catalog and stock app configuration.
"""

from django.apps import AppConfig


class InventoryConfig(AppConfig):
    """Services, products and stock movements."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.inventory"
    verbose_name = "Catalog & Stock"
