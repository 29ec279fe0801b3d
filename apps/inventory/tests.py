"""
Tests for catalog and stock models.
"""

from decimal import Decimal

from django.db import IntegrityError

import pytest

from apps.core.models import Store

from .models import Product, Service


@pytest.fixture
def store(db):
    return Store.objects.create(name="Glow Salon Vashi", code="glow-vashi")


@pytest.fixture
def serum(store):
    return Product.objects.create(
        store=store, name="Hair Serum", sku="SER-01", price=Decimal("750.00"), stock=4, min_stock=5
    )


@pytest.mark.django_db
class TestProduct:
    """Test Product model functionality."""

    def test_low_stock(self, serum):
        assert serum.is_low_stock()

        serum.stock = 6
        assert not serum.is_low_stock()

    def test_out_of_stock(self, serum):
        serum.stock = 0
        assert not serum.can_deduct_quantity(1)

    def test_can_deduct_quantity(self, serum):
        assert serum.can_deduct_quantity(4)
        assert not serum.can_deduct_quantity(5)

    def test_stock_cannot_go_negative(self, serum):
        with pytest.raises(IntegrityError):
            Product.objects.filter(pk=serum.pk).update(stock=-1)

    def test_sku_unique_per_store(self, store, serum):
        with pytest.raises(IntegrityError):
            Product.objects.create(store=store, name="Copy", sku="SER-01", price=Decimal("1.00"))

    def test_str(self, serum):
        assert str(serum) == "Hair Serum (4 in stock)"


@pytest.mark.django_db
class TestService:
    def test_services_ordered_by_name(self, store):
        Service.objects.create(store=store, name="Pedicure", price=Decimal("600.00"))
        Service.objects.create(store=store, name="Facial", price=Decimal("900.00"))

        assert [s.name for s in store.services.all()] == ["Facial", "Pedicure"]
