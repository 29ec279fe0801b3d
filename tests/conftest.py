"""
Pytest configuration and fixtures for the salon billing platform.
"""

from datetime import timedelta
from decimal import Decimal

from django.db import connection
from django.utils import timezone

import pytest

from apps.core.models import Store, StoreStaff
from apps.crm.models import Customer, CustomerMembership, MembershipPlan
from apps.inventory.models import Product, Service


@pytest.fixture
def require_postgres():
    """
    Skip tests that need real row locking when running on SQLite.
    """
    if connection.vendor != "postgresql":
        pytest.skip("Concurrent settlement tests need PostgreSQL")


@pytest.fixture
def api_client():
    """
    Fixture for Django REST framework API client.
    """
    from rest_framework.test import APIClient

    return APIClient()


@pytest.fixture
def store(db):
    """
    Fixture for a store with 18% tax and 1 point earned per 100 spent.
    """
    return Store.objects.create(
        name="Glow Salon Andheri",
        code="glow-andheri",
        tax_rate=Decimal("18.00"),
        points_earn_rate=Decimal("0.0100"),
    )


@pytest.fixture
def other_store(db):
    return Store.objects.create(name="Glow Salon Bandra", code="glow-bandra")


@pytest.fixture
def staff_user(store, django_user_model):
    """
    Fixture for a cashier who works at the store.
    """
    user = django_user_model.objects.create_user(
        username="cashier", email="cashier@example.com", password="testpass123"
    )
    StoreStaff.objects.create(store=store, user=user, role=StoreStaff.CASHIER)
    return user


@pytest.fixture
def manager_user(store, django_user_model):
    """
    Fixture for a manager of the store.
    """
    user = django_user_model.objects.create_user(
        username="manager", email="manager@example.com", password="testpass123"
    )
    StoreStaff.objects.create(store=store, user=user, role=StoreStaff.MANAGER)
    return user


@pytest.fixture
def authenticated_client(api_client, staff_user):
    """
    Fixture for an API client logged in as the cashier.
    """
    api_client.force_authenticate(user=staff_user)
    return api_client


@pytest.fixture
def customer(store):
    """
    Fixture for a customer with no points.
    """
    return Customer.objects.create(
        store=store,
        first_name="Priya",
        last_name="Sharma",
        mobile="9876543210",
        email="priya@example.com",
    )


@pytest.fixture
def haircut(store):
    return Service.objects.create(
        store=store,
        name="Haircut",
        category="hair",
        price=Decimal("1000.00"),
        duration_minutes=45,
    )


@pytest.fixture
def shampoo(store):
    return Product.objects.create(
        store=store,
        name="Shampoo",
        sku="SHAMP-001",
        brand="Lumiere",
        price=Decimal("500.00"),
        cost=Decimal("300.00"),
        stock=10,
        min_stock=2,
    )


@pytest.fixture
def cart(haircut, shampoo):
    """
    Fixture for the standard cart: one haircut and two bottles of shampoo.
    """
    return [
        {"item_type": "service", "item_id": haircut.id, "quantity": 1},
        {"item_type": "product", "item_id": shampoo.id, "quantity": 2},
    ]


@pytest.fixture
def membership_plan(store):
    return MembershipPlan.objects.create(
        store=store,
        name="Gold",
        discount_percentage=Decimal("15.00"),
        validity_days=365,
        price=Decimal("5000.00"),
    )


@pytest.fixture
def member(customer, membership_plan):
    """
    Fixture for a customer with an active 15% membership and 100 points.
    """
    today = timezone.localdate()
    CustomerMembership.objects.create(
        customer=customer,
        plan=membership_plan,
        start_date=today - timedelta(days=30),
        end_date=today + timedelta(days=335),
    )
    Customer.objects.filter(pk=customer.pk).update(loyalty_points=100)
    customer.refresh_from_db()
    return customer
