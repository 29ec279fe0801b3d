"""
Tests for stores, staff membership and store access permissions.
"""

from decimal import Decimal
from types import SimpleNamespace

from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser

import pytest

from .models import Store, StoreStaff
from .permissions import (
    HasStoreAccess,
    get_accessible_store_ids,
    user_can_access_store,
    user_is_store_manager,
)

User = get_user_model()


@pytest.fixture
def store(db):
    return Store.objects.create(name="Glow Salon Malad", code="glow-malad")


@pytest.fixture
def other_store(db):
    return Store.objects.create(name="Glow Salon Borivali", code="glow-borivali")


@pytest.fixture
def cashier(store):
    user = User.objects.create_user(username="malad-cashier", password="testpass123")
    StoreStaff.objects.create(store=store, user=user, role=StoreStaff.CASHIER)
    return user


@pytest.fixture
def manager(store):
    user = User.objects.create_user(username="malad-manager", password="testpass123")
    StoreStaff.objects.create(store=store, user=user, role=StoreStaff.MANAGER)
    return user


@pytest.fixture
def superuser(db):
    return User.objects.create_superuser(
        username="owner", email="owner@example.com", password="testpass123"
    )


@pytest.mark.django_db
class TestStore:
    """Test Store model functionality."""

    def test_billing_defaults(self, store):
        store.refresh_from_db()
        assert store.tax_rate == Decimal("18.00")
        assert store.points_earn_rate == Decimal("0.0100")
        assert store.is_active

    def test_billing_defaults_from_settings(self, db, settings):
        settings.BILLING_DEFAULT_TAX_RATE = "5.00"

        store = Store.objects.create(name="Glow Salon Goa", code="glow-goa")

        assert store.tax_rate == Decimal("5.00")

    def test_str(self, store):
        assert str(store) == "Glow Salon Malad (glow-malad)"

    def test_staff_roles(self, store, cashier, manager):
        roles = {member.user.username: member.is_manager() for member in store.staff.all()}
        assert roles == {"malad-cashier": False, "malad-manager": True}


@pytest.mark.django_db
class TestStoreAccess:
    """Test store scoped permission helpers."""

    def test_accessible_store_ids(self, store, other_store, cashier, superuser):
        assert get_accessible_store_ids(cashier) == {store.id}
        assert get_accessible_store_ids(superuser) is None

    def test_user_can_access_store(self, store, other_store, cashier, superuser):
        assert user_can_access_store(cashier, store.id)
        assert user_can_access_store(cashier, str(store.id))
        assert not user_can_access_store(cashier, other_store.id)
        assert user_can_access_store(superuser, other_store.id)
        assert not user_can_access_store(AnonymousUser(), store.id)

    def test_user_is_store_manager(self, store, other_store, cashier, manager, superuser):
        assert user_is_store_manager(manager, store.id)
        assert not user_is_store_manager(manager, other_store.id)
        assert not user_is_store_manager(cashier, store.id)
        assert user_is_store_manager(superuser, other_store.id)

    def test_has_store_access_permission(self, store, other_store, cashier, superuser):
        permission = HasStoreAccess()
        outsider = User.objects.create_user(username="outsider", password="testpass123")

        assert permission.has_permission(SimpleNamespace(user=cashier), None)
        assert permission.has_permission(SimpleNamespace(user=superuser), None)
        assert not permission.has_permission(SimpleNamespace(user=outsider), None)
        assert not permission.has_permission(SimpleNamespace(user=AnonymousUser()), None)

    def test_has_object_permission(self, store, other_store, cashier):
        permission = HasStoreAccess()
        request = SimpleNamespace(user=cashier)

        assert permission.has_object_permission(request, None, SimpleNamespace(store_id=store.id))
        assert not permission.has_object_permission(
            request, None, SimpleNamespace(store_id=other_store.id)
        )
