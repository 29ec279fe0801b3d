"""
Tests for CRM models.

Tests customers, membership plans and membership windows, and the ledger
entries written by the loyalty ledger.
"""

from datetime import timedelta
from decimal import Decimal

from django.db import IntegrityError
from django.utils import timezone

import pytest

from apps.core.models import Store

from .loyalty import LedgerResult, LoyaltyLedger
from .models import Customer, CustomerMembership, LoyaltyLedgerEntry, MembershipPlan


@pytest.fixture
def store(db):
    return Store.objects.create(name="Glow Salon Thane", code="glow-thane")


@pytest.fixture
def customer(store):
    return Customer.objects.create(
        store=store, first_name="Meera", last_name="Iyer", mobile="9123456780"
    )


@pytest.fixture
def silver(store):
    return MembershipPlan.objects.create(
        store=store, name="Silver", discount_percentage=Decimal("10.00"), price=Decimal("2000.00")
    )


@pytest.fixture
def gold(store):
    return MembershipPlan.objects.create(
        store=store, name="Gold", discount_percentage=Decimal("15.00"), price=Decimal("5000.00")
    )


@pytest.mark.django_db
class TestCustomer:
    """Test Customer model functionality."""

    def test_create_customer(self, customer):
        assert customer.loyalty_points == 0
        assert customer.total_visits == 0
        assert customer.total_spent == Decimal("0.00")
        assert customer.last_visit_at is None
        assert str(customer) == "Meera Iyer (9123456780)"

    def test_full_name_without_last_name(self, store):
        customer = Customer.objects.create(store=store, first_name="Anu", mobile="9000000001")
        assert customer.get_full_name() == "Anu"

    def test_mobile_unique_per_store(self, store, customer):
        with pytest.raises(IntegrityError):
            Customer.objects.create(store=store, first_name="Other", mobile=customer.mobile)

    def test_points_cannot_go_negative(self, customer):
        with pytest.raises(IntegrityError):
            Customer.objects.filter(pk=customer.pk).update(loyalty_points=-1)


@pytest.mark.django_db
class TestCustomerMembership:
    """Test membership windows and the active membership lookup."""

    def test_end_date_derived_from_plan(self, customer, gold):
        start = timezone.localdate()
        membership = CustomerMembership.objects.create(
            customer=customer, plan=gold, start_date=start
        )

        assert membership.end_date == start + timedelta(days=365)
        assert membership.is_current()

    def test_no_membership(self, customer):
        assert customer.get_active_membership() is None

    def test_expired_membership(self, customer, gold):
        today = timezone.localdate()
        CustomerMembership.objects.create(
            customer=customer,
            plan=gold,
            start_date=today - timedelta(days=400),
            end_date=today - timedelta(days=1),
        )

        assert customer.get_active_membership() is None

    def test_future_membership(self, customer, gold):
        CustomerMembership.objects.create(
            customer=customer, plan=gold, start_date=timezone.localdate() + timedelta(days=7)
        )

        assert customer.get_active_membership() is None

    def test_inactive_plan_ignored(self, customer, gold):
        CustomerMembership.objects.create(
            customer=customer, plan=gold, start_date=timezone.localdate()
        )
        gold.is_active = False
        gold.save()

        assert customer.get_active_membership() is None

    def test_latest_overlapping_membership_wins(self, customer, silver, gold):
        today = timezone.localdate()
        CustomerMembership.objects.create(
            customer=customer, plan=silver, start_date=today - timedelta(days=100)
        )
        CustomerMembership.objects.create(
            customer=customer, plan=gold, start_date=today - timedelta(days=10)
        )

        assert customer.get_active_membership().plan == gold

    def test_lookup_on_date(self, customer, silver):
        today = timezone.localdate()
        CustomerMembership.objects.create(
            customer=customer, plan=silver, start_date=today, end_date=today + timedelta(days=30)
        )

        assert customer.get_active_membership(on_date=today + timedelta(days=30)) is not None
        assert customer.get_active_membership(on_date=today + timedelta(days=31)) is None


@pytest.mark.django_db
class TestMembershipPlan:
    def test_discount_above_hundred_rejected(self, store):
        with pytest.raises(IntegrityError):
            MembershipPlan.objects.create(
                store=store,
                name="Broken",
                discount_percentage=Decimal("120.00"),
                price=Decimal("100.00"),
            )


@pytest.mark.django_db
class TestLoyaltyLedgerEntry:
    """Test the history written by the loyalty ledger."""

    def test_entries_track_running_balance(self, customer):
        ledger = LoyaltyLedger()
        ledger.apply(customer.id, 40, 1, Decimal("4000.00"), points_earned=40)
        result = ledger.apply(customer.id, -25, 1, Decimal("1500.00"), points_redeemed=25)

        assert result.reason == LedgerResult.APPLIED
        entries = list(customer.ledger_entries.order_by("-points_delta"))
        assert [entry.points_delta for entry in entries] == [40, -25]
        assert [entry.balance_after for entry in entries] == [40, 15]
        assert entries[1].points_redeemed == 25
        assert LoyaltyLedgerEntry.objects.filter(transaction__isnull=True).count() == 2
