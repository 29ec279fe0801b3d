"""
Tests for billing models.

Tests the settlement state machine and the append-only guarantees of
transactions and their line items.
"""

from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db import IntegrityError

import pytest
from django_fsm import TransitionNotAllowed, can_proceed

from apps.core.models import Store

from .models import InvoiceSequence, ReconciliationCase, Transaction, TransactionItem

User = get_user_model()


@pytest.fixture
def store(db):
    return Store.objects.create(name="Glow Salon Juhu", code="glow-juhu")


@pytest.fixture
def cashier(db):
    return User.objects.create_user(username="juhu-cashier", password="testpass123")


def make_transaction(store, staff, invoice_number="INV-20260101-0001", **overrides):
    fields = {
        "store": store,
        "staff": staff,
        "invoice_number": invoice_number,
        "subtotal": Decimal("1000.00"),
        "tax_rate": Decimal("18.00"),
        "tax_amount": Decimal("180.00"),
        "total_amount": Decimal("1180.00"),
        "payment_method": Transaction.CASH,
    }
    fields.update(overrides)
    txn = Transaction(**fields)
    txn.save(force_insert=True)
    return txn


@pytest.mark.django_db
class TestTransactionStateMachine:
    """Test settlement status transitions."""

    def test_happy_path(self, store, cashier):
        txn = make_transaction(store, cashier)
        assert txn.status == Transaction.PENDING

        txn.mark_header_written()
        txn.mark_items_written()
        txn.mark_side_effects_applied()
        txn.mark_committed()

        assert txn.status == Transaction.COMMITTED
        assert txn.committed_at is not None
        assert txn.is_settled()

    def test_cannot_skip_items(self, store, cashier):
        txn = make_transaction(store, cashier)
        txn.mark_header_written()

        assert not can_proceed(txn.mark_side_effects_applied)
        with pytest.raises(TransitionNotAllowed):
            txn.mark_side_effects_applied()

    def test_cannot_commit_pending(self, store, cashier):
        txn = make_transaction(store, cashier)

        with pytest.raises(TransitionNotAllowed):
            txn.mark_committed()

    def test_fail_from_any_state(self, store, cashier):
        txn = make_transaction(store, cashier)
        txn.mark_header_written()
        txn.mark_items_written()

        txn.mark_failed()

        assert txn.status == Transaction.FAILED

    def test_reconciliation_path(self, store, cashier):
        txn = make_transaction(store, cashier)
        txn.mark_header_written()
        txn.mark_items_written()

        txn.require_reconciliation()
        assert txn.needs_reconciliation()
        assert not txn.is_settled()

        txn.mark_reconciled()
        assert txn.status == Transaction.COMMITTED
        assert txn.committed_at is not None

    def test_committed_cannot_require_reconciliation(self, store, cashier):
        txn = make_transaction(store, cashier)
        txn.mark_header_written()
        txn.mark_items_written()
        txn.mark_side_effects_applied()
        txn.mark_committed()

        with pytest.raises(TransitionNotAllowed):
            txn.require_reconciliation()


@pytest.mark.django_db
class TestTransactionImmutability:
    """Test that stored transactions cannot be rewritten or deleted."""

    def test_status_update_allowed(self, store, cashier):
        txn = make_transaction(store, cashier)
        txn.mark_header_written()
        txn.save(update_fields=["status"])

        assert Transaction.objects.get(pk=txn.pk).status == Transaction.HEADER_WRITTEN

    def test_full_save_rejected(self, store, cashier):
        txn = make_transaction(store, cashier)
        txn.total_amount = Decimal("1.00")

        with pytest.raises(ValueError):
            txn.save()

    def test_amount_update_rejected(self, store, cashier):
        txn = make_transaction(store, cashier)
        txn.total_amount = Decimal("1.00")

        with pytest.raises(ValueError):
            txn.save(update_fields=["status", "total_amount"])

        assert Transaction.objects.get(pk=txn.pk).total_amount == Decimal("1180.00")

    def test_delete_rejected(self, store, cashier):
        txn = make_transaction(store, cashier)

        with pytest.raises(ValueError):
            txn.delete()
        assert Transaction.objects.filter(pk=txn.pk).exists()

    def test_item_update_and_delete_rejected(self, store, cashier):
        txn = make_transaction(store, cashier)
        item = TransactionItem.objects.create(
            transaction=txn,
            item_type=TransactionItem.SERVICE,
            item_id="6f1c3c1e-7a0e-4a8f-9f57-1d2b3c4d5e6f",
            item_name="Haircut",
            quantity=1,
            unit_price=Decimal("1000.00"),
            total_price=Decimal("1000.00"),
        )

        item.quantity = 2
        with pytest.raises(ValueError):
            item.save()
        with pytest.raises(ValueError):
            item.delete()

    def test_invoice_number_unique_per_store(self, store, cashier):
        make_transaction(store, cashier)

        with pytest.raises(IntegrityError):
            make_transaction(store, cashier)

    def test_same_invoice_number_in_other_store(self, store, cashier):
        other = Store.objects.create(name="Glow Salon Powai", code="glow-powai")
        make_transaction(store, cashier)

        assert make_transaction(other, cashier).invoice_number == "INV-20260101-0001"


@pytest.mark.django_db
class TestReconciliationCase:
    """Test ReconciliationCase model functionality."""

    def test_mark_as_resolved(self, store, cashier):
        txn = make_transaction(store, cashier)
        case = ReconciliationCase.objects.create(
            transaction=txn, stage=ReconciliationCase.STAGE_LOYALTY, error_message="timeout"
        )
        assert case.status == ReconciliationCase.OPEN

        case.mark_as_resolved(cashier)
        case.refresh_from_db()

        assert case.status == ReconciliationCase.RESOLVED
        assert case.resolved_by == cashier
        assert case.resolved_at is not None

    def test_resolving_twice_rejected(self, store, cashier):
        txn = make_transaction(store, cashier)
        case = ReconciliationCase.objects.create(
            transaction=txn, stage=ReconciliationCase.STAGE_STOCK
        )
        case.mark_as_resolved()

        with pytest.raises(ValueError):
            case.mark_as_resolved()

    def test_walk_in_service_bill_misses_nothing(self, store, cashier):
        txn = make_transaction(store, cashier)
        case = ReconciliationCase.objects.create(
            transaction=txn, stage=ReconciliationCase.STAGE_STOCK, error_message="deadlock"
        )

        assert case.missing_side_effects() == []
        assert case.describe_missing() == "nothing"


@pytest.mark.django_db
class TestInvoiceSequence:
    def test_one_counter_per_store_and_day(self, store):
        InvoiceSequence.objects.create(store=store, period="20260101", last_value=3)

        with pytest.raises(IntegrityError):
            InvoiceSequence.objects.create(store=store, period="20260101")
