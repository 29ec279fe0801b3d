"""
Tests for the transaction writer.

Covers the settlement flow end to end: pricing, persistence, side effects,
rollback on validation and concurrency errors, invoice collisions, and the
reconciliation path when a side effect fails after the header is written.
"""

import logging
import threading
import uuid
from datetime import date
from decimal import Decimal
from unittest import mock

from django.core import mail
from django.db import DatabaseError, connection
from django.utils import timezone

import pytest

from apps.crm.loyalty import LoyaltyLedger
from apps.crm.models import Customer, LoyaltyLedgerEntry
from apps.inventory.models import Product, Service, StockMovement
from apps.inventory.stock import StockAdjuster
from apps.sales.exceptions import (
    BillingValidationError,
    EmptyCartError,
    InsufficientStockError,
    InvalidLineItemError,
    InvalidStateError,
    InvoiceGenerationError,
    PartialSettlementError,
    PricingMismatchError,
    UnknownReferenceError,
)
from apps.sales.models import InvoiceSequence, ReconciliationCase, Transaction, TransactionItem
from apps.sales.settlement import TransactionWriter
from apps.sales.signals import transaction_settled


def today_period():
    return timezone.localdate().strftime("%Y%m%d")


@pytest.fixture
def writer():
    return TransactionWriter()


def assert_nothing_written(shampoo, stock=10):
    assert Transaction.objects.count() == 0
    assert TransactionItem.objects.count() == 0
    assert StockMovement.objects.count() == 0
    assert LoyaltyLedgerEntry.objects.count() == 0
    shampoo.refresh_from_db()
    assert shampoo.stock == stock


@pytest.mark.django_db
class TestSettlement:
    """Test successful settlements."""

    def test_walk_in_sale(self, writer, store, staff_user, cart, shampoo):
        txn = writer.settle(store.id, None, cart, "cash", staff_user.id)

        assert txn.status == Transaction.COMMITTED
        assert txn.committed_at is not None
        assert txn.invoice_number == f"INV-{today_period()}-0001"
        assert txn.subtotal == Decimal("2000.00")
        assert txn.discount_amount == Decimal("0.00")
        assert txn.tax_rate == Decimal("18.00")
        assert txn.tax_amount == Decimal("360.00")
        assert txn.total_amount == Decimal("2360.00")
        assert txn.points_earned == 0
        assert txn.customer is None

        shampoo.refresh_from_db()
        assert shampoo.stock == 8
        assert LoyaltyLedgerEntry.objects.count() == 0

    def test_header_and_items_persisted(self, writer, store, staff_user, cart, haircut, shampoo):
        txn = writer.settle(store.id, None, cart, "upi", staff_user.id, notes="Birthday visit")

        stored = Transaction.objects.get(pk=txn.pk)
        assert stored.status == Transaction.COMMITTED
        assert stored.notes == "Birthday visit"
        assert stored.payment_method == "upi"

        items = {item.item_name: item for item in stored.items.all()}
        assert set(items) == {"Haircut", "Shampoo"}
        assert items["Haircut"].item_id == haircut.id
        assert items["Haircut"].total_price == Decimal("1000.00")
        assert items["Shampoo"].quantity == 2
        assert items["Shampoo"].unit_price == Decimal("500.00")
        assert items["Shampoo"].total_price == Decimal("1000.00")

        movement = StockMovement.objects.get()
        assert movement.transaction_item == items["Shampoo"]
        assert movement.stock_after == 8

    def test_customer_earns_points(self, writer, store, staff_user, customer, cart):
        txn = writer.settle(store.id, customer.id, cart, "card", staff_user.id)

        assert txn.points_earned == 23
        customer.refresh_from_db()
        assert customer.loyalty_points == 23
        assert customer.total_visits == 1
        assert customer.total_spent == Decimal("2360.00")

        entry = LoyaltyLedgerEntry.objects.get(transaction=txn)
        assert entry.points_delta == 23
        assert entry.balance_after == 23

    def test_member_redeems_points(self, writer, store, staff_user, member, cart):
        txn = writer.settle(store.id, member.id, cart, "cash", staff_user.id, points_to_redeem=100)

        assert txn.membership_discount == Decimal("300.00")
        assert txn.points_redeemed == 100
        assert txn.discount_amount == Decimal("400.00")
        assert txn.tax_amount == Decimal("288.00")
        assert txn.total_amount == Decimal("1888.00")
        assert txn.points_earned == 18

        member.refresh_from_db()
        assert member.loyalty_points == 18
        assert member.total_spent == Decimal("1888.00")

    def test_redemption_clamped_to_balance(self, writer, store, staff_user, member, cart):
        txn = writer.settle(store.id, member.id, cart, "cash", staff_user.id, points_to_redeem=5000)

        assert txn.points_redeemed == 100
        member.refresh_from_db()
        assert member.loyalty_points == txn.points_earned

    def test_redemption_clamped_to_subtotal(self, writer, store, staff_user, customer, cart):
        Customer.objects.filter(pk=customer.pk).update(loyalty_points=5000)

        txn = writer.settle(
            store.id, customer.id, cart, "cash", staff_user.id, points_to_redeem=5000
        )

        assert txn.points_redeemed == 2000
        assert txn.total_amount == Decimal("0.00")
        customer.refresh_from_db()
        assert customer.loyalty_points == 3000

    def test_expired_membership_ignored(self, writer, store, staff_user, member, cart):
        member.memberships.update(end_date=date(2000, 1, 1))

        txn = writer.settle(store.id, member.id, cart, "cash", staff_user.id)

        assert txn.membership_discount == Decimal("0.00")
        assert txn.total_amount == Decimal("2360.00")

    def test_client_price_ignored_for_catalog_items(self, writer, store, staff_user, haircut):
        items = [
            {"item_type": "service", "item_id": haircut.id, "unit_price": "1.00", "name": "Free"}
        ]

        txn = writer.settle(store.id, None, items, "cash", staff_user.id)

        item = txn.items.get()
        assert item.unit_price == Decimal("1000.00")
        assert item.item_name == "Haircut"
        assert txn.subtotal == Decimal("1000.00")

    def test_custom_price_kept(self, writer, store, staff_user, haircut):
        items = [
            {
                "item_type": "service",
                "item_id": haircut.id,
                "unit_price": Decimal("800.00"),
                "is_custom_price": True,
            }
        ]

        txn = writer.settle(store.id, None, items, "cash", staff_user.id)

        item = txn.items.get()
        assert item.is_custom_price is True
        assert item.unit_price == Decimal("800.00")
        assert txn.total_amount == Decimal("944.00")

    def test_store_tax_rate_used(self, writer, store, staff_user, cart):
        store.tax_rate = Decimal("5.00")
        store.save()

        txn = writer.settle(store.id, None, cart, "cash", staff_user.id)

        assert txn.tax_rate == Decimal("5.00")
        assert txn.tax_amount == Decimal("100.00")

    def test_matching_expected_total(self, writer, store, staff_user, cart):
        txn = writer.settle(
            store.id, None, cart, "cash", staff_user.id, expected_total=Decimal("2360.00")
        )
        assert txn.total_amount == Decimal("2360.00")

    def test_invoice_numbers_increase(self, writer, store, staff_user, cart):
        first = writer.settle(store.id, None, cart, "cash", staff_user.id)
        second = writer.settle(store.id, None, cart, "cash", staff_user.id)

        assert first.invoice_number.endswith("-0001")
        assert second.invoice_number.endswith("-0002")

    def test_superuser_can_settle_any_store(self, writer, store, cart, django_user_model):
        admin = django_user_model.objects.create_superuser(
            username="owner", email="owner@example.com", password="testpass123"
        )

        txn = writer.settle(store.id, None, cart, "cash", admin.id)

        assert txn.staff == admin


@pytest.mark.django_db
class TestSettlementValidation:
    """Test that invalid settlements are rejected before anything is written."""

    def test_empty_cart(self, writer, store, staff_user, shampoo):
        with pytest.raises(EmptyCartError):
            writer.settle(store.id, None, [], "cash", staff_user.id)
        assert_nothing_written(shampoo)

    def test_unknown_payment_method(self, writer, store, staff_user, cart, shampoo):
        with pytest.raises(BillingValidationError):
            writer.settle(store.id, None, cart, "cheque", staff_user.id)
        assert_nothing_written(shampoo)

    def test_unknown_store(self, writer, staff_user, cart):
        with pytest.raises(UnknownReferenceError):
            writer.settle(uuid.uuid4(), None, cart, "cash", staff_user.id)

    def test_inactive_store(self, writer, store, staff_user, cart):
        store.is_active = False
        store.save()

        with pytest.raises(UnknownReferenceError):
            writer.settle(store.id, None, cart, "cash", staff_user.id)

    def test_customer_from_other_store(self, writer, store, other_store, staff_user, cart):
        stranger = Customer.objects.create(
            store=other_store, first_name="Asha", mobile="9000000000"
        )

        with pytest.raises(UnknownReferenceError):
            writer.settle(store.id, stranger.id, cart, "cash", staff_user.id)

    def test_staff_from_other_store(self, writer, other_store, staff_user, cart):
        with pytest.raises(UnknownReferenceError):
            writer.settle(other_store.id, None, cart, "cash", staff_user.id)

    def test_item_from_other_store(self, writer, store, other_store, staff_user):
        facial = Service.objects.create(store=other_store, name="Facial", price=Decimal("900.00"))

        with pytest.raises(InvalidLineItemError):
            writer.settle(
                store.id,
                None,
                [{"item_type": "service", "item_id": facial.id, "quantity": 1}],
                "cash",
                staff_user.id,
            )

    def test_inactive_product(self, writer, store, staff_user, cart, shampoo):
        Product.objects.filter(pk=shampoo.pk).update(is_active=False)

        with pytest.raises(InvalidLineItemError):
            writer.settle(store.id, None, cart, "cash", staff_user.id)

    def test_item_type_mismatch(self, writer, store, staff_user, haircut):
        """Test that a service id billed as a product is rejected."""
        with pytest.raises(InvalidLineItemError):
            writer.settle(
                store.id,
                None,
                [{"item_type": "product", "item_id": haircut.id, "quantity": 1}],
                "cash",
                staff_user.id,
            )

    def test_zero_quantity(self, writer, store, staff_user, haircut, shampoo):
        with pytest.raises(InvalidLineItemError):
            writer.settle(
                store.id,
                None,
                [{"item_type": "service", "item_id": haircut.id, "quantity": 0}],
                "cash",
                staff_user.id,
            )
        assert_nothing_written(shampoo)

    def test_custom_price_without_price(self, writer, store, staff_user, haircut):
        with pytest.raises(InvalidLineItemError):
            writer.settle(
                store.id,
                None,
                [{"item_type": "service", "item_id": haircut.id, "is_custom_price": True}],
                "cash",
                staff_user.id,
            )

    def test_walk_in_cannot_redeem(self, writer, store, staff_user, cart):
        with pytest.raises(InvalidStateError):
            writer.settle(store.id, None, cart, "cash", staff_user.id, points_to_redeem=10)

    def test_pricing_mismatch(self, writer, store, staff_user, customer, cart, shampoo):
        with pytest.raises(PricingMismatchError) as exc_info:
            writer.settle(
                store.id, customer.id, cart, "cash", staff_user.id, expected_total="2300.00"
            )

        assert exc_info.value.context["server_total"] == Decimal("2360.00")
        assert_nothing_written(shampoo)
        customer.refresh_from_db()
        assert customer.loyalty_points == 0
        assert customer.total_visits == 0


@pytest.mark.django_db
class TestSettlementConcurrencyLoss:
    """Test retryable failures that leave nothing behind."""

    def test_insufficient_stock(self, writer, store, staff_user, customer, haircut, shampoo):
        items = [
            {"item_type": "service", "item_id": haircut.id, "quantity": 1},
            {"item_type": "product", "item_id": shampoo.id, "quantity": 11},
        ]

        with pytest.raises(InsufficientStockError) as exc_info:
            writer.settle(store.id, customer.id, items, "cash", staff_user.id)

        assert exc_info.value.retryable is True
        assert_nothing_written(shampoo)
        assert not InvoiceSequence.objects.exists()

    def test_stock_checked_across_lines(self, writer, store, staff_user, shampoo):
        items = [
            {"item_type": "product", "item_id": shampoo.id, "quantity": 6},
            {"item_type": "product", "item_id": shampoo.id, "quantity": 6},
        ]

        with pytest.raises(InsufficientStockError):
            writer.settle(store.id, None, items, "cash", staff_user.id)
        assert_nothing_written(shampoo)

    def test_stock_lost_after_check_rolls_back(self, store, staff_user, customer, cart, shampoo):
        """Test that losing the stock race after the header write undoes the whole settlement."""
        adjuster = StockAdjuster()
        Product.objects.filter(pk=shampoo.pk).update(stock=1)

        with mock.patch.object(adjuster, "check_availability", return_value=[]):
            with pytest.raises(InsufficientStockError):
                TransactionWriter(stock_adjuster=adjuster).settle(
                    store.id, customer.id, cart, "cash", staff_user.id
                )

        assert_nothing_written(shampoo, stock=1)
        assert not Transaction.objects.filter(status=Transaction.FAILED).exists()
        customer.refresh_from_db()
        assert customer.total_visits == 0

    def test_last_unit_sold_once(self, writer, store, staff_user, shampoo):
        Product.objects.filter(pk=shampoo.pk).update(stock=1)
        items = [{"item_type": "product", "item_id": shampoo.id, "quantity": 1}]

        writer.settle(store.id, None, items, "cash", staff_user.id)
        with pytest.raises(InsufficientStockError):
            writer.settle(store.id, None, items, "cash", staff_user.id)

        shampoo.refresh_from_db()
        assert shampoo.stock == 0
        assert Transaction.objects.count() == 1


@pytest.mark.django_db
class TestInvoiceCollisions:
    """Test invoice number collisions with existing transactions."""

    def test_collision_retried(self, writer, store, staff_user, cart, caplog):
        # A transaction already holds today's first number but the counter does not know it
        first = writer.settle(store.id, None, cart, "cash", staff_user.id)
        InvoiceSequence.objects.filter(store=store).update(last_value=0)

        with caplog.at_level(logging.WARNING, logger="apps.sales.settlement"):
            second = writer.settle(store.id, None, cart, "cash", staff_user.id)

        assert first.invoice_number.endswith("-0001")
        assert second.invoice_number.endswith("-0002")
        assert "already used" in caplog.text

    def test_gives_up_after_max_attempts(self, store, staff_user, cart, shampoo):
        TransactionWriter().settle(store.id, None, cart, "cash", staff_user.id)
        taken = Transaction.objects.get().invoice_number

        sequencer = mock.Mock()
        sequencer.next.return_value = taken
        writer = TransactionWriter(invoice_sequencer=sequencer, max_invoice_attempts=3)

        with pytest.raises(InvoiceGenerationError) as exc_info:
            writer.settle(store.id, None, cart, "cash", staff_user.id)

        assert exc_info.value.retryable is True
        assert sequencer.next.call_count == 3
        assert Transaction.objects.count() == 1
        shampoo.refresh_from_db()
        assert shampoo.stock == 8


@pytest.mark.django_db
class TestPartialSettlement:
    """Test side effect failures after the header is written."""

    def test_loyalty_failure_opens_reconciliation(
        self, store, staff_user, customer, cart, shampoo, caplog
    ):
        ledger = LoyaltyLedger()
        writer = TransactionWriter(loyalty_ledger=ledger)

        with mock.patch.object(ledger, "apply", side_effect=DatabaseError("connection lost")):
            with caplog.at_level(logging.ERROR, logger="apps.sales.settlement"):
                with pytest.raises(PartialSettlementError) as exc_info:
                    writer.settle(store.id, customer.id, cart, "cash", staff_user.id)

        error = exc_info.value
        txn = Transaction.objects.get()
        assert error.transaction.pk == txn.pk
        assert txn.status == Transaction.RECONCILIATION_REQUIRED
        assert txn.committed_at is None
        assert txn.items.count() == 2

        case = error.reconciliation_case
        assert case.stage == ReconciliationCase.STAGE_LOYALTY
        assert case.status == ReconciliationCase.OPEN
        assert "connection lost" in case.error_message
        assert "reconciliation case" in caplog.text

        # The stock decrement shares the rolled back savepoint
        assert case.missing_side_effects() == [
            ReconciliationCase.STAGE_STOCK,
            ReconciliationCase.STAGE_LOYALTY,
        ]
        assert "without its stock and loyalty updates" in str(error)
        assert "without its stock and loyalty updates" in caplog.text
        shampoo.refresh_from_db()
        assert shampoo.stock == 10
        customer.refresh_from_db()
        assert customer.loyalty_points == 0

    def test_stock_failure_opens_reconciliation(self, store, staff_user, cart, shampoo):
        adjuster = StockAdjuster()
        writer = TransactionWriter(stock_adjuster=adjuster)

        with mock.patch.object(adjuster, "decrement", side_effect=DatabaseError("deadlock")):
            with pytest.raises(PartialSettlementError) as exc_info:
                writer.settle(store.id, None, cart, "cash", staff_user.id)

        case = exc_info.value.reconciliation_case
        assert case.stage == ReconciliationCase.STAGE_STOCK
        assert case.missing_side_effects() == [ReconciliationCase.STAGE_STOCK]
        assert Transaction.objects.get().status == Transaction.RECONCILIATION_REQUIRED

    def test_resolution_applies_missing_side_effects(
        self, store, staff_user, manager_user, customer, cart, shampoo
    ):
        ledger = LoyaltyLedger()
        with mock.patch.object(ledger, "apply", side_effect=DatabaseError("connection lost")):
            with pytest.raises(PartialSettlementError) as exc_info:
                TransactionWriter(loyalty_ledger=ledger).settle(
                    store.id, customer.id, cart, "cash", staff_user.id
                )

        case = TransactionWriter().resolve_reconciliation(
            exc_info.value.reconciliation_case, resolved_by=manager_user
        )

        assert case.status == ReconciliationCase.RESOLVED
        assert case.resolved_by == manager_user
        assert case.resolved_at is not None
        assert case.missing_side_effects() == []

        txn = Transaction.objects.get()
        assert txn.status == Transaction.COMMITTED
        assert txn.committed_at is not None
        shampoo.refresh_from_db()
        assert shampoo.stock == 8
        customer.refresh_from_db()
        assert customer.loyalty_points == 23
        assert customer.total_visits == 1
        assert LoyaltyLedgerEntry.objects.filter(transaction=txn).count() == 1

    def test_resolution_skips_applied_side_effects(
        self, store, staff_user, customer, cart, shampoo
    ):
        """Test that stock already decremented is not decremented again."""
        ledger = LoyaltyLedger()
        with mock.patch.object(ledger, "apply", side_effect=DatabaseError("connection lost")):
            with pytest.raises(PartialSettlementError) as exc_info:
                TransactionWriter(loyalty_ledger=ledger).settle(
                    store.id, customer.id, cart, "cash", staff_user.id
                )

        item = Transaction.objects.get().items.get(item_type="product")
        StockAdjuster().decrement(shampoo.id, item.quantity, transaction_item=item)

        TransactionWriter().resolve_reconciliation(exc_info.value.reconciliation_case)

        shampoo.refresh_from_db()
        assert shampoo.stock == 8
        assert StockMovement.objects.count() == 1

    def test_resolving_twice_rejected(self, store, staff_user, cart):
        adjuster = StockAdjuster()
        with mock.patch.object(adjuster, "decrement", side_effect=DatabaseError("deadlock")):
            with pytest.raises(PartialSettlementError) as exc_info:
                TransactionWriter(stock_adjuster=adjuster).settle(
                    store.id, None, cart, "cash", staff_user.id
                )

        case = exc_info.value.reconciliation_case
        TransactionWriter().resolve_reconciliation(case)

        with pytest.raises(InvalidStateError):
            TransactionWriter().resolve_reconciliation(case)


@pytest.mark.django_db
class TestPostCommitHooks:
    """Test work scheduled for after the settlement commits."""

    def test_notification_scheduled_on_commit(
        self, writer, store, staff_user, cart, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks() as callbacks:
            writer.settle(store.id, None, cart, "cash", staff_user.id)

        assert len(callbacks) == 1

    def test_signal_sent_after_commit(
        self, writer, store, staff_user, cart, django_capture_on_commit_callbacks
    ):
        received = []

        def receiver(sender, transaction, **kwargs):
            received.append(transaction.pk)

        transaction_settled.connect(receiver)
        try:
            with django_capture_on_commit_callbacks(execute=True):
                txn = writer.settle(store.id, None, cart, "cash", staff_user.id)
        finally:
            transaction_settled.disconnect(receiver)

        assert received == [txn.pk]

    def test_nothing_scheduled_when_rejected(
        self, writer, store, staff_user, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks() as callbacks:
            with pytest.raises(EmptyCartError):
                writer.settle(store.id, None, [], "cash", staff_user.id)

        assert callbacks == []

    def test_partial_settlement_alerts_admins(
        self, store, staff_user, cart, django_capture_on_commit_callbacks
    ):
        adjuster = StockAdjuster()
        with mock.patch.object(adjuster, "decrement", side_effect=DatabaseError("deadlock")):
            with django_capture_on_commit_callbacks(execute=True) as callbacks:
                with pytest.raises(PartialSettlementError):
                    TransactionWriter(stock_adjuster=adjuster).settle(
                        store.id, None, cart, "cash", staff_user.id
                    )

        assert len(callbacks) == 2
        assert len(mail.outbox) == 1
        assert "Reconciliation required" in mail.outbox[0].subject
        assert "deadlock" in mail.outbox[0].body


@pytest.mark.django_db(transaction=True)
class TestConcurrentSettlement:
    """Test terminals settling at the same time (PostgreSQL only)."""

    def test_parallel_settlements_get_distinct_invoices(
        self, require_postgres, store, staff_user, cart, shampoo
    ):
        Product.objects.filter(pk=shampoo.pk).update(stock=100)
        invoices = []
        errors = []
        barrier = threading.Barrier(5)

        def settle():
            try:
                barrier.wait()
                txn = TransactionWriter().settle(store.id, None, cart, "cash", staff_user.id)
                invoices.append(txn.invoice_number)
            except Exception as e:
                errors.append(e)
            finally:
                connection.close()

        threads = [threading.Thread(target=settle) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(set(invoices)) == 5
        shampoo.refresh_from_db()
        assert shampoo.stock == 90

    def test_last_units_sold_once(self, require_postgres, store, staff_user, cart, shampoo):
        Product.objects.filter(pk=shampoo.pk).update(stock=2)
        settled = []
        rejected = []
        barrier = threading.Barrier(3)

        def settle():
            try:
                barrier.wait()
                settled.append(
                    TransactionWriter().settle(store.id, None, cart, "cash", staff_user.id)
                )
            except InsufficientStockError as e:
                rejected.append(e)
            finally:
                connection.close()

        threads = [threading.Thread(target=settle) for _ in range(3)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(settled) == 1
        assert len(rejected) == 2
        shampoo.refresh_from_db()
        assert shampoo.stock == 0
        assert Transaction.objects.count() == 1
