"""
Transaction writer: turns a cart into a settled Transaction.

Everything happens in one database transaction:
1. Load the store, staff member and customer (the customer row is locked so
   settlements for one customer run one at a time)
2. Resolve line items against the catalog and recompute pricing
3. Check stock availability
4. Reserve an invoice number and insert the header, then the items
5. Apply stock decrements and the loyalty ledger update in a savepoint

Validation and concurrency errors roll the whole settlement back, header
included, so a rejected settlement leaves no row behind. A database
failure while applying side effects keeps the header and items, records a
ReconciliationCase and surfaces PartialSettlementError once committed.
"""

import logging
import uuid
from collections.abc import Mapping

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError, transaction as db_transaction

from apps.core.models import Store, StoreStaff
from apps.crm.loyalty import LedgerResult, LoyaltyLedger
from apps.crm.models import Customer
from apps.inventory.models import Product, Service
from apps.inventory.stock import StockAdjuster, StockAdjustment

from .exceptions import (
    BillingError,
    BillingValidationError,
    EmptyCartError,
    InsufficientPointsError,
    InsufficientStockError,
    InvalidLineItemError,
    InvalidStateError,
    InvoiceGenerationError,
    PartialSettlementError,
    PricingMismatchError,
    UnknownReferenceError,
)
from .invoicing import InvoiceSequencer
from .models import ReconciliationCase, Transaction, TransactionItem
from .pricing import (
    ITEM_TYPES,
    PRODUCT,
    SERVICE,
    LineItem,
    PricingResult,
    calculate_pricing,
    parse_decimal,
    quantize_money,
)

User = get_user_model()
logger = logging.getLogger(__name__)


def build_line_item(raw) -> LineItem:
    """
    Build a LineItem from a LineItem or a mapping with the same keys.
    """
    if isinstance(raw, LineItem):
        return raw
    if not isinstance(raw, Mapping):
        raise InvalidLineItemError(f"Line item must be a mapping, got {type(raw).__name__}")

    unit_price = raw.get("unit_price")
    if unit_price is not None:
        unit_price = parse_decimal(unit_price, InvalidLineItemError, "Unit price")

    return LineItem(
        item_type=raw.get("item_type"),
        item_id=raw.get("item_id"),
        name=raw.get("name") or "",
        unit_price=unit_price,
        quantity=raw.get("quantity", 1),
        is_custom_price=bool(raw.get("is_custom_price", False)),
    )


def schedule_post_commit_tasks(txn, reconciliation_case=None):
    """Queue the settlement notification, and the reconciliation alert if any."""
    from .tasks import notify_transaction_settled, send_reconciliation_alert

    transaction_id = str(txn.pk)
    db_transaction.on_commit(lambda: notify_transaction_settled.delay(transaction_id))
    if reconciliation_case is not None:
        case_id = str(reconciliation_case.pk)
        db_transaction.on_commit(lambda: send_reconciliation_alert.delay(case_id))


class TransactionWriter:
    """
    Settles carts into transactions and resolves failed side effects.

    Handles:
    - Authoritative server side pricing with a check against the client preview
    - Invoice numbering with bounded retries on collisions
    - Stock and loyalty side effects that must all apply or none
    - Reconciliation cases when a side effect fails after the header is written
    """

    def __init__(
        self,
        stock_adjuster=None,
        loyalty_ledger=None,
        invoice_sequencer=None,
        max_invoice_attempts=None,
    ):
        self.stock_adjuster = stock_adjuster or StockAdjuster()
        self.loyalty_ledger = loyalty_ledger or LoyaltyLedger()
        self.invoice_sequencer = invoice_sequencer or InvoiceSequencer()
        self.max_invoice_attempts = max_invoice_attempts or getattr(
            settings, "BILLING_INVOICE_MAX_ATTEMPTS", 3
        )

    def settle(
        self,
        store_id,
        customer_id,
        line_items,
        payment_method,
        staff_id,
        points_to_redeem=0,
        *,
        expected_total=None,
        notes="",
    ) -> Transaction:
        """
        Settle a cart.

        Args:
            store_id: Store the bill is settled in
            customer_id: Customer billed, or None for a walk-in
            line_items: LineItem objects or mappings with item_type, item_id,
                quantity, and unit_price when is_custom_price is set
            payment_method: One of Transaction.PAYMENT_METHOD_CHOICES
            staff_id: User settling the bill
            points_to_redeem: Points the customer asked to redeem (clamped)
            expected_total: Total shown to the customer by the preview, if any
            notes: Free text stored on the transaction

        Returns:
            The committed Transaction

        Raises:
            BillingValidationError: Bad input; nothing was written
            BillingConcurrencyError: Lost a race for stock, points or an
                invoice number; nothing was written, retry the settlement
            PartialSettlementError: The transaction was recorded but its side
                effects were not; a reconciliation case is open
        """
        reconciliation_case = None
        try:
            with db_transaction.atomic():
                items = [build_line_item(raw) for raw in line_items]
                if not items:
                    raise EmptyCartError("Cannot settle an empty cart")
                if payment_method not in dict(Transaction.PAYMENT_METHOD_CHOICES):
                    raise BillingValidationError(
                        f"Unknown payment method {payment_method!r}",
                        payment_method=payment_method,
                    )

                store = self._load_store(store_id)
                staff = self._load_staff(staff_id, store)
                customer = self._load_customer(customer_id, store)
                items = self._resolve_catalog(store, items)

                pricing = self._price(store, customer, items, points_to_redeem)
                if expected_total is not None:
                    self._check_expected_total(expected_total, pricing.total)

                self._check_stock(items)

                txn = Transaction(
                    store=store,
                    customer=customer,
                    staff=staff,
                    subtotal=pricing.subtotal,
                    membership_discount=pricing.membership_discount,
                    discount_amount=pricing.discount,
                    tax_rate=pricing.tax_rate,
                    tax_amount=pricing.tax,
                    total_amount=pricing.total,
                    payment_method=payment_method,
                    points_earned=pricing.points_earned if customer else 0,
                    points_redeemed=pricing.points_redeemed,
                    notes=notes or "",
                )
                self._write_header(txn)
                transaction_items = self._write_items(txn, items)

                stage = {"current": ReconciliationCase.STAGE_STOCK}
                try:
                    with db_transaction.atomic():
                        self._apply_side_effects(txn, transaction_items, stage)
                except DatabaseError as e:
                    reconciliation_case = self._open_reconciliation(txn, stage["current"], e)
                else:
                    txn.mark_side_effects_applied()
                    txn.mark_committed()
                    txn.save(update_fields=["status", "committed_at"])

                schedule_post_commit_tasks(txn, reconciliation_case)
        except BillingError as e:
            logger.warning(f"Settlement for store {store_id} rejected: {e.code}: {e}")
            raise

        if reconciliation_case is not None:
            raise PartialSettlementError(
                f"Transaction {txn.invoice_number} was recorded without its "
                f"{reconciliation_case.describe_missing()} "
                f"(the {reconciliation_case.stage} update failed)",
                transaction=txn,
                reconciliation_case=reconciliation_case,
            )

        logger.info(
            f"Settled {txn.invoice_number} for store {txn.store.code}: "
            f"total {txn.total_amount}, {len(transaction_items)} items"
        )
        return txn

    def preview(self, store_id, customer_id, line_items, points_to_redeem=0) -> PricingResult:
        """
        Price a cart exactly as settle would, without writing anything.

        Returns:
            PricingResult for the cart
        """
        items = [build_line_item(raw) for raw in line_items]
        if not items:
            raise EmptyCartError("Cannot price an empty cart")

        store = self._load_store(store_id)
        customer = self._load_customer(customer_id, store, lock=False)
        items = self._resolve_catalog(store, items)
        return self._price(store, customer, items, points_to_redeem)

    def resolve_reconciliation(self, case, resolved_by=None) -> ReconciliationCase:
        """
        Apply whatever side effects a partially settled transaction is missing.

        Stock is decremented for product items without a stock movement, and
        the loyalty update is applied if the transaction has no ledger entry.
        Side effects already present are left alone.

        Args:
            case: ReconciliationCase to resolve
            resolved_by: User resolving the case

        Returns:
            The resolved case

        Raises:
            InvalidStateError: If the case is already resolved
            InsufficientStockError: If stock no longer covers a missing decrement
            InsufficientPointsError: If the customer no longer has the points
                the transaction redeemed
        """
        with db_transaction.atomic():
            case = ReconciliationCase.objects.select_for_update().get(pk=case.pk)
            if case.status == ReconciliationCase.RESOLVED:
                raise InvalidStateError(f"Reconciliation case {case.pk} is already resolved")

            txn = Transaction.objects.select_for_update().get(pk=case.transaction_id)
            if not txn.needs_reconciliation():
                raise InvalidStateError(
                    f"Transaction {txn.invoice_number} is {txn.status}, not awaiting reconciliation"
                )

            missing = case.missing_side_effects()
            if ReconciliationCase.STAGE_STOCK in missing:
                pending_items = txn.items.filter(item_type=PRODUCT, stock_movement__isnull=True)
                for item in pending_items:
                    self._decrement_stock(item, allow_already_applied=True)

            if ReconciliationCase.STAGE_LOYALTY in missing:
                Customer.objects.select_for_update().get(pk=txn.customer_id)
                self._apply_loyalty(txn, allow_already_applied=True)

            txn.mark_reconciled()
            txn.save(update_fields=["status", "committed_at"])
            case.mark_as_resolved(resolved_by)

            schedule_post_commit_tasks(txn)

        logger.info(f"Resolved reconciliation case {case.pk} for {txn.invoice_number}")
        return case

    # Loading

    def _load_store(self, store_id):
        try:
            return Store.objects.get(pk=store_id, is_active=True)
        except (Store.DoesNotExist, ValidationError, ValueError):
            raise UnknownReferenceError(f"Store {store_id} does not exist", store_id=store_id)

    def _load_staff(self, staff_id, store):
        try:
            staff = User.objects.get(pk=staff_id, is_active=True)
        except (User.DoesNotExist, ValidationError, ValueError):
            raise UnknownReferenceError(
                f"Staff member {staff_id} does not exist", staff_id=staff_id
            )

        works_here = StoreStaff.objects.filter(store=store, user=staff).exists()
        if not staff.is_superuser and not works_here:
            raise UnknownReferenceError(
                f"Staff member {staff_id} does not work at store {store.code}", staff_id=staff_id
            )
        return staff

    def _load_customer(self, customer_id, store, lock=True):
        if customer_id in (None, ""):
            return None
        queryset = Customer.objects.select_for_update() if lock else Customer.objects.all()
        try:
            return queryset.get(pk=customer_id, store=store)
        except (Customer.DoesNotExist, ValidationError, ValueError):
            raise UnknownReferenceError(
                f"Customer {customer_id} does not exist in store {store.code}",
                customer_id=customer_id,
            )

    def _resolve_catalog(self, store, items):
        """
        Replace client supplied names and prices with catalog values.

        Custom priced items keep their price; everything else is billed at the
        catalog price.
        """
        ids = {SERVICE: set(), PRODUCT: set()}
        normalized = []
        for item in items:
            if item.item_type not in ITEM_TYPES:
                raise InvalidLineItemError(
                    f"Unknown item type {item.item_type!r}", item_id=item.item_id
                )
            try:
                item_id = uuid.UUID(str(item.item_id))
            except ValueError:
                raise InvalidLineItemError(
                    f"Invalid item id {item.item_id!r}", item_id=item.item_id
                )
            ids[item.item_type].add(item_id)
            normalized.append((item, item_id))

        catalog = {
            SERVICE: Service.objects.filter(store=store, is_active=True)
            .filter(pk__in=ids[SERVICE])
            .in_bulk(),
            PRODUCT: Product.objects.filter(store=store, is_active=True)
            .filter(pk__in=ids[PRODUCT])
            .in_bulk(),
        }

        resolved = []
        for item, item_id in normalized:
            entry = catalog[item.item_type].get(item_id)
            if entry is None:
                raise InvalidLineItemError(
                    f"{item.item_type.capitalize()} {item_id} is not sold in store {store.code}",
                    item_id=item_id,
                )

            if item.is_custom_price:
                if item.unit_price is None:
                    raise InvalidLineItemError(
                        f"Custom priced item {entry.name} has no unit price", item_id=item_id
                    )
                unit_price = item.unit_price
            else:
                unit_price = entry.price

            resolved.append(
                LineItem(
                    item_type=item.item_type,
                    item_id=item_id,
                    name=entry.name,
                    unit_price=unit_price,
                    quantity=item.quantity,
                    is_custom_price=item.is_custom_price,
                )
            )
        return resolved

    # Pricing

    def _price(self, store, customer, items, points_to_redeem):
        membership_discount_percentage = None
        available_points = 0
        if customer is not None:
            available_points = customer.loyalty_points
            membership = customer.get_active_membership()
            if membership is not None:
                membership_discount_percentage = membership.plan.discount_percentage
        elif points_to_redeem:
            raise InvalidStateError("Points can only be redeemed for a customer")

        return calculate_pricing(
            items,
            membership_discount_percentage=membership_discount_percentage,
            points_to_redeem=points_to_redeem or 0,
            available_points=available_points,
            tax_rate=store.tax_rate,
            points_earn_rate=store.points_earn_rate,
        )

    def _check_expected_total(self, expected_total, server_total):
        expected = quantize_money(
            parse_decimal(expected_total, BillingValidationError, "Expected total")
        )
        if expected != server_total:
            raise PricingMismatchError(
                f"Previewed total {expected} does not match the settled total {server_total}",
                expected_total=expected,
                server_total=server_total,
            )

    def _check_stock(self, items):
        requirements = StockAdjuster.aggregate_requirements(items)
        if not requirements:
            return
        shortages = self.stock_adjuster.check_availability(requirements)
        if shortages:
            shortage = shortages[0]
            raise InsufficientStockError(
                f"Insufficient stock for {shortage.name or shortage.product_id}: "
                f"requested {shortage.requested}, available {shortage.available}",
                product_id=shortage.product_id,
                requested=shortage.requested,
                available=shortage.available,
            )

    # Writing

    def _write_header(self, txn):
        """
        Insert the header under a fresh invoice number, retrying on collisions.
        """
        for attempt in range(1, self.max_invoice_attempts + 1):
            txn.invoice_number = self.invoice_sequencer.next(txn.store)
            try:
                with db_transaction.atomic():
                    txn.save(force_insert=True)
            except IntegrityError:
                collision = Transaction.objects.filter(
                    store=txn.store, invoice_number=txn.invoice_number
                ).exists()
                if not collision:
                    raise
                logger.warning(
                    f"Invoice number {txn.invoice_number} already used in store "
                    f"{txn.store.code} (attempt {attempt}/{self.max_invoice_attempts})"
                )
                continue

            txn.mark_header_written()
            return

        raise InvoiceGenerationError(
            f"Could not allocate a unique invoice number after "
            f"{self.max_invoice_attempts} attempts",
            store_id=txn.store_id,
        )

    def _write_items(self, txn, items):
        transaction_items = TransactionItem.objects.bulk_create(
            [
                TransactionItem(
                    transaction=txn,
                    item_type=item.item_type,
                    item_id=item.item_id,
                    item_name=item.name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                    is_custom_price=item.is_custom_price,
                )
                for item in items
            ]
        )
        txn.mark_items_written()
        txn.save(update_fields=["status"])
        return transaction_items

    # Side effects

    def _apply_side_effects(self, txn, transaction_items, stage):
        stage["current"] = ReconciliationCase.STAGE_STOCK
        for item in transaction_items:
            if item.item_type == PRODUCT:
                self._decrement_stock(item)

        if txn.customer_id:
            stage["current"] = ReconciliationCase.STAGE_LOYALTY
            self._apply_loyalty(txn)

    def _decrement_stock(self, item, allow_already_applied=False):
        result = self.stock_adjuster.decrement(item.item_id, item.quantity, transaction_item=item)
        if result.applied:
            return result
        if allow_already_applied and result.reason == StockAdjustment.ALREADY_APPLIED:
            return result
        raise InsufficientStockError(
            f"Stock for {item.item_name} changed during settlement: {result.reason}",
            product_id=item.item_id,
            requested=item.quantity,
            available=result.stock_after,
        )

    def _apply_loyalty(self, txn, allow_already_applied=False):
        result = self.loyalty_ledger.apply(
            txn.customer_id,
            txn.points_earned - txn.points_redeemed,
            1,
            txn.total_amount,
            transaction=txn,
            points_earned=txn.points_earned,
            points_redeemed=txn.points_redeemed,
        )
        if result.applied:
            return result
        if allow_already_applied and result.reason == LedgerResult.ALREADY_APPLIED:
            return result
        raise InsufficientPointsError(
            f"Customer {txn.customer_id} cannot cover {txn.points_redeemed} points: "
            f"{result.reason}",
            customer_id=txn.customer_id,
            balance=result.balance_after,
        )

    def _open_reconciliation(self, txn, stage, error):
        txn.require_reconciliation()
        txn.save(update_fields=["status"])
        case = ReconciliationCase.objects.create(
            transaction=txn,
            stage=stage,
            error_message=str(error),
        )
        logger.error(
            f"Transaction {txn.invoice_number} recorded without its {case.describe_missing()} "
            f"({stage} update failed), reconciliation case {case.pk} opened: {error}",
            exc_info=True,
        )
        return case


def settle_transaction(*args, **kwargs):
    """Settle a cart with the default collaborators."""
    return TransactionWriter().settle(*args, **kwargs)
