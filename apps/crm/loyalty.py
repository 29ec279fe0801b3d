"""
Loyalty ledger: the only writer of a customer's points balance and visit stats.

Balance changes are compare-and-swap updates
(``points = points + delta WHERE points >= -delta``) so two terminals
redeeming the same points cannot both succeed and the balance never goes
negative. When applied for a settlement, a LoyaltyLedgerEntry is written per
transaction; its uniqueness keeps the adjustment at-most-once.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from django.db import IntegrityError, transaction as db_transaction
from django.db.models import F
from django.utils import timezone

from apps.sales.exceptions import InvalidStateError

from .models import Customer, LoyaltyLedgerEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerResult:
    """Outcome of a ledger application. Callers must check ``applied``."""

    APPLIED = "applied"
    INSUFFICIENT_POINTS = "insufficient_points"
    CUSTOMER_NOT_FOUND = "customer_not_found"
    ALREADY_APPLIED = "already_applied"

    applied: bool
    customer_id: object
    points_delta: int
    balance_after: Optional[int] = None
    reason: str = APPLIED


class LoyaltyLedger:
    """
    Applies points, visit and spend adjustments to customers.
    """

    def apply(
        self,
        customer_id,
        points_delta: int,
        visit_increment: int,
        spend_increment: Decimal,
        *,
        transaction=None,
        points_earned: int = 0,
        points_redeemed: int = 0,
    ) -> LedgerResult:
        """
        Adjust a customer's loyalty state in one conditional update.

        Args:
            customer_id: Customer primary key
            points_delta: Net points change, negative for a net redemption
            visit_increment: Visits to add (>= 0)
            spend_increment: Amount to add to lifetime spend (>= 0)
            transaction: Settlement the adjustment belongs to, if any
            points_earned: Points earned, recorded on the ledger entry
            points_redeemed: Points redeemed, recorded on the ledger entry

        Returns:
            LedgerResult. ``applied`` is False when the customer does not
            exist, the balance cannot cover a negative delta, or the
            transaction already has a ledger entry.

        Raises:
            InvalidStateError: If an increment is negative or not a number
        """
        if isinstance(points_delta, bool) or not isinstance(points_delta, int):
            raise InvalidStateError(f"Points delta must be an integer, got {points_delta!r}")
        if isinstance(visit_increment, bool) or not isinstance(visit_increment, int):
            raise InvalidStateError(f"Visit increment must be an integer, got {visit_increment!r}")
        if visit_increment < 0:
            raise InvalidStateError(f"Visit increment cannot be negative: {visit_increment}")

        spend_increment = Decimal(spend_increment)
        if spend_increment < 0:
            raise InvalidStateError(f"Spend increment cannot be negative: {spend_increment}")
        if points_earned < 0 or points_redeemed < 0:
            raise InvalidStateError("Earned and redeemed points cannot be negative")

        if (
            transaction is not None
            and LoyaltyLedgerEntry.objects.filter(transaction=transaction).exists()
        ):
            return LedgerResult(
                applied=False,
                customer_id=customer_id,
                points_delta=points_delta,
                reason=LedgerResult.ALREADY_APPLIED,
            )

        try:
            with db_transaction.atomic():
                updates = {
                    "loyalty_points": F("loyalty_points") + points_delta,
                    "total_visits": F("total_visits") + visit_increment,
                    "total_spent": F("total_spent") + spend_increment,
                    "updated_at": timezone.now(),
                }
                if visit_increment:
                    updates["last_visit_at"] = timezone.now()

                queryset = Customer.objects.filter(pk=customer_id)
                if points_delta < 0:
                    queryset = queryset.filter(loyalty_points__gte=-points_delta)
                updated = queryset.update(**updates)

                if not updated:
                    current = (
                        Customer.objects.filter(pk=customer_id)
                        .values_list("loyalty_points", flat=True)
                        .first()
                    )
                    reason = (
                        LedgerResult.CUSTOMER_NOT_FOUND
                        if current is None
                        else LedgerResult.INSUFFICIENT_POINTS
                    )
                    logger.warning(
                        f"Loyalty update rejected for customer {customer_id}: {reason} "
                        f"(delta {points_delta}, balance {current})"
                    )
                    return LedgerResult(
                        applied=False,
                        customer_id=customer_id,
                        points_delta=points_delta,
                        balance_after=current,
                        reason=reason,
                    )

                balance_after = (
                    Customer.objects.filter(pk=customer_id)
                    .values_list("loyalty_points", flat=True)
                    .get()
                )
                LoyaltyLedgerEntry.objects.create(
                    customer_id=customer_id,
                    transaction=transaction,
                    points_delta=points_delta,
                    points_earned=points_earned,
                    points_redeemed=points_redeemed,
                    visit_increment=visit_increment,
                    spend_increment=spend_increment,
                    balance_after=balance_after,
                )
        except IntegrityError:
            if transaction is None:
                raise
            # Ledger entry for this transaction was written by another worker
            logger.warning(
                f"Loyalty entry for transaction {transaction.pk} already exists; "
                f"update of customer {customer_id} rolled back"
            )
            return LedgerResult(
                applied=False,
                customer_id=customer_id,
                points_delta=points_delta,
                reason=LedgerResult.ALREADY_APPLIED,
            )

        logger.info(
            f"Applied {points_delta:+d} points to customer {customer_id}, "
            f"balance now {balance_after}"
        )
        return LedgerResult(
            applied=True,
            customer_id=customer_id,
            points_delta=points_delta,
            balance_after=balance_after,
        )
