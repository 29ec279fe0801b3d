"""
Stock adjuster for product line items.

Decrements are compare-and-swap updates (``stock = stock - n WHERE stock >= n``)
so two terminals selling the last unit cannot both succeed, and stock never
goes below zero. Overselling is rejected rather than floored at zero.

Each decrement made on behalf of a transaction line item is recorded as a
StockMovement; the movement's uniqueness per line item means a decrement is
applied at most once even if a caller retries.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Optional

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from apps.sales.exceptions import InvalidStateError

from .models import Product, StockMovement

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockAdjustment:
    """Outcome of a single decrement. Callers must check ``applied``."""

    APPLIED = "applied"
    INSUFFICIENT_STOCK = "insufficient_stock"
    PRODUCT_NOT_FOUND = "product_not_found"
    ALREADY_APPLIED = "already_applied"

    applied: bool
    product_id: object
    quantity: int
    stock_after: Optional[int] = None
    is_low_stock: bool = False
    reason: str = APPLIED


@dataclass(frozen=True)
class StockShortage:
    """A product that cannot cover the requested quantity."""

    product_id: object
    name: str
    requested: int
    available: int


class StockAdjuster:
    """
    Applies stock decrements for product line items.

    Handles:
    - Availability checks before a settlement writes anything
    - Atomic per-product decrements that never go negative
    - Movement records that make each line item's decrement idempotent
    - Low stock warnings
    """

    def check_availability(self, requirements: Dict[object, int]) -> List[StockShortage]:
        """
        Check that every product can cover its requested quantity.

        Args:
            requirements: Mapping of product id to total quantity requested
                across all line items of a cart

        Returns:
            List of shortages, empty when everything is available
        """
        products = {
            str(product.pk): product
            for product in Product.objects.filter(pk__in=list(requirements))
        }

        shortages = []
        for product_id, requested in requirements.items():
            product = products.get(str(product_id))
            if product is None or not product.can_deduct_quantity(requested):
                available = product.stock if product else 0
                shortages.append(
                    StockShortage(
                        product_id=product_id,
                        name=product.name if product else "",
                        requested=requested,
                        available=available,
                    )
                )
        return shortages

    @staticmethod
    def aggregate_requirements(items) -> Dict[object, int]:
        """
        Sum quantities per product over line items with ``item_type == "product"``.
        """
        requirements = OrderedDict()
        for item in items:
            if item.item_type != "product":
                continue
            requirements[item.item_id] = requirements.get(item.item_id, 0) + item.quantity
        return requirements

    def decrement(self, product_id, quantity: int, transaction_item=None) -> StockAdjustment:
        """
        Remove ``quantity`` units from a product's stock.

        Args:
            product_id: Product primary key
            quantity: Units to remove (must be >= 1)
            transaction_item: Line item the decrement belongs to, if any

        Returns:
            StockAdjustment describing what happened. ``applied`` is False when
            the product is missing, stock is insufficient, or the line item was
            already decremented.

        Raises:
            InvalidStateError: If quantity is not a positive integer
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidStateError(
                f"Stock decrement quantity must be a positive integer, got {quantity!r}"
            )

        if (
            transaction_item is not None
            and StockMovement.objects.filter(transaction_item=transaction_item).exists()
        ):
            return StockAdjustment(
                applied=False,
                product_id=product_id,
                quantity=quantity,
                reason=StockAdjustment.ALREADY_APPLIED,
            )

        try:
            with transaction.atomic():
                updated = Product.objects.filter(pk=product_id, stock__gte=quantity).update(
                    stock=F("stock") - quantity, updated_at=timezone.now()
                )
                if not updated:
                    current = (
                        Product.objects.filter(pk=product_id)
                        .values_list("stock", flat=True)
                        .first()
                    )
                    reason = (
                        StockAdjustment.PRODUCT_NOT_FOUND
                        if current is None
                        else StockAdjustment.INSUFFICIENT_STOCK
                    )
                    logger.warning(
                        f"Stock decrement rejected for product {product_id}: {reason} "
                        f"(requested {quantity}, available {current})"
                    )
                    return StockAdjustment(
                        applied=False,
                        product_id=product_id,
                        quantity=quantity,
                        stock_after=current,
                        reason=reason,
                    )

                product = Product.objects.only("name", "stock", "min_stock").get(pk=product_id)
                StockMovement.objects.create(
                    product_id=product_id,
                    transaction_item=transaction_item,
                    quantity=quantity,
                    stock_after=product.stock,
                )
        except IntegrityError:
            if transaction_item is None:
                raise
            # Another worker recorded the movement for this line item first
            logger.warning(
                f"Stock movement for line item {transaction_item.pk} already exists; "
                f"decrement of product {product_id} rolled back"
            )
            return StockAdjustment(
                applied=False,
                product_id=product_id,
                quantity=quantity,
                reason=StockAdjustment.ALREADY_APPLIED,
            )

        low_stock = product.is_low_stock()
        if low_stock:
            logger.warning(
                f"Product {product.name} ({product_id}) is low on stock: "
                f"{product.stock} left, minimum {product.min_stock}"
            )

        return StockAdjustment(
            applied=True,
            product_id=product_id,
            quantity=quantity,
            stock_after=product.stock,
            is_low_stock=low_stock,
        )
