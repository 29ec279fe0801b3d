"""
Pricing calculator for salon bills.

Pure functions over in-memory line items: no database access, so the same
code serves the checkout preview and the authoritative recompute done at
settlement time.

Order of operations:
1. Subtotal is the exact sum of unit price x quantity
2. Membership discount is a percentage of the subtotal
3. Points redemption (1 point = 1 currency unit) is clamped to the points
   available and to the whole units of the subtotal
4. Membership discount plus redeemed points may not exceed the subtotal
5. Tax is charged on subtotal minus discounts
6. Points are earned on the final total

Amounts are carried exact through every step and rounded half up to cents
only when the result is built.
"""

from dataclasses import asdict, dataclass
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Optional

from .exceptions import EmptyCartError, InvalidLineItemError, InvalidStateError

SERVICE = "service"
PRODUCT = "product"
ITEM_TYPES = (SERVICE, PRODUCT)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def quantize_money(amount) -> Decimal:
    """Round an amount to cents, half up."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def floor_to_int(amount: Decimal) -> int:
    return int(amount.to_integral_value(rounding=ROUND_FLOOR))


def parse_decimal(value, error_cls, label):
    if isinstance(value, bool):
        raise error_cls(f"{label} must be a number, got {value!r}")
    if isinstance(value, float):
        value = str(value)
    try:
        value = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise error_cls(f"{label} must be a number, got {value!r}")
    if not value.is_finite():
        raise error_cls(f"{label} must be finite, got {value}")
    return value


@dataclass(frozen=True)
class LineItem:
    """A service or product entry in a cart with its resolved unit price."""

    item_type: str
    item_id: object
    name: str
    unit_price: Decimal
    quantity: int
    is_custom_price: bool = False

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity

    def validate(self):
        """
        Check the line item can be priced.

        Raises:
            InvalidLineItemError: On an unknown type, a negative price, a price
                with more than two decimal places, or a quantity below 1
        """
        if self.item_type not in ITEM_TYPES:
            raise InvalidLineItemError(
                f"Unknown item type {self.item_type!r}", item_id=self.item_id
            )
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise InvalidLineItemError(
                f"Quantity must be a whole number, got {self.quantity!r}", item_id=self.item_id
            )
        if self.quantity < 1:
            raise InvalidLineItemError(
                f"Quantity must be at least 1, got {self.quantity}", item_id=self.item_id
            )
        if not isinstance(self.unit_price, Decimal) or not self.unit_price.is_finite():
            raise InvalidLineItemError(
                f"Unit price must be a finite Decimal, got {self.unit_price!r}",
                item_id=self.item_id,
            )
        if self.unit_price < 0:
            raise InvalidLineItemError(
                f"Unit price cannot be negative: {self.unit_price}", item_id=self.item_id
            )
        if self.unit_price != self.unit_price.quantize(CENT, rounding=ROUND_HALF_UP):
            raise InvalidLineItemError(
                f"Unit price has more than two decimal places: {self.unit_price}",
                item_id=self.item_id,
            )


@dataclass(frozen=True)
class PricingResult:
    """Priced bill. Money fields are rounded to cents."""

    subtotal: Decimal
    membership_discount: Decimal
    points_redeemed: int
    discount: Decimal
    taxable_amount: Decimal
    tax_rate: Decimal
    tax: Decimal
    total: Decimal
    points_earned: int

    def as_dict(self):
        return asdict(self)


def calculate_pricing(
    line_items: Iterable[LineItem],
    *,
    membership_discount_percentage: Optional[Decimal] = None,
    points_to_redeem: int = 0,
    available_points: int = 0,
    tax_rate: Decimal = Decimal("18"),
    points_earn_rate: Decimal = Decimal("0.01"),
) -> PricingResult:
    """
    Price a cart.

    Args:
        line_items: Line items to price
        membership_discount_percentage: Discount of the customer's active
            membership (0-100), or None without one
        points_to_redeem: Points the customer asked to redeem
        available_points: Customer's current points balance
        tax_rate: Tax percentage charged on the discounted amount
        points_earn_rate: Fraction of the total earned back as points

    Returns:
        PricingResult with the full breakdown

    Raises:
        EmptyCartError: If there are no line items
        InvalidLineItemError: If a line item cannot be priced
        InvalidStateError: If a rate or points amount is out of range, or the
            discounts would exceed the subtotal
    """
    items = list(line_items)
    if not items:
        raise EmptyCartError("Cannot price an empty cart")
    for item in items:
        item.validate()

    checks = (("Points to redeem", points_to_redeem), ("Available points", available_points))
    for label, points in checks:
        if isinstance(points, bool) or not isinstance(points, int):
            raise InvalidStateError(f"{label} must be a whole number, got {points!r}")
        if points < 0:
            raise InvalidStateError(f"{label} cannot be negative: {points}")

    tax_rate = parse_decimal(tax_rate, InvalidStateError, "Tax rate")
    if tax_rate < 0:
        raise InvalidStateError(f"Tax rate cannot be negative: {tax_rate}")

    points_earn_rate = parse_decimal(points_earn_rate, InvalidStateError, "Points earn rate")
    if points_earn_rate < 0:
        raise InvalidStateError(f"Points earn rate cannot be negative: {points_earn_rate}")

    subtotal = sum((item.total_price for item in items), ZERO)

    membership_discount = ZERO
    if membership_discount_percentage is not None:
        percentage = parse_decimal(
            membership_discount_percentage, InvalidStateError, "Membership discount percentage"
        )
        if percentage < 0 or percentage > HUNDRED:
            raise InvalidStateError(
                f"Membership discount percentage must be between 0 and 100, got {percentage}"
            )
        membership_discount = subtotal * percentage / HUNDRED

    # Redemption is silently clamped; everything else fails loudly
    points_redeemed = max(0, min(points_to_redeem, available_points, floor_to_int(subtotal)))

    discount = membership_discount + points_redeemed
    taxable_amount = subtotal - discount
    if taxable_amount < 0:
        raise InvalidStateError(
            f"Discount {discount} exceeds subtotal {subtotal}",
            subtotal=subtotal,
            discount=discount,
        )

    tax = taxable_amount * tax_rate / HUNDRED
    total = taxable_amount + tax
    points_earned = floor_to_int(total * points_earn_rate)

    # Intermediate amounts stay exact; rounding happens here only
    return PricingResult(
        subtotal=quantize_money(subtotal),
        membership_discount=quantize_money(membership_discount),
        points_redeemed=points_redeemed,
        discount=quantize_money(discount),
        taxable_amount=quantize_money(taxable_amount),
        tax_rate=tax_rate,
        tax=quantize_money(tax),
        total=quantize_money(total),
        points_earned=points_earned,
    )
