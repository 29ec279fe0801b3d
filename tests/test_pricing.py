"""
Tests for the pricing calculator.

Covers the reference bills, the discount and rounding rules, and properties
checked over randomly generated carts.
"""

import random
from decimal import Decimal

import pytest

from apps.sales.exceptions import EmptyCartError, InvalidLineItemError, InvalidStateError
from apps.sales.pricing import (
    LineItem,
    calculate_pricing,
    floor_to_int,
    quantize_money,
)

CENT = Decimal("0.01")


def service(price, quantity=1, name="Haircut"):
    return LineItem("service", "svc-1", name, Decimal(price), quantity)


def product(price, quantity=1, name="Shampoo"):
    return LineItem("product", "prod-1", name, Decimal(price), quantity)


@pytest.fixture
def standard_cart():
    return [service("1000.00"), product("500.00", quantity=2)]


def random_cart(rng):
    items = []
    for index in range(rng.randint(1, 8)):
        price = Decimal(rng.randint(0, 500000)) / 100
        quantity = rng.randint(1, 5)
        if rng.random() < 0.5:
            items.append(LineItem("service", f"svc-{index}", "Service", price, quantity))
        else:
            items.append(LineItem("product", f"prod-{index}", "Product", price, quantity))
    return items


class TestReferenceBills:
    """Test the reference bills for the standard cart."""

    def test_no_membership_no_redemption(self, standard_cart):
        """Test a plain bill with 18% tax."""
        result = calculate_pricing(standard_cart, tax_rate=Decimal("18"))

        assert result.subtotal == Decimal("2000.00")
        assert result.discount == Decimal("0.00")
        assert result.tax == Decimal("360.00")
        assert result.total == Decimal("2360.00")
        assert result.points_earned == 23

    def test_membership_and_points(self, standard_cart):
        """Test a 15% membership with 100 points redeemed."""
        result = calculate_pricing(
            standard_cart,
            membership_discount_percentage=Decimal("15"),
            points_to_redeem=100,
            available_points=100,
            tax_rate=Decimal("18"),
        )

        assert result.membership_discount == Decimal("300.00")
        assert result.points_redeemed == 100
        assert result.discount == Decimal("400.00")
        assert result.taxable_amount == Decimal("1600.00")
        assert result.tax == Decimal("288.00")
        assert result.total == Decimal("1888.00")
        assert result.points_earned == 18

    def test_redemption_capped_at_subtotal(self, standard_cart):
        """Test that redeeming more than the subtotal is clamped, not rejected."""
        result = calculate_pricing(
            standard_cart, points_to_redeem=5000, available_points=5000, tax_rate=Decimal("18")
        )

        assert result.points_redeemed == 2000
        assert result.discount == Decimal("2000.00")
        assert result.taxable_amount == Decimal("0.00")
        assert result.tax == Decimal("0.00")
        assert result.total == Decimal("0.00")
        assert result.points_earned == 0


class TestRedemptionClamp:
    """Test how points redemption is limited."""

    def test_clamped_to_available_points(self, standard_cart):
        result = calculate_pricing(standard_cart, points_to_redeem=500, available_points=120)
        assert result.points_redeemed == 120

    def test_membership_plus_clamped_points_over_subtotal_rejected(self, standard_cart):
        """Test that points clamped to the subtotal still cannot stack on a membership."""
        with pytest.raises(InvalidStateError) as exc_info:
            calculate_pricing(
                standard_cart,
                membership_discount_percentage=Decimal("15"),
                points_to_redeem=5000,
                available_points=5000,
            )
        assert exc_info.value.context["subtotal"] == Decimal("2000.00")

    def test_points_within_membership_remainder_accepted(self, standard_cart):
        result = calculate_pricing(
            standard_cart,
            membership_discount_percentage=Decimal("15"),
            points_to_redeem=1700,
            available_points=5000,
        )
        assert result.points_redeemed == 1700
        assert result.taxable_amount == Decimal("0.00")

    def test_fractional_remainder_not_redeemable(self):
        """Test that points only cover whole currency units."""
        result = calculate_pricing(
            [service("99.50")], points_to_redeem=1000, available_points=1000
        )
        assert result.points_redeemed == 99
        assert result.taxable_amount == Decimal("0.50")

    def test_zero_request_redeems_nothing(self, standard_cart):
        result = calculate_pricing(standard_cart, points_to_redeem=0, available_points=1000)
        assert result.points_redeemed == 0
        assert result.discount == Decimal("0.00")


class TestRounding:
    """Test rounding of derived amounts."""

    def test_tax_rounded_half_up(self):
        # 18% of 10.25 is 1.845
        result = calculate_pricing([service("10.25")], tax_rate=Decimal("18"))
        assert result.tax == Decimal("1.85")
        assert result.total == Decimal("12.10")

    def test_membership_discount_rounded_half_up(self):
        # 12.5% of 0.20 is 0.025, leaving 0.175
        result = calculate_pricing(
            [service("0.20")], membership_discount_percentage=Decimal("12.5"), tax_rate=0
        )
        assert result.membership_discount == Decimal("0.03")
        assert result.total == Decimal("0.18")

    def test_rounded_at_final_step_only(self):
        # 0.30 - 0.015 = 0.285, plus 18% tax 0.0513, is 0.3363
        result = calculate_pricing(
            [service("0.30")],
            membership_discount_percentage=Decimal("5"),
            tax_rate=Decimal("18"),
        )
        assert result.membership_discount == Decimal("0.02")
        assert result.taxable_amount == Decimal("0.29")
        assert result.tax == Decimal("0.05")
        assert result.total == Decimal("0.34")

    def test_points_earned_on_unrounded_total(self):
        # Total is 99.995 before rounding; 100.00 after
        result = calculate_pricing(
            [service("100.00")],
            membership_discount_percentage=Decimal("0.005"),
            tax_rate=0,
            points_earn_rate=Decimal("0.01"),
        )
        assert result.total == Decimal("100.00")
        assert result.points_earned == 0

    def test_points_earned_floored(self):
        # 1% of 199.99 is 1.9999
        result = calculate_pricing([service("199.99")], tax_rate=0)
        assert result.points_earned == 1

    def test_quantize_money(self):
        assert quantize_money(Decimal("2.345")) == Decimal("2.35")
        assert quantize_money(Decimal("2.344")) == Decimal("2.34")
        assert quantize_money(Decimal("-2.345")) == Decimal("-2.35")

    def test_floor_to_int(self):
        assert floor_to_int(Decimal("23.99")) == 23
        assert floor_to_int(Decimal("0.00")) == 0


class TestInvalidInput:
    """Test that invalid carts and settings are rejected."""

    def test_empty_cart(self):
        with pytest.raises(EmptyCartError):
            calculate_pricing([])

    def test_negative_price(self):
        with pytest.raises(InvalidLineItemError):
            calculate_pricing([service("-1.00")])

    def test_price_with_three_decimals(self):
        with pytest.raises(InvalidLineItemError):
            calculate_pricing([service("10.005")])

    def test_trailing_zero_decimals_accepted(self):
        result = calculate_pricing([service("10.500")], tax_rate=0)
        assert result.subtotal == Decimal("10.50")

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, "2", True])
    def test_bad_quantity(self, quantity):
        with pytest.raises(InvalidLineItemError):
            calculate_pricing([LineItem("service", "svc-1", "Haircut", Decimal("10"), quantity)])

    def test_float_price(self):
        with pytest.raises(InvalidLineItemError):
            calculate_pricing([LineItem("service", "svc-1", "Haircut", 10.5, 1)])

    def test_unknown_item_type(self):
        with pytest.raises(InvalidLineItemError):
            calculate_pricing([LineItem("voucher", "v-1", "Gift", Decimal("10"), 1)])

    def test_negative_points_request(self, standard_cart):
        with pytest.raises(InvalidStateError):
            calculate_pricing(standard_cart, points_to_redeem=-5, available_points=100)

    def test_negative_available_points(self, standard_cart):
        with pytest.raises(InvalidStateError):
            calculate_pricing(standard_cart, available_points=-1)

    @pytest.mark.parametrize("percentage", ["-1", "100.01"])
    def test_membership_percentage_out_of_range(self, standard_cart, percentage):
        with pytest.raises(InvalidStateError):
            calculate_pricing(standard_cart, membership_discount_percentage=Decimal(percentage))

    def test_negative_tax_rate(self, standard_cart):
        with pytest.raises(InvalidStateError):
            calculate_pricing(standard_cart, tax_rate=Decimal("-18"))

    def test_full_membership_discount_allowed(self, standard_cart):
        result = calculate_pricing(standard_cart, membership_discount_percentage=Decimal("100"))
        assert result.discount == result.subtotal
        assert result.total == Decimal("0.00")


class TestPricingProperties:
    """Test invariants over randomly generated carts."""

    @pytest.mark.parametrize("seed", range(25))
    def test_invariants(self, seed):
        rng = random.Random(seed)
        items = random_cart(rng)
        points = rng.randint(0, 100000)
        kwargs = dict(
            membership_discount_percentage=(
                Decimal(rng.randint(0, 10000)) / 100 if rng.random() < 0.5 else None
            ),
            points_to_redeem=rng.randint(0, points),
            available_points=points,
            tax_rate=Decimal(rng.choice(["0", "5", "12", "18", "28"])),
        )

        subtotal = sum((item.unit_price * item.quantity for item in items), Decimal("0"))
        percentage = kwargs["membership_discount_percentage"] or Decimal("0")
        membership_discount = subtotal * percentage / 100
        redeemed = min(kwargs["points_to_redeem"], points, floor_to_int(subtotal))
        if membership_discount + redeemed > subtotal:
            with pytest.raises(InvalidStateError):
                calculate_pricing(items, **kwargs)
            return

        result = calculate_pricing(items, **kwargs)

        taxable_amount = subtotal - membership_discount - redeemed
        total = taxable_amount + taxable_amount * kwargs["tax_rate"] / 100
        assert result.subtotal == subtotal
        assert result.points_redeemed == redeemed
        assert Decimal("0") <= result.discount <= result.subtotal
        assert result.taxable_amount >= 0
        assert result.total == quantize_money(total)
        assert abs(result.total - (result.subtotal - result.discount + result.tax)) <= 2 * CENT
        assert result.points_earned == floor_to_int(total * Decimal("0.01"))

    @pytest.mark.parametrize("seed", range(10))
    def test_deterministic(self, seed):
        """Test that pricing the same cart twice gives identical results."""
        items = random_cart(random.Random(seed)) + [service("100.00")]

        kwargs = dict(
            membership_discount_percentage=Decimal("7.5"),
            points_to_redeem=40,
            available_points=40,
        )

        first = calculate_pricing(items, **kwargs)
        second = calculate_pricing(list(items), **kwargs)

        assert first == second
        assert first.as_dict() == second.as_dict()
