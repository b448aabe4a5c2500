"""Tests for the four-way commission split."""
import uuid
from decimal import Decimal

import pytest

from revsplit.core.exceptions import ValidationError
from revsplit.models import CommissionRule, OrderItem
from revsplit.services.commission_calculator import calculate, to_cents


def make_item(subtotal: str) -> OrderItem:
    return OrderItem(id=uuid.uuid4(), sku_id=uuid.uuid4(), subtotal=Decimal(subtotal))


def make_rule(creator_percent: str, platform_fee_percent: str, min_commission=None, max_commission=None) -> CommissionRule:
    return CommissionRule(
        id=uuid.uuid4(),
        organization_id=uuid.uuid4(),
        scope_type="DEFAULT",
        creator_percent=Decimal(creator_percent),
        platform_fee_percent=Decimal(platform_fee_percent),
        min_commission=Decimal(min_commission) if min_commission is not None else None,
        max_commission=Decimal(max_commission) if max_commission is not None else None,
        currency="USD",
    )


def assert_balanced(calc):
    assert calc.platform_fee + calc.creator_commission + calc.payment_fee + calc.seller_take == calc.subtotal
    assert calc.seller_take >= 0


def test_standard_split():
    calc = calculate(make_item("100.00"), make_rule("10", "5"))

    assert calc.platform_fee == Decimal("5.00")
    assert calc.creator_commission == Decimal("10.00")
    assert calc.payment_fee == Decimal("2.90")
    assert calc.seller_take == Decimal("82.10")
    assert calc.clamped is False
    assert calc.applied_rule_type == "DEFAULT"
    assert_balanced(calc)


def test_negative_seller_take_reduces_commission():
    item = make_item("10.00")
    calc = calculate(item, make_rule("60", "50"))

    assert calc.platform_fee == Decimal("5.00")
    assert calc.payment_fee == Decimal("0.29")
    assert calc.creator_commission == Decimal("4.71")
    assert calc.seller_take == Decimal("0")
    assert calc.clamped is True
    assert_balanced(calc)


def test_clamped_calculation_is_repeatable():
    item = make_item("10.00")
    rule = make_rule("60", "50")

    first = calculate(item, rule)
    second = calculate(item, rule)

    assert first == second


def test_rounding_keeps_exact_sum():
    calc = calculate(make_item("33.33"), make_rule("10", "5"))

    assert calc.creator_commission == Decimal("3.33")
    assert calc.platform_fee == Decimal("1.67")
    assert calc.payment_fee == Decimal("0.97")
    assert calc.seller_take == Decimal("27.36")
    assert_balanced(calc)


@pytest.mark.parametrize("subtotal", ["0.01", "0.99", "19.99", "1234.56", "99999.99"])
def test_split_always_balances(subtotal):
    assert_balanced(calculate(make_item(subtotal), make_rule("12.5", "7.25")))


def test_max_commission_caps_creator_share():
    calc = calculate(make_item("1000.00"), make_rule("10", "5", max_commission="50.00"))

    assert calc.creator_commission == Decimal("50.00")
    assert calc.seller_take == Decimal("871.00")
    assert_balanced(calc)


def test_min_commission_raises_creator_share():
    calc = calculate(make_item("10.00"), make_rule("10", "5", min_commission="2.00"))

    assert calc.creator_commission == Decimal("2.00")
    assert_balanced(calc)


def test_fees_exceeding_subtotal_are_capped():
    calc = calculate(make_item("1.00"), make_rule("10", "99"))

    assert calc.creator_commission == Decimal("0")
    assert calc.seller_take == Decimal("0")
    assert calc.payment_fee == Decimal("0.03")
    assert calc.platform_fee == Decimal("0.97")
    assert calc.clamped is True
    assert_balanced(calc)


def test_zero_subtotal():
    calc = calculate(make_item("0.00"), make_rule("10", "5"))

    assert calc.creator_commission == Decimal("0.00")
    assert calc.seller_take == Decimal("0.00")
    assert_balanced(calc)


def test_negative_subtotal_rejected():
    with pytest.raises(ValidationError) as exc_info:
        calculate(make_item("-5.00"), make_rule("10", "5"))
    assert exc_info.value.error_code == "NEGATIVE_SUBTOTAL"


def test_custom_payment_fee_rate_and_currency():
    calc = calculate(make_item("100.00"), make_rule("10", "5"), payment_fee_rate=Decimal("0"), currency="EUR")

    assert calc.payment_fee == Decimal("0.00")
    assert calc.seller_take == Decimal("85.00")
    assert calc.currency == "EUR"


def test_to_cents_rounds_half_up():
    assert to_cents(Decimal("0.005")) == Decimal("0.01")
    assert to_cents(Decimal("1.6665")) == Decimal("1.67")
    assert to_cents(Decimal("2.004")) == Decimal("2.00")
