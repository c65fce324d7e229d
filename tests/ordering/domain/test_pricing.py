"""Tests for order totals: tax, shipping threshold and rounding."""

from ordering.order.pricing import calculate_totals, to_cents
from shared.config import Settings


def test_subtotal_at_threshold_ships_free():
    totals = calculate_totals([(20.0, 1), (15.0, 2)], Settings())

    assert totals.subtotal == 50.00
    assert totals.shipping_amount == 0.0
    assert totals.tax_amount == 5.00
    assert totals.discount_amount == 0.0
    assert totals.total_amount == 55.00


def test_shipping_is_charged_per_line_not_per_unit():
    totals = calculate_totals([(10.0, 3), (4.5, 1)], Settings())

    assert totals.subtotal == 34.50
    # base 5.99 + 2 lines x 1.00
    assert totals.shipping_amount == 7.99
    assert totals.tax_amount == 3.45
    assert totals.total_amount == 45.94


def test_just_below_threshold_pays_shipping():
    totals = calculate_totals([(49.99, 1)], Settings())

    assert totals.shipping_amount == 6.99
    assert totals.total_amount == round(49.99 + 5.00 + 6.99, 2)


def test_rates_come_from_settings():
    settings = Settings(tax_rate=0.2, free_shipping_threshold=100.0, shipping_base_rate=3.0, shipping_per_item_rate=0.5)
    totals = calculate_totals([(60.0, 1)], settings)

    assert totals.tax_amount == 12.0
    assert totals.shipping_amount == 3.5
    assert totals.total_amount == 75.5


def test_amounts_round_half_up_to_cents():
    assert to_cents(0.125) == 0.13
    assert to_cents(2.675) == 2.68
    totals = calculate_totals([(0.33, 3)], Settings(tax_rate=0.075))
    assert totals.tax_amount == 0.07
