##########################################################################################
#
# Script name: test_formatting.py
#
# Description: Currency conversion and display helpers.
#
##########################################################################################

import pytest

from market_tracker.formatting import convert, format_change, format_price, shorten_currency
from market_tracker.models import Currency


def test_convert_uses_static_rates() -> None:
    assert convert(100.0) == 100.0
    assert convert(100.0, Currency.EUR) == pytest.approx(92.0)
    assert convert(2.0, Currency.JPY) == pytest.approx(300.0)


def test_format_price_precision_depends_on_magnitude() -> None:
    assert format_price(64250.0) == '$64,250.00'
    assert format_price(0.000123) == '$0.000123'
    assert format_price(-5.0) == '-$5.00'
    assert format_price(100.0, Currency.EUR) == '€92.00'
    assert format_price(None) == '--'


def test_format_change_trims_trailing_zeros() -> None:
    assert format_change(2.5) == '2.5%'
    assert format_change(3.0) == '3%'
    assert format_change(-1.234) == '-1.23%'
    assert format_change(-0.001) == '0%'
    assert format_change(None) == '--'


def test_shorten_currency_suffixes() -> None:
    assert shorten_currency(999.0) == '$999'
    assert shorten_currency(1_234_567.0) == '$1.23M'
    assert shorten_currency(1.5e12) == '$1.50T'
    assert shorten_currency(-2_500.0) == '-$2.50K'
    assert shorten_currency(1_000.0, Currency.JPY) == '¥150K'
