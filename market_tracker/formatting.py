from __future__ import annotations

from .config import CURRENCY_CODES, FX_RATES
from .models import Currency


SHORT_SUFFIXES = (
    (1_000_000_000_000, "T"),
    (1_000_000_000, "B"),
    (1_000_000, "M"),
    (1_000, "K"),
)


def convert(usd_value: float, currency: Currency = Currency.USD) -> float:
    return usd_value * FX_RATES[currency]


def _symbol(currency: Currency) -> str:
    return CURRENCY_CODES[currency][1]


def format_price(usd_value: float | None, currency: Currency = Currency.USD) -> str:
    if usd_value is None:
        return "--"
    value = convert(usd_value, currency)
    digits = 2 if abs(value) >= 1 else 6
    sign = "-" if value < 0 else ""
    return f"{sign}{_symbol(currency)}{abs(value):,.{digits}f}"


def format_change(percent: float | None) -> str:
    """Render a percent-point change (``2.5`` means +2.5%)."""
    if percent is None:
        return "--"
    text = f"{percent:.2f}".rstrip("0").rstrip(".")
    if text in ("-0", ""):
        text = "0"
    return f"{text}%"


def shorten_currency(usd_value: float, currency: Currency = Currency.USD) -> str:
    value = convert(usd_value, currency)
    magnitude = abs(value)
    sign = "-" if value < 0 else ""
    divisor, suffix = 1, ""
    for threshold, label in SHORT_SUFFIXES:
        if magnitude >= threshold:
            divisor, suffix = threshold, label
            break
    scaled = magnitude / divisor
    digits = 0 if scaled >= 100 else 2
    return f"{sign}{_symbol(currency)}{scaled:,.{digits}f}{suffix}"
