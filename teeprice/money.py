"""
Centralised money handling.

Every amount that is computed, compared or stored is an integer number of
cents. Currency-unit floats only exist at the edges (rule values typed by an
admin, prices shown to a player) and are converted exactly once with
`dollars_to_cents` / `cents_to_dollars`.

Rounding is half-up on the decimal representation of the value, so float
noise such as 28800 * 0.16 == 4608.000000000001 never flips a cent.
"""
from __future__ import annotations

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Tuple, Union

from teeprice import config
from teeprice.exceptions import PricingIntegrityError
from teeprice.schemas import (
    BookingPricingBreakdown,
    BookingPricingInput,
    BookingPricingResult,
    PricingData,
)

logger = logging.getLogger(__name__)

Number = Union[int, float, Decimal]
Breakdown = Union[PricingData, BookingPricingResult]

_UNIT = Decimal("1")
_HUNDRED = Decimal("100")


def _to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_half_up(value: Number) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(_to_decimal(value).quantize(_UNIT, rounding=ROUND_HALF_UP))


def round_to_multiple(cents: int, step_cents: int) -> int:
    """Round an amount in cents to the nearest multiple of `step_cents`."""
    if step_cents <= 0:
        return cents
    return round_half_up(Decimal(cents) / Decimal(step_cents)) * step_cents


def multiply_cents(cents: int, factor: Number) -> int:
    return round_half_up(Decimal(cents) * _to_decimal(factor))


def dollars_to_cents(amount: Number) -> int:
    return round_half_up(_to_decimal(amount) * _HUNDRED)


def cents_to_dollars(cents: int) -> float:
    return float(Decimal(cents) / _HUNDRED)


# ------------------------------------------------------------------
# BREAKDOWNS
# ------------------------------------------------------------------

def calculate_from_subtotal(
    subtotal_cents: int,
    tax_rate: float = config.TAX_RATE,
    discount_cents: int = 0,
    currency: str = config.CURRENCY,
) -> PricingData:
    tax_cents = round_half_up(Decimal(subtotal_cents) * _to_decimal(tax_rate))
    total_cents = subtotal_cents - discount_cents + tax_cents
    return PricingData(
        subtotal_cents=subtotal_cents,
        tax_cents=tax_cents,
        discount_cents=discount_cents,
        total_cents=total_cents,
        currency=currency,
        tax_rate=tax_rate,
    )


def calculate_price_breakdown(
    total_cents: int,
    tax_rate: float = config.TAX_RATE,
    discount_cents: int = 0,
    currency: str = config.CURRENCY,
) -> PricingData:
    """
    Recover subtotal and tax from a tax-inclusive total.

    The subtotal is derived twice: once by dividing out the tax, then again as
    `total + discount - tax` so that the rounding drift of the first pass is
    absorbed and `subtotal - discount + tax == total` holds exactly.
    """
    rate = _to_decimal(tax_rate)
    subtotal_cents = round_half_up((Decimal(total_cents) + Decimal(discount_cents)) / (1 + rate))
    tax_cents = round_half_up(Decimal(subtotal_cents) * rate)
    subtotal_cents = total_cents + discount_cents - tax_cents
    return PricingData(
        subtotal_cents=subtotal_cents,
        tax_cents=tax_cents,
        discount_cents=discount_cents,
        total_cents=total_cents,
        currency=currency,
        tax_rate=tax_rate,
    )


# ------------------------------------------------------------------
# VALIDATION
# ------------------------------------------------------------------

def _identity_gap(pricing: Breakdown) -> Number:
    expected = pricing.subtotal_cents - pricing.discount_cents + pricing.tax_cents
    return expected - pricing.total_cents


def _is_whole(value: Number) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    try:
        return float(value).is_integer()
    except (TypeError, ValueError, OverflowError):
        return False


def validate_pricing(pricing: Breakdown) -> bool:
    # One cent of tolerance for rounding.
    return abs(_identity_gap(pricing)) <= 1


def validate_pricing_integrity(pricing: Breakdown) -> Tuple[bool, List[str]]:
    errors: List[str] = []

    gap = _identity_gap(pricing)
    if abs(gap) > 1:
        expected = pricing.total_cents + gap
        errors.append(f"Total mismatch: expected {expected}, got {pricing.total_cents}")

    components = (
        ("Subtotal", pricing.subtotal_cents),
        ("Tax", pricing.tax_cents),
        ("Discount", pricing.discount_cents),
        ("Total", pricing.total_cents),
    )
    for label, value in components:
        if value < 0:
            errors.append(f"{label} cannot be negative")
    for label, value in components:
        if not _is_whole(value):
            errors.append(f"{label} must be integer cents")

    return len(errors) == 0, errors


def validate_pricing_calculation(pricing: Breakdown) -> bool:
    """Exact identity check, no tolerance."""
    return _identity_gap(pricing) == 0


def ensure_pricing_integrity(pricing: Breakdown) -> None:
    is_valid, errors = validate_pricing_integrity(pricing)
    if not is_valid:
        logger.error("[MONEY] Integrity check failed: %s", "; ".join(errors))
        raise PricingIntegrityError(errors)


# ------------------------------------------------------------------
# FORMATTING
# ------------------------------------------------------------------

# locale -> (group separator, decimal separator, symbol position, home currency)
_LOCALES: Dict[str, Tuple[str, str, str, str]] = {
    "en-US": (",", ".", "prefix", "USD"),
    "es-MX": (",", ".", "prefix", "MXN"),
    "en-CA": (",", ".", "prefix", "CAD"),
    "en-GB": (",", ".", "prefix", "GBP"),
    "es-ES": (".", ",", "suffix", "EUR"),
    "de-DE": (".", ",", "suffix", "EUR"),
    "fr-FR": (" ", ",", "suffix", "EUR"),
}

_SYMBOLS: Dict[str, str] = {
    "USD": "$",
    "MXN": "$",
    "CAD": "$",
    "EUR": "€",
    "GBP": "£",
}


def _currency_label(currency: str, home_currency: str) -> str:
    symbol = _SYMBOLS.get(currency)
    if symbol is None:
        return currency
    # "$" is ambiguous away from its home locale.
    if symbol == "$" and currency != home_currency:
        return currency
    return symbol


def money(cents: int, currency: str = config.CURRENCY, locale: str = config.LOCALE) -> str:
    """Render cents as a currency string with exactly two decimals."""
    group, decimal_sep, position, home = _LOCALES.get(locale) or _LOCALES["en-US"]
    currency = (currency or "USD").upper()
    label = _currency_label(currency, home)

    cents = round_half_up(cents)
    sign = "-" if cents < 0 else ""
    units, fraction = divmod(abs(cents), 100)
    number = f"{units:,}".replace(",", group) + f"{decimal_sep}{fraction:02d}"

    if position == "suffix":
        return f"{sign}{number} {label}"
    if len(label) > 1:
        return f"{sign}{label} {number}"
    return f"{sign}{label}{number}"


def format_tax_rate(tax_rate: float) -> str:
    return f"{round_half_up(_to_decimal(tax_rate) * _HUNDRED)}%"


def format_breakdown(pricing: PricingData, locale: str = config.LOCALE) -> Dict[str, str]:
    # Never format amounts that would not survive the integrity check.
    ensure_pricing_integrity(pricing)
    currency = pricing.currency
    return {
        "subtotal": money(pricing.subtotal_cents, currency, locale),
        "tax": money(pricing.tax_cents, currency, locale),
        "discount": money(pricing.discount_cents, currency, locale),
        "total": money(pricing.total_cents, currency, locale),
        "tax_rate": format_tax_rate(pricing.tax_rate),
    }


# ------------------------------------------------------------------
# BOOKING PRICING
# ------------------------------------------------------------------

def calculate_booking_pricing(data: BookingPricingInput) -> BookingPricingResult:
    """Per-player price times players, less discount, plus tax on the remainder."""
    base_price_cents = dollars_to_cents(data.base_price)
    subtotal_cents = base_price_cents * data.number_of_players
    discount_cents = dollars_to_cents(data.discount_amount or 0)

    taxable_cents = max(0, subtotal_cents - discount_cents)
    tax_cents = round_half_up(Decimal(taxable_cents) * _to_decimal(data.tax_rate) / _HUNDRED)
    total_cents = subtotal_cents - discount_cents + tax_cents

    return BookingPricingResult(
        subtotal_cents=subtotal_cents,
        tax_cents=tax_cents,
        discount_cents=discount_cents,
        total_cents=total_cents,
        currency=config.CURRENCY,
        breakdown=BookingPricingBreakdown(
            base_price_cents=base_price_cents,
            players_multiplier=data.number_of_players,
            discount_applied=discount_cents > 0,
            discount_code=data.discount_code,
        ),
    )


def apply_discount_code(
    pricing: BookingPricingResult,
    discount_code: str,
    discount_amount: float,
    tax_rate: float = config.TAX_RATE * 100,
) -> BookingPricingResult:
    discount_cents = dollars_to_cents(discount_amount)
    taxable_cents = max(0, pricing.subtotal_cents - discount_cents)
    tax_cents = round_half_up(Decimal(taxable_cents) * _to_decimal(tax_rate) / _HUNDRED)
    total_cents = pricing.subtotal_cents - discount_cents + tax_cents

    breakdown = pricing.breakdown.model_copy(
        update={"discount_applied": discount_cents > 0, "discount_code": discount_code}
    )
    return pricing.model_copy(
        update={
            "discount_cents": discount_cents,
            "tax_cents": tax_cents,
            "total_cents": total_cents,
            "breakdown": breakdown,
        }
    )


def to_pricing_data(result: BookingPricingResult) -> PricingData:
    tax_rate = result.tax_cents / result.subtotal_cents if result.subtotal_cents else 0.0
    return PricingData(
        subtotal_cents=result.subtotal_cents,
        tax_cents=result.tax_cents,
        discount_cents=result.discount_cents,
        total_cents=result.total_cents,
        currency=result.currency,
        tax_rate=tax_rate,
        discount_code=result.breakdown.discount_code,
    )


# ------------------------------------------------------------------
# PAYMENT PROCESSOR AMOUNTS
# ------------------------------------------------------------------

def to_stripe_amounts(pricing: Breakdown) -> Dict[str, object]:
    ensure_pricing_integrity(pricing)
    return {
        "amount": int(pricing.total_cents),
        "amount_subtotal": int(pricing.subtotal_cents),
        "amount_tax": int(pricing.tax_cents),
        "amount_discount": int(pricing.discount_cents),
        "currency": pricing.currency.lower(),
    }


def from_stripe_amounts(stripe_data: dict, tax_rate: float = config.TAX_RATE) -> PricingData:
    discount_code: Optional[str] = stripe_data.get("discount_code")
    return PricingData(
        total_cents=stripe_data["amount"],
        subtotal_cents=stripe_data.get("amount_subtotal") or 0,
        tax_cents=stripe_data.get("amount_tax") or 0,
        discount_cents=stripe_data.get("amount_discount") or 0,
        currency=str(stripe_data.get("currency") or config.CURRENCY).upper(),
        tax_rate=tax_rate,
        discount_code=discount_code,
    )
