from __future__ import annotations

import hashlib
import hmac
import json
from datetime import datetime, timedelta
from typing import Optional

from teeprice import config
from teeprice.money import calculate_from_subtotal, ensure_pricing_integrity
from teeprice.schemas import PriceCalculationResult, Quote


def _quote_signature(quote: Quote, secret: str) -> str:
    body = json.dumps(
        {
            "course_id": quote.course_id,
            "players": quote.players,
            "price_per_player_cents": quote.price_per_player_cents,
            "currency": quote.currency,
            "tax_rate": quote.tax_rate,
            "subtotal_cents": quote.subtotal_cents,
            "discount_cents": quote.discount_cents,
            "tax_cents": quote.tax_cents,
            "total_cents": quote.total_cents,
            "discount_code": quote.discount_code,
            "expires_at": quote.expires_at.isoformat(),
        },
        sort_keys=True,
    )
    return hmac.new(secret.encode(), body.encode(), hashlib.sha256).hexdigest()


def build_quote(
    course_id: str,
    result: PriceCalculationResult,
    discount_cents: int = 0,
    discount_code: Optional[str] = None,
    tax_rate: float = config.TAX_RATE,
    currency: str = config.CURRENCY,
    now: Optional[datetime] = None,
    secret: str = config.QUOTE_SECRET,
) -> Quote:
    """
    Freeze a calculated price into a short-lived, signed checkout quote.

    Tax is charged on the subtotal after discount. Raises
    PricingIntegrityError if the breakdown does not add up.
    """
    now = now or datetime.now()
    subtotal_cents = result.total_price_cents
    discount_cents = min(discount_cents, subtotal_cents)

    taxed = calculate_from_subtotal(subtotal_cents - discount_cents, tax_rate, 0, currency)
    pricing = taxed.model_copy(
        update={
            "subtotal_cents": subtotal_cents,
            "discount_cents": discount_cents,
            "discount_code": discount_code,
        }
    )
    ensure_pricing_integrity(pricing)

    quote = Quote(
        course_id=course_id,
        players=result.players,
        price_per_player_cents=result.final_price_per_player_cents,
        currency=currency,
        tax_rate=tax_rate,
        subtotal_cents=pricing.subtotal_cents,
        discount_cents=pricing.discount_cents,
        tax_cents=pricing.tax_cents,
        total_cents=pricing.total_cents,
        discount_code=discount_code,
        expires_at=now + timedelta(minutes=config.QUOTE_TTL_MINUTES),
    )
    return quote.model_copy(update={"quote_hash": _quote_signature(quote, secret)})


def verify_quote(
    quote: Quote,
    now: Optional[datetime] = None,
    secret: str = config.QUOTE_SECRET,
) -> bool:
    now = now or datetime.now()
    if now >= quote.expires_at:
        return False
    return hmac.compare_digest(quote.quote_hash, _quote_signature(quote, secret))
