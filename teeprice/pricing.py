from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple

from teeprice import config
from teeprice.exceptions import BaseProductMissing, TeeTimeBlocked
from teeprice.money import (
    cents_to_dollars,
    dollars_to_cents,
    multiply_cents,
    round_to_multiple,
)
from teeprice.schemas import (
    AppliedRule,
    OverrideType,
    PriceCalculationInput,
    PriceCalculationResult,
    PriceRule,
    PriceType,
    Season,
    SpecialOverride,
    TimeBand,
    parse_instant,
)

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Calendar / clock helpers
# ------------------------------------------------------------------

def time_to_minutes(value: str) -> int:
    hours, minutes = value.split(":")[:2]
    return int(hours) * 60 + int(minutes)


def day_of_week(on_date: date) -> int:
    # Python weekday(): Monday=0 ... Sunday=6. Rules use Sunday=0 ... Saturday=6.
    return (on_date.weekday() + 1) % 7


def tee_datetime(on_date: date, tee_time: str) -> datetime:
    minutes = time_to_minutes(tee_time)
    return datetime.combine(on_date, time(minutes // 60, minutes % 60))


def derive_lead_time_hours(on_date: date, tee_time: str, now: datetime) -> float:
    """Hours from `now` until the tee time. Negative once the slot has passed."""
    return (tee_datetime(on_date, tee_time) - now).total_seconds() / 3600.0


def is_time_in_window(tee_time: str, start: Optional[str], end: Optional[str]) -> bool:
    # Inclusive at both ends; an open window covers the whole day.
    if not start or not end:
        return True
    minutes = time_to_minutes(tee_time)
    return time_to_minutes(start) <= minutes <= time_to_minutes(end)


def is_time_in_band(tee_time: str, band: TimeBand) -> bool:
    # Half-open: a band ending at 12:00 does not include 12:00.
    minutes = time_to_minutes(tee_time)
    return time_to_minutes(band.start_time) <= minutes < time_to_minutes(band.end_time)


# ------------------------------------------------------------------
# Context resolution
# ------------------------------------------------------------------

def _highest_priority(records: Iterable):
    # sorted() is stable: equal priorities keep their stored order.
    ranked = sorted(records, key=lambda r: -r.priority)
    return ranked[0] if ranked else None


def find_special_override(
    overrides: Iterable[SpecialOverride],
    on_date: date,
    tee_time: str,
) -> Optional[SpecialOverride]:
    return _highest_priority(
        o for o in overrides
        if o.active
        and o.start_date <= on_date <= o.end_date
        and is_time_in_window(tee_time, o.start_time, o.end_time)
    )


def find_season(seasons: Iterable[Season], on_date: date) -> Optional[Season]:
    return _highest_priority(
        s for s in seasons
        if s.active and s.start_date <= on_date <= s.end_date
    )


def find_time_band(bands: Iterable[TimeBand], tee_time: str) -> Optional[TimeBand]:
    for band in bands:
        if band.active and is_time_in_band(tee_time, band):
            return band
    return None


@dataclass(frozen=True)
class PricingContext:
    course_id: str
    tee_date: date
    tee_time: str
    players: int
    lead_time_hours: float
    occupancy_percent: float
    now: datetime
    season: Optional[Season] = None
    time_band: Optional[TimeBand] = None

    @property
    def dow(self) -> int:
        return day_of_week(self.tee_date)

    @property
    def season_id(self) -> Optional[str]:
        return self.season.id if self.season else None

    @property
    def time_band_id(self) -> Optional[str]:
        return self.time_band.id if self.time_band else None


def build_context(repository, data: PriceCalculationInput, now: datetime) -> PricingContext:
    lead_time = data.lead_time_hours
    if lead_time is None:
        lead_time = derive_lead_time_hours(data.date, data.time, now)
    occupancy = data.occupancy_percent if data.occupancy_percent is not None else 0.0

    return PricingContext(
        course_id=data.course_id,
        tee_date=data.date,
        tee_time=data.time,
        players=data.players,
        lead_time_hours=float(lead_time),
        occupancy_percent=float(occupancy),
        now=now,
        season=find_season(repository.get_seasons(data.course_id), data.date),
        time_band=find_time_band(repository.get_time_bands(data.course_id), data.time),
    )


# ------------------------------------------------------------------
# Rule selection
# ------------------------------------------------------------------

def is_rule_effective(rule: PriceRule, now: datetime) -> bool:
    starts = parse_instant(rule.effective_from)
    if starts is not None and starts > now:
        return False
    ends = parse_instant(rule.effective_to, end_of_day=True)
    if ends is not None and ends < now:
        return False
    return True


def _outside(value: float, low: Optional[float], high: Optional[float]) -> bool:
    if low is not None and value < low:
        return True
    if high is not None and value > high:
        return True
    return False


def _matches(ctx: PricingContext, rule: PriceRule) -> bool:
    if not rule.active:
        return False
    if not is_rule_effective(rule, ctx.now):
        return False

    if rule.season_id is not None and rule.season_id != ctx.season_id:
        return False

    # An empty weekday list declares nothing.
    if rule.dow and ctx.dow not in rule.dow:
        return False

    if rule.time_band_id is not None and rule.time_band_id != ctx.time_band_id:
        return False

    if _outside(ctx.lead_time_hours, rule.lead_time_min, rule.lead_time_max):
        return False
    if _outside(ctx.occupancy_percent, rule.occupancy_min, rule.occupancy_max):
        return False
    if _outside(ctx.players, rule.players_min, rule.players_max):
        return False

    return True


def select_applicable_rules(rules_by_priority: Sequence[PriceRule], ctx: PricingContext) -> List[PriceRule]:
    """Filter an already priority-sorted rule list; the order is preserved."""
    return [rule for rule in rules_by_priority if _matches(ctx, rule)]


# ------------------------------------------------------------------
# Rule application
# ------------------------------------------------------------------

def apply_rule(current_cents: int, rule: PriceRule) -> int:
    if rule.price_type == PriceType.FIXED:
        # Absolute: discards everything applied before it.
        price = dollars_to_cents(rule.price_value)
    elif rule.price_type == PriceType.DELTA:
        price = current_cents + dollars_to_cents(rule.price_value)
    else:
        price = multiply_cents(current_cents, rule.price_value)

    if rule.min_price is not None:
        price = max(price, dollars_to_cents(rule.min_price))
    if rule.max_price is not None:
        price = min(price, dollars_to_cents(rule.max_price))

    if rule.round_to is not None:
        price = round_to_multiple(price, dollars_to_cents(rule.round_to))

    return price


def _override_result(override: SpecialOverride, players: int, now: datetime) -> PriceCalculationResult:
    price_cents = dollars_to_cents(override.price_value)
    price = cents_to_dollars(price_cents)
    return PriceCalculationResult(
        base_price=price,
        applied_rules=[
            AppliedRule(
                rule_id=override.id,
                rule_name=override.name,
                rule_type=PriceType.FIXED,
                value=override.price_value,
                result_price=price,
                result_price_cents=price_cents,
            )
        ],
        final_price_per_player=price,
        final_price_per_player_cents=price_cents,
        total_price=cents_to_dollars(price_cents * players),
        total_price_cents=price_cents * players,
        players=players,
        calculation_timestamp=now,
        override_id=override.id,
    )


def calculate_price(
    repository,
    data: PriceCalculationInput,
    now: Optional[datetime] = None,
    final_round_to: int = config.FINAL_ROUND_TO,
) -> PriceCalculationResult:
    """
    Price one tee time.

    Order of application:
    1. Special overrides (holidays, tournaments, closures) outrank everything.
    2. The course base product seeds the price.
    3. Active, effective rules whose predicates all match are applied by
       priority, highest first: fixed replaces, delta adds, multiplier scales,
       then the rule's own clamp and rounding.
    4. The result is rounded to a multiple of `final_round_to`.

    Raises TeeTimeBlocked or BaseProductMissing.
    """
    now = now or datetime.now()
    course_id = data.course_id

    override = find_special_override(repository.get_special_overrides(course_id), data.date, data.time)
    if override is not None:
        if override.override_type == OverrideType.BLOCK:
            logger.info(
                "[PRICING] %s %s %s blocked by override %s",
                course_id, data.date.isoformat(), data.time, override.name,
            )
            raise TeeTimeBlocked(course_id, override.id, override.name)
        return _override_result(override, data.players, now)

    product = repository.get_base_product(course_id)
    if product is None:
        logger.error("[PRICING] No base product configured for course %s", course_id)
        raise BaseProductMissing(course_id)

    ctx = build_context(repository, data, now)
    current = dollars_to_cents(product.green_fee_base)
    applied: List[AppliedRule] = []

    for rule in select_applicable_rules(repository.rules_by_priority(course_id), ctx):
        current = apply_rule(current, rule)
        applied.append(
            AppliedRule(
                rule_id=rule.id,
                rule_name=rule.name,
                rule_type=rule.price_type,
                value=rule.price_value,
                result_price=cents_to_dollars(current),
                result_price_cents=current,
            )
        )

    final_cents = round_to_multiple(current, final_round_to * 100)
    total_cents = final_cents * data.players

    return PriceCalculationResult(
        base_price=product.green_fee_base,
        applied_rules=applied,
        final_price_per_player=cents_to_dollars(final_cents),
        final_price_per_player_cents=final_cents,
        total_price=cents_to_dollars(total_cents),
        total_price_cents=total_cents,
        players=data.players,
        calculation_timestamp=now,
    )


# ------------------------------------------------------------------
# Rule-set validation
# ------------------------------------------------------------------

def _ranges_overlap(
    a: Tuple[Optional[float], Optional[float]],
    b: Tuple[Optional[float], Optional[float]],
) -> bool:
    low = max((v for v in (a[0], b[0]) if v is not None), default=None)
    high = min((v for v in (a[1], b[1]) if v is not None), default=None)
    return low is None or high is None or low <= high


def rules_could_overlap(a: PriceRule, b: PriceRule) -> bool:
    """True unless some declared predicate makes the two rules mutually exclusive."""
    if a.season_id and b.season_id and a.season_id != b.season_id:
        return False
    if a.time_band_id and b.time_band_id and a.time_band_id != b.time_band_id:
        return False
    if a.dow and b.dow and not set(a.dow) & set(b.dow):
        return False
    if not _ranges_overlap((a.lead_time_min, a.lead_time_max), (b.lead_time_min, b.lead_time_max)):
        return False
    if not _ranges_overlap((a.occupancy_min, a.occupancy_max), (b.occupancy_min, b.occupancy_max)):
        return False
    if not _ranges_overlap((a.players_min, a.players_max), (b.players_min, b.players_max)):
        return False

    a_from, a_to = parse_instant(a.effective_from), parse_instant(a.effective_to, end_of_day=True)
    b_from, b_to = parse_instant(b.effective_from), parse_instant(b.effective_to, end_of_day=True)
    if a_from and b_to and a_from > b_to:
        return False
    if b_from and a_to and b_from > a_to:
        return False
    return True


def find_fixed_priority_ties(rules: Sequence[PriceRule]) -> List[Tuple[PriceRule, PriceRule]]:
    """
    Pairs of active fixed rules with the same priority that can match the same
    request. For such pairs the surviving price depends on insertion order.
    """
    fixed = [r for r in rules if r.active and r.price_type == PriceType.FIXED]
    ties: List[Tuple[PriceRule, PriceRule]] = []
    for i, first in enumerate(fixed):
        for second in fixed[i + 1:]:
            if first.priority == second.priority and rules_could_overlap(first, second):
                ties.append((first, second))
    return ties


def validate_rule_set(
    rules: Sequence[PriceRule],
    seasons: Optional[Sequence[Season]] = None,
    time_bands: Optional[Sequence[TimeBand]] = None,
) -> List[str]:
    warnings: List[str] = []

    for first, second in find_fixed_priority_ties(rules):
        warnings.append(
            f"Fixed rules {first.name!r} and {second.name!r} share priority {first.priority} "
            f"and can match the same tee time; {second.name!r} wins by insertion order"
        )

    if seasons is not None:
        season_ids = {s.id for s in seasons}
        for rule in rules:
            if rule.season_id and rule.season_id not in season_ids:
                warnings.append(f"Rule {rule.name!r} references unknown season {rule.season_id!r}")

    if time_bands is not None:
        band_ids = {b.id for b in time_bands}
        for rule in rules:
            if rule.time_band_id and rule.time_band_id not in band_ids:
                warnings.append(f"Rule {rule.name!r} references unknown time band {rule.time_band_id!r}")

    return warnings


def calendar_days(year: int, month: int) -> List[date]:
    first = date(year, month, 1)
    days: List[date] = []
    day = first
    while day.month == month:
        days.append(day)
        day += timedelta(days=1)
    return days
