from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable, List, Optional

from teeprice.money import round_half_up
from teeprice.pricing import parse_instant
from teeprice.schemas import AdjustmentType, BulkChange, BulkFilters, PriceRule, PriceType, new_id

logger = logging.getLogger(__name__)

DUPLICATE_SUFFIX = " (Duplicated)"


def _within(rule: PriceRule, start: date, end: date) -> bool:
    if not rule.effective_from or not rule.effective_to:
        return False
    starts = parse_instant(rule.effective_from)
    ends = parse_instant(rule.effective_to)
    return starts.date() >= start and ends.date() <= end


def duplicate_rules_for_date_range(
    repository,
    course_id: str,
    source_start: date,
    source_end: date,
    target_start: date,
    target_end: date,
    clock: Callable[[], datetime] = datetime.now,
) -> List[PriceRule]:
    """
    Copy every rule whose effective window lies inside the source window into
    the target window, e.g. to carry a season's pricing into next year.
    Rules without a complete effective window are never copied.
    """
    now = clock()
    copies: List[PriceRule] = []
    for rule in repository.get_price_rules(course_id):
        if not _within(rule, source_start, source_end):
            continue
        copies.append(
            rule.model_copy(
                update={
                    "id": new_id(),
                    "name": f"{rule.name}{DUPLICATE_SUFFIX}",
                    "effective_from": target_start.isoformat(),
                    "effective_to": target_end.isoformat(),
                    "dow": list(rule.dow) if rule.dow is not None else None,
                    "created_at": now,
                    "updated_at": now,
                }
            )
        )

    repository.add_price_rules(course_id, copies)
    logger.info(
        "[PRICING] Duplicated %d rules for %s (%s..%s -> %s..%s)",
        len(copies), course_id, source_start, source_end, target_start, target_end,
    )
    return copies


def _passes_filters(rule: PriceRule, filters: BulkFilters) -> bool:
    if filters.season_id and rule.season_id != filters.season_id:
        return False
    if filters.time_band_id and rule.time_band_id != filters.time_band_id:
        return False
    # Rules without weekdays apply every day, so they pass any weekday filter.
    if filters.dow and rule.dow and not set(rule.dow) & set(filters.dow):
        return False
    return True


def adjusted_value(value: float, change: BulkChange) -> int:
    if change.type == AdjustmentType.PERCENTAGE:
        return round_half_up(value * (1 + change.value / 100))
    return round_half_up(value + change.value)


def apply_bulk_price_change(
    repository,
    course_id: str,
    filters: Optional[BulkFilters],
    change: BulkChange,
    clock: Callable[[], datetime] = datetime.now,
) -> List[PriceRule]:
    """
    Nudge the price value of every matching rule by a percentage or a fixed
    amount. Multiplier rules are relative and never adjusted.
    """
    filters = filters or BulkFilters()
    now = clock()
    updated: List[PriceRule] = []

    for rule in repository.get_price_rules(course_id):
        if rule.price_type == PriceType.MULTIPLIER:
            continue
        if not _passes_filters(rule, filters):
            continue
        new_rule = rule.model_copy(
            update={"price_value": float(adjusted_value(rule.price_value, change)), "updated_at": now}
        )
        repository.replace_price_rule(new_rule)
        updated.append(new_rule)

    logger.info(
        "[PRICING] Bulk %s change of %s applied to %d rules for %s",
        change.type.value, change.value, len(updated), course_id,
    )
    return updated
