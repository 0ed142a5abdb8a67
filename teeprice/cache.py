# teeprice/cache.py
from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Tuple

from teeprice import config
from teeprice.exceptions import BaseProductMissing, TeeTimeBlocked
from teeprice.pricing import calculate_price, calendar_days, derive_lead_time_hours
from teeprice.schemas import PriceCacheEntry, PriceCalculationInput, PriceCalculationResult

logger = logging.getLogger(__name__)

# (course_id, date, time, players, lead_time_hours, occupancy_percent)
CacheKey = Tuple[str, str, str, int, float, float]


class PriceCache:
    """
    TTL memoization of calculated prices.

    Entries expire passively: freshness is checked when an entry is read,
    nothing sweeps in the background. `invalidate_course` drops every entry
    of a course and is wired to every repository mutation.
    """

    def __init__(
        self,
        ttl: timedelta = timedelta(minutes=config.CACHE_TTL_MINUTES),
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[CacheKey, PriceCacheEntry] = {}
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(data: PriceCalculationInput) -> CacheKey:
        return (
            data.course_id,
            data.date.isoformat(),
            data.time,
            data.players,
            float(data.lead_time_hours or 0),
            float(data.occupancy_percent or 0),
        )

    def get(self, key: CacheKey) -> Optional[PriceCacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if not entry.is_fresh(self._clock()):
            del self._entries[key]
            self.misses += 1
            return None
        self.hits += 1
        return entry

    def put(
        self,
        data: PriceCalculationInput,
        result: PriceCalculationResult,
        ttl: Optional[timedelta] = None,
    ) -> PriceCacheEntry:
        now = self._clock()
        entry = PriceCacheEntry(
            course_id=data.course_id,
            date=data.date,
            time=data.time,
            players=data.players,
            lead_time_hours=float(data.lead_time_hours or 0),
            price_per_player=result.final_price_per_player,
            total_price=result.total_price,
            applied_rules=result.applied_rules,
            result=result,
            calculated_at=now,
            expires_at=now + (self.ttl if ttl is None else ttl),
        )
        self._entries[self.make_key(data)] = entry
        return entry

    def invalidate_course(self, course_id: str) -> int:
        stale = [key for key in self._entries if key[0] == course_id]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug("[CACHE] Invalidated %d entries for course %s", len(stale), course_id)
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict:
        return {"size": len(self._entries), "hits": self.hits, "misses": self.misses}

    def __len__(self) -> int:
        return len(self._entries)


def resolve_cache_input(data: PriceCalculationInput, now: datetime) -> PriceCalculationInput:
    """
    Fill in the lead time and occupancy that key a cached calculation.

    A derived lead time is truncated to whole hours for the key only; the
    calculator still sees the exact value.
    """
    updates = {}
    if data.lead_time_hours is None:
        updates["lead_time_hours"] = float(math.floor(derive_lead_time_hours(data.date, data.time, now)))
    if data.occupancy_percent is None:
        updates["occupancy_percent"] = 0.0
    return data.model_copy(update=updates) if updates else data


def calculate_price_with_cache(
    cache: PriceCache,
    repository,
    data: PriceCalculationInput,
    now: Optional[datetime] = None,
) -> PriceCalculationResult:
    now = now or datetime.now()
    resolved = resolve_cache_input(data, now)

    # Callers get their own copy; entries are never shared.
    entry = cache.get(PriceCache.make_key(resolved))
    if entry is not None:
        return entry.result.model_copy(deep=True)

    result = calculate_price(repository, data, now=now)
    cache.put(resolved, result.model_copy(deep=True))
    return result


def precalculate_prices_for_month(
    repository,
    course_id: str,
    year: int,
    month: int,
    now: Optional[datetime] = None,
    ttl: timedelta = timedelta(hours=config.CALENDAR_TTL_HOURS),
) -> Dict[str, PriceCacheEntry]:
    """
    Indicative prices for a calendar view: one per day and time band, priced at
    the band's start time for a foursome booked a day ahead. Not checkout-accurate.
    Blocked slots are left out.
    """
    now = now or datetime.now()
    results: Dict[str, PriceCacheEntry] = {}
    bands = [b for b in repository.get_time_bands(course_id) if b.active]

    for day in calendar_days(year, month):
        for band in bands:
            data = PriceCalculationInput(
                course_id=course_id,
                date=day,
                time=band.start_time,
                players=config.CALENDAR_PLAYERS,
                lead_time_hours=config.CALENDAR_LEAD_TIME_HOURS,
            )
            try:
                result = calculate_price(repository, data, now=now)
            except (TeeTimeBlocked, BaseProductMissing) as e:
                logger.debug("[CACHE] Calendar slot skipped: %s", e)
                continue

            results[f"{course_id}-{day.isoformat()}-{band.id}"] = PriceCacheEntry(
                course_id=course_id,
                date=day,
                time=band.id,
                players=data.players,
                lead_time_hours=float(data.lead_time_hours),
                price_per_player=result.final_price_per_player,
                total_price=result.total_price,
                applied_rules=result.applied_rules,
                result=result,
                calculated_at=now,
                expires_at=now + ttl,
            )

    return results
