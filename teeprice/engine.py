from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError

from teeprice import config
from teeprice.bulk import apply_bulk_price_change, duplicate_rules_for_date_range
from teeprice.cache import PriceCache, calculate_price_with_cache, precalculate_prices_for_month
from teeprice.persistence import PricingStore
from teeprice.pricing import calculate_price, validate_rule_set
from teeprice.repository import PricingRepository
from teeprice.schemas import (
    BaseProduct,
    BulkChange,
    BulkFilters,
    PriceCacheEntry,
    PriceCalculationInput,
    PriceCalculationResult,
    PriceRule,
    PriceRuleCreate,
    PricingExport,
    Season,
    SeasonCreate,
    SpecialOverride,
    SpecialOverrideCreate,
    TimeBand,
    TimeBandCreate,
)

logger = logging.getLogger(__name__)


class PricingEngine:
    """
    Facade over the rule repository, the calculator and the price cache.

    Everything is synchronous except `load` and `save`, which go through the
    injected store. The cache is subscribed to the repository, so any
    mutation of a course drops that course's cached prices.
    """

    def __init__(
        self,
        repository: Optional[PricingRepository] = None,
        cache: Optional[PriceCache] = None,
        store: Optional[PricingStore] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.clock = clock
        self.repository = repository or PricingRepository(clock=clock)
        self.cache = cache or PriceCache(clock=clock)
        self.store = store
        self.repository.subscribe(self.cache.invalidate_course)

    # -- Calculation --

    def calculate_price(self, data: PriceCalculationInput) -> PriceCalculationResult:
        return calculate_price(self.repository, data, now=self.clock())

    def calculate_price_with_cache(self, data: PriceCalculationInput) -> PriceCalculationResult:
        return calculate_price_with_cache(self.cache, self.repository, data, now=self.clock())

    def precalculate_prices_for_month(self, course_id: str, year: int, month: int) -> Dict[str, PriceCacheEntry]:
        return precalculate_prices_for_month(
            self.repository,
            course_id,
            year,
            month,
            now=self.clock(),
            ttl=timedelta(hours=config.CALENDAR_TTL_HOURS),
        )

    # -- Seasons --

    def add_season(self, data: SeasonCreate) -> Season:
        return self.repository.add_season(data)

    def update_season(self, season_id: str, updates: dict) -> Optional[Season]:
        return self.repository.update_season(season_id, updates)

    def delete_season(self, season_id: str) -> bool:
        return self.repository.delete_season(season_id)

    def get_seasons(self, course_id: str) -> List[Season]:
        return self.repository.get_seasons(course_id)

    # -- Time bands --

    def add_time_band(self, data: TimeBandCreate) -> TimeBand:
        return self.repository.add_time_band(data)

    def update_time_band(self, time_band_id: str, updates: dict) -> Optional[TimeBand]:
        return self.repository.update_time_band(time_band_id, updates)

    def delete_time_band(self, time_band_id: str) -> bool:
        return self.repository.delete_time_band(time_band_id)

    def get_time_bands(self, course_id: str) -> List[TimeBand]:
        return self.repository.get_time_bands(course_id)

    # -- Price rules --

    def add_price_rule(self, data: PriceRuleCreate) -> PriceRule:
        rule = self.repository.add_price_rule(data)
        self._warn_on_rule_set(rule.course_id)
        return rule

    def update_price_rule(self, rule_id: str, updates: dict) -> Optional[PriceRule]:
        rule = self.repository.update_price_rule(rule_id, updates)
        if rule is not None:
            self._warn_on_rule_set(rule.course_id)
        return rule

    def delete_price_rule(self, rule_id: str) -> bool:
        return self.repository.delete_price_rule(rule_id)

    def get_price_rules(self, course_id: str) -> List[PriceRule]:
        return self.repository.get_price_rules(course_id)

    def validate_rule_set(self, course_id: str) -> List[str]:
        return validate_rule_set(
            self.repository.get_price_rules(course_id),
            seasons=self.repository.get_seasons(course_id),
            time_bands=self.repository.get_time_bands(course_id),
        )

    def _warn_on_rule_set(self, course_id: str) -> None:
        for warning in self.validate_rule_set(course_id):
            logger.warning("[PRICING] %s: %s", course_id, warning)

    # -- Special overrides --

    def add_special_override(self, data: SpecialOverrideCreate) -> SpecialOverride:
        return self.repository.add_special_override(data)

    def update_special_override(self, override_id: str, updates: dict) -> Optional[SpecialOverride]:
        return self.repository.update_special_override(override_id, updates)

    def delete_special_override(self, override_id: str) -> bool:
        return self.repository.delete_special_override(override_id)

    def get_special_overrides(self, course_id: str) -> List[SpecialOverride]:
        return self.repository.get_special_overrides(course_id)

    # -- Base products --

    def update_base_product(self, course_id: str, updates: dict) -> BaseProduct:
        return self.repository.update_base_product(course_id, updates)

    def get_base_product(self, course_id: str) -> Optional[BaseProduct]:
        return self.repository.get_base_product(course_id)

    # -- Bulk operations --

    def duplicate_rules_for_date_range(
        self,
        course_id: str,
        source_start: date,
        source_end: date,
        target_start: date,
        target_end: date,
    ) -> List[PriceRule]:
        return duplicate_rules_for_date_range(
            self.repository, course_id, source_start, source_end, target_start, target_end, clock=self.clock
        )

    def apply_bulk_price_change(
        self,
        course_id: str,
        filters: Optional[BulkFilters],
        change: BulkChange,
    ) -> List[PriceRule]:
        return apply_bulk_price_change(self.repository, course_id, filters, change, clock=self.clock)

    # -- Export / import --

    def export_pricing_data(self, course_id: str) -> dict:
        document = PricingExport(
            seasons=self.repository.get_seasons(course_id),
            time_bands=self.repository.get_time_bands(course_id),
            price_rules=self.repository.get_price_rules(course_id),
            special_overrides=self.repository.get_special_overrides(course_id),
            base_product=self.repository.get_base_product(course_id),
        )
        return document.model_dump(mode="json", by_alias=True)

    def import_pricing_data(self, course_id: str, data: dict) -> Dict[str, int]:
        """
        Replace each record kind present in `data` for `course_id`; kinds the
        document leaves out are kept. Records are re-scoped to `course_id`, so a
        backup of one course can seed another.

        Raises pydantic.ValidationError before touching any state.
        """
        document = PricingExport.model_validate(data)
        present = document.model_fields_set

        def scoped(records):
            return [
                r if r.course_id == course_id else r.model_copy(update={"course_id": course_id})
                for r in records
            ]

        base_product = document.base_product
        if base_product is not None and base_product.course_id != course_id:
            base_product = base_product.model_copy(update={"course_id": course_id})

        self.repository.replace_course(
            course_id,
            seasons=scoped(document.seasons) if "seasons" in present else None,
            time_bands=scoped(document.time_bands) if "time_bands" in present else None,
            price_rules=scoped(document.price_rules) if "price_rules" in present else None,
            special_overrides=scoped(document.special_overrides) if "special_overrides" in present else None,
            base_product=base_product,
        )
        counts = {
            "seasons": len(self.repository.get_seasons(course_id)),
            "timeBands": len(self.repository.get_time_bands(course_id)),
            "priceRules": len(self.repository.get_price_rules(course_id)),
            "specialOverrides": len(self.repository.get_special_overrides(course_id)),
            "baseProduct": int(self.repository.get_base_product(course_id) is not None),
        }
        logger.info("[PRICING] Imported pricing data for %s: %s", course_id, counts)
        self._warn_on_rule_set(course_id)
        return counts

    # -- Persistence --

    async def load(self, course_id: str) -> bool:
        """
        Replace the course's in-memory rule set with the stored one.

        Returns False, leaving the current state untouched, when there is no
        store, nothing is stored, or the store or document fails.
        """
        if self.store is None:
            logger.warning("[PERSIST] No store configured, cannot load %s", course_id)
            return False
        try:
            payload = await self.store.load(course_id)
        except Exception as e:
            logger.error("[PERSIST] Load failed for %s: %s: %s", course_id, type(e).__name__, str(e)[:240])
            return False
        if payload is None:
            logger.info("[PERSIST] No stored pricing for %s", course_id)
            return False
        try:
            self.import_pricing_data(course_id, payload)
        except ValidationError as e:
            logger.error("[PERSIST] Stored pricing for %s is invalid: %s", course_id, str(e)[:240])
            return False
        return True

    async def save(self, course_id: str) -> bool:
        """
        Write the course's rule set to the store.

        On failure the in-memory state keeps the changes; they are simply not
        durable yet and the save can be retried.
        """
        if self.store is None:
            logger.warning("[PERSIST] No store configured, cannot save %s", course_id)
            return False
        payload = self.export_pricing_data(course_id)
        try:
            await self.store.save(course_id, payload)
        except Exception as e:
            logger.error("[PERSIST] Save failed for %s: %s: %s", course_id, type(e).__name__, str(e)[:240])
            return False
        logger.info("[PERSIST] Saved pricing for %s", course_id)
        return True
