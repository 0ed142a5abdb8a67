# teeprice/repository.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel

from teeprice.schemas import (
    BaseProduct,
    PriceRule,
    PriceRuleCreate,
    Season,
    SeasonCreate,
    SpecialOverride,
    SpecialOverrideCreate,
    TimeBand,
    TimeBandCreate,
)

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)
ChangeListener = Callable[[str], None]

# Never rewritten by an update.
_PROTECTED_FIELDS = {"id", "course_id", "created_at"}


def _field_names(model: Type[BaseModel]) -> Dict[str, str]:
    """Map both python names and camelCase aliases to python field names."""
    names: Dict[str, str] = {}
    for name, field in model.model_fields.items():
        names[name] = name
        if field.alias:
            names[field.alias] = name
    return names


def _merge(model: Type[RecordT], record: RecordT, updates: dict, now: datetime) -> RecordT:
    names = _field_names(model)
    data = record.model_dump()
    for key, value in (updates or {}).items():
        name = names.get(key)
        if name is None or name in _PROTECTED_FIELDS:
            continue
        data[name] = value
    if "updated_at" in model.model_fields:
        data["updated_at"] = now
    return model.model_validate(data)


class PricingRepository:
    """
    In-memory store of a course's pricing records.

    Records are kept per course in insertion order. Every mutation notifies
    the registered change listeners with the course id (the price cache
    subscribes here) and drops that course's priority index.

    Not thread-safe: one owner per instance.
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self._clock = clock
        self._seasons: Dict[str, List[Season]] = {}
        self._time_bands: Dict[str, List[TimeBand]] = {}
        self._price_rules: Dict[str, List[PriceRule]] = {}
        self._special_overrides: Dict[str, List[SpecialOverride]] = {}
        self._base_products: Dict[str, BaseProduct] = {}
        # course_id -> price rules sorted by priority (desc, stable)
        self._rule_index: Dict[str, List[PriceRule]] = {}
        self._listeners: List[ChangeListener] = []

    # -- Change notification --

    def subscribe(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def _changed(self, course_id: str) -> None:
        self._rule_index.pop(course_id, None)
        for listener in self._listeners:
            listener(course_id)

    # -- Generic helpers --

    def _add(self, store: Dict[str, List[RecordT]], record: RecordT) -> RecordT:
        store.setdefault(record.course_id, []).append(record)
        self._changed(record.course_id)
        return record

    def _update(
        self,
        store: Dict[str, List[RecordT]],
        model: Type[RecordT],
        record_id: str,
        updates: dict,
    ) -> Optional[RecordT]:
        for course_id, records in store.items():
            for index, record in enumerate(records):
                if record.id == record_id:
                    records[index] = _merge(model, record, updates, self._clock())
                    self._changed(course_id)
                    return records[index]
        return None

    def _delete(self, store: Dict[str, List[RecordT]], record_id: str) -> bool:
        for course_id, records in store.items():
            for index, record in enumerate(records):
                if record.id == record_id:
                    del records[index]
                    self._changed(course_id)
                    return True
        return False

    # -- Seasons --

    def add_season(self, data: SeasonCreate) -> Season:
        season = self._add(self._seasons, Season(**data.model_dump()))
        logger.info("[PRICING] Season added: %s (%s)", season.name, season.course_id)
        return season

    def update_season(self, season_id: str, updates: dict) -> Optional[Season]:
        return self._update(self._seasons, Season, season_id, updates)

    def delete_season(self, season_id: str) -> bool:
        return self._delete(self._seasons, season_id)

    def get_seasons(self, course_id: str) -> List[Season]:
        return list(self._seasons.get(course_id, []))

    # -- Time bands --

    def add_time_band(self, data: TimeBandCreate) -> TimeBand:
        band = self._add(self._time_bands, TimeBand(**data.model_dump()))
        logger.info("[PRICING] Time band added: %s (%s)", band.label, band.course_id)
        return band

    def update_time_band(self, time_band_id: str, updates: dict) -> Optional[TimeBand]:
        return self._update(self._time_bands, TimeBand, time_band_id, updates)

    def delete_time_band(self, time_band_id: str) -> bool:
        return self._delete(self._time_bands, time_band_id)

    def get_time_bands(self, course_id: str) -> List[TimeBand]:
        return list(self._time_bands.get(course_id, []))

    # -- Price rules --

    def add_price_rule(self, data: PriceRuleCreate) -> PriceRule:
        rule = self._add(self._price_rules, PriceRule(**data.model_dump()))
        logger.info("[PRICING] Price rule added: %s (%s)", rule.name, rule.course_id)
        return rule

    def add_price_rules(self, course_id: str, rules: Iterable[PriceRule]) -> List[PriceRule]:
        added = list(rules)
        self._price_rules.setdefault(course_id, []).extend(added)
        self._changed(course_id)
        return added

    def replace_price_rule(self, rule: PriceRule) -> bool:
        """Swap a stored rule for `rule` (same id), keeping its position."""
        records = self._price_rules.get(rule.course_id, [])
        for index, existing in enumerate(records):
            if existing.id == rule.id:
                records[index] = rule
                self._changed(rule.course_id)
                return True
        return False

    def update_price_rule(self, rule_id: str, updates: dict) -> Optional[PriceRule]:
        return self._update(self._price_rules, PriceRule, rule_id, updates)

    def delete_price_rule(self, rule_id: str) -> bool:
        return self._delete(self._price_rules, rule_id)

    def get_price_rules(self, course_id: str) -> List[PriceRule]:
        return list(self._price_rules.get(course_id, []))

    def rules_by_priority(self, course_id: str) -> List[PriceRule]:
        """Price rules sorted by priority, highest first; ties keep insertion order."""
        index = self._rule_index.get(course_id)
        if index is None:
            # sorted() is stable, which the tie order depends on.
            index = sorted(self._price_rules.get(course_id, []), key=lambda r: -r.priority)
            self._rule_index[course_id] = index
        return list(index)

    # -- Special overrides --

    def add_special_override(self, data: SpecialOverrideCreate) -> SpecialOverride:
        override = self._add(self._special_overrides, SpecialOverride(**data.model_dump()))
        logger.info(
            "[PRICING] Special override added: %s (%s, %s)",
            override.name,
            override.override_type.value,
            override.course_id,
        )
        return override

    def update_special_override(self, override_id: str, updates: dict) -> Optional[SpecialOverride]:
        return self._update(self._special_overrides, SpecialOverride, override_id, updates)

    def delete_special_override(self, override_id: str) -> bool:
        return self._delete(self._special_overrides, override_id)

    def get_special_overrides(self, course_id: str) -> List[SpecialOverride]:
        return list(self._special_overrides.get(course_id, []))

    # -- Base products --

    def update_base_product(self, course_id: str, updates: dict) -> BaseProduct:
        """Create or update the single base product of a course."""
        existing = self._base_products.get(course_id)
        now = self._clock()
        if existing is None:
            names = _field_names(BaseProduct)
            data = {names[k]: v for k, v in (updates or {}).items() if k in names}
            data.pop("id", None)
            data.update({"course_id": course_id, "updated_at": now})
            product = BaseProduct.model_validate(data)
        else:
            product = _merge(BaseProduct, existing, updates, now)
        self._base_products[course_id] = product
        self._changed(course_id)
        return product

    def get_base_product(self, course_id: str) -> Optional[BaseProduct]:
        return self._base_products.get(course_id)

    # -- Whole-course replacement --

    def replace_course(
        self,
        course_id: str,
        seasons: Optional[List[Season]] = None,
        time_bands: Optional[List[TimeBand]] = None,
        price_rules: Optional[List[PriceRule]] = None,
        special_overrides: Optional[List[SpecialOverride]] = None,
        base_product: Optional[BaseProduct] = None,
    ) -> None:
        """Replace each record kind that is given; kinds passed as None are kept."""
        if seasons is not None:
            self._seasons[course_id] = list(seasons)
        if time_bands is not None:
            self._time_bands[course_id] = list(time_bands)
        if price_rules is not None:
            self._price_rules[course_id] = list(price_rules)
        if special_overrides is not None:
            self._special_overrides[course_id] = list(special_overrides)
        if base_product is not None:
            self._base_products[course_id] = base_product
        self._changed(course_id)

    def course_ids(self) -> List[str]:
        ids = set(self._seasons) | set(self._time_bands) | set(self._price_rules)
        ids |= set(self._special_overrides) | set(self._base_products)
        return sorted(ids)
