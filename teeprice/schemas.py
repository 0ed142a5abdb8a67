# teeprice/schemas.py

import enum
import uuid
from datetime import date as Date
from datetime import datetime
from datetime import time as Time
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from teeprice import config

# "HH:MM", 24h clock
TimeOfDay = Annotated[str, Field(pattern=r"^([01]\d|2[0-3]):[0-5]\d$")]
Weekday = Annotated[int, Field(ge=0, le=6)]  # 0=Sun ... 6=Sat


def new_id() -> str:
    return uuid.uuid4().hex


def parse_instant(value: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse an ISO date or datetime into a naive local datetime.

    A bare date covers the whole day: it starts at midnight, and with
    `end_of_day` it ends at the last microsecond of that day.
    """
    if not value:
        return None
    raw = value.strip()
    if len(raw) == 10:
        day = Date.fromisoformat(raw)
        return datetime.combine(day, Time.max if end_of_day else Time.min)
    parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


class PricingModel(BaseModel):
    # snake_case in Python, camelCase in exported documents.
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "from_attributes": True,
    }


class PriceType(str, enum.Enum):
    FIXED = "fixed"
    DELTA = "delta"
    MULTIPLIER = "multiplier"


class OverrideType(str, enum.Enum):
    PRICE = "price"
    BLOCK = "block"


class AdjustmentType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


# ------------------------------------------------------------------
# SEASONS
# ------------------------------------------------------------------

class SeasonCreate(PricingModel):
    course_id: str
    name: str
    start_date: Date
    end_date: Date
    priority: int = 0  # higher wins
    active: bool = True

    @model_validator(mode="after")
    def _check_dates(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class Season(SeasonCreate):
    id: str = Field(default_factory=new_id)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: Optional[datetime] = None


# ------------------------------------------------------------------
# TIME BANDS
# ------------------------------------------------------------------

class TimeBandCreate(PricingModel):
    course_id: str
    label: str  # Early | Prime | Twilight ...
    start_time: TimeOfDay
    end_time: TimeOfDay
    active: bool = True

    @model_validator(mode="after")
    def _check_window(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class TimeBand(TimeBandCreate):
    id: str = Field(default_factory=new_id)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: Optional[datetime] = None


# ------------------------------------------------------------------
# PRICE RULES
# ------------------------------------------------------------------

class PriceRuleCreate(PricingModel):
    course_id: str
    name: str
    description: Optional[str] = None

    # Optional predicates. None means "any".
    season_id: Optional[str] = None
    dow: Optional[List[Weekday]] = None
    time_band_id: Optional[str] = None
    lead_time_min: Optional[float] = None  # hours
    lead_time_max: Optional[float] = None
    occupancy_min: Optional[float] = None  # percent
    occupancy_max: Optional[float] = None
    players_min: Optional[int] = None
    players_max: Optional[int] = None

    price_type: PriceType
    price_value: float

    priority: int = 0  # higher applies first
    active: bool = True
    effective_from: Optional[str] = None  # ISO date or datetime
    effective_to: Optional[str] = None

    min_price: Optional[float] = None
    max_price: Optional[float] = None
    round_to: Optional[float] = Field(default=None, gt=0)

    @field_validator("effective_from", "effective_to")
    @classmethod
    def _check_instant(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        try:
            parse_instant(value)
        except ValueError:
            raise ValueError(f"expected an ISO date or datetime, got {value!r}")
        return value.strip()

    @model_validator(mode="after")
    def _check_bounds(self):
        pairs = (
            ("lead_time_min", "lead_time_max"),
            ("occupancy_min", "occupancy_max"),
            ("players_min", "players_max"),
            ("min_price", "max_price"),
        )
        for low_name, high_name in pairs:
            low = getattr(self, low_name)
            high = getattr(self, high_name)
            if low is not None and high is not None and low > high:
                raise ValueError(f"{low_name} must not exceed {high_name}")
        return self


class PriceRule(PriceRuleCreate):
    id: str = Field(default_factory=new_id)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: Optional[datetime] = None


# ------------------------------------------------------------------
# SPECIAL OVERRIDES
# ------------------------------------------------------------------

class SpecialOverrideCreate(PricingModel):
    course_id: str
    name: str
    description: Optional[str] = None
    start_date: Date
    end_date: Date
    # Both omitted means all day.
    start_time: Optional[TimeOfDay] = None
    end_time: Optional[TimeOfDay] = None
    override_type: OverrideType
    price_value: Optional[float] = None  # required when override_type == price
    priority: int = 0
    active: bool = True

    @model_validator(mode="after")
    def _check_override(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if (self.start_time is None) != (self.end_time is None):
            raise ValueError("start_time and end_time must be given together")
        if self.override_type == OverrideType.PRICE and self.price_value is None:
            raise ValueError("price overrides require price_value")
        return self


class SpecialOverride(SpecialOverrideCreate):
    id: str = Field(default_factory=new_id)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: Optional[datetime] = None


# ------------------------------------------------------------------
# BASE PRODUCT
# ------------------------------------------------------------------

class BaseProduct(PricingModel):
    id: str = Field(default_factory=new_id)
    course_id: str
    green_fee_base: float = Field(ge=0)
    cart_fee: Optional[float] = None
    caddie_fee: Optional[float] = None
    insurance_fee: Optional[float] = None
    updated_at: datetime = Field(default_factory=datetime.now)


# ------------------------------------------------------------------
# CALCULATION
# ------------------------------------------------------------------

class PriceCalculationInput(PricingModel):
    course_id: str
    date: Date
    time: TimeOfDay
    players: int = Field(ge=1)
    # Derived from the clock when omitted.
    lead_time_hours: Optional[float] = None
    occupancy_percent: Optional[float] = None


class AppliedRule(PricingModel):
    rule_id: str
    rule_name: str
    rule_type: PriceType
    value: float
    result_price: float
    result_price_cents: int


class PriceCalculationResult(PricingModel):
    base_price: float
    applied_rules: List[AppliedRule] = []
    final_price_per_player: float
    final_price_per_player_cents: int
    total_price: float
    total_price_cents: int
    players: int
    calculation_timestamp: datetime
    override_id: Optional[str] = None


class PriceCacheEntry(PricingModel):
    course_id: str
    date: Date
    time: str  # tee time, or time band id for calendar entries
    players: int
    lead_time_hours: float
    price_per_player: float
    total_price: float
    applied_rules: List[AppliedRule] = []
    result: PriceCalculationResult
    calculated_at: datetime
    expires_at: datetime

    def is_fresh(self, now: datetime) -> bool:
        return now < self.expires_at


# ------------------------------------------------------------------
# BULK OPERATIONS
# ------------------------------------------------------------------

class BulkFilters(PricingModel):
    season_id: Optional[str] = None
    time_band_id: Optional[str] = None
    dow: Optional[List[Weekday]] = None


class BulkChange(PricingModel):
    type: AdjustmentType
    value: float


class DuplicateRequest(PricingModel):
    source_start_date: Date
    source_end_date: Date
    target_start_date: Date
    target_end_date: Date


class BulkAdjustRequest(PricingModel):
    filters: BulkFilters = Field(default_factory=BulkFilters)
    change: BulkChange


# ------------------------------------------------------------------
# MONEY
# ------------------------------------------------------------------

Amount = Union[int, float]


class PricingData(PricingModel):
    subtotal_cents: Amount
    tax_cents: Amount
    discount_cents: Amount
    total_cents: Amount
    currency: str = config.CURRENCY
    tax_rate: float = config.TAX_RATE  # 0.16 == 16%
    discount_code: Optional[str] = None


class BookingPricingInput(PricingModel):
    base_price: float  # per player, currency units
    number_of_players: int = Field(ge=1)
    discount_code: Optional[str] = None
    discount_amount: float = 0.0  # currency units
    tax_rate: float = round(config.TAX_RATE * 100, 4)  # percent


class BookingPricingBreakdown(PricingModel):
    base_price_cents: int
    players_multiplier: int
    discount_applied: bool
    discount_code: Optional[str] = None


class BookingPricingResult(PricingModel):
    subtotal_cents: Amount
    tax_cents: Amount
    discount_cents: Amount
    total_cents: Amount
    currency: str = config.CURRENCY
    breakdown: BookingPricingBreakdown


# ------------------------------------------------------------------
# QUOTES
# ------------------------------------------------------------------

class QuoteRequest(PriceCalculationInput):
    discount_cents: int = Field(default=0, ge=0)
    discount_code: Optional[str] = None


class Quote(PricingModel):
    course_id: str
    players: int
    price_per_player_cents: int
    currency: str
    tax_rate: float
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    total_cents: int
    discount_code: Optional[str] = None
    expires_at: datetime
    quote_hash: str = ""


# ------------------------------------------------------------------
# EXPORT / IMPORT
# ------------------------------------------------------------------

class PricingExport(PricingModel):
    seasons: List[Season] = []
    time_bands: List[TimeBand] = []
    price_rules: List[PriceRule] = []
    special_overrides: List[SpecialOverride] = []
    base_product: Optional[BaseProduct] = None
