# teeprice/routers/pricing.py
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request

from teeprice.engine import PricingEngine
from teeprice.exceptions import RecordNotFound
from teeprice.quotes import build_quote
from teeprice.schemas import (
    BaseProduct,
    BulkAdjustRequest,
    DuplicateRequest,
    PriceCacheEntry,
    PriceCalculationInput,
    PriceCalculationResult,
    PriceRule,
    PriceRuleCreate,
    Quote,
    QuoteRequest,
    Season,
    SeasonCreate,
    SpecialOverride,
    SpecialOverrideCreate,
    TimeBand,
    TimeBandCreate,
)

router = APIRouter(prefix="/pricing", tags=["pricing"])


def get_engine(request: Request) -> PricingEngine:
    return request.app.state.engine


def _found(record, kind: str, record_id: str):
    if record is None:
        raise RecordNotFound(kind, record_id)
    return record


def _deleted(ok: bool, kind: str, record_id: str) -> dict:
    if not ok:
        raise RecordNotFound(kind, record_id)
    return {"deleted": record_id}


# ------------------------------------------------------------------
# Calculation
# ------------------------------------------------------------------

@router.post("/calculate", response_model=PriceCalculationResult)
def calculate(data: PriceCalculationInput, engine: PricingEngine = Depends(get_engine)):
    """Price one tee time. Served from the price cache when fresh."""
    return engine.calculate_price_with_cache(data)


@router.post("/quote", response_model=Quote)
def quote(data: QuoteRequest, engine: PricingEngine = Depends(get_engine)):
    """
    Price a tee time and freeze it into a signed checkout quote.
    The quote is always calculated fresh, never served from the cache.
    """
    calc = PriceCalculationInput.model_validate(data.model_dump(exclude={"discount_cents", "discount_code"}))
    result = engine.calculate_price(calc)
    return build_quote(
        data.course_id,
        result,
        discount_cents=data.discount_cents,
        discount_code=data.discount_code,
        now=engine.clock(),
    )


@router.get("/{course_id}/calendar", response_model=Dict[str, PriceCacheEntry])
def calendar(
    course_id: str,
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    engine: PricingEngine = Depends(get_engine),
):
    """Indicative per-day, per-band prices for a month view."""
    return engine.precalculate_prices_for_month(course_id, year, month)


# ------------------------------------------------------------------
# Export / import / persistence
# ------------------------------------------------------------------

@router.get("/{course_id}/export")
def export_pricing(course_id: str, engine: PricingEngine = Depends(get_engine)):
    return engine.export_pricing_data(course_id)


@router.put("/{course_id}/import")
def import_pricing(
    course_id: str,
    payload: Dict[str, Any] = Body(...),
    engine: PricingEngine = Depends(get_engine),
):
    return engine.import_pricing_data(course_id, payload)


@router.post("/{course_id}/load")
async def load_pricing(course_id: str, engine: PricingEngine = Depends(get_engine)):
    return {"loaded": await engine.load(course_id)}


@router.post("/{course_id}/save")
async def save_pricing(course_id: str, engine: PricingEngine = Depends(get_engine)):
    ok = await engine.save(course_id)
    if not ok:
        raise HTTPException(status_code=503, detail="Pricing could not be saved")
    return {"saved": True}


# ------------------------------------------------------------------
# Seasons
# ------------------------------------------------------------------

@router.get("/{course_id}/seasons", response_model=List[Season])
def list_seasons(course_id: str, engine: PricingEngine = Depends(get_engine)):
    return engine.get_seasons(course_id)


@router.post("/seasons", response_model=Season, status_code=201)
def create_season(data: SeasonCreate, engine: PricingEngine = Depends(get_engine)):
    return engine.add_season(data)


@router.patch("/seasons/{season_id}", response_model=Season)
def update_season(season_id: str, updates: Dict[str, Any] = Body(...), engine: PricingEngine = Depends(get_engine)):
    return _found(engine.update_season(season_id, updates), "Season", season_id)


@router.delete("/seasons/{season_id}")
def delete_season(season_id: str, engine: PricingEngine = Depends(get_engine)):
    return _deleted(engine.delete_season(season_id), "Season", season_id)


# ------------------------------------------------------------------
# Time bands
# ------------------------------------------------------------------

@router.get("/{course_id}/time-bands", response_model=List[TimeBand])
def list_time_bands(course_id: str, engine: PricingEngine = Depends(get_engine)):
    return engine.get_time_bands(course_id)


@router.post("/time-bands", response_model=TimeBand, status_code=201)
def create_time_band(data: TimeBandCreate, engine: PricingEngine = Depends(get_engine)):
    return engine.add_time_band(data)


@router.patch("/time-bands/{time_band_id}", response_model=TimeBand)
def update_time_band(time_band_id: str, updates: Dict[str, Any] = Body(...), engine: PricingEngine = Depends(get_engine)):
    return _found(engine.update_time_band(time_band_id, updates), "Time band", time_band_id)


@router.delete("/time-bands/{time_band_id}")
def delete_time_band(time_band_id: str, engine: PricingEngine = Depends(get_engine)):
    return _deleted(engine.delete_time_band(time_band_id), "Time band", time_band_id)


# ------------------------------------------------------------------
# Price rules
# ------------------------------------------------------------------

@router.get("/{course_id}/rules", response_model=List[PriceRule])
def list_rules(course_id: str, engine: PricingEngine = Depends(get_engine)):
    return engine.get_price_rules(course_id)


@router.get("/{course_id}/rules/warnings")
def rule_warnings(course_id: str, engine: PricingEngine = Depends(get_engine)):
    return {"warnings": engine.validate_rule_set(course_id)}


@router.post("/rules", response_model=PriceRule, status_code=201)
def create_rule(data: PriceRuleCreate, engine: PricingEngine = Depends(get_engine)):
    return engine.add_price_rule(data)


@router.patch("/rules/{rule_id}", response_model=PriceRule)
def update_rule(rule_id: str, updates: Dict[str, Any] = Body(...), engine: PricingEngine = Depends(get_engine)):
    return _found(engine.update_price_rule(rule_id, updates), "Price rule", rule_id)


@router.delete("/rules/{rule_id}")
def delete_rule(rule_id: str, engine: PricingEngine = Depends(get_engine)):
    return _deleted(engine.delete_price_rule(rule_id), "Price rule", rule_id)


@router.post("/{course_id}/rules/duplicate", response_model=List[PriceRule])
def duplicate_rules(course_id: str, req: DuplicateRequest, engine: PricingEngine = Depends(get_engine)):
    """Copy the rules of one date window into another, e.g. last season into the next."""
    return engine.duplicate_rules_for_date_range(
        course_id,
        req.source_start_date,
        req.source_end_date,
        req.target_start_date,
        req.target_end_date,
    )


@router.post("/{course_id}/rules/bulk-adjust", response_model=List[PriceRule])
def bulk_adjust(course_id: str, req: BulkAdjustRequest, engine: PricingEngine = Depends(get_engine)):
    return engine.apply_bulk_price_change(course_id, req.filters, req.change)


# ------------------------------------------------------------------
# Special overrides
# ------------------------------------------------------------------

@router.get("/{course_id}/overrides", response_model=List[SpecialOverride])
def list_overrides(course_id: str, engine: PricingEngine = Depends(get_engine)):
    return engine.get_special_overrides(course_id)


@router.post("/overrides", response_model=SpecialOverride, status_code=201)
def create_override(data: SpecialOverrideCreate, engine: PricingEngine = Depends(get_engine)):
    return engine.add_special_override(data)


@router.patch("/overrides/{override_id}", response_model=SpecialOverride)
def update_override(override_id: str, updates: Dict[str, Any] = Body(...), engine: PricingEngine = Depends(get_engine)):
    return _found(engine.update_special_override(override_id, updates), "Special override", override_id)


@router.delete("/overrides/{override_id}")
def delete_override(override_id: str, engine: PricingEngine = Depends(get_engine)):
    return _deleted(engine.delete_special_override(override_id), "Special override", override_id)


# ------------------------------------------------------------------
# Base product
# ------------------------------------------------------------------

@router.get("/{course_id}/base-product", response_model=BaseProduct)
def get_base_product(course_id: str, engine: PricingEngine = Depends(get_engine)):
    return _found(engine.get_base_product(course_id), "Base product", course_id)


@router.put("/{course_id}/base-product", response_model=BaseProduct)
def put_base_product(course_id: str, updates: Dict[str, Any] = Body(...), engine: PricingEngine = Depends(get_engine)):
    return engine.update_base_product(course_id, updates)
