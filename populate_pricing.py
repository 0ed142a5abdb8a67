# populate_pricing.py - Run this once to seed the demo course's pricing
import asyncio
import sys

from teeprice.database import build_engine, build_session_factory
from teeprice.engine import PricingEngine
from teeprice.persistence import SqlPricingStore
from teeprice.schemas import PriceRuleCreate, SeasonCreate, TimeBandCreate

COURSE_ID = "palmilla"


def seed_demo_course(engine: PricingEngine, course_id: str = COURSE_ID) -> dict:
    """Two seasons, three time bands, seven rules and a $1800 base product."""
    seasons = {}
    for data in [
        {"name": "Alta Oct-Nov 2025", "start_date": "2025-10-01", "end_date": "2025-11-30", "priority": 90},
        {"name": "Media Sep 2025", "start_date": "2025-09-01", "end_date": "2025-09-30", "priority": 70},
    ]:
        season = engine.add_season(SeasonCreate(course_id=course_id, **data))
        seasons[season.name] = season
        print(f"  Season: {season.name} ({season.start_date} .. {season.end_date})")

    bands = {}
    for data in [
        {"label": "Early", "start_time": "07:00", "end_time": "09:00"},
        {"label": "Prime", "start_time": "09:12", "end_time": "12:00"},
        {"label": "Twilight", "start_time": "15:00", "end_time": "18:00"},
    ]:
        band = engine.add_time_band(TimeBandCreate(course_id=course_id, **data))
        bands[band.label] = band
        print(f"  Time band: {band.label} {band.start_time}-{band.end_time}")

    rules = [
        {"name": "Rack Alta", "price_type": "fixed", "price_value": 2200, "priority": 90,
         "season_id": seasons["Alta Oct-Nov 2025"].id},
        {"name": "Weekend", "price_type": "delta", "price_value": 150, "priority": 80, "dow": [0, 6]},
        {"name": "Prime", "price_type": "multiplier", "price_value": 1.10, "priority": 70,
         "time_band_id": bands["Prime"].id},
        {"name": "Twilight", "price_type": "multiplier", "price_value": 0.85, "priority": 70,
         "time_band_id": bands["Twilight"].id},
        {"name": "High occupancy", "price_type": "multiplier", "price_value": 1.05, "priority": 65,
         "occupancy_min": 70},
        {"name": "Early bird", "price_type": "multiplier", "price_value": 0.90, "priority": 60,
         "lead_time_min": 720},
        {"name": "Foursome", "price_type": "delta", "price_value": -50, "priority": 50,
         "players_min": 4, "players_max": 4},
    ]
    for data in rules:
        rule = engine.add_price_rule(PriceRuleCreate(course_id=course_id, **data))
        print(f"  Rule: {rule.name} ({rule.price_type.value} {rule.price_value}, priority {rule.priority})")

    product = engine.update_base_product(
        course_id, {"green_fee_base": 1800, "cart_fee": 300, "caddie_fee": 500}
    )
    print(f"  Base product: {product.green_fee_base}")

    return {"seasons": len(seasons), "timeBands": len(bands), "priceRules": len(rules), "baseProduct": 1}


async def populate_pricing(course_id: str = COURSE_ID) -> bool:
    store = SqlPricingStore(build_session_factory(build_engine()))
    engine = PricingEngine(store=store)

    print(f"Populating pricing for {course_id}...")
    counts = seed_demo_course(engine, course_id)
    saved = await engine.save(course_id)
    if saved:
        print(f"\nOK: {counts}")
    else:
        print("\nFAILED: pricing was not saved")
    return saved


if __name__ == "__main__":
    course = sys.argv[1] if len(sys.argv) > 1 else COURSE_ID
    sys.exit(0 if asyncio.run(populate_pricing(course)) else 1)
