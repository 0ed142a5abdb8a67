import unittest
from datetime import date, datetime

from populate_pricing import seed_demo_course
from teeprice.engine import PricingEngine
from teeprice.exceptions import BaseProductMissing, TeeTimeBlocked
from teeprice.pricing import day_of_week, derive_lead_time_hours, parse_instant
from teeprice.schemas import (
    PriceCalculationInput,
    PriceRuleCreate,
    SeasonCreate,
    SpecialOverrideCreate,
    TimeBandCreate,
)

NOW = datetime(2025, 8, 1, 8, 0, 0)
COURSE = "test-course"

WEDNESDAY = date(2025, 8, 13)
SATURDAY = date(2025, 9, 6)
SUNDAY = date(2025, 9, 7)


def _engine(base=1800):
    engine = PricingEngine(clock=lambda: NOW)
    if base is not None:
        engine.update_base_product(COURSE, {"green_fee_base": base})
    return engine


def _rule(engine, name="rule", **fields):
    return engine.add_price_rule(PriceRuleCreate(course_id=COURSE, name=name, **fields))


def _request(day=WEDNESDAY, time="10:00", players=1, **fields):
    fields.setdefault("lead_time_hours", 48)
    return PriceCalculationInput(course_id=COURSE, date=day, time=time, players=players, **fields)


class CalendarHelperTests(unittest.TestCase):
    def test_day_of_week_starts_on_sunday(self):
        self.assertEqual(day_of_week(SUNDAY), 0)
        self.assertEqual(day_of_week(date(2025, 9, 8)), 1)
        self.assertEqual(day_of_week(SATURDAY), 6)

    def test_derived_lead_time_can_be_negative(self):
        self.assertEqual(derive_lead_time_hours(date(2025, 8, 2), "08:00", NOW), 24.0)
        self.assertEqual(derive_lead_time_hours(date(2025, 7, 31), "08:00", NOW), -24.0)

    def test_bare_end_date_covers_the_whole_day(self):
        ends = parse_instant("2025-08-01", end_of_day=True)
        self.assertEqual(ends.date(), date(2025, 8, 1))
        self.assertGreater(ends, datetime(2025, 8, 1, 23, 59, 59))
        self.assertEqual(parse_instant("2025-08-01"), datetime(2025, 8, 1))
        self.assertIsNone(parse_instant(None))


class PriceCalculatorTests(unittest.TestCase):
    def test_base_price_without_rules(self):
        engine = _engine(base=95)

        result = engine.calculate_price(_request(players=3))

        self.assertEqual(result.final_price_per_player, 95.0)
        self.assertEqual(result.final_price_per_player_cents, 9500)
        self.assertEqual(result.total_price, 285.0)
        self.assertEqual(result.total_price_cents, 28500)
        self.assertEqual(result.applied_rules, [])
        self.assertEqual(result.players, 3)
        self.assertEqual(result.calculation_timestamp, NOW)

    def test_weekend_delta_then_twilight_multiplier(self):
        engine = _engine()
        twilight = engine.add_time_band(
            TimeBandCreate(course_id=COURSE, label="Twilight", start_time="15:00", end_time="18:00")
        )
        _rule(engine, "Twilight", price_type="multiplier", price_value=0.85, priority=70, time_band_id=twilight.id)
        _rule(engine, "Weekend", price_type="delta", price_value=150, priority=80, dow=[0, 6])

        result = engine.calculate_price(_request(day=SATURDAY, time="16:00", players=2))

        self.assertEqual([r.rule_name for r in result.applied_rules], ["Weekend", "Twilight"])
        self.assertEqual([r.result_price_cents for r in result.applied_rules], [195000, 165750])
        # 1657.50 rounds to the nearest multiple of 5 only once, at the end.
        self.assertEqual(result.final_price_per_player, 1660.0)
        self.assertEqual(result.total_price, 3320.0)

    def test_final_price_is_always_a_multiple_of_five(self):
        for base in (93, 97.49, 1234.56, 12.5, 1801):
            engine = _engine(base=base)
            _rule(engine, "Odd delta", price_type="delta", price_value=1.3)
            _rule(engine, "Odd multiplier", price_type="multiplier", price_value=1.07)

            result = engine.calculate_price(_request())

            self.assertEqual(result.final_price_per_player_cents % 500, 0, base)

    def test_final_rounding_is_half_up(self):
        self.assertEqual(_engine(base=97.5).calculate_price(_request()).final_price_per_player, 100.0)
        self.assertEqual(_engine(base=97.49).calculate_price(_request()).final_price_per_player, 95.0)

    def test_rules_apply_highest_priority_first(self):
        engine = _engine()
        _rule(engine, "Delta", price_type="delta", price_value=150, priority=80)
        _rule(engine, "Rack", price_type="fixed", price_value=2200, priority=90)

        result = engine.calculate_price(_request())

        self.assertEqual([r.rule_name for r in result.applied_rules], ["Rack", "Delta"])
        self.assertEqual(result.final_price_per_player, 2350.0)

    def test_fixed_rule_discards_earlier_composition(self):
        engine = _engine()
        _rule(engine, "Delta", price_type="delta", price_value=150, priority=90)
        _rule(engine, "Rack", price_type="fixed", price_value=2000, priority=50)

        result = engine.calculate_price(_request())

        self.assertEqual(result.final_price_per_player, 2000.0)

    def test_equal_priority_keeps_insertion_order(self):
        engine = _engine()
        _rule(engine, "First", price_type="fixed", price_value=2000, priority=50)
        _rule(engine, "Second", price_type="fixed", price_value=2100, priority=50)
        self.assertEqual(engine.calculate_price(_request()).final_price_per_player, 2100.0)

        engine = _engine()
        _rule(engine, "Second", price_type="fixed", price_value=2100, priority=50)
        _rule(engine, "First", price_type="fixed", price_value=2000, priority=50)
        self.assertEqual(engine.calculate_price(_request()).final_price_per_player, 2000.0)

    def test_multipliers_compound(self):
        engine = _engine()
        _rule(engine, "Up", price_type="multiplier", price_value=1.10, priority=20)
        _rule(engine, "Down", price_type="multiplier", price_value=0.90, priority=10)

        result = engine.calculate_price(_request())

        self.assertEqual([r.result_price for r in result.applied_rules], [1980.0, 1782.0])
        self.assertEqual(result.final_price_per_player, 1780.0)

    def test_rule_clamp_and_round_to(self):
        engine = _engine()
        _rule(engine, "Half off", price_type="multiplier", price_value=0.5, min_price=1000, priority=20)
        self.assertEqual(engine.calculate_price(_request()).applied_rules[0].result_price, 1000.0)

        engine = _engine()
        _rule(engine, "Cap", price_type="delta", price_value=500, max_price=2000, priority=20)
        self.assertEqual(engine.calculate_price(_request()).applied_rules[0].result_price, 2000.0)

        engine = _engine()
        _rule(engine, "Nudge", price_type="multiplier", price_value=1.013, round_to=25)
        result = engine.calculate_price(_request())
        # 1823.40 -> nearest 25
        self.assertEqual(result.applied_rules[0].result_price, 1825.0)
        self.assertEqual(result.final_price_per_player, 1825.0)

    def test_missing_base_product_raises(self):
        engine = _engine(base=None)
        with self.assertRaises(BaseProductMissing) as ctx:
            engine.calculate_price(_request())
        self.assertEqual(ctx.exception.course_id, COURSE)

    def test_same_input_gives_same_result(self):
        engine = _engine()
        _rule(engine, "Weekend", price_type="delta", price_value=150, dow=[0, 6])
        _rule(engine, "Up", price_type="multiplier", price_value=1.07)

        first = engine.calculate_price(_request(day=SUNDAY, players=2))
        second = engine.calculate_price(_request(day=SUNDAY, players=2))

        self.assertEqual(first, second)


class RulePredicateTests(unittest.TestCase):
    def test_lead_time_predicate(self):
        engine = _engine()
        _rule(engine, "Early bird", price_type="multiplier", price_value=0.90, lead_time_min=720)

        self.assertEqual(engine.calculate_price(_request(lead_time_hours=800)).final_price_per_player, 1620.0)
        self.assertEqual(engine.calculate_price(_request(lead_time_hours=100)).final_price_per_player, 1800.0)

    def test_lead_time_is_derived_from_the_clock(self):
        engine = _engine()
        _rule(engine, "Early bird", price_type="multiplier", price_value=0.90, lead_time_min=720)

        far = PriceCalculationInput(course_id=COURSE, date=date(2025, 9, 10), time="10:00", players=1)
        past = PriceCalculationInput(course_id=COURSE, date=date(2025, 7, 1), time="10:00", players=1)

        self.assertEqual(engine.calculate_price(far).final_price_per_player, 1620.0)
        self.assertEqual(engine.calculate_price(past).final_price_per_player, 1800.0)

    def test_occupancy_predicate(self):
        engine = _engine()
        _rule(engine, "High occupancy", price_type="multiplier", price_value=1.05, occupancy_min=70)

        self.assertEqual(engine.calculate_price(_request(occupancy_percent=80)).final_price_per_player, 1890.0)
        self.assertEqual(engine.calculate_price(_request(occupancy_percent=50)).final_price_per_player, 1800.0)
        # Unknown occupancy counts as an empty tee sheet.
        self.assertEqual(engine.calculate_price(_request()).final_price_per_player, 1800.0)

    def test_players_predicate(self):
        engine = _engine()
        _rule(engine, "Foursome", price_type="delta", price_value=-50, players_min=4, players_max=4)

        self.assertEqual(engine.calculate_price(_request(players=4)).final_price_per_player, 1750.0)
        self.assertEqual(engine.calculate_price(_request(players=3)).final_price_per_player, 1800.0)

    def test_season_predicate(self):
        engine = _engine()
        season = engine.add_season(
            SeasonCreate(course_id=COURSE, name="Sep", start_date="2025-09-01", end_date="2025-09-30", priority=70)
        )
        _rule(engine, "Sep rack", price_type="fixed", price_value=2000, season_id=season.id)

        self.assertEqual(engine.calculate_price(_request(day=date(2025, 9, 10))).final_price_per_player, 2000.0)
        self.assertEqual(engine.calculate_price(_request(day=WEDNESDAY)).final_price_per_player, 1800.0)

    def test_highest_priority_season_is_resolved(self):
        engine = _engine()
        low = engine.add_season(
            SeasonCreate(course_id=COURSE, name="Year", start_date="2025-01-01", end_date="2025-12-31", priority=10)
        )
        high = engine.add_season(
            SeasonCreate(course_id=COURSE, name="Aug", start_date="2025-08-01", end_date="2025-08-31", priority=90)
        )
        _rule(engine, "Year rack", price_type="fixed", price_value=1500, season_id=low.id)
        _rule(engine, "Aug rack", price_type="fixed", price_value=2500, season_id=high.id)

        self.assertEqual(engine.calculate_price(_request()).final_price_per_player, 2500.0)

    def test_time_band_end_is_exclusive(self):
        engine = _engine()
        band = engine.add_time_band(
            TimeBandCreate(course_id=COURSE, label="Twilight", start_time="15:00", end_time="18:00")
        )
        _rule(engine, "Twilight", price_type="multiplier", price_value=0.85, time_band_id=band.id)

        self.assertEqual(len(engine.calculate_price(_request(time="15:00")).applied_rules), 1)
        self.assertEqual(len(engine.calculate_price(_request(time="17:59")).applied_rules), 1)
        self.assertEqual(engine.calculate_price(_request(time="18:00")).applied_rules, [])

    def test_empty_weekday_list_matches_every_day(self):
        engine = _engine()
        _rule(engine, "Anyday", price_type="delta", price_value=100, dow=[])

        self.assertEqual(engine.calculate_price(_request()).final_price_per_player, 1900.0)

    def test_inactive_rule_is_ignored(self):
        engine = _engine()
        _rule(engine, "Off", price_type="fixed", price_value=5000, active=False)

        self.assertEqual(engine.calculate_price(_request()).final_price_per_player, 1800.0)

    def test_effective_window(self):
        cases = [
            ({"effective_to": "2025-07-31"}, 1800.0),
            ({"effective_to": "2025-08-01"}, 1900.0),
            ({"effective_from": "2025-08-02"}, 1800.0),
            ({"effective_from": "2025-08-01T07:00:00", "effective_to": "2025-08-01T09:00:00"}, 1900.0),
        ]
        for window, expected in cases:
            engine = _engine()
            _rule(engine, "Promo", price_type="delta", price_value=100, **window)
            self.assertEqual(engine.calculate_price(_request()).final_price_per_player, expected, window)


class SpecialOverrideTests(unittest.TestCase):
    def _override(self, engine, **fields):
        fields.setdefault("start_date", WEDNESDAY)
        fields.setdefault("end_date", WEDNESDAY)
        return engine.add_special_override(SpecialOverrideCreate(course_id=COURSE, **fields))

    def test_block_override_raises(self):
        engine = _engine()
        _rule(engine, "Rack", price_type="fixed", price_value=2200, priority=100)
        _rule(engine, "Surcharge", price_type="delta", price_value=150, priority=90)
        closure = self._override(engine, name="Tournament", override_type="block")

        for players in (1, 4):
            with self.assertRaises(TeeTimeBlocked) as ctx:
                engine.calculate_price(_request(players=players))

        self.assertEqual(ctx.exception.override_id, closure.id)
        self.assertEqual(ctx.exception.override_name, "Tournament")

    def test_price_override_skips_rules_and_rounding(self):
        engine = _engine()
        _rule(engine, "Rack", price_type="fixed", price_value=2200, priority=100)
        holiday = self._override(engine, name="Holiday", override_type="price", price_value=999)

        result = engine.calculate_price(_request(players=2))

        self.assertEqual(result.final_price_per_player, 999.0)
        self.assertEqual(result.total_price, 1998.0)
        self.assertEqual(result.override_id, holiday.id)
        self.assertEqual([r.rule_id for r in result.applied_rules], [holiday.id])

    def test_highest_priority_override_wins(self):
        engine = _engine()
        self._override(engine, name="Closure", override_type="block", priority=1)
        self._override(engine, name="Holiday", override_type="price", price_value=1200, priority=5)

        self.assertEqual(engine.calculate_price(_request()).final_price_per_player, 1200.0)

    def test_override_time_window_is_inclusive(self):
        engine = _engine()
        self._override(engine, name="Frost", override_type="block", start_time="06:00", end_time="08:00")

        with self.assertRaises(TeeTimeBlocked):
            engine.calculate_price(_request(time="08:00"))
        self.assertEqual(engine.calculate_price(_request(time="08:01")).final_price_per_player, 1800.0)

    def test_inactive_or_other_day_override_is_ignored(self):
        engine = _engine()
        self._override(engine, name="Old closure", override_type="block", active=False)
        self._override(
            engine, name="Next week", override_type="block",
            start_date=date(2025, 8, 20), end_date=date(2025, 8, 21),
        )

        self.assertEqual(engine.calculate_price(_request()).final_price_per_player, 1800.0)


class RuleSetValidationTests(unittest.TestCase):
    def test_fixed_rules_sharing_priority_are_reported(self):
        engine = _engine()
        _rule(engine, "Rack A", price_type="fixed", price_value=2000, priority=50)
        _rule(engine, "Rack B", price_type="fixed", price_value=2100, priority=50)

        warnings = engine.validate_rule_set(COURSE)

        self.assertEqual(len(warnings), 1)
        self.assertIn("Rack A", warnings[0])
        self.assertIn("Rack B", warnings[0])

    def test_mutually_exclusive_fixed_rules_are_not_reported(self):
        engine = _engine()
        _rule(engine, "Sunday", price_type="fixed", price_value=2000, priority=50, dow=[0])
        _rule(engine, "Saturday", price_type="fixed", price_value=2100, priority=50, dow=[6])
        _rule(engine, "Small", price_type="fixed", price_value=2100, priority=40, players_max=2)
        _rule(engine, "Large", price_type="fixed", price_value=2100, priority=40, players_min=3)

        self.assertEqual(engine.validate_rule_set(COURSE), [])

    def test_unknown_references_are_reported(self):
        engine = _engine()
        _rule(engine, "Ghost", price_type="delta", price_value=10, season_id="nope", time_band_id="gone")

        warnings = engine.validate_rule_set(COURSE)

        self.assertEqual(len(warnings), 2)

    def test_tie_is_logged_when_rule_is_added(self):
        engine = _engine()
        _rule(engine, "Rack A", price_type="fixed", price_value=2000, priority=50)
        with self.assertLogs("teeprice.engine", level="WARNING"):
            _rule(engine, "Rack B", price_type="fixed", price_value=2100, priority=50)


class DemoCourseTests(unittest.TestCase):
    def test_saturday_twilight_foursome_in_high_season(self):
        engine = PricingEngine(clock=lambda: NOW)
        seed_demo_course(engine, "palmilla")

        result = engine.calculate_price(
            PriceCalculationInput(
                course_id="palmilla",
                date=date(2025, 10, 4),
                time="16:00",
                players=4,
                lead_time_hours=48,
                occupancy_percent=80,
            )
        )

        self.assertEqual(
            [r.rule_name for r in result.applied_rules],
            ["Rack Alta", "Weekend", "Twilight", "High occupancy", "Foursome"],
        )
        self.assertEqual(result.base_price, 1800)
        self.assertEqual(result.final_price_per_player, 2045.0)
        self.assertEqual(result.total_price, 8180.0)
        self.assertEqual(engine.validate_rule_set("palmilla"), [])


if __name__ == "__main__":
    unittest.main()
