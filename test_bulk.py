import unittest
from datetime import date, datetime

from teeprice.bulk import DUPLICATE_SUFFIX
from teeprice.engine import PricingEngine
from teeprice.schemas import BulkChange, BulkFilters, PriceCalculationInput, PriceRuleCreate

NOW = datetime(2025, 8, 1, 8, 0, 0)
COURSE = "test-course"


def _engine():
    engine = PricingEngine(clock=lambda: NOW)
    engine.update_base_product(COURSE, {"green_fee_base": 1800})
    return engine


def _rule(engine, name, **fields):
    return engine.add_price_rule(PriceRuleCreate(course_id=COURSE, name=name, **fields))


class DuplicateRulesTests(unittest.TestCase):
    def setUp(self):
        self.engine = _engine()
        self.september = _rule(
            self.engine, "September weekend", price_type="delta", price_value=150, dow=[0, 6],
            effective_from="2025-09-01", effective_to="2025-09-30",
        )
        _rule(
            self.engine, "Straddles", price_type="fixed", price_value=2000,
            effective_from="2025-08-15", effective_to="2025-09-15",
        )
        _rule(self.engine, "Always", price_type="multiplier", price_value=1.1)

    def test_rules_inside_source_window_are_copied(self):
        copies = self.engine.duplicate_rules_for_date_range(
            COURSE, date(2025, 9, 1), date(2025, 9, 30), date(2026, 9, 1), date(2026, 9, 30)
        )

        self.assertEqual(len(copies), 1)
        copy = copies[0]
        self.assertEqual(copy.name, "September weekend" + DUPLICATE_SUFFIX)
        self.assertEqual(copy.name, "September weekend (Duplicated)")
        self.assertNotEqual(copy.id, self.september.id)
        self.assertEqual(copy.effective_from, "2026-09-01")
        self.assertEqual(copy.effective_to, "2026-09-30")
        self.assertEqual(copy.price_type, self.september.price_type)
        self.assertEqual(copy.price_value, 150)
        self.assertEqual(copy.dow, [0, 6])
        self.assertEqual(len(self.engine.get_price_rules(COURSE)), 4)

    def test_originals_are_untouched(self):
        self.engine.duplicate_rules_for_date_range(
            COURSE, date(2025, 9, 1), date(2025, 9, 30), date(2026, 9, 1), date(2026, 9, 30)
        )

        original = self.engine.get_price_rules(COURSE)[0]
        self.assertEqual(original, self.september)

    def test_duplicate_invalidates_cache(self):
        data = PriceCalculationInput(course_id=COURSE, date=date(2025, 8, 13), time="10:00", players=1)
        self.engine.calculate_price_with_cache(data)

        self.engine.duplicate_rules_for_date_range(
            COURSE, date(2025, 9, 1), date(2025, 9, 30), date(2026, 9, 1), date(2026, 9, 30)
        )

        self.assertEqual(len(self.engine.cache), 0)


class BulkPriceChangeTests(unittest.TestCase):
    def setUp(self):
        self.engine = _engine()
        self.rack = _rule(self.engine, "Rack", price_type="fixed", price_value=2200, priority=90)
        self.weekend = _rule(self.engine, "Weekend", price_type="delta", price_value=150, dow=[0, 6])
        self.weekday = _rule(self.engine, "Weekday", price_type="fixed", price_value=2000, dow=[1, 2, 3, 4, 5])
        self.twilight = _rule(self.engine, "Twilight", price_type="multiplier", price_value=0.85)

    def _values(self):
        return {r.name: r.price_value for r in self.engine.get_price_rules(COURSE)}

    def test_percentage_change_skips_multipliers(self):
        updated = self.engine.apply_bulk_price_change(COURSE, None, BulkChange(type="percentage", value=10))

        self.assertEqual({r.name for r in updated}, {"Rack", "Weekend", "Weekday"})
        self.assertEqual(
            self._values(),
            {"Rack": 2420, "Weekend": 165, "Weekday": 2200, "Twilight": 0.85},
        )

    def test_fixed_change_respects_weekday_filter(self):
        self.engine.apply_bulk_price_change(
            COURSE, BulkFilters(dow=[6]), BulkChange(type="fixed", value=25)
        )

        # Rules without weekdays apply every day and pass any weekday filter.
        self.assertEqual(
            self._values(),
            {"Rack": 2225, "Weekend": 175, "Weekday": 2000, "Twilight": 0.85},
        )

    def test_season_filter(self):
        season_rule = _rule(self.engine, "High", price_type="fixed", price_value=3000, season_id="alta")

        updated = self.engine.apply_bulk_price_change(
            COURSE, BulkFilters(season_id="alta"), BulkChange(type="fixed", value=-100)
        )

        self.assertEqual([r.id for r in updated], [season_rule.id])
        self.assertEqual(self._values()["High"], 2900)
        self.assertEqual(self._values()["Rack"], 2200)

    def test_rules_keep_their_position_and_identity(self):
        before = [r.id for r in self.engine.get_price_rules(COURSE)]

        self.engine.apply_bulk_price_change(COURSE, None, BulkChange(type="fixed", value=5))

        self.assertEqual([r.id for r in self.engine.get_price_rules(COURSE)], before)

    def test_change_is_visible_to_the_next_calculation(self):
        data = PriceCalculationInput(
            course_id=COURSE, date=date(2025, 8, 13), time="10:00", players=1, lead_time_hours=48
        )
        self.assertEqual(self.engine.calculate_price_with_cache(data).final_price_per_player, 1700.0)

        self.engine.apply_bulk_price_change(COURSE, None, BulkChange(type="fixed", value=100))

        self.assertEqual(self.engine.calculate_price_with_cache(data).final_price_per_player, 1785.0)


if __name__ == "__main__":
    unittest.main()
