"""
Pricing rule evaluation.

Each rule type, the base-minimum variant, daily caps, per-day splitting
and the no-matching-rule warning path.
"""

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from parking_kernel.domain.pricing import (
    NO_MATCHING_RULE,
    PricingProfile,
    PricingRule,
    RuleType,
    evaluate,
    order_rules,
    select_active_profile,
)
from parking_kernel.domain.values import DaySet, TimeInterval
from parking_kernel.exceptions import ValidationError

SANTIAGO = ZoneInfo("America/Santiago")
MONDAY_9AM = datetime(2024, 1, 1, 9, 0, tzinfo=SANTIAGO)


def _interval(minutes: int, start: datetime = MONDAY_9AM) -> TimeInterval:
    return TimeInterval(start, start + timedelta(minutes=minutes))


def _hourly(rule_id="h", **kwargs) -> PricingRule:
    kwargs.setdefault("price_per_minute", Decimal("10"))
    return PricingRule(id=rule_id, name=rule_id, rule_type=RuleType.HOURLY, **kwargs)


def _fixed(rule_id="f", **kwargs) -> PricingRule:
    kwargs.setdefault("fixed_price", Decimal("1500"))
    return PricingRule(id=rule_id, name=rule_id, rule_type=RuleType.FIXED, **kwargs)


class TestHourlyWithBaseMinimum:
    def test_ninety_minutes_costs_2500(self, base_rule):
        """1000 for the first hour plus 30 minutes at 50."""
        result = evaluate([base_rule], _interval(90))

        assert result.gross_amount == Decimal("2500")
        (application,) = result.breakdown
        assert application.rule_id == "base"
        assert application.amount == Decimal("2500")
        assert application.min_amount_applied is True
        assert application.day == date(2024, 1, 1)

    def test_inside_base_window_costs_base(self, base_rule):
        assert evaluate([base_rule], _interval(45)).gross_amount == Decimal("1000")
        assert evaluate([base_rule], _interval(60)).gross_amount == Decimal("1000")

    def test_open_ended_base_uses_min_duration(self):
        rule = _hourly(
            min_duration_minutes=30,
            min_amount=Decimal("800"),
            min_amount_is_base=True,
        )
        assert evaluate([rule], _interval(40)).gross_amount == Decimal("900")

    def test_below_min_duration_does_not_contribute(self):
        rule = _hourly(
            min_duration_minutes=30,
            min_amount=Decimal("800"),
            min_amount_is_base=True,
        )
        result = evaluate([rule], _interval(20))
        assert result.gross_amount == Decimal("0")
        assert result.warnings[0].code == NO_MATCHING_RULE


class TestHourly:
    def test_minutes_in_range(self):
        rule = _hourly(min_duration_minutes=30, max_duration_minutes=90)
        (application,) = evaluate([rule], _interval(120)).breakdown
        assert application.minutes_charged == 60
        assert application.amount == Decimal("600")

    def test_min_amount_is_a_floor(self):
        rule = _hourly(min_amount=Decimal("500"))
        (application,) = evaluate([rule], _interval(20)).breakdown
        assert application.amount == Decimal("500")
        assert application.min_amount_applied is True

    def test_floor_not_applied_above_it(self):
        rule = _hourly(min_amount=Decimal("500"))
        (application,) = evaluate([rule], _interval(80)).breakdown
        assert application.amount == Decimal("800")
        assert application.min_amount_applied is False

    def test_tiered_rules_add_up(self):
        first = _hourly("first", max_duration_minutes=60, price_per_minute=Decimal("20"))
        after = _hourly("after", min_duration_minutes=60, price_per_minute=Decimal("10"))
        result = evaluate([after, first], _interval(90))

        assert result.gross_amount == Decimal("1500")
        assert [a.rule_id for a in result.breakdown] == ["first", "after"]


class TestFixed:
    def test_charged_once_within_bounds(self):
        rule = _fixed(max_duration_minutes=120)
        result = evaluate([rule], _interval(90))
        assert result.gross_amount == Decimal("1500")
        assert result.breakdown[0].rate_or_fixed == Decimal("1500")

    def test_outside_bounds_does_not_contribute(self):
        rule = _fixed(max_duration_minutes=120)
        result = evaluate([rule], _interval(150))
        assert result.gross_amount == Decimal("0")
        assert result.breakdown == ()


class TestDailyCap:
    def test_day_total_capped(self, per_minute_rule):
        result = evaluate([per_minute_rule], _interval(300))

        assert result.gross_amount == Decimal("5000")
        (day,) = result.days
        assert day.subtotal == Decimal("6000")
        assert day.cap == Decimal("5000")
        assert day.capped

    def test_under_cap_untouched(self, per_minute_rule):
        result = evaluate([per_minute_rule], _interval(100))
        assert result.gross_amount == Decimal("2000")
        assert not result.days[0].capped

    def test_lowest_cap_wins(self):
        a = _hourly("a", daily_max_amount=Decimal("3000"))
        b = _hourly("b", daily_max_amount=Decimal("2000"))
        result = evaluate([a, b], _interval(300))
        assert result.gross_amount == Decimal("2000")

    def test_each_day_capped_separately(self, per_minute_rule):
        # 09:00 Monday to 15:00 Tuesday: 900 minutes on each day
        result = evaluate([per_minute_rule], _interval(30 * 60))
        assert [d.minutes for d in result.days] == [900, 900]
        assert all(d.total == Decimal("5000") for d in result.days)
        assert result.gross_amount == Decimal("10000")


class TestDaySplitting:
    def test_session_across_midnight_is_split(self, per_minute_rule):
        start = datetime(2024, 1, 1, 23, 0, tzinfo=SANTIAGO)
        result = evaluate([per_minute_rule], _interval(120, start))

        assert [d.day for d in result.days] == [date(2024, 1, 1), date(2024, 1, 2)]
        assert [d.total for d in result.days] == [Decimal("1200"), Decimal("1200")]
        assert result.gross_amount == Decimal("2400")

    def test_weekday_filter_per_day(self):
        # Monday 23:00 to Tuesday 01:00; the rule only runs on Tuesdays
        tuesday_only = _hourly(days_of_week=DaySet.of([2]))
        start = datetime(2024, 1, 1, 23, 0, tzinfo=SANTIAGO)
        result = evaluate([tuesday_only], _interval(120, start))

        assert result.gross_amount == Decimal("600")
        assert len(result.warnings) == 1
        assert result.warnings[0].day == date(2024, 1, 1)

    def test_timezone_parameter_controls_the_split(self, per_minute_rule):
        start = datetime(2024, 1, 1, 23, 0, tzinfo=timezone.utc)
        result = evaluate([per_minute_rule], _interval(120, start), tz=timezone.utc)
        assert len(result.days) == 2


class TestTimeWindows:
    def test_window_must_overlap(self):
        evening = _hourly(start_time=time(18, 0), end_time=time(22, 0))
        result = evaluate([evening], _interval(60))
        assert result.gross_amount == Decimal("0")

    def test_wrapping_window(self):
        night = _fixed(start_time="20:00", end_time="08:00")
        assert night.window_overlaps(time(7, 0), time(7, 30))
        assert night.window_overlaps(time(21, 0), time(23, 0))
        assert not night.window_overlaps(time(9, 0), time(10, 0))

    def test_window_bounds_are_inclusive(self):
        morning = _hourly(start_time=time(8, 0), end_time=time(9, 0))
        # slice starts exactly at 09:00
        assert evaluate([morning], _interval(30)).gross_amount == Decimal("300")


class TestNoMatchingRule:
    def test_warning_not_error(self, captured_logs):
        sunday_only = _hourly(days_of_week=DaySet.of([0]))
        result = evaluate([sunday_only], _interval(60))

        assert result.gross_amount == Decimal("0")
        (warning,) = result.warnings
        assert warning.code == NO_MATCHING_RULE
        assert warning.minutes == 60
        assert result.days[0].total == Decimal("0")
        assert any(r["message"] == "pricing_no_matching_rule" for r in captured_logs())

    def test_inactive_rules_ignored(self):
        rule = _hourly(is_active=False)
        assert evaluate([rule], _interval(60)).warnings


class TestEvaluateEdgeCases:
    def test_zero_elapsed(self, base_rule):
        result = evaluate([base_rule], _interval(0))
        assert result.gross_amount == Decimal("0")
        assert result.breakdown == ()
        assert result.days == ()
        assert result.warnings == ()

    def test_accepts_profile(self, profile):
        assert evaluate(profile, _interval(90)).gross_amount == Decimal("2500")

    def test_same_input_same_output(self, base_rule, per_minute_rule):
        rules = [base_rule, per_minute_rule]
        assert evaluate(rules, _interval(200)) == evaluate(rules, _interval(200))


class TestRuleOrdering:
    def test_priority_then_min_duration(self):
        a = _hourly("a", priority=2)
        b = _hourly("b", priority=1, min_duration_minutes=30)
        c = _hourly("c", priority=1)
        assert [r.id for r in order_rules([a, b, c])] == ["c", "b", "a"]

    def test_equal_keys_keep_input_order(self):
        rules = [_hourly("x"), _hourly("y"), _hourly("z")]
        assert [r.id for r in order_rules(rules)] == ["x", "y", "z"]
        assert [r.id for r in order_rules(reversed(rules))] == ["z", "y", "x"]


class TestRuleValidation:
    def test_fixed_requires_fixed_price(self):
        with pytest.raises(ValidationError):
            PricingRule(id="f", name="f", rule_type=RuleType.FIXED)

    def test_hourly_requires_rate(self):
        with pytest.raises(ValidationError):
            PricingRule(id="h", name="h", rule_type="HOURLY")

    def test_hourly_rejects_fixed_price(self):
        with pytest.raises(ValidationError):
            _hourly(fixed_price=Decimal("100"))

    def test_max_below_min_rejected(self):
        with pytest.raises(ValidationError):
            _hourly(min_duration_minutes=60, max_duration_minutes=30)

    def test_base_requires_min_amount(self):
        with pytest.raises(ValidationError):
            _hourly(min_amount_is_base=True)

    def test_unknown_rule_type(self):
        with pytest.raises(ValidationError):
            PricingRule(id="x", name="x", rule_type="DAILY", fixed_price=Decimal("1"))

    def test_float_price_rejected(self):
        with pytest.raises(ValidationError):
            _hourly(price_per_minute=12.5)

    def test_list_days_and_string_times_coerced(self):
        rule = _hourly(days_of_week=[1, 2], start_time="08:00", end_time="20:30")
        assert isinstance(rule.days_of_week, DaySet)
        assert rule.start_time == time(8, 0)
        assert rule.end_time == time(20, 30)


class TestRuleRecord:
    def test_record_shape(self, base_rule):
        record = base_rule.to_record()
        assert record["rule_type"] == "HOURLY"
        assert record["price_per_minute"] == "50.00"
        assert record["days_of_week"] == [0, 1, 2, 3, 4, 5, 6]
        assert PricingRule.from_record(record) == base_rule

    def test_missing_key_is_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            PricingRule.from_record({"id": "x"})
        assert exc_info.value.field == "rule_type"


class TestProfiles:
    def _profile(self, profile_id, active_from, sector="centro", **kwargs):
        return PricingProfile(
            id=profile_id,
            name=profile_id,
            sector_id=sector,
            rules=(),
            active_from=active_from,
            **kwargs,
        )

    def test_latest_active_from_wins(self):
        old = self._profile("old", datetime(2023, 1, 1, tzinfo=timezone.utc))
        new = self._profile("new", datetime(2023, 6, 1, tzinfo=timezone.utc))
        at = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert select_active_profile([old, new], "centro", at) is new

    def test_window_sector_and_flag(self):
        at = datetime(2024, 1, 1, tzinfo=timezone.utc)
        expired = self._profile(
            "expired",
            datetime(2023, 1, 1, tzinfo=timezone.utc),
            active_to=datetime(2023, 12, 31, tzinfo=timezone.utc),
        )
        elsewhere = self._profile("elsewhere", datetime(2023, 1, 1, tzinfo=timezone.utc), sector="norte")
        off = self._profile("off", datetime(2023, 1, 1, tzinfo=timezone.utc), is_active=False)
        assert select_active_profile([expired, elsewhere, off], "centro", at) is None

    def test_naive_active_from_rejected(self):
        with pytest.raises(ValidationError):
            self._profile("naive", datetime(2023, 1, 1))

    def test_max_daily_amount(self):
        profile = PricingProfile(
            id="p",
            name="p",
            sector_id="centro",
            rules=(
                _hourly("a", daily_max_amount=Decimal("5000")),
                _hourly("b", daily_max_amount=Decimal("8000")),
                _hourly("c", daily_max_amount=Decimal("9000"), is_active=False),
            ),
            active_from="2023-01-01T00:00:00+00:00",
        )
        assert profile.max_daily_amount == Decimal("8000")
