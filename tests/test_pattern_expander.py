"""
Tests for recurring pattern expansion

Days of week: 0 = Sunday ... 6 = Saturday.
"""

from datetime import date, datetime

import pytest

from app.domain.scheduling.pattern_expander import (
    day_of_week,
    expand_patterns,
    frequency_admits,
    week_of_month,
)
from app.domain.scheduling.schemas import VisitPattern
from tests.fake_backend import JST

SUN, MON, WED, FRI = 0, 1, 3, 5

JUNE_START = date(2024, 6, 3)
JUNE_END = date(2024, 6, 30)
JUNE_WEDNESDAYS = [date(2024, 6, 5), date(2024, 6, 12), date(2024, 6, 19), date(2024, 6, 26)]


def make_pattern(pattern_id=1, day=WED, frequency="weekly", **fields):
    return VisitPattern(
        id=pattern_id,
        patient_id=fields.pop("patient_id", 42),
        day_of_week=day,
        start_time=fields.pop("start_time", "09:00"),
        duration=fields.pop("duration", 60),
        frequency=frequency,
        **fields,
    )


class TestCalendarHelpers:
    def test_day_of_week_sunday_is_zero(self):
        assert day_of_week(date(2024, 6, 2)) == SUN
        assert day_of_week(date(2024, 6, 3)) == MON
        assert day_of_week(date(2024, 6, 8)) == 6

    @pytest.mark.parametrize(
        "day, expected",
        [(1, 1), (7, 1), (8, 2), (15, 3), (22, 4), (29, 5)],
    )
    def test_week_of_month(self, day, expected):
        assert week_of_month(date(2024, 5, day)) == expected

    def test_biweekly_uses_even_iso_weeks(self):
        assert not frequency_admits("biweekly", date(2024, 6, 5))  # ISO week 23
        assert frequency_admits("biweekly", date(2024, 6, 12))  # ISO week 24

    def test_unknown_frequency_raises(self):
        with pytest.raises(ValueError):
            frequency_admits("daily", date(2024, 6, 5))


class TestExpandPatterns:
    def test_weekly_wednesday_over_june(self):
        """Mon/Wed/Fri selected, one weekly Wednesday pattern without staff, empty month"""
        requests, skipped = expand_patterns(
            [make_pattern()], JUNE_START, JUNE_END, {MON, WED, FRI}, set(), JST
        )

        assert [r.visit_date for r in requests] == JUNE_WEDNESDAYS
        assert skipped == []
        for request in requests:
            assert request.staff_id is None
            assert request.duration == 60
            assert request.patient_id == 42
            assert request.pattern_id == 1
            assert request.scheduled_at.hour == 9 and request.scheduled_at.minute == 0
            assert request.scheduled_at.utcoffset() == JST.utcoffset(None)

        draft = requests[0].to_draft()
        assert draft.to_fields()["status"] == "unassigned"
        assert draft.visit_pattern_id == 1

    def test_default_staff_makes_scheduled_visits(self):
        requests, _ = expand_patterns(
            [make_pattern(default_staff_id=7, planning_lane_id=3)],
            JUNE_START,
            JUNE_END,
            {WED},
            set(),
            JST,
        )

        assert {r.staff_id for r in requests} == {7}
        assert {r.planning_lane_id for r in requests} == {3}
        assert requests[0].to_draft().to_fields()["status"] == "scheduled"

    def test_unselected_weekday_produces_nothing(self):
        requests, skipped = expand_patterns(
            [make_pattern()], JUNE_START, JUNE_END, {MON, FRI}, set(), JST
        )

        assert requests == []
        assert skipped == []

    def test_occupied_day_is_skipped_entirely(self):
        """Any existing visit blocks the whole date, whatever its time slot"""
        occupied = {date(2024, 6, 12)}

        requests, skipped = expand_patterns(
            [make_pattern(), make_pattern(pattern_id=2, start_time="15:00", patient_id=43)],
            JUNE_START,
            JUNE_END,
            {WED},
            occupied,
            JST,
        )

        assert date(2024, 6, 12) not in {r.visit_date for r in requests}
        assert len(requests) == 6
        assert skipped == [date(2024, 6, 12)]

    def test_monthly_1_3_skips_fifth_occurrence(self):
        """May 2024 has five Wednesdays: 1, 8, 15, 22, 29"""
        requests, _ = expand_patterns(
            [make_pattern(frequency="monthly_1_3")],
            date(2024, 5, 1),
            date(2024, 5, 31),
            {WED},
            set(),
            JST,
        )

        assert [r.visit_date for r in requests] == [date(2024, 5, 1), date(2024, 5, 15)]

    def test_monthly_2_4(self):
        requests, _ = expand_patterns(
            [make_pattern(frequency="monthly_2_4")],
            date(2024, 5, 1),
            date(2024, 5, 31),
            {WED},
            set(),
            JST,
        )

        assert [r.visit_date for r in requests] == [date(2024, 5, 8), date(2024, 5, 22)]

    def test_biweekly_over_june(self):
        requests, _ = expand_patterns(
            [make_pattern(frequency="biweekly")], JUNE_START, JUNE_END, {WED}, set(), JST
        )

        assert [r.visit_date for r in requests] == [date(2024, 6, 12), date(2024, 6, 26)]

    def test_inactive_pattern_is_ignored(self):
        requests, _ = expand_patterns(
            [make_pattern(active=False)], JUNE_START, JUNE_END, {WED}, set(), JST
        )

        assert requests == []

    def test_start_time_is_local_wall_clock(self):
        requests, _ = expand_patterns(
            [make_pattern(start_time="08:30")],
            date(2024, 6, 5),
            date(2024, 6, 5),
            {WED},
            set(),
            JST,
        )

        assert requests[0].scheduled_at == datetime(2024, 6, 5, 8, 30, tzinfo=JST)
