"""
Recurring pattern expansion

Turns weekly VisitPatterns into concrete visit-creation requests over a
closed date range. A date that already has any visit is skipped entirely,
whatever pattern or time slot that visit belongs to.

Days of week are numbered 0 (Sunday) to 6 (Saturday).
"""

from datetime import date, datetime, timedelta, tzinfo
from typing import Container, Iterable

from .schemas import VisitCreateRequest, VisitPattern


def day_of_week(day: date) -> int:
    """0 = Sunday ... 6 = Saturday"""
    return (day.weekday() + 1) % 7


def week_of_month(day: date) -> int:
    """Ordinal occurrence of this weekday within its month (1-5)"""
    return (day.day - 1) // 7 + 1


def frequency_admits(frequency: str, day: date) -> bool:
    if frequency == "weekly":
        return True
    if frequency == "biweekly":
        # Fixed parity: even ISO week numbers
        return day.isocalendar()[1] % 2 == 0
    if frequency == "monthly_1_3":
        return week_of_month(day) in (1, 3)
    if frequency == "monthly_2_4":
        return week_of_month(day) in (2, 4)
    raise ValueError(f"Unknown pattern frequency: {frequency}")


def date_range(start_date: date, end_date: date) -> Iterable[date]:
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


def expand_patterns(
    patterns: Iterable[VisitPattern],
    start_date: date,
    end_date: date,
    day_of_weeks: Container[int],
    occupied_dates: Container[date],
    tz: tzinfo,
) -> tuple[list[VisitCreateRequest], list[date]]:
    """
    Compute visits to create for [start_date, end_date].

    Returns (requests, skipped_dates) where skipped_dates are the selected
    dates left alone because they already had a visit.
    """
    active_patterns = [p for p in patterns if p.active]
    requests: list[VisitCreateRequest] = []
    skipped: list[date] = []

    for day in date_range(start_date, end_date):
        dow = day_of_week(day)
        if dow not in day_of_weeks:
            continue
        if day in occupied_dates:
            skipped.append(day)
            continue

        for pattern in active_patterns:
            if pattern.day_of_week != dow or not frequency_admits(pattern.frequency, day):
                continue
            hour, minute = pattern.start_hour_minute()
            requests.append(
                VisitCreateRequest(
                    visit_date=day,
                    pattern_id=pattern.id,
                    patient_id=pattern.patient_id,
                    staff_id=pattern.default_staff_id,
                    scheduled_at=datetime(day.year, day.month, day.day, hour, minute, tzinfo=tz),
                    duration=pattern.duration,
                    planning_lane_id=pattern.planning_lane_id,
                )
            )

    return requests, skipped
