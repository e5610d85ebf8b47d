"""Schedule repository - cached access to the scheduling backend"""

import logging
from collections import OrderedDict
from datetime import date, datetime, timedelta, tzinfo
from typing import Optional

from ...cache import Cache, build_reference_key
from ...config import REFERENCE_CACHE_TTL, WINDOW_CACHE_SIZE
from ...services.schedule_api import ScheduleApiClient
from .hierarchy import GroupHierarchy
from .schemas import Group, Patient, PlanningLane, Staff, Visit, WeeklySchedule

logger = logging.getLogger(__name__)

WINDOW_DAYS = 7


class ScheduleRepository:
    """
    Client-side view of the backend's visits plus cached reference data.

    Visits are held per 7-day window exactly as the backend returned them,
    at most max_windows of them (least recently used evicted first).
    The backend stays canonical: windows touched by a mutation are dropped
    and fetched again, never patched in place.
    """

    def __init__(
        self,
        client: ScheduleApiClient,
        tz: tzinfo,
        cache: Optional[Cache] = None,
        reference_ttl: int = REFERENCE_CACHE_TTL,
        max_windows: int = WINDOW_CACHE_SIZE,
    ):
        self.client = client
        self.tz = tz
        self.cache = cache
        self.reference_ttl = reference_ttl
        self.max_windows = max_windows
        self._windows: OrderedDict[date, WeeklySchedule] = OrderedDict()

    def local_date(self, moment: datetime) -> date:
        if moment.tzinfo is None:
            return moment.date()
        return moment.astimezone(self.tz).date()

    # ------------------------------------------------------------------
    # Visit windows
    # ------------------------------------------------------------------

    async def load_week(self, start_date: date, force: bool = False) -> WeeklySchedule:
        if not force and start_date in self._windows:
            self._windows.move_to_end(start_date)
            return self._windows[start_date]
        schedule = await self.client.fetch_weekly_schedule(start_date)
        self._windows[start_date] = schedule
        self._windows.move_to_end(start_date)
        while len(self._windows) > self.max_windows:
            evicted, _ = self._windows.popitem(last=False)
            logger.debug(f"Evicted schedule window {evicted}")
        logger.debug(f"Loaded schedule window {start_date} ({len(schedule.all_visits())} visits)")
        return schedule

    async def load_range(
        self, start_date: date, end_date: date, force: bool = False
    ) -> list[WeeklySchedule]:
        """Consecutive windows from start_date until end_date is covered"""
        windows = []
        window_start = start_date
        while window_start <= end_date:
            windows.append(await self.load_week(window_start, force=force))
            window_start += timedelta(days=WINDOW_DAYS)
        return windows

    def find_visit(self, visit_id: int) -> Optional[Visit]:
        for window in self._windows.values():
            for visit in window.all_visits():
                if visit.id == visit_id:
                    return visit
        return None

    async def get_visit(self, visit_id: int) -> Visit:
        """Last observed state of a visit, fetched when not cached"""
        visit = self.find_visit(visit_id)
        if visit is None:
            visit = await self.client.get_visit(visit_id)
        return visit

    def invalidate(self, day: date) -> list[date]:
        """Drop every cached window covering day; returns the dropped window starts"""
        dropped = [start for start, window in self._windows.items() if window.covers(day)]
        for start in dropped:
            del self._windows[start]
        return dropped

    def invalidate_visit(self, visit_id: int) -> list[date]:
        dropped = [
            start
            for start, window in self._windows.items()
            if any(v.id == visit_id for v in window.all_visits())
        ]
        for start in dropped:
            del self._windows[start]
        return dropped

    async def reload(self, starts: list[date]) -> None:
        for start in sorted(set(starts)):
            await self.load_week(start, force=True)

    async def refresh_after_write(self, *moments: datetime, visit_id: Optional[int] = None) -> None:
        """Invalidate and reload the windows touched by a successful mutation"""
        starts: list[date] = []
        if visit_id is not None:
            starts.extend(self.invalidate_visit(visit_id))
        for moment in moments:
            starts.extend(self.invalidate(self.local_date(moment)))
        await self.reload(starts)

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    async def _cached_list(self, resource: str, fetch, status: Optional[str] = None) -> list[dict]:
        key = build_reference_key(resource, status)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached
        data = await fetch()
        if self.cache is not None:
            self.cache.set(key, data, self.reference_ttl)
        return data

    async def groups(self) -> list[Group]:
        data = await self._cached_list("groups", self.client.list_groups)
        return [Group.model_validate(g) for g in data]

    async def staffs(self, status: Optional[str] = None) -> list[Staff]:
        data = await self._cached_list("staffs", lambda: self.client.list_staffs(status), status)
        return [Staff.model_validate(s) for s in data]

    async def patients(self, status: Optional[str] = None) -> list[Patient]:
        data = await self._cached_list("patients", lambda: self.client.list_patients(status), status)
        return [Patient.model_validate(p) for p in data]

    async def planning_lanes(self) -> list[PlanningLane]:
        data = await self._cached_list("planning_lanes", self.client.list_planning_lanes)
        return [PlanningLane.model_validate(lane) for lane in data]

    async def hierarchy(self, staff_status: Optional[str] = "active") -> GroupHierarchy:
        return GroupHierarchy(
            await self.groups(),
            staffs=await self.staffs(staff_status),
            patients=await self.patients(),
        )
