"""Scheduling domain schemas - Pydantic models for visits, reference data and patterns"""

import re
from datetime import date, datetime, timedelta
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator

VISIT_STATUSES = ("unassigned", "scheduled", "in_progress", "completed", "cancelled")
TERMINAL_STATUSES = ("completed", "cancelled")
# cancel/complete are only offered from these
ACTIONABLE_STATUSES = ("scheduled", "in_progress")

PATTERN_FREQUENCIES = ("weekly", "biweekly", "monthly_1_3", "monthly_2_4")
DURATION_OPTIONS = (15, 30, 45, 60, 90, 120, 180, 240)
DEFAULT_DURATION = 60

# Bump when the shape of ScheduleFilters changes; stored filters with another version are dropped
FILTERS_VERSION = 1

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def derive_status(staff_id: Optional[int], current_status: str) -> str:
    """
    Status that keeps "unassigned iff no staff" true after a staff change.

    Assigning promotes unassigned -> scheduled, clearing demotes to unassigned.
    in_progress keeps its status while a staff member is set.
    """
    if staff_id is None:
        return "unassigned"
    if current_status == "unassigned":
        return "scheduled"
    return current_status


def _validate_positive_duration(v):
    if v is not None and v <= 0:
        raise ValueError("Duration must be greater than 0")
    return v


Minutes = Annotated[int, AfterValidator(_validate_positive_duration)]


class Visit(BaseModel):
    """A visit as returned by the scheduling backend"""

    model_config = ConfigDict(extra="ignore")

    id: int
    patient_id: int
    staff_id: Optional[int] = None
    scheduled_at: datetime
    duration: Minutes
    status: str
    notes: Optional[str] = None
    planning_lane_id: Optional[int] = None
    visit_pattern_id: Optional[int] = None
    lock_version: int

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v not in VISIT_STATUSES:
            raise ValueError(f"Unknown visit status: {v}")
        return v

    @property
    def end_at(self) -> datetime:
        return self.scheduled_at + timedelta(minutes=self.duration)

    @property
    def is_unassigned(self) -> bool:
        return self.staff_id is None or self.status == "unassigned"


class VisitDraft(BaseModel):
    """Input for creating a visit; required fields are checked by the service, not here"""

    patient_id: Optional[int] = None
    scheduled_at: Optional[datetime] = None
    staff_id: Optional[int] = None
    duration: Minutes = DEFAULT_DURATION
    notes: Optional[str] = None
    planning_lane_id: Optional[int] = None
    visit_pattern_id: Optional[int] = None

    def to_fields(self) -> dict:
        """Create payload; staff and status are always sent explicitly"""
        fields = self.model_dump(exclude_none=True)
        fields["staff_id"] = self.staff_id
        fields["status"] = derive_status(self.staff_id, "unassigned")
        return fields


class VisitUpdate(BaseModel):
    """Partial inline edit; only fields explicitly set are considered"""

    scheduled_at: Optional[datetime] = None
    duration: Optional[Minutes] = None
    notes: Optional[str] = None
    planning_lane_id: Optional[int] = None
    staff_id: Optional[int] = None


class DropRequest(BaseModel):
    """
    Result of a drag gesture: target staff and/or target time.

    Leave a field unset to keep it; send staff_id=null to move the visit
    into the unassigned inbox.
    """

    lock_version: int
    staff_id: Optional[int] = None
    scheduled_at: Optional[datetime] = None


class Staff(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    group_id: Optional[int] = None
    status: str = "active"


class Patient(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    address: Optional[str] = None
    group_id: Optional[int] = None
    status: str = "active"


class Group(BaseModel):
    """Office (parent_id is None) or team (parent_id is an office)"""

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    parent_id: Optional[int] = None
    position: Optional[int] = None


class PlanningLane(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    position: Optional[int] = None
    group_id: Optional[int] = None
    archived: bool = False


class VisitPatternBase(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6)  # 0 = Sunday
    start_time: str
    duration: Minutes = DEFAULT_DURATION
    frequency: str = "weekly"
    default_staff_id: Optional[int] = None
    planning_lane_id: Optional[int] = None
    active: bool = True

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, v):
        # Backends may answer with seconds ("09:00:00"); keep HH:MM
        if v and len(v) == 8 and v.count(":") == 2:
            v = v[:5]
        if not _HHMM.match(v or ""):
            raise ValueError("start_time must be in HH:MM format")
        return v

    @field_validator("frequency")
    @classmethod
    def validate_frequency(cls, v):
        if v not in PATTERN_FREQUENCIES:
            raise ValueError(f"frequency must be one of {', '.join(PATTERN_FREQUENCIES)}")
        return v


class VisitPattern(VisitPatternBase):
    model_config = ConfigDict(extra="ignore")

    id: int
    patient_id: int

    def start_hour_minute(self) -> tuple[int, int]:
        hour, minute = self.start_time.split(":")
        return int(hour), int(minute)


class VisitPatternCreate(VisitPatternBase):
    patient_id: int


class VisitPatternUpdate(BaseModel):
    day_of_week: Optional[int] = Field(None, ge=0, le=6)
    start_time: Optional[str] = None
    duration: Optional[Minutes] = None
    frequency: Optional[str] = None
    default_staff_id: Optional[int] = None
    planning_lane_id: Optional[int] = None
    active: Optional[bool] = None

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, v):
        if v is not None and not _HHMM.match(v):
            raise ValueError("start_time must be in HH:MM format")
        return v

    @field_validator("frequency")
    @classmethod
    def validate_frequency(cls, v):
        if v is not None and v not in PATTERN_FREQUENCIES:
            raise ValueError(f"frequency must be one of {', '.join(PATTERN_FREQUENCIES)}")
        return v


class VisitCreateRequest(BaseModel):
    """One visit to create, produced by pattern expansion"""

    visit_date: date
    pattern_id: int
    patient_id: int
    staff_id: Optional[int] = None
    scheduled_at: datetime
    duration: int
    planning_lane_id: Optional[int] = None

    def to_draft(self) -> VisitDraft:
        return VisitDraft(
            patient_id=self.patient_id,
            staff_id=self.staff_id,
            scheduled_at=self.scheduled_at,
            duration=self.duration,
            planning_lane_id=self.planning_lane_id,
            visit_pattern_id=self.pattern_id,
        )


class WeeklySchedule(BaseModel):
    """Visits of a 7-day window keyed by local date"""

    start_date: date
    end_date: date
    days: dict[date, list[Visit]] = Field(default_factory=dict)

    def all_visits(self) -> list[Visit]:
        return [v for day in sorted(self.days) for v in self.days[day]]

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


class GenerateRequest(BaseModel):
    start_date: date
    end_date: date
    day_of_weeks: list[int] = Field(default_factory=list)

    @field_validator("day_of_weeks")
    @classmethod
    def validate_day_of_weeks(cls, v):
        for d in v:
            if d < 0 or d > 6:
                raise ValueError("day_of_weeks entries must be between 0 (Sunday) and 6 (Saturday)")
        return sorted(set(v))


class GenerationFailure(BaseModel):
    visit_date: date
    pattern_id: int
    error_type: str
    message: str


class GenerationReport(BaseModel):
    requested: int = 0
    created: list[Visit] = Field(default_factory=list)
    skipped_dates: list[date] = Field(default_factory=list)
    failures: list[GenerationFailure] = Field(default_factory=list)

    @property
    def partial_failure(self) -> bool:
        return bool(self.failures) and bool(self.created)


class ScheduleFilters(BaseModel):
    """Persisted sidebar filters; empty lists mean "no filtering" """

    version: int = FILTERS_VERSION
    group_ids: list[int] = Field(default_factory=list)
    staff_ids: list[int] = Field(default_factory=list)
    patient_ids: list[int] = Field(default_factory=list)


class TeamNode(BaseModel):
    id: int
    name: str
    label: str


class OfficeNode(BaseModel):
    id: int
    name: str
    teams: list[TeamNode] = Field(default_factory=list)


class WeeklyView(BaseModel):
    """Weekly schedule split for the calendar and the unassigned inbox"""

    start_date: date
    end_date: date
    assigned: list[Visit]
    unassigned: list[Visit]
