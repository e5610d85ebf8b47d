"""Scheduling router - FastAPI endpoints for the weekly board, visits, patterns and filters"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request, Response

from .assignment_service import VisitAssignmentService, available_actions
from .filters import FilterStore
from .pattern_service import PatternService
from .repository import ScheduleRepository
from .schemas import (
    DropRequest,
    GenerateRequest,
    GenerationReport,
    OfficeNode,
    PlanningLane,
    ScheduleFilters,
    Visit,
    VisitDraft,
    VisitPattern,
    VisitPatternCreate,
    VisitPatternUpdate,
    VisitUpdate,
    WeeklyView,
)
from .views import apply_filters, assigned_of, lane_group_map, ordered_lanes, unassigned_of

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/schedule", tags=["Schedule"])


def get_repository(request: Request) -> ScheduleRepository:
    """Dependency injection for the shared ScheduleRepository"""
    return request.app.state.schedule_repository


def get_assignment_service(
    repo: ScheduleRepository = Depends(get_repository),
) -> VisitAssignmentService:
    return VisitAssignmentService(repo)


def get_pattern_service(repo: ScheduleRepository = Depends(get_repository)) -> PatternService:
    return PatternService(repo)


def get_filter_store(request: Request) -> FilterStore:
    return FilterStore(request.app.state.cache)


def get_user_key(x_user_key: Optional[str] = Header(None)) -> str:
    """Key the persisted filters are stored under"""
    return x_user_key or "default"


# ============================================================================
# WEEKLY BOARD
# ============================================================================


@router.get("/weekly", response_model=WeeklyView)
async def get_weekly_schedule(
    start_date: date = Query(..., description="First day of the 7-day window"),
    apply_saved_filters: bool = Query(True, description="Filter with the user's saved filters"),
    refresh: bool = Query(False, description="Bypass the cached window"),
    repo: ScheduleRepository = Depends(get_repository),
    store: FilterStore = Depends(get_filter_store),
    user_key: str = Depends(get_user_key),
):
    """Weekly schedule split into calendar visits and the unassigned inbox"""
    schedule = await repo.load_week(start_date, force=refresh)
    visits = schedule.all_visits()

    if apply_saved_filters:
        filters = store.load(user_key)
        lanes = await repo.planning_lanes() if filters.group_ids else []
        visits = apply_filters(visits, filters, lane_group_map(lanes))

    return WeeklyView(
        start_date=schedule.start_date,
        end_date=schedule.end_date,
        assigned=assigned_of(visits),
        unassigned=unassigned_of(visits),
    )


@router.get("/groups/tree", response_model=list[OfficeNode])
async def get_group_tree(repo: ScheduleRepository = Depends(get_repository)):
    """Offices with their teams, in display order"""
    hierarchy = await repo.hierarchy()
    return hierarchy.offices_with_teams()


@router.get("/lanes", response_model=list[PlanningLane])
async def get_planning_lanes(repo: ScheduleRepository = Depends(get_repository)):
    """Active planning lanes in layout order"""
    return ordered_lanes(await repo.planning_lanes())


# ============================================================================
# VISITS
# ============================================================================


@router.post("/visits", response_model=Visit, status_code=201)
async def create_visit(
    data: VisitDraft,
    service: VisitAssignmentService = Depends(get_assignment_service),
):
    return await service.create(data)


@router.get("/visits/{visit_id}")
async def get_visit(
    visit_id: int,
    repo: ScheduleRepository = Depends(get_repository),
):
    """Visit plus the actions currently allowed on it"""
    visit = await repo.get_visit(visit_id)
    return {"visit": visit, "actions": available_actions(visit)}


@router.post("/visits/{visit_id}/drop", response_model=Visit)
async def drop_visit(
    visit_id: int,
    data: DropRequest,
    service: VisitAssignmentService = Depends(get_assignment_service),
):
    """Apply a drag-and-drop onto a staff row, a time slot, or the unassigned inbox"""
    return await service.drop(visit_id, data)


@router.patch("/visits/{visit_id}", response_model=Visit)
async def update_visit(
    visit_id: int,
    data: VisitUpdate,
    lock_version: int = Query(..., description="lock_version of the visit as last observed"),
    service: VisitAssignmentService = Depends(get_assignment_service),
):
    return await service.update(visit_id, data, lock_version)


@router.post("/visits/{visit_id}/cancel", response_model=Visit)
async def cancel_visit(
    visit_id: int,
    lock_version: int = Query(..., description="lock_version of the visit as last observed"),
    service: VisitAssignmentService = Depends(get_assignment_service),
):
    return await service.cancel(visit_id, lock_version)


@router.post("/visits/{visit_id}/complete", response_model=Visit)
async def complete_visit(
    visit_id: int,
    lock_version: int = Query(..., description="lock_version of the visit as last observed"),
    service: VisitAssignmentService = Depends(get_assignment_service),
):
    return await service.complete(visit_id, lock_version)


@router.delete("/visits/{visit_id}", status_code=204)
async def delete_visit(
    visit_id: int,
    confirm: bool = Query(False, description="Must be true; deletion cannot be undone"),
    lock_version: int = Query(..., description="lock_version of the visit as last observed"),
    service: VisitAssignmentService = Depends(get_assignment_service),
):
    await service.delete(visit_id, lock_version, confirmed=confirm)
    return Response(status_code=204)


@router.post("/visits/{visit_id}/reload", response_model=Visit)
async def reload_visit(
    visit_id: int,
    service: VisitAssignmentService = Depends(get_assignment_service),
):
    """Fetch the backend's current version after a stale-object conflict"""
    return await service.reload_visit(visit_id)


# ============================================================================
# VISIT PATTERNS
# ============================================================================


@router.get("/patterns", response_model=list[VisitPattern])
async def list_patterns(service: PatternService = Depends(get_pattern_service)):
    return await service.list_patterns()


@router.post("/patterns", response_model=VisitPattern, status_code=201)
async def create_pattern(
    data: VisitPatternCreate,
    service: PatternService = Depends(get_pattern_service),
):
    return await service.create_pattern(data)


@router.patch("/patterns/{pattern_id}", response_model=VisitPattern)
async def update_pattern(
    pattern_id: int,
    data: VisitPatternUpdate,
    service: PatternService = Depends(get_pattern_service),
):
    return await service.update_pattern(pattern_id, data)


@router.delete("/patterns/{pattern_id}", status_code=204)
async def delete_pattern(
    pattern_id: int,
    service: PatternService = Depends(get_pattern_service),
):
    await service.delete_pattern(pattern_id)
    return Response(status_code=204)


@router.post("/patterns/generate")
async def generate_visits(
    data: GenerateRequest,
    service: PatternService = Depends(get_pattern_service),
):
    """Create visits from active patterns for the selected weekdays in a date range"""
    report: GenerationReport = await service.generate(data)
    return {**report.model_dump(mode="json"), "partial_failure": report.partial_failure}


# ============================================================================
# FILTERS
# ============================================================================


@router.get("/filters", response_model=ScheduleFilters)
async def get_filters(
    store: FilterStore = Depends(get_filter_store),
    user_key: str = Depends(get_user_key),
):
    return store.load(user_key)


@router.put("/filters", response_model=ScheduleFilters)
async def save_filters(
    data: ScheduleFilters,
    store: FilterStore = Depends(get_filter_store),
    user_key: str = Depends(get_user_key),
):
    return store.save(user_key, data)


@router.delete("/filters", status_code=204)
async def clear_filters(
    store: FilterStore = Depends(get_filter_store),
    user_key: str = Depends(get_user_key),
):
    store.clear(user_key)
    return Response(status_code=204)
