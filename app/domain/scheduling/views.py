"""
View derivation over the cached visit set

Pure functions, recomputed on every visit-set or filter change. Group
filtering is permissive: a visit without a lane, or whose lane has no
group, is never hidden by a group selection.
"""

from typing import Iterable, Mapping, Optional, Sequence

from .schemas import PlanningLane, ScheduleFilters, Visit


def unassigned_of(visits: Iterable[Visit]) -> list[Visit]:
    return [v for v in visits if v.staff_id is None or v.status == "unassigned"]


def assigned_of(visits: Iterable[Visit]) -> list[Visit]:
    return [v for v in visits if v.staff_id is not None and v.status != "unassigned"]


def lane_group_map(lanes: Iterable[PlanningLane]) -> dict[int, Optional[int]]:
    return {lane.id: lane.group_id for lane in lanes}


def in_selected_groups(
    visit: Visit,
    lane_to_group: Mapping[int, Optional[int]],
    selected_group_ids: Sequence[int],
) -> bool:
    if visit.planning_lane_id is None:
        return True
    group_id = lane_to_group.get(visit.planning_lane_id)
    if group_id is None:
        return True
    return group_id in selected_group_ids


def apply_filters(
    visits: Iterable[Visit],
    filters: ScheduleFilters,
    lane_to_group: Mapping[int, Optional[int]],
) -> list[Visit]:
    """Group, staff and patient selections combined; an empty selection filters nothing"""
    result = []
    for visit in visits:
        if filters.group_ids and not in_selected_groups(visit, lane_to_group, filters.group_ids):
            continue
        # Unassigned visits stay visible under a staff filter so they can still be dispatched
        if filters.staff_ids and visit.staff_id is not None and visit.staff_id not in filters.staff_ids:
            continue
        if filters.patient_ids and visit.patient_id not in filters.patient_ids:
            continue
        result.append(visit)
    return result


def ordered_lanes(lanes: Iterable[PlanningLane]) -> list[PlanningLane]:
    """Active lanes in layout order; lanes without a position go last"""
    active = [lane for lane in lanes if not lane.archived]
    return sorted(
        active,
        key=lambda lane: (lane.position is None, lane.position or 0, lane.id),
    )
