"""
Group hierarchy index

Offices are groups without a parent; teams hang directly under an office.
Deeper nesting (a team under a team) or a dangling parent is bad data: that
branch is dropped and logged instead of failing the whole index.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .schemas import Group, OfficeNode, Patient, Staff, TeamNode

logger = logging.getLogger(__name__)

# Sorts last when a group has no explicit position
_NO_POSITION = float("inf")


def _display_order(group: Group):
    position = group.position if group.position is not None else _NO_POSITION
    return (position, group.name, group.id)


@dataclass
class GroupMembers:
    staffs: list[Staff] = field(default_factory=list)
    patients: list[Patient] = field(default_factory=list)


class GroupHierarchy:
    """Index over a flat group list plus the staff/patients that belong to it"""

    def __init__(
        self,
        groups: Iterable[Group],
        staffs: Iterable[Staff] = (),
        patients: Iterable[Patient] = (),
    ):
        self.groups: dict[int, Group] = {}
        self._teams_by_office: dict[int, list[Group]] = {}

        all_groups = {g.id: g for g in groups}
        for group in sorted(all_groups.values(), key=_display_order):
            if group.parent_id is None:
                self.groups[group.id] = group
                self._teams_by_office.setdefault(group.id, [])

        for group in sorted(all_groups.values(), key=_display_order):
            if group.parent_id is None:
                continue
            parent = all_groups.get(group.parent_id)
            if parent is None:
                logger.warning(f"⚠️ Group {group.id} points at missing parent {group.parent_id}; dropped")
                continue
            if parent.parent_id is not None:
                logger.warning(
                    f"⚠️ Group {group.id} is nested under team {parent.id}; only office > team is supported, dropped"
                )
                continue
            self.groups[group.id] = group
            self._teams_by_office[parent.id].append(group)

        self._members: dict[Optional[int], GroupMembers] = {None: GroupMembers()}
        for group_id in self.groups:
            self._members[group_id] = GroupMembers()
        for staff in staffs:
            self._bucket(staff.group_id).staffs.append(staff)
        for patient in patients:
            self._bucket(patient.group_id).patients.append(patient)

    def _bucket(self, group_id: Optional[int]) -> GroupMembers:
        # Members of unknown or dropped groups land in the unassigned bucket
        if group_id not in self.groups:
            group_id = None
        return self._members[group_id]

    def offices(self) -> list[Group]:
        return [self.groups[office_id] for office_id in self._teams_by_office]

    def teams_of(self, office_id: int) -> list[Group]:
        return list(self._teams_by_office.get(office_id, []))

    def offices_with_teams(self) -> list[OfficeNode]:
        return [
            OfficeNode(
                id=office.id,
                name=office.name,
                teams=[
                    TeamNode(id=team.id, name=team.name, label=self.label_for(team.id))
                    for team in self.teams_of(office.id)
                ],
            )
            for office in self.offices()
        ]

    def members_of(self, group_id: Optional[int]) -> GroupMembers:
        """Direct members of a group; None returns the unassigned bucket"""
        if group_id is not None and group_id not in self.groups:
            return GroupMembers()
        return self._members[group_id]

    def unassigned(self) -> GroupMembers:
        return self._members[None]

    def label_for(self, group_id: Optional[int]) -> Optional[str]:
        """'<office> > <team>' for teams, the bare name for offices"""
        group = self.groups.get(group_id) if group_id is not None else None
        if group is None:
            return None
        if group.parent_id is None:
            return group.name
        return f"{self.groups[group.parent_id].name} > {group.name}"

