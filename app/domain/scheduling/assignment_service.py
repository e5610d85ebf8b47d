"""
Visit assignment service - create, reassign, move, edit, cancel, complete and delete visits

Every write carries the lock_version the caller last observed. The backend
rejects stale writes and overlapping bookings; those rejections surface
here as StaleObjectError / DoubleBookingError and are never retried or
resolved automatically. After each successful write the affected schedule
windows are reloaded from the backend.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from .errors import ConfirmationRequiredError, IneligibleTransitionError, ValidationError
from .repository import ScheduleRepository
from .schemas import (
    ACTIONABLE_STATUSES,
    TERMINAL_STATUSES,
    DropRequest,
    Visit,
    VisitDraft,
    VisitUpdate,
    derive_status,
)

logger = logging.getLogger(__name__)

_UNSET: Any = object()

# Fields the backend requires a value for; an explicit None is not an edit
_NON_NULLABLE_FIELDS = ("scheduled_at", "duration")


def available_actions(visit: Visit) -> list[str]:
    """Actions a UI may offer for this visit"""
    actions = []
    if visit.status not in TERMINAL_STATUSES:
        actions.extend(["reassign", "move", "edit"])
    if visit.status in ACTIONABLE_STATUSES:
        actions.extend(["cancel", "complete"])
    actions.append("delete")
    return actions


class VisitAssignmentService:
    """Service layer for visit mutations against the scheduling backend"""

    def __init__(self, repo: ScheduleRepository):
        self.repo = repo
        self.client = repo.client

    async def create(self, draft: VisitDraft) -> Visit:
        missing = [name for name in ("patient_id", "scheduled_at") if getattr(draft, name) is None]
        if missing:
            raise ValidationError(f"Missing required field(s): {', '.join(missing)}")

        logger.info(f"📥 Creating visit for patient {draft.patient_id} at {draft.scheduled_at}")
        visit = await self.client.create_visit(draft.to_fields())
        await self.repo.refresh_after_write(visit.scheduled_at)
        return visit

    async def reassign(
        self, visit_id: int, staff_id: Optional[int], expected_lock_version: int
    ) -> Visit:
        """Assign the visit to staff_id, or move it to the unassigned inbox when None"""
        current = await self.repo.get_visit(visit_id)
        self._ensure_editable(current, "reassign")
        fields = {"staff_id": staff_id, "status": derive_status(staff_id, current.status)}
        logger.info(f"🔄 Reassigning visit {visit_id}: staff {current.staff_id} -> {staff_id}")
        return await self._patch(current, fields, expected_lock_version)

    async def move(
        self,
        visit_id: int,
        scheduled_at: datetime,
        expected_lock_version: int,
        staff_id: Optional[int] = _UNSET,
    ) -> Visit:
        """Change the visit's time slot, optionally together with its staff"""
        if scheduled_at is None:
            raise ValidationError("A target time is required to move a visit")
        current = await self.repo.get_visit(visit_id)
        self._ensure_editable(current, "move")

        fields: dict[str, Any] = {"scheduled_at": scheduled_at}
        if staff_id is not _UNSET:
            fields["staff_id"] = staff_id
            fields["status"] = derive_status(staff_id, current.status)
        logger.info(f"🔄 Moving visit {visit_id}: {current.scheduled_at} -> {scheduled_at}")
        return await self._patch(current, fields, expected_lock_version)

    async def drop(self, visit_id: int, request: DropRequest) -> Visit:
        """Apply the outcome of a drag gesture (target staff and/or target slot)"""
        provided = request.model_fields_set
        if "scheduled_at" in provided and request.scheduled_at is not None:
            if "staff_id" in provided:
                return await self.move(
                    visit_id, request.scheduled_at, request.lock_version, staff_id=request.staff_id
                )
            return await self.move(visit_id, request.scheduled_at, request.lock_version)
        if "staff_id" in provided:
            return await self.reassign(visit_id, request.staff_id, request.lock_version)
        raise ValidationError("A drop must target a staff member or a time slot")

    async def update(self, visit_id: int, changes: VisitUpdate, expected_lock_version: int) -> Visit:
        """
        Inline edit. Only fields that differ from the last observed visit are
        sent; when nothing differs no request is made.
        """
        current = await self.repo.get_visit(visit_id)
        requested = changes.model_dump(exclude_unset=True)
        for name in _NON_NULLABLE_FIELDS:
            if name in requested and requested[name] is None:
                raise ValidationError(f"{name} cannot be cleared")

        diff = {name: value for name, value in requested.items() if getattr(current, name) != value}
        if not diff:
            logger.debug(f"Visit {visit_id}: no changed fields, skipping update")
            return current

        if current.status in TERMINAL_STATUSES and ("staff_id" in diff or "scheduled_at" in diff):
            raise IneligibleTransitionError("reschedule", current.status)
        if "staff_id" in diff:
            diff["status"] = derive_status(diff["staff_id"], current.status)

        return await self._patch(current, diff, expected_lock_version)

    async def cancel(self, visit_id: int, expected_lock_version: int) -> Visit:
        return await self._transition(visit_id, "cancel", expected_lock_version)

    async def complete(self, visit_id: int, expected_lock_version: int) -> Visit:
        return await self._transition(visit_id, "complete", expected_lock_version)

    async def delete(
        self,
        visit_id: int,
        expected_lock_version: int,
        confirmed: bool = False,
    ) -> None:
        """Hard delete, allowed from any status; irreversible, so it must be confirmed"""
        if not confirmed:
            raise ConfirmationRequiredError()
        current = await self.repo.get_visit(visit_id)
        await self.client.delete_visit(visit_id, expected_lock_version)
        await self.repo.refresh_after_write(current.scheduled_at, visit_id=visit_id)

    async def reload_visit(self, visit_id: int) -> Visit:
        """Discard the local copy and fetch the backend's current version (after a stale write)"""
        fresh = await self.client.get_visit(visit_id)
        await self.repo.refresh_after_write(fresh.scheduled_at, visit_id=visit_id)
        logger.info(f"🔄 Visit {visit_id} reloaded at lock_version {fresh.lock_version}")
        return fresh

    # ------------------------------------------------------------------

    @staticmethod
    def _ensure_editable(visit: Visit, action: str) -> None:
        if visit.status in TERMINAL_STATUSES:
            raise IneligibleTransitionError(action, visit.status)

    async def _patch(self, current: Visit, fields: dict[str, Any], lock_version: int) -> Visit:
        updated = await self.client.update_visit(current.id, fields, lock_version)
        await self.repo.refresh_after_write(
            current.scheduled_at, updated.scheduled_at, visit_id=current.id
        )
        return updated

    async def _transition(
        self, visit_id: int, action: str, expected_lock_version: int
    ) -> Visit:
        current = await self.repo.get_visit(visit_id)
        if current.status not in ACTIONABLE_STATUSES:
            raise IneligibleTransitionError(action, current.status)

        if action == "cancel":
            visit = await self.client.cancel_visit(visit_id, expected_lock_version)
        else:
            visit = await self.client.complete_visit(visit_id, expected_lock_version)
        await self.repo.refresh_after_write(visit.scheduled_at, visit_id=visit_id)
        return visit
