"""
Scheduling backend client
Thin async wrapper over the REST backend that owns visits, patterns and reference data.
Every non-2xx answer is turned into a classified SchedulingError.
"""
import logging
from datetime import date, datetime
from typing import Any, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from ..config import SCHEDULE_API_TIMEOUT, SCHEDULE_API_TOKEN, SCHEDULE_API_URL
from ..domain.scheduling.conflicts import error_from_response, error_from_transport
from ..domain.scheduling.errors import NetworkError
from ..domain.scheduling.schemas import Visit, VisitPattern, WeeklySchedule

logger = logging.getLogger(__name__)


def _visit_from_json(data: dict[str, Any]) -> Visit:
    # Older backends only expose the assignee as user_id
    if "staff_id" not in data and "user_id" in data:
        data = {**data, "staff_id": data["user_id"]}
    try:
        return Visit.model_validate(data)
    except PydanticValidationError as e:
        logger.error(f"❌ Unexpected visit payload from backend: {e}")
        raise NetworkError("The scheduling backend returned an invalid visit.", detail=str(e)) from e


def _encode(fields: dict[str, Any]) -> dict[str, Any]:
    return {
        key: value.isoformat() if isinstance(value, (date, datetime)) else value
        for key, value in fields.items()
    }


class ScheduleApiClient:
    """Client for the scheduling backend REST API"""

    def __init__(
        self,
        base_url: str = SCHEDULE_API_URL,
        token: Optional[str] = SCHEDULE_API_TOKEN,
        timeout: float = SCHEDULE_API_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url, headers=headers, timeout=timeout, transport=transport
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise error_from_transport(e) from e

        if response.is_error:
            raise error_from_response(response)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"❌ Non-JSON answer from backend for {method} {path}: {response.text[:200]}")
            raise NetworkError("The scheduling backend returned an unreadable response.", detail=str(e)) from e

    # ------------------------------------------------------------------
    # Visits
    # ------------------------------------------------------------------

    async def fetch_weekly_schedule(self, start_date: date) -> WeeklySchedule:
        """Visits of the 7-day window starting at start_date, keyed by date"""
        data = await self._request(
            "GET", "/schedules/weekly", params={"start_date": start_date.isoformat()}
        )
        days = {
            date.fromisoformat(day): [_visit_from_json(v) for v in visits]
            for day, visits in (data.get("days") or {}).items()
        }
        return WeeklySchedule(
            start_date=date.fromisoformat(data["start_date"]),
            end_date=date.fromisoformat(data["end_date"]),
            days=days,
        )

    async def get_visit(self, visit_id: int) -> Visit:
        data = await self._request("GET", f"/visits/{visit_id}")
        return _visit_from_json(data)

    async def create_visit(self, fields: dict[str, Any]) -> Visit:
        data = await self._request("POST", "/visits", json={"visit": _encode(fields)})
        logger.info(f"✅ Visit {data.get('id')} created")
        return _visit_from_json(data)

    async def update_visit(self, visit_id: int, fields: dict[str, Any], lock_version: int) -> Visit:
        """PATCH only the given fields, guarded by the expected lock_version"""
        payload = {**_encode(fields), "lock_version": lock_version}
        data = await self._request("PATCH", f"/visits/{visit_id}", json={"visit": payload})
        logger.info(f"✅ Visit {visit_id} updated ({', '.join(sorted(fields))})")
        return _visit_from_json(data)

    async def cancel_visit(self, visit_id: int, lock_version: int) -> Visit:
        data = await self._request(
            "POST", f"/visits/{visit_id}/cancel", json={"lock_version": lock_version}
        )
        logger.info(f"✅ Visit {visit_id} cancelled")
        return _visit_from_json(data)

    async def complete_visit(self, visit_id: int, lock_version: int) -> Visit:
        data = await self._request(
            "POST", f"/visits/{visit_id}/complete", json={"lock_version": lock_version}
        )
        logger.info(f"✅ Visit {visit_id} completed")
        return _visit_from_json(data)

    async def delete_visit(self, visit_id: int, lock_version: int) -> None:
        await self._request(
            "DELETE", f"/visits/{visit_id}", params={"lock_version": lock_version}
        )
        logger.info(f"🗑️ Visit {visit_id} deleted")

    # ------------------------------------------------------------------
    # Visit patterns
    # ------------------------------------------------------------------

    async def list_patterns(self) -> list[VisitPattern]:
        data = await self._request("GET", "/visit_patterns")
        return [VisitPattern.model_validate(p) for p in data or []]

    async def create_pattern(self, fields: dict[str, Any]) -> VisitPattern:
        data = await self._request("POST", "/visit_patterns", json={"visit_pattern": _encode(fields)})
        return VisitPattern.model_validate(data)

    async def update_pattern(self, pattern_id: int, fields: dict[str, Any]) -> VisitPattern:
        data = await self._request(
            "PATCH", f"/visit_patterns/{pattern_id}", json={"visit_pattern": _encode(fields)}
        )
        return VisitPattern.model_validate(data)

    async def delete_pattern(self, pattern_id: int) -> None:
        await self._request("DELETE", f"/visit_patterns/{pattern_id}")

    # ------------------------------------------------------------------
    # Reference data (raw JSON so callers can cache it as-is)
    # ------------------------------------------------------------------

    async def list_groups(self) -> list[dict[str, Any]]:
        return await self._request("GET", "/groups") or []

    async def list_staffs(self, status: Optional[str] = None) -> list[dict[str, Any]]:
        params = {"status": status} if status else None
        return await self._request("GET", "/staffs", params=params) or []

    async def list_patients(self, status: Optional[str] = None) -> list[dict[str, Any]]:
        params = {"status": status} if status else None
        return await self._request("GET", "/patients", params=params) or []

    async def list_planning_lanes(self) -> list[dict[str, Any]]:
        return await self._request("GET", "/planning_lanes") or []

