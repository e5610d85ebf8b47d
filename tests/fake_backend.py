"""
In-memory stand-in for the scheduling backend

Served over httpx.ASGITransport so ScheduleApiClient talks real HTTP.
Enforces lock_version and staff/patient overlap like the real backend;
cancelled and completed visits never block a slot.
"""

import itertools
from datetime import date, datetime, timedelta, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

JST = timezone(timedelta(hours=9))

_NON_BLOCKING = ("cancelled", "completed")
_VISIT_FIELDS = (
    "patient_id",
    "staff_id",
    "scheduled_at",
    "duration",
    "status",
    "notes",
    "planning_lane_id",
    "visit_pattern_id",
)


def _dump(visit: dict) -> dict:
    return {**visit, "scheduled_at": visit["scheduled_at"].isoformat()}


def _parse(fields: dict) -> dict:
    fields = {k: v for k, v in fields.items() if k in _VISIT_FIELDS}
    if isinstance(fields.get("scheduled_at"), str):
        fields["scheduled_at"] = datetime.fromisoformat(fields["scheduled_at"])
    return fields


class FakeBackend:
    def __init__(self, tz=JST):
        self.tz = tz
        self.visits: dict[int, dict] = {}
        self.patterns: dict[int, dict] = {}
        self.groups: list[dict] = []
        self.staffs: list[dict] = []
        self.patients: list[dict] = []
        self.planning_lanes: list[dict] = []
        self.requests: list[tuple[str, str]] = []
        # Dates on which POST /visits answers 500
        self.failing_dates: set[date] = set()
        self._visit_ids = itertools.count(1)
        self._pattern_ids = itertools.count(1)
        self.app = self._build_app()

    # ------------------------------------------------------------------
    # Seeding helpers
    # ------------------------------------------------------------------

    def add_visit(self, scheduled_at: datetime, patient_id: int = 1, **fields) -> dict:
        visit_id = next(self._visit_ids)
        staff_id = fields.pop("staff_id", None)
        visit = {
            "id": visit_id,
            "patient_id": patient_id,
            "staff_id": staff_id,
            "scheduled_at": scheduled_at,
            "duration": fields.pop("duration", 60),
            "status": fields.pop("status", "scheduled" if staff_id else "unassigned"),
            "notes": fields.pop("notes", None),
            "planning_lane_id": fields.pop("planning_lane_id", None),
            "visit_pattern_id": fields.pop("visit_pattern_id", None),
            "lock_version": fields.pop("lock_version", 0),
        }
        self.visits[visit_id] = visit
        return _dump(visit)

    def add_pattern(self, patient_id: int, day_of_week: int, start_time: str = "09:00", **fields) -> dict:
        pattern_id = next(self._pattern_ids)
        pattern = {
            "id": pattern_id,
            "patient_id": patient_id,
            "day_of_week": day_of_week,
            "start_time": start_time,
            "duration": 60,
            "frequency": "weekly",
            "default_staff_id": None,
            "planning_lane_id": None,
            "active": True,
            **fields,
        }
        self.patterns[pattern_id] = pattern
        return pattern

    def calls(self, method: str) -> list[str]:
        return [path for m, path in self.requests if m == method]

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def _overlap(self, candidate: dict):
        start = candidate["scheduled_at"]
        end = start + timedelta(minutes=candidate["duration"])
        if candidate.get("status") in _NON_BLOCKING:
            return None
        for other in self.visits.values():
            if other["id"] == candidate.get("id") or other["status"] in _NON_BLOCKING:
                continue
            other_end = other["scheduled_at"] + timedelta(minutes=other["duration"])
            if not (start < other_end and other["scheduled_at"] < end):
                continue
            if candidate.get("staff_id") is not None and other["staff_id"] == candidate["staff_id"]:
                return "staff", candidate["staff_id"]
            if other["patient_id"] == candidate["patient_id"]:
                return "patient", candidate["patient_id"]
        return None

    @staticmethod
    def _double_booking(conflict):
        conflict_type, resource_id = conflict
        return JSONResponse(
            status_code=409,
            content={
                "error_type": "double_booking",
                "conflict_type": conflict_type,
                "resource_id": resource_id,
                "errors": [f"{conflict_type.capitalize()} is already booked at this time"],
            },
        )

    @staticmethod
    def _stale():
        return JSONResponse(
            status_code=409,
            content={"error_type": "stale_object", "errors": ["Visit was modified by someone else"]},
        )

    @staticmethod
    def _not_found():
        return JSONResponse(status_code=404, content={"error": "Visit not found"})

    def _check_lock(self, visit: dict, lock_version):
        if lock_version is None or int(lock_version) != visit["lock_version"]:
            return self._stale()
        return None

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    def _build_app(self) -> FastAPI:
        app = FastAPI()
        backend = self

        @app.middleware("http")
        async def record(request: Request, call_next):
            backend.requests.append((request.method, request.url.path))
            return await call_next(request)

        @app.get("/schedules/weekly")
        async def weekly(start_date: date):
            end_date = start_date + timedelta(days=6)
            days = {(start_date + timedelta(days=i)).isoformat(): [] for i in range(7)}
            for visit in sorted(backend.visits.values(), key=lambda v: v["scheduled_at"]):
                local = visit["scheduled_at"].astimezone(backend.tz).date()
                if start_date <= local <= end_date:
                    days[local.isoformat()].append(_dump(visit))
            return {"start_date": start_date.isoformat(), "end_date": end_date.isoformat(), "days": days}

        @app.get("/visits/{visit_id}")
        async def get_visit(visit_id: int):
            visit = backend.visits.get(visit_id)
            if visit is None:
                return backend._not_found()
            return _dump(visit)

        @app.post("/visits")
        async def create_visit(request: Request):
            fields = _parse((await request.json())["visit"])
            if fields.get("patient_id") is None or fields.get("scheduled_at") is None:
                return JSONResponse(status_code=422, content={"errors": ["patient_id and scheduled_at are required"]})
            if fields["scheduled_at"].astimezone(backend.tz).date() in backend.failing_dates:
                return JSONResponse(status_code=500, content={"error": "Internal Server Error"})
            candidate = {"duration": 60, "staff_id": None, "status": "unassigned", **fields}
            conflict = backend._overlap(candidate)
            if conflict:
                return backend._double_booking(conflict)
            visit = backend.add_visit(**candidate)
            return JSONResponse(status_code=201, content=visit)

        @app.patch("/visits/{visit_id}")
        async def update_visit(visit_id: int, request: Request):
            visit = backend.visits.get(visit_id)
            if visit is None:
                return backend._not_found()
            payload = (await request.json())["visit"]
            stale = backend._check_lock(visit, payload.get("lock_version"))
            if stale:
                return stale
            candidate = {**visit, **_parse(payload)}
            conflict = backend._overlap(candidate)
            if conflict:
                return backend._double_booking(conflict)
            visit.update(candidate)
            visit["lock_version"] += 1
            return _dump(visit)

        async def transition(visit_id: int, request: Request, status: str):
            visit = backend.visits.get(visit_id)
            if visit is None:
                return backend._not_found()
            stale = backend._check_lock(visit, (await request.json()).get("lock_version"))
            if stale:
                return stale
            visit["status"] = status
            visit["lock_version"] += 1
            return _dump(visit)

        @app.post("/visits/{visit_id}/cancel")
        async def cancel_visit(visit_id: int, request: Request):
            return await transition(visit_id, request, "cancelled")

        @app.post("/visits/{visit_id}/complete")
        async def complete_visit(visit_id: int, request: Request):
            return await transition(visit_id, request, "completed")

        @app.delete("/visits/{visit_id}")
        async def delete_visit(visit_id: int, lock_version: int = None):
            visit = backend.visits.get(visit_id)
            if visit is None:
                return backend._not_found()
            stale = backend._check_lock(visit, lock_version)
            if stale:
                return stale
            del backend.visits[visit_id]
            return Response(status_code=204)

        @app.get("/visit_patterns")
        async def list_patterns():
            return list(backend.patterns.values())

        @app.post("/visit_patterns")
        async def create_pattern(request: Request):
            fields = (await request.json())["visit_pattern"]
            pattern = backend.add_pattern(**fields)
            return JSONResponse(status_code=201, content=pattern)

        @app.patch("/visit_patterns/{pattern_id}")
        async def update_pattern(pattern_id: int, request: Request):
            pattern = backend.patterns.get(pattern_id)
            if pattern is None:
                return JSONResponse(status_code=404, content={"error": "Pattern not found"})
            pattern.update((await request.json())["visit_pattern"])
            return pattern

        @app.delete("/visit_patterns/{pattern_id}")
        async def delete_pattern(pattern_id: int):
            if backend.patterns.pop(pattern_id, None) is None:
                return JSONResponse(status_code=404, content={"error": "Pattern not found"})
            return Response(status_code=204)

        @app.get("/groups")
        async def list_groups():
            return backend.groups

        @app.get("/staffs")
        async def list_staffs(status: str = None):
            return [s for s in backend.staffs if status is None or s.get("status", "active") == status]

        @app.get("/patients")
        async def list_patients(status: str = None):
            return [p for p in backend.patients if status is None or p.get("status", "active") == status]

        @app.get("/planning_lanes")
        async def list_planning_lanes():
            return backend.planning_lanes

        return app
