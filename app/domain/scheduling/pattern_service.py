"""Visit pattern service - pattern CRUD and generation of visits from patterns"""

import logging
from datetime import date, tzinfo

from ...config import GENERATE_MAX_DAYS
from .errors import SchedulingError, ValidationError
from .pattern_expander import expand_patterns
from .repository import ScheduleRepository
from .schemas import (
    GenerateRequest,
    GenerationFailure,
    GenerationReport,
    VisitPattern,
    VisitPatternCreate,
    VisitPatternUpdate,
)

logger = logging.getLogger(__name__)


class PatternService:
    """Service layer for recurring visit patterns"""

    def __init__(self, repo: ScheduleRepository, max_days: int = GENERATE_MAX_DAYS):
        self.repo = repo
        self.client = repo.client
        self.max_days = max_days

    @property
    def tz(self) -> tzinfo:
        return self.repo.tz

    async def list_patterns(self) -> list[VisitPattern]:
        patterns = await self.client.list_patterns()
        return sorted(patterns, key=lambda p: (p.day_of_week, p.start_time, p.id))

    async def create_pattern(self, data: VisitPatternCreate) -> VisitPattern:
        pattern = await self.client.create_pattern(data.model_dump())
        logger.info(f"✅ Pattern {pattern.id} created for patient {pattern.patient_id}")
        return pattern

    async def update_pattern(self, pattern_id: int, data: VisitPatternUpdate) -> VisitPattern:
        # Already generated visits are independent copies and stay untouched
        return await self.client.update_pattern(pattern_id, data.model_dump(exclude_unset=True))

    async def delete_pattern(self, pattern_id: int) -> None:
        await self.client.delete_pattern(pattern_id)
        logger.info(f"🗑️ Pattern {pattern_id} deleted")

    async def occupied_dates(self, start_date: date, end_date: date) -> set[date]:
        """Dates in range that already hold at least one visit of any kind"""
        occupied = set()
        for window in await self.repo.load_range(start_date, end_date, force=True):
            for day, visits in window.days.items():
                if visits and start_date <= day <= end_date:
                    occupied.add(day)
        return occupied

    async def generate(self, request: GenerateRequest) -> GenerationReport:
        """
        Create visits from all active patterns for the selected weekdays.

        A day that already has a visit is skipped. Creation failures are
        recorded per date and never stop the rest of the batch.
        """
        if request.end_date < request.start_date:
            raise ValidationError("end_date must not be before start_date")
        if (request.end_date - request.start_date).days > self.max_days:
            raise ValidationError(f"The generation period is limited to {self.max_days} days")

        report = GenerationReport()
        if not request.day_of_weeks:
            return report

        patterns = await self.client.list_patterns()
        occupied = await self.occupied_dates(request.start_date, request.end_date)
        requests, skipped = expand_patterns(
            patterns,
            request.start_date,
            request.end_date,
            set(request.day_of_weeks),
            occupied,
            self.tz,
        )
        report.requested = len(requests)
        report.skipped_dates = skipped
        logger.info(
            f"📅 Generating {len(requests)} visits for {request.start_date}..{request.end_date} "
            f"(days={request.day_of_weeks}, skipped {len(skipped)} occupied dates)"
        )

        for item in requests:
            try:
                visit = await self.client.create_visit(item.to_draft().to_fields())
            except SchedulingError as e:
                logger.warning(
                    f"⚠️ Pattern {item.pattern_id} on {item.visit_date} not created: {e.kind} - {e.message}"
                )
                report.failures.append(
                    GenerationFailure(
                        visit_date=item.visit_date,
                        pattern_id=item.pattern_id,
                        error_type=e.kind,
                        message=e.message,
                    )
                )
                continue
            report.created.append(visit)

        if report.created:
            await self.repo.refresh_after_write(*(v.scheduled_at for v in report.created))
        logger.info(f"✅ Generated {len(report.created)} visits, {len(report.failures)} failed")
        return report
