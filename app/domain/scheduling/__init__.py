"""
Scheduling Domain

Weekly visit board for home-visit nursing: group hierarchy, assignment and
rescheduling of visits, conflict classification, recurring-pattern
generation and filtered views.

The scheduling backend is canonical for visits and patterns; this domain
holds a per-week cache of its answers and never resolves a conflict on its
own (double bookings and stale writes are reported back to the caller).

Structure:
- schemas.py             # Visit, pattern, reference and view models
- errors.py              # SchedulingError hierarchy
- conflicts.py           # Backend error response classification
- hierarchy.py           # Office > team index and member buckets
- views.py               # Pure view derivation (inbox split, filters)
- pattern_expander.py    # Pattern -> visit-creation requests
- repository.py          # Weekly window cache + cached reference data
- assignment_service.py  # Visit mutations
- pattern_service.py     # Pattern CRUD and visit generation
- filters.py             # Persisted ScheduleFilters
- router.py              # /schedule endpoints
"""
