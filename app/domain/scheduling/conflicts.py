"""
Conflict classification for failed backend writes

409 responses are inspected for a double-booking marker first, then for a
version-mismatch marker; anything else on 409 is a generic conflict.
Other 4xx are validation failures, 5xx and transport errors are network
failures. Nothing here resolves a conflict - it only names it.
"""

import logging
from typing import Any, Optional

import httpx

from .errors import (
    DOUBLE_BOOKING,
    GENERIC_CONFLICT,
    NETWORK,
    STALE_OBJECT,
    VALIDATION,
    DoubleBookingError,
    GenericConflictError,
    NetworkError,
    SchedulingError,
    StaleObjectError,
    ValidationError,
    VisitNotFoundError,
)

logger = logging.getLogger(__name__)

DOUBLE_BOOKING_MARKERS = {"double_booking", "staff_double_booking", "patient_double_booking"}
STALE_OBJECT_MARKERS = {"stale_object", "version_mismatch", "concurrent_modification"}


def classify(status_code: int, body: Any = None) -> str:
    """Map a status code and (decoded) response body to a conflict kind"""
    if status_code == 409:
        if _has_double_booking_marker(body):
            return DOUBLE_BOOKING
        if _has_stale_marker(body):
            return STALE_OBJECT
        return GENERIC_CONFLICT
    if 400 <= status_code < 500:
        return VALIDATION
    return NETWORK


def _has_double_booking_marker(body: Any) -> bool:
    if not isinstance(body, dict):
        return False
    return body.get("error_type") in DOUBLE_BOOKING_MARKERS or bool(body.get("conflict_type"))


def _has_stale_marker(body: Any) -> bool:
    if not isinstance(body, dict):
        return False
    return body.get("error_type") in STALE_OBJECT_MARKERS


def _first_message(body: Any) -> Optional[str]:
    if not isinstance(body, dict):
        return None
    errors = body.get("errors")
    if isinstance(errors, list) and errors:
        return str(errors[0])
    for key in ("error", "message", "detail"):
        if isinstance(body.get(key), str):
            return body[key]
    return None


def error_from_response(response: httpx.Response) -> SchedulingError:
    """Build the classified error for a non-2xx backend response"""
    try:
        body = response.json()
    except ValueError:
        body = None

    kind = classify(response.status_code, body)
    message = _first_message(body)

    if kind == DOUBLE_BOOKING:
        conflict_type = body.get("conflict_type")
        if not conflict_type and body.get("error_type") == "patient_double_booking":
            conflict_type = "patient"
        logger.warning(f"⚠️ Double booking rejected by backend ({conflict_type or 'staff'})")
        return DoubleBookingError(
            message,
            conflict_type=conflict_type,
            resource_id=body.get("resource_id"),
            detail=body,
        )
    if kind == STALE_OBJECT:
        logger.warning("⚠️ Stale lock_version rejected by backend")
        return StaleObjectError(message, detail=body)
    if kind == GENERIC_CONFLICT:
        logger.warning(f"⚠️ Unclassified conflict from backend: {body}")
        return GenericConflictError(message, detail=body)
    if kind == VALIDATION:
        if response.status_code == 404:
            return VisitNotFoundError(message, detail=body)
        return ValidationError(message, status_code=response.status_code, detail=body)

    logger.error(f"❌ Backend error {response.status_code}: {response.text[:500]}")
    return NetworkError(message, detail=body)


def error_from_transport(exc: httpx.HTTPError) -> NetworkError:
    """Wrap a transport-level httpx failure (timeout, connection refused, ...)"""
    logger.error(f"❌ Scheduling backend unreachable: {exc!r}")
    return NetworkError(detail=str(exc))
