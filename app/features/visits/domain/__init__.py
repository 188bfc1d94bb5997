"""
Domain subpackage for the visit scheduling feature.
"""

from .models import ResolvedTime, Visit, VisitStatus, derive_idempotency_key
from .occurrence import format_when_text, next_occurrence, resolve_visit_time, to_utc_iso
from .time_labels import (
    DEFAULT_TIME_OF_DAY,
    ClockTime,
    LabelResolutionError,
    ParsedLabel,
    Weekday,
    resolve_label,
)

__all__ = [
    "DEFAULT_TIME_OF_DAY",
    "ClockTime",
    "LabelResolutionError",
    "ParsedLabel",
    "ResolvedTime",
    "Visit",
    "VisitStatus",
    "Weekday",
    "derive_idempotency_key",
    "format_when_text",
    "next_occurrence",
    "resolve_label",
    "resolve_visit_time",
    "to_utc_iso",
]
