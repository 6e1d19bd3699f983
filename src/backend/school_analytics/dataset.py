from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Iterator, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .config import AnalyticsConfig
from .models import (
    ActivityLogRecord,
    DemographicRecord,
    EnrollmentRecord,
    FeedbackRecord,
    OrganizationCredit,
    SchoolRows,
    WorkshopRecord,
)

logger = logging.getLogger(__name__)


def _coerce_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        logger.warning("Unknown timezone %r, falling back to UTC", name)
        return ZoneInfo("UTC")


def _normalize_datetime(value: Any, tz: ZoneInfo) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def local_year(value: datetime, timezone_name: str) -> int:
    return _normalize_datetime(value, _coerce_timezone(timezone_name)).year


@dataclass
class AnalyticsDataset:
    """
    Read-only view over the row sets of one organization.

    Collections are copied into tuples on construction so no metric can
    mutate what the caller passed in.
    """

    enrollments: Sequence[EnrollmentRecord]
    workshops: Sequence[WorkshopRecord]
    feedback: Sequence[FeedbackRecord]
    demographics: Sequence[DemographicRecord]
    activity_logs: Sequence[ActivityLogRecord]
    credit_totals: Sequence[OrganizationCredit]
    config: AnalyticsConfig
    workshop_feedback: Optional[Sequence[FeedbackRecord]] = None

    def __post_init__(self) -> None:
        self.enrollments = tuple(self.enrollments or ())
        self.workshops = tuple(self.workshops or ())
        self.feedback = tuple(self.feedback or ())
        self.demographics = tuple(self.demographics or ())
        self.activity_logs = tuple(self.activity_logs or ())
        self.credit_totals = tuple(self.credit_totals or ())
        if self.workshop_feedback is not None:
            self.workshop_feedback = tuple(self.workshop_feedback)
        self.tz = _coerce_timezone(self.config.timezone)

    @classmethod
    def from_rows(cls, rows: SchoolRows, config: Optional[AnalyticsConfig] = None) -> "AnalyticsDataset":
        return cls(
            enrollments=rows.enrollments or (),
            workshops=rows.workshops or (),
            feedback=rows.feedback or (),
            demographics=rows.demographics or (),
            activity_logs=rows.activity_logs or (),
            credit_totals=rows.credit_totals or (),
            config=config or AnalyticsConfig(),
            workshop_feedback=rows.workshop_feedback,
        )

    def localize(self, value: Any) -> Optional[datetime]:
        return _normalize_datetime(value, self.tz)

    def month_index(self, value: Any) -> Optional[int]:
        """Zero-based calendar month of ``value`` in the configured timezone."""

        localized = self.localize(value)
        if localized is None:
            return None
        return localized.month - 1

    def workshop_duration(self, enrollment: EnrollmentRecord) -> float:
        default = self.config.default_workshop_duration
        try:
            duration = float(enrollment.workshop_duration or 0)
        except (TypeError, ValueError):
            return default
        return duration if duration > 0 else default

    def is_completed(self, enrollment: EnrollmentRecord) -> bool:
        if enrollment.attended_flag:
            return True
        threshold = self.config.completion_threshold * self.workshop_duration(enrollment)
        return (enrollment.attended_minutes or 0) >= threshold

    def is_attended(self, enrollment: EnrollmentRecord) -> bool:
        return self.is_completed(enrollment) or (enrollment.attended_minutes or 0) > 0

    def iter_enrollments(self) -> Iterator[Tuple[EnrollmentRecord, bool, bool]]:
        """
        Yield ``(enrollment, completed, attended)`` for every enrollment.
        """

        for enrollment in self.enrollments:
            completed = self.is_completed(enrollment)
            attended = completed or (enrollment.attended_minutes or 0) > 0
            yield enrollment, completed, attended

    def logins_in_year(self, year: int) -> Iterator[Tuple[ActivityLogRecord, datetime]]:
        for log in self.activity_logs:
            login = self.localize(log.login)
            if login is None or login.year != year:
                continue
            yield log, login

    def total_teachers(self) -> int:
        return sum(int(row.count or 0) for row in self.demographics)

    def workshop_ids(self) -> set:
        return {workshop.id for workshop in self.workshops}

    def catalog_feedback(self) -> Tuple[FeedbackRecord, ...]:
        """Ratings left on the school's workshops.

        Uses ``workshop_feedback`` when the caller supplied it, otherwise the
        school's own feedback restricted to workshops in the catalog.
        """
        if self.workshop_feedback is not None:
            return self.workshop_feedback
        workshop_ids = self.workshop_ids()
        return tuple(row for row in self.feedback if row.workshop_id in workshop_ids)
