from __future__ import annotations

import calendar
import logging
import math
from collections import defaultdict
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Sequence

from .config import AnalyticsConfig
from .dataset import AnalyticsDataset, local_year
from .exceptions import SchoolNotFoundError
from .models import (
    ActivityLogRecord,
    CategoryBucket,
    CreditTrendPoint,
    DashboardCharts,
    DemographicRecord,
    EnrollmentRecord,
    FeedbackRecord,
    MonthlyActivityPoint,
    NamedCount,
    OrganizationCredit,
    SchoolAnalyticsResult,
    SchoolRecord,
    SchoolRows,
    SchoolStats,
    StatusDistribution,
    TeacherLeaderboardRow,
    WorkshopAttendance,
    WorkshopRecord,
    WorkshopSummary,
)
from .ranking import rank_school
from .repository import SchoolAnalyticsRepository

logger = logging.getLogger(__name__)

MONTH_LABELS = tuple(calendar.month_abbr[month] for month in range(1, 13))
RATING_STARS = (5, 4, 3, 2, 1)
DEFAULT_CATEGORY = "General"
DEFAULT_DESIGNATION = "Other"
WORKSHOP_ACTIVE = 1
WORKSHOP_UPCOMING = 2


def _round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def _round_rating(value: float) -> float:
    # Decimal(float) is exact, so 4.35 (stored as 4.3499...) stays 4.3 and 4.25 goes to 4.3
    return float(Decimal(value).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


class SchoolAnalyticsService:
    """
    Aggregates the learning analytics document of a single school.

    The service only reads the rows it was built with; calling ``build`` for
    different schools from different threads is safe.
    """

    def __init__(
        self,
        enrollments: Optional[Sequence[EnrollmentRecord]] = None,
        workshops: Optional[Sequence[WorkshopRecord]] = None,
        feedback: Optional[Sequence[FeedbackRecord]] = None,
        demographics: Optional[Sequence[DemographicRecord]] = None,
        activity_logs: Optional[Sequence[ActivityLogRecord]] = None,
        credit_totals: Optional[Sequence[OrganizationCredit]] = None,
        config: Optional[AnalyticsConfig] = None,
        workshop_feedback: Optional[Sequence[FeedbackRecord]] = None,
    ) -> None:
        self.config = config or AnalyticsConfig()
        self.dataset = AnalyticsDataset(
            enrollments=enrollments or (),
            workshops=workshops or (),
            feedback=feedback or (),
            demographics=demographics or (),
            activity_logs=activity_logs or (),
            credit_totals=credit_totals or (),
            config=self.config,
            workshop_feedback=workshop_feedback,
        )

    @classmethod
    def from_rows(cls, rows: SchoolRows, config: Optional[AnalyticsConfig] = None) -> "SchoolAnalyticsService":
        return cls(
            enrollments=rows.enrollments,
            workshops=rows.workshops,
            feedback=rows.feedback,
            demographics=rows.demographics,
            activity_logs=rows.activity_logs,
            credit_totals=rows.credit_totals,
            config=config,
            workshop_feedback=rows.workshop_feedback,
        )

    def build(
        self,
        school: SchoolRecord,
        now: Optional[datetime] = None,
        year: Optional[int] = None,
    ) -> SchoolAnalyticsResult:
        """
        ``now`` decides which workshops are upcoming; ``year`` selects the login
        events of the monthly activity chart and defaults to the configured
        activity year, then to the year of ``now``.
        """

        now = self.dataset.localize(now or datetime.now(timezone.utc))
        year = year or self.config.activity_year or now.year

        stats = self._build_stats(school)
        charts = DashboardCharts(
            monthly_activity=self._monthly_activity(year),
            cpd_trend=self._cpd_trend(),
            category_distribution=self._category_distribution(),
            top_workshops=self._top_workshops(),
            demographics=self._demographics(),
            rating_distribution=self._rating_distribution(),
        )
        result = SchoolAnalyticsResult(
            school=school,
            stats=stats,
            workshops=self._workshop_summaries(now),
            charts=charts,
            top_teachers=self._top_teachers(),
        )
        logger.debug(
            "Built analytics for school %s: %d enrollments, rank %d/%d",
            school.id,
            stats.total_enrollments,
            stats.rank,
            stats.total_schools,
        )
        return result

    def _build_stats(self, school: SchoolRecord) -> SchoolStats:
        total_teachers = self.dataset.total_teachers()
        total_enrollments = len(self.dataset.enrollments)

        active_learners = set()
        total_cpd = 0.0
        attended_count = 0
        total_minutes = 0.0
        joined_minutes = 0.0
        for enrollment, completed, attended in self.dataset.iter_enrollments():
            minutes = enrollment.attended_minutes or 0
            total_minutes += minutes
            if not attended:
                continue
            active_learners.add(enrollment.learner_id)
            attended_count += 1
            joined_minutes += minutes
            if completed:
                total_cpd += enrollment.earned_credit or 0

        avg_rating = self._average_rating()
        rank, total_schools = rank_school(school.id, total_cpd, self.dataset.credit_totals)

        return SchoolStats(
            total_teachers=total_teachers,
            active_learners=len(active_learners),
            total_enrollments=total_enrollments,
            completion_rate=self._completion_rate(len(active_learners), total_teachers, avg_rating),
            total_cpd_earned=int(_round_half_up(total_cpd)),
            avg_cpd_per_teacher=_round_half_up(_ratio(total_cpd, total_teachers), 1),
            certificates_issued=attended_count,
            engagement_rate=int(_round_half_up(_ratio(attended_count, total_enrollments) * 100)),
            total_learning_hours=int(_round_half_up(total_minutes / 60)),
            total_workshops=len(self.dataset.workshops),
            avg_join_time=int(_round_half_up(_ratio(joined_minutes, attended_count))),
            avg_rating="N/A" if avg_rating is None else f"{avg_rating:.1f}",
            total_feedback=len(self.dataset.feedback),
            status_distribution=StatusDistribution(
                attended=attended_count,
                enrolled=total_enrollments - attended_count,
            ),
            rank=rank,
            total_schools=total_schools,
        )

    def _average_rating(self) -> Optional[float]:
        ratings = [row.rating for row in self.dataset.feedback if row.rating is not None]
        if not ratings:
            return None
        return _round_rating(sum(ratings) / len(ratings))

    @staticmethod
    def _completion_rate(active_learners: int, total_teachers: int, avg_rating: Optional[float]) -> int:
        """
        Composite health score: participation (active / teachers) averaged with
        quality (rating / 5) when feedback exists, otherwise participation only.
        """

        active_ratio = _ratio(active_learners, total_teachers)
        rating_ratio = avg_rating / 5 if avg_rating else 0.0
        if rating_ratio > 0:
            score = _round_half_up((active_ratio + rating_ratio) / 2 * 100)
        else:
            score = _round_half_up(active_ratio * 100)
        return int(min(max(score, 0), 100))

    def _monthly_activity(self, year: int) -> List[MonthlyActivityPoint]:
        buckets = [0] * 12
        logins = list(self.dataset.logins_in_year(year))
        if logins:
            for _, login in logins:
                buckets[login.month - 1] += 1
        else:
            # No login telemetry for the year; enrollment dates stand in.
            for enrollment in self.dataset.enrollments:
                month = self.dataset.month_index(enrollment.created_at)
                if month is not None:
                    buckets[month] += 1
        return [
            MonthlyActivityPoint(name=MONTH_LABELS[index], visits=count)
            for index, count in enumerate(buckets)
        ]

    def _cpd_trend(self) -> List[CreditTrendPoint]:
        monthly = [0.0] * 12
        for enrollment, completed, _ in self.dataset.iter_enrollments():
            if not completed:
                continue
            month = self.dataset.month_index(enrollment.workshop_start_date)
            if month is None:
                continue
            monthly[month] += enrollment.earned_credit or 0

        points: List[CreditTrendPoint] = []
        cumulative = 0.0
        for index, credit in enumerate(monthly):
            cumulative += credit
            points.append(CreditTrendPoint(name=MONTH_LABELS[index], monthly=credit, cpd=cumulative))
        return points

    def _category_distribution(self) -> List[CategoryBucket]:
        stats: Dict[str, Dict[str, int]] = {}
        for enrollment, completed, _ in self.dataset.iter_enrollments():
            name = enrollment.category or DEFAULT_CATEGORY
            bucket = stats.setdefault(name, {"count": 0, "completed": 0})
            bucket["count"] += 1
            if completed:
                bucket["completed"] += 1
        return [
            CategoryBucket(name=name, count=values["count"], completed=values["completed"])
            for name, values in stats.items()
        ]

    def _top_workshops(self) -> List[WorkshopAttendance]:
        catalog = {workshop.id: workshop.name for workshop in self.dataset.workshops}
        names: Dict[str, Optional[str]] = {}
        attendees: Dict[str, int] = {}
        for enrollment, _, attended in self.dataset.iter_enrollments():
            if enrollment.workshop_id not in attendees:
                attendees[enrollment.workshop_id] = 0
                names[enrollment.workshop_id] = enrollment.workshop_name or catalog.get(enrollment.workshop_id)
            if attended:
                attendees[enrollment.workshop_id] += 1

        rows = [
            WorkshopAttendance(name=names.get(workshop_id), attendees=count)
            for workshop_id, count in attendees.items()
        ]
        return sorted(rows, key=lambda row: row.attendees, reverse=True)[: self.config.top_n]

    def _top_teachers(self) -> List[TeacherLeaderboardRow]:
        stats: Dict[str, Dict[str, float]] = defaultdict(lambda: {"completed": 0, "attended": 0, "cpd": 0.0})
        names: Dict[str, Optional[str]] = {}
        for enrollment, completed, _ in self.dataset.iter_enrollments():
            learner = stats[enrollment.learner_id]
            names.setdefault(enrollment.learner_id, enrollment.learner_name)
            if completed:
                learner["completed"] += 1
                learner["cpd"] += enrollment.earned_credit or 0
            if (enrollment.attended_minutes or 0) > 0:
                learner["attended"] += 1

        rows = [
            TeacherLeaderboardRow(
                name=names.get(learner_id),
                completed=int(values["completed"]),
                attended=int(values["attended"]),
                cpd=values["cpd"],
            )
            for learner_id, values in stats.items()
        ]
        return sorted(rows, key=lambda row: row.cpd, reverse=True)[: self.config.top_n]

    def _demographics(self) -> List[NamedCount]:
        rows = [
            NamedCount(name=row.designation or DEFAULT_DESIGNATION, count=int(row.count or 0))
            for row in self.dataset.demographics
        ]
        return sorted(rows, key=lambda row: row.count, reverse=True)[: self.config.top_n]

    def _rating_distribution(self) -> List[NamedCount]:
        counts: Dict[int, int] = defaultdict(int)
        for row in self.dataset.catalog_feedback():
            counts[row.rating] += 1
        return [NamedCount(name=f"{star} Star", count=counts.get(star, 0)) for star in RATING_STARS]

    def _workshop_summaries(self, now: datetime) -> List[WorkshopSummary]:
        credit_by_workshop: Dict[str, float] = defaultdict(float)
        for enrollment in self.dataset.enrollments:
            if (enrollment.earned_credit or 0) > 0:
                credit_by_workshop[enrollment.workshop_id] += enrollment.earned_credit

        summaries: List[WorkshopSummary] = []
        for workshop in self.dataset.workshops:
            start = self.dataset.localize(workshop.start_date)
            status = WORKSHOP_UPCOMING if start is not None and start > now else WORKSHOP_ACTIVE
            summaries.append(
                WorkshopSummary(
                    workshop=workshop,
                    total_school_cpd=credit_by_workshop.get(workshop.id, 0.0),
                    status=status,
                )
            )
        return summaries


def fetch_school_analytics(
    repository: SchoolAnalyticsRepository,
    school_id: str,
    config: Optional[AnalyticsConfig] = None,
    now: Optional[datetime] = None,
) -> Optional[SchoolAnalyticsResult]:
    """
    Load the rows of ``school_id`` and aggregate them.

    Returns ``None`` when the school does not exist. Retrieval failures
    propagate as ``AnalyticsRetrievalError`` from the repository.
    """

    config = config or AnalyticsConfig()
    school = repository.load_school(school_id)
    if school is None:
        logger.info("School %s not found", school_id)
        return None

    evaluated_at = now or datetime.now(timezone.utc)
    year = config.activity_year or local_year(evaluated_at, config.timezone)
    rows = repository.load_rows(school.id, year)
    rows = SchoolRows(
        enrollments=rows.enrollments,
        workshops=rows.workshops,
        feedback=rows.feedback,
        demographics=rows.demographics,
        activity_logs=rows.activity_logs,
        credit_totals=repository.load_credit_totals(),
        workshop_feedback=rows.workshop_feedback,
    )
    return SchoolAnalyticsService.from_rows(rows, config=config).build(school, now=evaluated_at, year=year)


def require_school_analytics(
    repository: SchoolAnalyticsRepository,
    school_id: str,
    config: Optional[AnalyticsConfig] = None,
    now: Optional[datetime] = None,
) -> SchoolAnalyticsResult:
    result = fetch_school_analytics(repository, school_id, config=config, now=now)
    if result is None:
        raise SchoolNotFoundError(school_id)
    return result
