from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, Optional, Sequence


@dataclass(frozen=True)
class SchoolRecord:
    id: str
    name: str
    email: Optional[str] = None
    mobile: Optional[str] = None
    is_active: bool = True


@dataclass(frozen=True)
class EnrollmentRecord:
    """
    One payment/enrollment row of a learner in a workshop.

    ``workshop_duration`` and ``workshop_start_date`` are denormalised from the
    workshop so every metric can be derived from the enrollment alone.
    Completion is never stored here, see ``AnalyticsDataset.is_completed``.
    """

    learner_id: str
    workshop_id: str
    attended_flag: bool = False
    attended_minutes: float = 0.0
    earned_credit: float = 0.0
    created_at: Optional[datetime] = None
    workshop_duration: Optional[float] = None
    workshop_start_date: Optional[datetime] = None
    category: Optional[str] = None
    learner_name: Optional[str] = None
    workshop_name: Optional[str] = None
    payment_status: Optional[str] = None


@dataclass(frozen=True)
class WorkshopRecord:
    id: str
    name: str
    duration: Optional[float] = None
    start_date: Optional[datetime] = None
    category: Optional[str] = None
    category_id: Optional[str] = None
    image: Optional[str] = None
    credit: float = 0.0


@dataclass(frozen=True)
class FeedbackRecord:
    rating: int
    workshop_id: str
    learner_id: Optional[str] = None


@dataclass(frozen=True)
class DemographicRecord:
    """Users of one organization grouped by designation."""

    designation: Optional[str]
    count: int


@dataclass(frozen=True)
class ActivityLogRecord:
    learner_id: str
    login: datetime
    duration_attended: float = 0.0


@dataclass(frozen=True)
class OrganizationCredit:
    organization_id: str
    total_earned_credit: float


@dataclass(frozen=True)
class SchoolRows:
    """
    Raw row sets fetched for one organization.

    ``None`` is accepted for any collection and read as "no rows"; the
    retrieval layer may legitimately come back empty-handed for some tables.
    """

    enrollments: Optional[Sequence[EnrollmentRecord]] = None
    workshops: Optional[Sequence[WorkshopRecord]] = None
    feedback: Optional[Sequence[FeedbackRecord]] = None
    demographics: Optional[Sequence[DemographicRecord]] = None
    activity_logs: Optional[Sequence[ActivityLogRecord]] = None
    credit_totals: Optional[Sequence[OrganizationCredit]] = None
    # every rating left on the school's workshops, whoever wrote it;
    # None means "derive from feedback restricted to the catalog"
    workshop_feedback: Optional[Sequence[FeedbackRecord]] = None


@dataclass(frozen=True)
class StatusDistribution:
    attended: int
    enrolled: int


@dataclass(frozen=True)
class SchoolStats:
    total_teachers: int
    active_learners: int
    total_enrollments: int
    completion_rate: int
    total_cpd_earned: int
    avg_cpd_per_teacher: float
    certificates_issued: int
    engagement_rate: int
    total_learning_hours: int
    total_workshops: int
    avg_join_time: int
    avg_rating: str
    total_feedback: int
    status_distribution: StatusDistribution
    rank: int
    total_schools: int


@dataclass(frozen=True)
class MonthlyActivityPoint:
    name: str
    visits: int


@dataclass(frozen=True)
class CreditTrendPoint:
    name: str
    monthly: float
    cpd: float


@dataclass(frozen=True)
class CategoryBucket:
    name: str
    count: int
    completed: int


@dataclass(frozen=True)
class WorkshopAttendance:
    name: Optional[str]
    attendees: int


@dataclass(frozen=True)
class NamedCount:
    name: str
    count: int


@dataclass(frozen=True)
class TeacherLeaderboardRow:
    name: Optional[str]
    completed: int
    attended: int
    cpd: float


@dataclass(frozen=True)
class WorkshopSummary:
    workshop: WorkshopRecord
    total_school_cpd: float
    status: int


@dataclass(frozen=True)
class DashboardCharts:
    monthly_activity: Sequence[MonthlyActivityPoint] = field(default_factory=list)
    cpd_trend: Sequence[CreditTrendPoint] = field(default_factory=list)
    category_distribution: Sequence[CategoryBucket] = field(default_factory=list)
    top_workshops: Sequence[WorkshopAttendance] = field(default_factory=list)
    demographics: Sequence[NamedCount] = field(default_factory=list)
    rating_distribution: Sequence[NamedCount] = field(default_factory=list)


@dataclass(frozen=True)
class SchoolAnalyticsResult:
    school: SchoolRecord
    stats: SchoolStats
    workshops: Sequence[WorkshopSummary]
    charts: DashboardCharts
    top_teachers: Sequence[TeacherLeaderboardRow]

    def as_dict(self) -> Dict[str, Any]:
        """
        Convert the nested dataclasses into the JSON document consumed by the
        dashboard frontend (camelCase keys, ISO formatted dates).
        """

        def _serialize(obj: Any) -> Any:
            if isinstance(obj, SchoolAnalyticsResult):
                return {
                    "school": _serialize(obj.school),
                    "stats": _serialize(obj.stats),
                    "workshops": [_serialize(workshop) for workshop in obj.workshops],
                    "charts": _serialize(obj.charts),
                    "topTeachers": [_serialize(row) for row in obj.top_teachers],
                }
            if isinstance(obj, SchoolRecord):
                return {
                    "id": obj.id,
                    "name": obj.name,
                    "email": obj.email,
                    "mobile": obj.mobile,
                    "is_active": obj.is_active,
                }
            if isinstance(obj, SchoolStats):
                return {
                    "totalTeachers": obj.total_teachers,
                    "activeLearners": obj.active_learners,
                    "totalEnrollments": obj.total_enrollments,
                    "completionRate": obj.completion_rate,
                    "totalCPDEarned": obj.total_cpd_earned,
                    "avgCPDPerTeacher": obj.avg_cpd_per_teacher,
                    "certificatesIssued": obj.certificates_issued,
                    "engagementRate": obj.engagement_rate,
                    "totalLearningHours": obj.total_learning_hours,
                    "totalWorkshops": obj.total_workshops,
                    "avgJoinTime": obj.avg_join_time,
                    "avgRating": obj.avg_rating,
                    "totalFeedback": obj.total_feedback,
                    "statusDistribution": {
                        "attended": obj.status_distribution.attended,
                        "enrolled": obj.status_distribution.enrolled,
                    },
                    "rank": obj.rank,
                    "totalSchools": obj.total_schools,
                }
            if isinstance(obj, WorkshopSummary):
                workshop = obj.workshop
                return {
                    "id": workshop.id,
                    "name": workshop.name,
                    "image": workshop.image,
                    "duration": workshop.duration,
                    "start_date": _serialize(workshop.start_date),
                    "category_id": workshop.category_id,
                    "category_name": workshop.category,
                    "cpd": workshop.credit,
                    "total_school_cpd": obj.total_school_cpd,
                    "status": obj.status,
                }
            if isinstance(obj, DashboardCharts):
                return {
                    "monthlyActivity": [_serialize(point) for point in obj.monthly_activity],
                    "cpdTrend": [_serialize(point) for point in obj.cpd_trend],
                    "categoryDistribution": [_serialize(bucket) for bucket in obj.category_distribution],
                    "topWorkshops": [_serialize(row) for row in obj.top_workshops],
                    "demographics": [_serialize(bucket) for bucket in obj.demographics],
                    "ratingDistribution": [_serialize(bucket) for bucket in obj.rating_distribution],
                }
            if isinstance(obj, MonthlyActivityPoint):
                return {"name": obj.name, "visits": obj.visits}
            if isinstance(obj, CreditTrendPoint):
                return {"name": obj.name, "cpd": obj.cpd, "monthly": obj.monthly}
            if isinstance(obj, CategoryBucket):
                return {"name": obj.name, "count": obj.count, "completed": obj.completed}
            if isinstance(obj, WorkshopAttendance):
                return {"name": obj.name, "attendees": obj.attendees}
            if isinstance(obj, NamedCount):
                return {"name": obj.name, "count": obj.count}
            if isinstance(obj, TeacherLeaderboardRow):
                return {
                    "name": obj.name,
                    "completed": obj.completed,
                    "attended": obj.attended,
                    "cpd": obj.cpd,
                }
            if isinstance(obj, (datetime, date)):
                return obj.isoformat()
            if isinstance(obj, Iterable) and not isinstance(obj, (str, bytes)):
                return [_serialize(item) for item in obj]
            return obj

        return _serialize(self)
