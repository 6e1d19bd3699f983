"""Pytest configuration and shared fixtures.

The ``sample_*`` fixtures describe one school ("Riverside High", id 42) with
three workshops, six enrollments, four feedback rows and a few login events.
Expected figures used across the tests are derived from these rows.
"""

from datetime import datetime, timezone
from typing import Optional, Sequence

import pytest

from backend.school_analytics.config import AnalyticsConfig
from backend.school_analytics.models import (
    ActivityLogRecord,
    DemographicRecord,
    EnrollmentRecord,
    FeedbackRecord,
    OrganizationCredit,
    SchoolRecord,
    SchoolRows,
    WorkshopRecord,
)
from backend.school_analytics.repository import SchoolAnalyticsRepository


def make_enrollment(**overrides) -> EnrollmentRecord:
    values = {
        "learner_id": "t1",
        "workshop_id": "w1",
        "attended_flag": False,
        "attended_minutes": 0.0,
        "earned_credit": 0.0,
        "workshop_duration": 60,
    }
    values.update(overrides)
    return EnrollmentRecord(**values)


class InMemoryRepository(SchoolAnalyticsRepository):
    """Repository double that serves fixed rows for a single school."""

    def __init__(
        self,
        school: Optional[SchoolRecord],
        rows: Optional[SchoolRows] = None,
        credit_totals: Sequence[OrganizationCredit] = (),
    ) -> None:
        self.school = school
        self.rows = rows or SchoolRows()
        self.credit_totals = tuple(credit_totals)
        self.requested_years = []

    def load_school(self, school_id):
        if self.school is None or self.school.id != school_id:
            return None
        return self.school

    def load_rows(self, school_id, year):
        self.requested_years.append(year)
        return self.rows

    def load_credit_totals(self):
        return self.credit_totals


@pytest.fixture
def enrollment_factory():
    return make_enrollment


@pytest.fixture
def repository_factory():
    return InMemoryRepository


@pytest.fixture
def analytics_config() -> AnalyticsConfig:
    return AnalyticsConfig(timezone="UTC")


@pytest.fixture
def now() -> datetime:
    return datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def school() -> SchoolRecord:
    return SchoolRecord(id="42", name="Riverside High", email="office@riverside.edu", mobile="555-0100")


@pytest.fixture
def sample_workshops():
    return [
        WorkshopRecord(
            id="w1",
            name="Classroom Management",
            duration=60,
            start_date=datetime(2025, 2, 10, 9, 0),
            category="Pedagogy",
            category_id="1",
            credit=2,
        ),
        WorkshopRecord(
            id="w2",
            name="Digital Tools",
            duration=90,
            start_date=datetime(2025, 4, 5, 9, 0),
            category="Technology",
            category_id="2",
            credit=3,
        ),
        WorkshopRecord(
            id="w3",
            name="Future Skills",
            duration=None,
            start_date=datetime(2025, 9, 1, 9, 0),
            credit=1,
        ),
    ]


@pytest.fixture
def sample_enrollments():
    classroom = {"workshop_id": "w1", "workshop_name": "Classroom Management", "workshop_duration": 60,
                 "workshop_start_date": datetime(2025, 2, 10, 9, 0), "category": "Pedagogy"}
    digital = {"workshop_id": "w2", "workshop_name": "Digital Tools", "workshop_duration": 90,
               "workshop_start_date": datetime(2025, 4, 5, 9, 0), "category": "Technology"}
    future = {"workshop_id": "w3", "workshop_name": "Future Skills", "workshop_duration": None,
              "workshop_start_date": datetime(2025, 9, 1, 9, 0), "category": None}
    return [
        make_enrollment(learner_id="t1", learner_name="Ada", attended_flag=True, attended_minutes=60,
                        earned_credit=2, created_at=datetime(2025, 1, 20), **classroom),
        make_enrollment(learner_id="t2", learner_name="Ben", attended_minutes=54,
                        earned_credit=2, created_at=datetime(2025, 1, 22), **classroom),
        make_enrollment(learner_id="t3", learner_name="Cleo", attended_minutes=53,
                        earned_credit=0, created_at=datetime(2025, 1, 25), **classroom),
        make_enrollment(learner_id="t1", learner_name="Ada", attended_minutes=90,
                        earned_credit=3, created_at=datetime(2025, 3, 1), **digital),
        make_enrollment(learner_id="t2", learner_name="Ben", attended_minutes=0,
                        earned_credit=0, created_at=datetime(2025, 3, 2), **digital),
        make_enrollment(learner_id="t4", learner_name="Dev", attended_minutes=0,
                        earned_credit=0, created_at=None, **future),
    ]


@pytest.fixture
def sample_feedback():
    return [
        FeedbackRecord(rating=5, workshop_id="w1", learner_id="t1"),
        FeedbackRecord(rating=4, workshop_id="w1", learner_id="t2"),
        FeedbackRecord(rating=3, workshop_id="w2", learner_id="t1"),
        FeedbackRecord(rating=4, workshop_id="w9", learner_id="t3"),
    ]


@pytest.fixture
def sample_demographics():
    return [
        DemographicRecord(designation=None, count=2),
        DemographicRecord(designation="Teacher", count=8),
    ]


@pytest.fixture
def sample_activity_logs():
    return [
        ActivityLogRecord(learner_id="t1", login=datetime(2025, 1, 5, 8, 30), duration_attended=40),
        ActivityLogRecord(learner_id="t2", login=datetime(2025, 1, 19, 14, 0), duration_attended=55),
        ActivityLogRecord(learner_id="t1", login=datetime(2025, 3, 3, 10, 0), duration_attended=20),
        ActivityLogRecord(learner_id="t3", login=datetime(2024, 12, 30, 10, 0), duration_attended=15),
    ]


@pytest.fixture
def sample_credit_totals():
    return [
        OrganizationCredit(organization_id="7", total_earned_credit=12.0),
        OrganizationCredit(organization_id="42", total_earned_credit=7.0),
        OrganizationCredit(organization_id="9", total_earned_credit=0.0),
    ]


@pytest.fixture
def sample_rows(
    sample_enrollments,
    sample_workshops,
    sample_feedback,
    sample_demographics,
    sample_activity_logs,
    sample_credit_totals,
) -> SchoolRows:
    return SchoolRows(
        enrollments=sample_enrollments,
        workshops=sample_workshops,
        feedback=sample_feedback,
        demographics=sample_demographics,
        activity_logs=sample_activity_logs,
        credit_totals=sample_credit_totals,
    )
