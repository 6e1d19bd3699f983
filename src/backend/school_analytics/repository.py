from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Dict, Optional, Sequence

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, Row
from sqlalchemy.exc import SQLAlchemyError

from .config import AnalyticsConfig
from .exceptions import AnalyticsRetrievalError
from .models import (
    ActivityLogRecord,
    DemographicRecord,
    EnrollmentRecord,
    FeedbackRecord,
    OrganizationCredit,
    SchoolRecord,
    SchoolRows,
    WorkshopRecord,
)

logger = logging.getLogger(__name__)


class SchoolAnalyticsRepository:
    """
    Interface for loading the raw rows behind a school dashboard.

    Implementations return plain records; every derived metric is computed
    by ``SchoolAnalyticsService``.
    """

    def load_school(self, school_id: str) -> Optional[SchoolRecord]:
        raise NotImplementedError

    def load_rows(self, school_id: str, year: int) -> SchoolRows:
        raise NotImplementedError

    def load_credit_totals(self) -> Sequence[OrganizationCredit]:
        raise NotImplementedError


class SQLSchoolAnalyticsRepository(SchoolAnalyticsRepository):
    """
    Load school analytics rows from the LMS schema.

    Expected tables:
      - schools(id, name, email, mobile, is_active)
      - users(id, name, school_id, designation)
      - categories(id, name)
      - workshops(id, name, image, duration, start_date, category_id, cpd)
      - payments(user_id, workshop_id, school_id, is_attended, attended_duration,
        payment_status, cpd, created_at)
      - Attendees(user_id, login, duration_attend)
      - feedback(user_id, workshop_id, rating)
    """

    def __init__(self, engine: Engine, config: Optional[AnalyticsConfig] = None):
        self.engine = engine
        self.config = config or AnalyticsConfig()

    def load_school(self, school_id: str) -> Optional[SchoolRecord]:
        query = text("SELECT id, name, email, mobile, is_active FROM schools WHERE id = :school_id")
        rows = self._fetch(query, {"school_id": school_id})
        if not rows:
            return None
        return self._row_to_school(rows[0])

    def load_rows(self, school_id: str, year: int) -> SchoolRows:
        return SchoolRows(
            enrollments=self._load_enrollments(school_id),
            workshops=self._load_workshops(school_id),
            feedback=self._load_feedback(school_id),
            demographics=self._load_demographics(school_id),
            activity_logs=self._load_activity_logs(school_id, year),
            workshop_feedback=self._load_workshop_feedback(school_id),
        )

    def load_credit_totals(self) -> Sequence[OrganizationCredit]:
        query = text(
            """
            SELECT p.school_id, SUM(COALESCE(p.cpd, 0)) AS total_cpd
            FROM payments p
            JOIN workshops w ON p.workshop_id = w.id
            WHERE p.is_attended = 1
               OR COALESCE(p.attended_duration, 0) >= :threshold * (
                    CASE WHEN COALESCE(w.duration, 0) > 0 THEN w.duration ELSE :default_duration END
               )
            GROUP BY p.school_id
            ORDER BY total_cpd DESC
            """
        )
        params = {
            "threshold": self.config.completion_threshold,
            "default_duration": self.config.default_workshop_duration,
        }
        return tuple(
            OrganizationCredit(
                organization_id=str(row.school_id),
                total_earned_credit=_coerce_float(row.total_cpd),
            )
            for row in self._fetch(query, params)
        )

    def _load_workshops(self, school_id: str) -> Sequence[WorkshopRecord]:
        query = text(
            """
            SELECT DISTINCT w.id, w.name, w.image, w.duration, w.start_date, w.category_id, w.cpd,
                   c.name AS category_name
            FROM workshops w
            LEFT JOIN categories c ON w.category_id = c.id
            WHERE w.id IN (SELECT workshop_id FROM payments WHERE school_id = :school_id)
            ORDER BY w.start_date DESC
            """
        )
        return tuple(self._row_to_workshop(row) for row in self._fetch(query, {"school_id": school_id}))

    def _load_enrollments(self, school_id: str) -> Sequence[EnrollmentRecord]:
        query = text(
            """
            SELECT p.user_id, p.workshop_id, p.is_attended, p.attended_duration, p.payment_status,
                   p.cpd AS earned_cpd, p.created_at,
                   u.name AS user_name, w.name AS workshop_name, w.duration AS total_duration,
                   w.start_date, c.name AS category_name
            FROM payments p
            JOIN users u ON p.user_id = u.id
            JOIN workshops w ON p.workshop_id = w.id
            LEFT JOIN categories c ON w.category_id = c.id
            WHERE p.school_id = :school_id
            """
        )
        return tuple(self._row_to_enrollment(row) for row in self._fetch(query, {"school_id": school_id}))

    def _load_activity_logs(self, school_id: str, year: int) -> Sequence[ActivityLogRecord]:
        query = text(
            """
            SELECT a.login, a.duration_attend, u.id AS user_id
            FROM Attendees a
            JOIN users u ON a.user_id = u.id
            WHERE u.school_id = :school_id AND a.login >= :start AND a.login < :end
            ORDER BY a.login ASC
            """
        )
        params = {
            "school_id": school_id,
            "start": datetime(year, 1, 1),
            "end": datetime(year + 1, 1, 1),
        }
        records = []
        for row in self._fetch(query, params):
            login = _coerce_datetime(row.login)
            if login is None:
                continue
            records.append(
                ActivityLogRecord(
                    learner_id=str(row.user_id),
                    login=login,
                    duration_attended=_coerce_float(row.duration_attend),
                )
            )
        return tuple(records)

    def _load_feedback(self, school_id: str) -> Sequence[FeedbackRecord]:
        query = text(
            """
            SELECT f.rating, f.workshop_id, f.user_id
            FROM feedback f
            JOIN users u ON f.user_id = u.id
            WHERE u.school_id = :school_id AND f.rating IS NOT NULL
            """
        )
        return tuple(self._row_to_feedback(row) for row in self._fetch(query, {"school_id": school_id}))

    def _load_workshop_feedback(self, school_id: str) -> Sequence[FeedbackRecord]:
        query = text(
            """
            SELECT f.rating, f.workshop_id, f.user_id
            FROM feedback f
            WHERE f.rating IS NOT NULL
              AND f.workshop_id IN (SELECT workshop_id FROM payments WHERE school_id = :school_id)
            """
        )
        return tuple(self._row_to_feedback(row) for row in self._fetch(query, {"school_id": school_id}))

    def _load_demographics(self, school_id: str) -> Sequence[DemographicRecord]:
        query = text(
            """
            SELECT designation, COUNT(*) AS user_count
            FROM users
            WHERE school_id = :school_id
            GROUP BY designation
            """
        )
        return tuple(
            DemographicRecord(designation=row.designation, count=int(row.user_count or 0))
            for row in self._fetch(query, {"school_id": school_id})
        )

    def _fetch(self, query: Any, params: Dict[str, Any]) -> Sequence[Row]:
        try:
            with self.engine.connect() as connection:
                return connection.execute(query, params).fetchall()
        except SQLAlchemyError as exc:
            logger.error("Database error while loading analytics rows: %s", exc)
            raise AnalyticsRetrievalError(school_id=params.get("school_id")) from exc

    @staticmethod
    def _row_to_school(row: Row) -> SchoolRecord:
        return SchoolRecord(
            id=str(row.id),
            name=_coerce_text(row.name),
            email=row.email,
            mobile=None if row.mobile is None else str(row.mobile),
            is_active=_coerce_flag(row.is_active),
        )

    @staticmethod
    def _row_to_workshop(row: Row) -> WorkshopRecord:
        return WorkshopRecord(
            id=str(row.id),
            name=_coerce_text(row.name),
            duration=_coerce_optional_float(row.duration),
            start_date=_coerce_datetime(row.start_date),
            category=row.category_name,
            category_id=None if row.category_id is None else str(row.category_id),
            image=row.image,
            credit=_coerce_float(row.cpd),
        )

    @staticmethod
    def _row_to_feedback(row: Row) -> FeedbackRecord:
        return FeedbackRecord(
            rating=int(row.rating),
            workshop_id=str(row.workshop_id),
            learner_id=None if row.user_id is None else str(row.user_id),
        )

    @staticmethod
    def _row_to_enrollment(row: Row) -> EnrollmentRecord:
        return EnrollmentRecord(
            learner_id=str(row.user_id),
            workshop_id=str(row.workshop_id),
            attended_flag=_coerce_flag(row.is_attended),
            attended_minutes=_coerce_float(row.attended_duration),
            earned_credit=_coerce_float(row.earned_cpd),
            created_at=_coerce_datetime(row.created_at),
            workshop_duration=_coerce_optional_float(row.total_duration),
            workshop_start_date=_coerce_datetime(row.start_date),
            category=row.category_name,
            learner_name=row.user_name,
            workshop_name=row.workshop_name,
            payment_status=None if row.payment_status is None else str(row.payment_status),
        )


def _coerce_text(value: Any) -> str:
    return "" if value is None else str(value)


def _coerce_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes"}
    return value is True or value == 1


def _coerce_float(value: Any) -> float:
    parsed = _coerce_optional_float(value)
    return 0.0 if parsed is None else parsed


def _coerce_optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _coerce_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        logger.warning("Ignoring unparseable timestamp %r", value)
        return None


@dataclass(frozen=True)
class RepositoryConfig:
    database_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> "RepositoryConfig":
        return cls(database_url=os.getenv("SCHOOL_ANALYTICS_DATABASE_URL"))


def build_repository_from_env(
    config: Optional[RepositoryConfig] = None,
    analytics_config: Optional[AnalyticsConfig] = None,
) -> Optional[SchoolAnalyticsRepository]:
    cfg = config or RepositoryConfig.from_env()
    if cfg.database_url:
        engine = create_engine(cfg.database_url)
        return SQLSchoolAnalyticsRepository(engine, config=analytics_config)
    return None
