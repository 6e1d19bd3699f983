from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .config import load_config
from .exceptions import AnalyticsRetrievalError
from .models import (
    ActivityLogRecord,
    DemographicRecord,
    EnrollmentRecord,
    FeedbackRecord,
    OrganizationCredit,
    SchoolRecord,
    WorkshopRecord,
)
from .repository import SchoolAnalyticsRepository, build_repository_from_env
from .service import SchoolAnalyticsService, fetch_school_analytics

load_dotenv()

config = load_config()
logging.basicConfig(level=config.log_level)

app = FastAPI(title="School Analytics API", version="0.1.0")
repository: Optional[SchoolAnalyticsRepository] = build_repository_from_env(analytics_config=config)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class SchoolPayload(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    mobile: Optional[str] = None
    is_active: bool = True


class EnrollmentPayload(BaseModel):
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


class WorkshopPayload(BaseModel):
    id: str
    name: str
    duration: Optional[float] = None
    start_date: Optional[datetime] = None
    category: Optional[str] = None
    category_id: Optional[str] = None
    image: Optional[str] = None
    credit: float = 0.0


class FeedbackPayload(BaseModel):
    rating: int = Field(ge=1, le=5)
    workshop_id: str
    learner_id: Optional[str] = None


class DemographicPayload(BaseModel):
    designation: Optional[str] = None
    count: int = Field(ge=0)


class ActivityLogPayload(BaseModel):
    learner_id: str
    login: datetime
    duration_attended: float = 0.0


class CreditTotalPayload(BaseModel):
    organization_id: str
    total_earned_credit: float = 0.0


class AnalyticsRequest(BaseModel):
    school: SchoolPayload
    enrollments: Optional[List[EnrollmentPayload]] = None
    workshops: Optional[List[WorkshopPayload]] = None
    feedback: Optional[List[FeedbackPayload]] = None
    workshop_feedback: Optional[List[FeedbackPayload]] = None
    demographics: Optional[List[DemographicPayload]] = None
    activity_logs: Optional[List[ActivityLogPayload]] = None
    credit_totals: Optional[List[CreditTotalPayload]] = None
    activity_year: Optional[int] = None
    now: Optional[datetime] = None


class AnalyticsResponse(BaseModel):
    data: Dict[str, Any]
    source: str


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/schools/{school_id}/analytics", response_model=AnalyticsResponse)
def school_analytics_endpoint(school_id: str) -> AnalyticsResponse:
    if repository is None:
        raise HTTPException(
            status_code=500,
            detail=(
                "SCHOOL_ANALYTICS_DATABASE_URL is not configured; "
                "POST the rows to /analytics for ad-hoc reports."
            ),
        )

    try:
        result = fetch_school_analytics(repository, school_id, config=config)
    except AnalyticsRetrievalError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    if result is None:
        raise HTTPException(status_code=404, detail="School not found")
    return AnalyticsResponse(data=result.as_dict(), source="database")


@app.post("/analytics", response_model=AnalyticsResponse)
def inline_analytics_endpoint(request: AnalyticsRequest) -> AnalyticsResponse:
    service = SchoolAnalyticsService(
        enrollments=[_convert_enrollment(payload) for payload in request.enrollments or []],
        workshops=[_convert_workshop(payload) for payload in request.workshops or []],
        feedback=[_convert_feedback(payload) for payload in request.feedback or []],
        demographics=[
            DemographicRecord(designation=payload.designation, count=payload.count)
            for payload in request.demographics or []
        ],
        activity_logs=[
            ActivityLogRecord(
                learner_id=payload.learner_id,
                login=payload.login,
                duration_attended=payload.duration_attended,
            )
            for payload in request.activity_logs or []
        ],
        credit_totals=[
            OrganizationCredit(
                organization_id=payload.organization_id,
                total_earned_credit=payload.total_earned_credit,
            )
            for payload in request.credit_totals or []
        ],
        workshop_feedback=(
            None
            if request.workshop_feedback is None
            else [_convert_feedback(payload) for payload in request.workshop_feedback]
        ),
        config=config,
    )
    school = SchoolRecord(
        id=request.school.id,
        name=request.school.name,
        email=request.school.email,
        mobile=request.school.mobile,
        is_active=request.school.is_active,
    )
    result = service.build(school, now=request.now, year=request.activity_year)
    return AnalyticsResponse(data=result.as_dict(), source="inline")


def _convert_enrollment(payload: EnrollmentPayload) -> EnrollmentRecord:
    return EnrollmentRecord(
        learner_id=payload.learner_id,
        workshop_id=payload.workshop_id,
        attended_flag=payload.attended_flag,
        attended_minutes=payload.attended_minutes,
        earned_credit=payload.earned_credit,
        created_at=payload.created_at,
        workshop_duration=payload.workshop_duration,
        workshop_start_date=payload.workshop_start_date,
        category=payload.category,
        learner_name=payload.learner_name,
        workshop_name=payload.workshop_name,
        payment_status=payload.payment_status,
    )


def _convert_feedback(payload: FeedbackPayload) -> FeedbackRecord:
    return FeedbackRecord(rating=payload.rating, workshop_id=payload.workshop_id, learner_id=payload.learner_id)


def _convert_workshop(payload: WorkshopPayload) -> WorkshopRecord:
    return WorkshopRecord(
        id=payload.id,
        name=payload.name,
        duration=payload.duration,
        start_date=payload.start_date,
        category=payload.category,
        category_id=payload.category_id,
        image=payload.image,
        credit=payload.credit,
    )
