"""Exceptions raised by the school analytics package."""

from __future__ import annotations

from typing import Optional


class SchoolAnalyticsError(Exception):
    """Base class for analytics failures."""


class SchoolNotFoundError(SchoolAnalyticsError):
    def __init__(self, school_id: str) -> None:
        self.school_id = school_id
        super().__init__(f"School not found: {school_id}")


class AnalyticsRetrievalError(SchoolAnalyticsError):
    """An underlying fetch failed; no partial document is produced."""

    def __init__(self, message: str = "Failed to fetch analytics data", school_id: Optional[str] = None) -> None:
        self.school_id = school_id
        super().__init__(message)
