"""
Aggregation settings for the school analytics service.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class AnalyticsConfig(BaseModel):
    timezone: str = "UTC"
    default_workshop_duration: float = Field(default=90, gt=0, allow_inf_nan=False)
    completion_threshold: float = Field(default=0.9, gt=0, le=1)
    top_n: int = Field(default=5, ge=1)
    # None means "the year of the evaluation time"
    activity_year: Optional[int] = None
    log_level: str = "INFO"


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, raw)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r", name, raw)
        return default


def _validated(field: str, name: str, value: Any, default: Any) -> Any:
    """Keep ``value`` only if it satisfies the field's constraints."""
    if value == default:
        return value
    try:
        AnalyticsConfig(**{field: value})
    except ValidationError:
        logger.warning("Ignoring out-of-range %s=%r, using %r", name, value, default)
        return default
    return value


def load_config() -> AnalyticsConfig:
    """Build the settings from ``SCHOOL_ANALYTICS_*``; invalid values fall back to defaults."""
    defaults = AnalyticsConfig()
    settings = {
        "default_workshop_duration": (
            "SCHOOL_ANALYTICS_DEFAULT_DURATION",
            _env_float("SCHOOL_ANALYTICS_DEFAULT_DURATION", defaults.default_workshop_duration),
        ),
        "completion_threshold": (
            "SCHOOL_ANALYTICS_COMPLETION_THRESHOLD",
            _env_float("SCHOOL_ANALYTICS_COMPLETION_THRESHOLD", defaults.completion_threshold),
        ),
        "top_n": ("SCHOOL_ANALYTICS_TOP_N", _env_int("SCHOOL_ANALYTICS_TOP_N", defaults.top_n)),
        "activity_year": (
            "SCHOOL_ANALYTICS_ACTIVITY_YEAR",
            _env_int("SCHOOL_ANALYTICS_ACTIVITY_YEAR", defaults.activity_year),
        ),
    }
    values = {
        field: _validated(field, name, value, getattr(defaults, field))
        for field, (name, value) in settings.items()
    }
    return AnalyticsConfig(
        timezone=os.getenv("SCHOOL_ANALYTICS_TIMEZONE", defaults.timezone),
        log_level=os.getenv("SCHOOL_ANALYTICS_LOG_LEVEL", defaults.log_level).upper(),
        **values,
    )
