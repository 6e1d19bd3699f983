"""
School analytics backend.

Turns the raw enrollment, workshop, feedback, demographic and login rows of a
school into the metrics document rendered by the school dashboard.
"""

from .config import AnalyticsConfig, load_config  # noqa: F401
from .exceptions import (  # noqa: F401
    AnalyticsRetrievalError,
    SchoolAnalyticsError,
    SchoolNotFoundError,
)
from .models import (  # noqa: F401
    ActivityLogRecord,
    DemographicRecord,
    EnrollmentRecord,
    FeedbackRecord,
    OrganizationCredit,
    SchoolAnalyticsResult,
    SchoolRecord,
    SchoolRows,
)
from .ranking import rank_school  # noqa: F401
from .repository import (  # noqa: F401
    RepositoryConfig,
    SchoolAnalyticsRepository,
    SQLSchoolAnalyticsRepository,
    build_repository_from_env,
)
from .service import (  # noqa: F401
    SchoolAnalyticsService,
    fetch_school_analytics,
    require_school_analytics,
)
