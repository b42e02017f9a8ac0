"""Enums and plain types shared across the backend.

Pydantic records and API bodies live in schemas.py.
"""

from enum import Enum
from typing import TypedDict


class IssueTag(str, Enum):
    """Detailed per-field SEO defects shown as badges."""

    ERROR = "Error"
    H1_MISSING = "H1-Missing"
    H1_MULTIPLE = "H1-Multiple"
    ALT_MISSING = "Alt-Missing"
    META_MISSING = "Meta-Missing"
    META_TOO_SHORT = "Meta-TooShort"
    META_TOO_LONG = "Meta-TooLong"
    TITLE_TOO_SHORT = "Title-TooShort"
    TITLE_TOO_LONG = "Title-TooLong"


class StatusTier(str, Enum):
    OK = "ok"
    INFO = "info"
    NEUTRAL = "neutral"
    WARN = "warn"
    ERROR = "error"


class ScoreTier(str, Enum):
    GOOD = "good"
    AVERAGE = "average"
    POOR = "poor"


class ReportKind(str, Enum):
    PERFORMANCE_AUDIT = "performance-audit"
    AI_RECOMMENDATION = "ai-recommendation"


class ReportState(str, Enum):
    EMPTY = "empty"
    GENERATING = "generating"
    READY = "ready"
    FAILED = "failed"


class CrawlState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Classification(TypedDict):
    """Result of classifying one link."""

    issues: set[IssueTag]
    status_tier: StatusTier


class LinkVerdicts(TypedDict):
    """Per-field verdicts rendered on the link detail view."""

    status_label: str
    h1: str
    meta_description: str
    title: str
    images_alt: str
