"""Pydantic schemas for backend records, report payloads and API request/response."""

import json
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from models import CrawlState, IssueTag, ReportKind, ReportState, ScoreTier, StatusTier


def _decode_text_list(value: object) -> list[str]:
    """Decode a JSON-text list field as delivered by /get-links."""
    if value is None:
        return []
    if isinstance(value, str):
        if not value.strip():
            return []
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"not valid JSON text: {e.msg}") from e
        if value is None:
            return []
    if not isinstance(value, list):
        raise ValueError("expected a JSON list")
    return [str(item) for item in value if item is not None]


def _parse_timestamp(value: object) -> object:
    """Accept ISO-8601 as well as the RFC 1123 dates Flask's jsonify emits."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
        try:
            return parsedate_to_datetime(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"unrecognized timestamp {value!r}") from e
    return value


class ProjectRecord(BaseModel):
    """Project as returned by /get-projects."""

    model_config = ConfigDict(frozen=True)

    id: int
    project_name: str
    domain: str
    created_at: datetime | None = None

    @field_validator("project_name", "domain", mode="before")
    @classmethod
    def normalize_text_fields(cls, value: object) -> str:
        return str(value or "").strip()

    @field_validator("created_at", mode="before")
    @classmethod
    def parse_created_at(cls, value: object) -> object:
        return _parse_timestamp(value)


class LinkRecord(BaseModel):
    """One crawled URL with the metrics measured by the crawler."""

    model_config = ConfigDict(frozen=True)

    id: int
    url: str
    title: str = ""
    title_length: int = 0
    status_code: int = 0
    total_h1_tags: int = 0
    h1_tags: list[str] = Field(default_factory=list)
    meta_description: str = ""
    meta_description_length: int = 0
    total_images_on_page: int = 0
    total_images_without_alt: int = 0
    images_without_alt: list[str] = Field(default_factory=list)
    redirect_from: str | None = None
    redirect_chain: list[str] = Field(default_factory=list)
    error_type: str | None = None
    created_at: datetime | None = None
    project_id: int | None = None

    @field_validator("title", "meta_description", mode="before")
    @classmethod
    def normalize_text_fields(cls, value: object) -> str:
        return str(value or "")

    @field_validator(
        "title_length",
        "status_code",
        "total_h1_tags",
        "meta_description_length",
        "total_images_on_page",
        "total_images_without_alt",
        mode="before",
    )
    @classmethod
    def default_missing_counts(cls, value: object) -> object:
        return 0 if value is None else value

    @field_validator("h1_tags", "images_without_alt", "redirect_chain", mode="before")
    @classmethod
    def decode_list_fields(cls, value: object) -> list[str]:
        return _decode_text_list(value)

    @field_validator("created_at", mode="before")
    @classmethod
    def parse_created_at(cls, value: object) -> object:
        return _parse_timestamp(value)


class PerformanceAuditReport(BaseModel):
    """Lighthouse-style scores for one URL."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[ReportKind.PERFORMANCE_AUDIT] = ReportKind.PERFORMANCE_AUDIT
    performance_score: int = Field(ge=0, le=100)
    accessibility_score: int = Field(ge=0, le=100)
    best_practices_score: int = Field(ge=0, le=100)
    seo_score: int = Field(ge=0, le=100)
    created_at: datetime


class AIRecommendationReport(BaseModel):
    """Free-text recommendation written by the AI report generator."""

    model_config = ConfigDict(frozen=True)

    kind: Literal[ReportKind.AI_RECOMMENDATION] = ReportKind.AI_RECOMMENDATION
    ai_response: str
    created_at: datetime

    @computed_field
    @property
    def paragraphs(self) -> list[str]:
        return [p.strip() for p in self.ai_response.split("\n\n") if p.strip()]


AuditReport = Annotated[
    Union[PerformanceAuditReport, AIRecommendationReport],
    Field(discriminator="kind"),
]


class ReportSnapshot(BaseModel):
    """Immutable view of one report lifecycle."""

    model_config = ConfigDict(frozen=True)

    link_id: int
    kind: ReportKind
    state: ReportState
    report: AuditReport | None = None
    error: str | None = None


class CrawlSnapshot(BaseModel):
    """Immutable view of one crawl session."""

    model_config = ConfigDict(frozen=True)

    project_id: int
    state: CrawlState
    url: str | None = None
    progress: str | None = None
    error: str | None = None
    analyzed_count: int | None = None


class CreateProjectRequest(BaseModel):
    """Request body for POST /projects."""

    project_name: str
    domain: str

    @field_validator("project_name", "domain", mode="before")
    @classmethod
    def normalize_text_fields(cls, value: object) -> str:
        return str(value or "").strip()


class CreateProjectResponse(BaseModel):
    project_id: int


class StartCrawlRequest(BaseModel):
    """Request body for POST /projects/{id}/crawl. Blank url crawls https://{domain}."""

    url: str = ""

    @field_validator("url", mode="before")
    @classmethod
    def normalize_url(cls, value: object) -> str:
        return str(value or "").strip()


class ProjectStats(BaseModel):
    total_links: int
    links_with_issues: int
    last_crawled_at: datetime | None = None


class LinkRow(BaseModel):
    """Single row of the links table."""

    id: int
    url: str
    title: str
    status_code: int
    status_tier: StatusTier
    status_badge: StatusTier
    issues: list[IssueTag]
    issue_labels: list[str]
    has_issues: bool
    created_at: datetime | None = None


class LinkPageResponse(BaseModel):
    """Response for GET /projects/{id}/links."""

    project: ProjectRecord
    stats: ProjectStats
    tab: str
    query: str
    page: int
    total_pages: int
    has_previous: bool
    has_next: bool
    filtered_count: int
    items: list[LinkRow]
    error: str | None = None


class ProjectPageResponse(BaseModel):
    """Response for GET /projects."""

    query: str
    page: int
    total_pages: int
    has_previous: bool
    has_next: bool
    filtered_count: int
    items: list[ProjectRecord]


class LinkDetailResponse(BaseModel):
    """Full link with classification and both report snapshots."""

    link: LinkRecord
    issues: list[IssueTag]
    status_badge: StatusTier
    status_tier: StatusTier
    verdicts: dict[str, str]
    score_tiers: dict[str, ScoreTier] = Field(default_factory=dict)
    performance_audit: ReportSnapshot
    ai_recommendation: ReportSnapshot


class DashboardSummaryResponse(BaseModel):
    """Counters and recent projects for the dashboard home."""

    total_projects: int
    total_analyzed_urls: int | None = None
    average_seo_score: float | None = None
    links_with_issues: int = 0
    recent_projects: list[ProjectRecord]
    error: str | None = None
