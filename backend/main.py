"""SEO Crawl Dashboard API – FastAPI app over the per-caller dashboard state."""

import asyncio
import logging
import os
from collections import OrderedDict

from fastapi import Depends, FastAPI, Header, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api_client import BackendClient
from errors import DashboardError, DecodeError, NotFoundError, TransportError, ValidationError
from issue_classifier import (
    aggregate_issue_labels,
    classify,
    has_issues,
    link_verdicts,
    score_tier,
    status_badge_tier,
)
from models import ReportKind, ReportState
from project_dashboard import ProjectDashboard, ProjectWorkspace
from schemas import (
    AuditReport,
    CrawlSnapshot,
    CreateProjectRequest,
    CreateProjectResponse,
    DashboardSummaryResponse,
    LinkDetailResponse,
    LinkPageResponse,
    LinkRecord,
    LinkRow,
    ProjectPageResponse,
    ReportSnapshot,
    StartCrawlRequest,
)

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

CORS_ALLOW_ORIGINS = [o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()]

app = FastAPI(
    title="SEO Crawl Dashboard API",
    description="SEO audit results for crawled pages",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

MAX_DASHBOARD_SESSIONS = int(os.getenv("MAX_DASHBOARD_SESSIONS", "256"))

_backend_client = BackendClient()
# Least recently used first.
_dashboards: "OrderedDict[str, ProjectDashboard]" = OrderedDict()
_background_tasks: set[asyncio.Task] = set()

_ERROR_STATUS = {
    NotFoundError: 404,
    ValidationError: 400,
    TransportError: 502,
    DecodeError: 502,
}


@app.exception_handler(DashboardError)
async def dashboard_error_handler(request: Request, exc: DashboardError) -> JSONResponse:
    status = next((code for cls, code in _ERROR_STATUS.items() if isinstance(exc, cls)), 500)
    return JSONResponse(status_code=status, content={"detail": exc.message})


@app.on_event("shutdown")
def shutdown() -> None:
    reset_sessions()


def reset_sessions() -> None:
    """Discard every in-memory dashboard; pending responses are ignored afterwards."""
    if _dashboards:
        logger.info("Discarding %d dashboard session(s)", len(_dashboards))
    for dashboard in _dashboards.values():
        dashboard.discard()
    _dashboards.clear()


def get_client() -> BackendClient:
    return _backend_client


def get_token(authorization: str | None = Header(default=None)) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="You must be logged in")
    return token.strip()


def get_dashboard(token: str = Depends(get_token), client=Depends(get_client)) -> ProjectDashboard:
    dashboard = _dashboards.get(token)
    if dashboard is not None:
        _dashboards.move_to_end(token)
        return dashboard
    dashboard = ProjectDashboard(client, token)
    _dashboards[token] = dashboard
    while len(_dashboards) > MAX_DASHBOARD_SESSIONS:
        _, evicted = _dashboards.popitem(last=False)
        logger.info("Evicting least recently used dashboard session")
        evicted.discard()
    return dashboard


async def _run_in_background(coro) -> None:
    """Schedule `coro` and let it reach its first suspension so its state is visible."""
    task = asyncio.create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    await asyncio.sleep(0)


def _link_row(link: LinkRecord) -> LinkRow:
    classification = classify(link)
    return LinkRow(
        id=link.id,
        url=link.url,
        title=link.title,
        status_code=link.status_code,
        status_badge=status_badge_tier(link.status_code),
        status_tier=classification["status_tier"],
        issues=sorted(classification["issues"], key=lambda tag: tag.value),
        issue_labels=aggregate_issue_labels(link),
        has_issues=has_issues(link),
        created_at=link.created_at,
    )


def _score_tiers(report: AuditReport | None) -> dict:
    if report is None or report.kind != ReportKind.PERFORMANCE_AUDIT:
        return {}
    return {
        "performance": score_tier(report.performance_score),
        "accessibility": score_tier(report.accessibility_score),
        "best_practices": score_tier(report.best_practices_score),
        "seo": score_tier(report.seo_score),
    }


async def _loaded_dashboard(dashboard: ProjectDashboard, refresh: bool) -> ProjectDashboard:
    if refresh or not dashboard.loaded:
        await dashboard.load_projects()
    if not dashboard.loaded:
        raise TransportError(dashboard.error or "Failed to fetch projects")
    return dashboard


@app.get("/dashboard/summary", response_model=DashboardSummaryResponse)
async def get_summary(
    refresh: bool = False, dashboard: ProjectDashboard = Depends(get_dashboard)
) -> DashboardSummaryResponse:
    """Project count, placeholder counters and the six most recent projects."""
    await _loaded_dashboard(dashboard, refresh)
    return dashboard.summary()


@app.get("/projects", response_model=ProjectPageResponse)
async def get_projects(
    q: str = "",
    page: int = 1,
    refresh: bool = False,
    dashboard: ProjectDashboard = Depends(get_dashboard),
) -> ProjectPageResponse:
    await _loaded_dashboard(dashboard, refresh)
    view = dashboard.projects
    if q != view.query:
        view.set_query(q)
    view.set_page(page)
    return ProjectPageResponse(
        query=view.query,
        page=view.page,
        total_pages=view.total_pages,
        has_previous=view.has_previous(),
        has_next=view.has_next(),
        filtered_count=view.filtered_count,
        items=view.current_page(),
    )


@app.post("/projects", response_model=CreateProjectResponse)
async def create_project(
    body: CreateProjectRequest, dashboard: ProjectDashboard = Depends(get_dashboard)
) -> CreateProjectResponse:
    project_id = await dashboard.create_project(body.project_name, body.domain)
    return CreateProjectResponse(project_id=project_id)


@app.get("/projects/{project_id}/links", response_model=LinkPageResponse)
async def get_links(
    project_id: int,
    q: str = "",
    page: int = 1,
    tab: str = "all",
    refresh: bool = False,
    dashboard: ProjectDashboard = Depends(get_dashboard),
) -> LinkPageResponse:
    """Page of crawled links with their classification and project stats."""
    workspace = await dashboard.workspace(project_id)
    if refresh:
        await workspace.load()
    if tab != workspace.tab:
        workspace.set_tab(tab)
    view = workspace.links
    if q != view.query:
        view.set_query(q)
    view.set_page(page)
    return LinkPageResponse(
        project=workspace.project,
        stats=workspace.stats(),
        tab=workspace.tab,
        query=view.query,
        page=view.page,
        total_pages=view.total_pages,
        has_previous=view.has_previous(),
        has_next=view.has_next(),
        filtered_count=view.filtered_count,
        items=[_link_row(link) for link in view.current_page()],
        error=workspace.error,
    )


async def _workspace_link(dashboard: ProjectDashboard, project_id: int, link_id: int) -> ProjectWorkspace:
    workspace = await dashboard.workspace(project_id)
    if not workspace.loaded:
        raise TransportError(workspace.error or "Failed to fetch links")
    workspace.find_link(link_id)
    return workspace


@app.get("/projects/{project_id}/links/{link_id}", response_model=LinkDetailResponse)
async def get_link_detail(
    project_id: int, link_id: int, dashboard: ProjectDashboard = Depends(get_dashboard)
) -> LinkDetailResponse:
    workspace = await _workspace_link(dashboard, project_id, link_id)
    link = workspace.find_link(link_id)
    classification = classify(link)
    audit = workspace.report(link_id, ReportKind.PERFORMANCE_AUDIT).snapshot()
    return LinkDetailResponse(
        link=link,
        issues=sorted(classification["issues"], key=lambda tag: tag.value),
        status_badge=status_badge_tier(link.status_code),
        status_tier=classification["status_tier"],
        verdicts=dict(link_verdicts(link)),
        score_tiers=_score_tiers(audit.report),
        performance_audit=audit,
        ai_recommendation=workspace.report(link_id, ReportKind.AI_RECOMMENDATION).snapshot(),
    )


@app.post("/projects/{project_id}/crawl", response_model=CrawlSnapshot, status_code=202)
async def start_crawl(
    project_id: int,
    body: StartCrawlRequest | None = None,
    dashboard: ProjectDashboard = Depends(get_dashboard),
) -> CrawlSnapshot:
    """Start a crawl in the background; poll GET /projects/{id}/crawl for progress."""
    workspace = await dashboard.workspace(project_id)
    if workspace.crawl.is_running:
        raise HTTPException(status_code=409, detail="A crawl is already running for this project")
    url = body.url if body is not None else ""
    await _run_in_background(workspace.start_crawl(url or None))
    return workspace.crawl.snapshot()


@app.get("/projects/{project_id}/crawl", response_model=CrawlSnapshot)
async def get_crawl(project_id: int, dashboard: ProjectDashboard = Depends(get_dashboard)) -> CrawlSnapshot:
    workspace = await dashboard.workspace(project_id)
    return workspace.crawl.snapshot()


@app.delete("/projects/{project_id}/crawl", response_model=CrawlSnapshot)
async def dismiss_crawl(project_id: int, dashboard: ProjectDashboard = Depends(get_dashboard)) -> CrawlSnapshot:
    workspace = await dashboard.workspace(project_id)
    if not workspace.crawl.dismiss():
        raise HTTPException(status_code=409, detail="A running crawl cannot be dismissed")
    return workspace.crawl.snapshot()


@app.post("/projects/{project_id}/links/{link_id}/reports/{kind}", response_model=ReportSnapshot)
async def request_report(
    project_id: int,
    link_id: int,
    kind: ReportKind,
    response: Response,
    refresh: bool = False,
    dashboard: ProjectDashboard = Depends(get_dashboard),
) -> ReportSnapshot:
    """Request generation of a report. Returns 202 when a request was sent, 200 when it was a no-op."""
    workspace = await _workspace_link(dashboard, project_id, link_id)
    lifecycle = workspace.report(link_id, kind)
    if lifecycle.can_request:
        await _run_in_background(lifecycle.request_generation())
        response.status_code = 202
    elif refresh and lifecycle.state == ReportState.READY:
        await _run_in_background(lifecycle.refresh())
        response.status_code = 202
    return lifecycle.snapshot()


@app.get("/projects/{project_id}/links/{link_id}/reports/{kind}", response_model=ReportSnapshot)
async def get_report(
    project_id: int, link_id: int, kind: ReportKind, dashboard: ProjectDashboard = Depends(get_dashboard)
) -> ReportSnapshot:
    workspace = await _workspace_link(dashboard, project_id, link_id)
    return workspace.report(link_id, kind).snapshot()


@app.get("/health")
def health() -> dict:
    """Health check for deployment."""
    return {"status": "ok"}
