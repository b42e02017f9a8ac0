"""Per-caller dashboard state: the project list and one workspace per opened project.

A ProjectWorkspace holds what the project detail view needs: the link
collection, its crawl session and the report lifecycles of its links. A
completed crawl replaces the whole link set; report lifecycles for links that
disappeared are discarded and those whose metrics changed are reset.
"""

import logging
import re

from collection_view import CollectionView, link_view, project_view
from crawl_session import CRAWL_REFRESH_DELAY_SECONDS, CrawlSession
from errors import DashboardError, NotFoundError, TransportError, ValidationError
from issue_classifier import count_links_with_issues, has_issues
from models import ReportKind
from report_lifecycle import ReportLifecycle
from schemas import DashboardSummaryResponse, LinkRecord, ProjectRecord, ProjectStats

logger = logging.getLogger(__name__)

RECENT_PROJECTS_LIMIT = 6
LINK_TABS = ("all", "issues")

DOMAIN_PATTERN = re.compile(r"^(?=.{1,253}$)(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z][a-z0-9-]{0,62}$")
_IDENTITY_FIELDS = {"id", "project_id", "created_at"}


def normalize_new_project(project_name: str, domain: str) -> tuple[str, str]:
    """Validate create-project input; domain must be a bare hostname."""
    name = str(project_name or "").strip()
    host = str(domain or "").strip().lower()
    if not name:
        raise ValidationError("Project name is required")
    if not host:
        raise ValidationError("Domain is required")
    if "://" in host:
        raise ValidationError("Enter the domain without http:// or https://")
    if not DOMAIN_PATTERN.match(host):
        raise ValidationError(f"Invalid domain: {host}")
    return name, host


def _metrics(link: LinkRecord) -> dict:
    return link.model_dump(exclude=_IDENTITY_FIELDS)


class ProjectWorkspace:
    def __init__(self, client, token: str, project: ProjectRecord, refresh_delay: float = CRAWL_REFRESH_DELAY_SECONDS):
        self.client = client
        self.token = token
        self.project = project
        self.links: CollectionView[LinkRecord] = link_view()
        self.crawl = CrawlSession(client, token, project, on_complete=self.refresh_links, refresh_delay=refresh_delay)
        self.tab = "all"
        self.loaded = False
        self.error: str | None = None
        self._reports: dict[tuple[int, ReportKind], ReportLifecycle] = {}

    async def load(self) -> bool:
        """Fetch the project's links and replace the current set. Errors are kept in `error`."""
        try:
            records = await self.client.list_links(self.token, self.project.id)
        except DashboardError as e:
            self.error = e.message
            logger.warning("Loading links for project %s failed: %s", self.project.id, e.message)
            return False
        self.error = None
        self.loaded = True
        self._replace_links(records)
        return True

    async def refresh_links(self) -> None:
        logger.info("Refetching links for project %s", self.project.id)
        await self.load()

    def _replace_links(self, records: list[LinkRecord]) -> None:
        previous = {link.id: _metrics(link) for link in self.links.records}
        current = {link.id: link for link in records}
        self.links.replace(records)

        for key, lifecycle in list(self._reports.items()):
            link_id = key[0]
            link = current.get(link_id)
            if link is None:
                lifecycle.discard()
                del self._reports[key]
            elif previous.get(link_id) != _metrics(link):
                lifecycle.invalidate()

    def set_tab(self, tab: str) -> None:
        if tab not in LINK_TABS:
            raise ValidationError(f"Unknown tab: {tab}")
        self.tab = tab
        self.links.set_predicate(has_issues if tab == "issues" else None)

    def stats(self) -> ProjectStats:
        records = self.links.records
        return ProjectStats(
            total_links=len(records),
            links_with_issues=count_links_with_issues(records),
            last_crawled_at=records[0].created_at if records else None,
        )

    def find_link(self, link_id: int) -> LinkRecord:
        for link in self.links.records:
            if link.id == link_id:
                return link
        raise NotFoundError("Link not found")

    def report(self, link_id: int, kind: ReportKind) -> ReportLifecycle:
        """Lifecycle for (link, kind), created on first use."""
        self.find_link(link_id)
        key = (link_id, ReportKind(kind))
        lifecycle = self._reports.get(key)
        if lifecycle is None:
            lifecycle = ReportLifecycle(self.client, self.token, link_id, key[1])
            self._reports[key] = lifecycle
        return lifecycle

    async def start_crawl(self, url: str | None = None) -> bool:
        return await self.crawl.start(url)

    def discard(self) -> None:
        self.crawl.discard()
        for lifecycle in self._reports.values():
            lifecycle.discard()
        self._reports.clear()


class ProjectDashboard:
    def __init__(self, client, token: str, refresh_delay: float = CRAWL_REFRESH_DELAY_SECONDS):
        self.client = client
        self.token = token
        self.refresh_delay = refresh_delay
        self.projects: CollectionView[ProjectRecord] = project_view()
        self.loaded = False
        self.error: str | None = None
        self._workspaces: dict[int, ProjectWorkspace] = {}

    async def load_projects(self) -> bool:
        try:
            records = await self.client.list_projects(self.token)
        except DashboardError as e:
            self.error = e.message
            logger.warning("Loading projects failed: %s", e.message)
            return False
        self.error = None
        self.loaded = True
        self.projects.replace(records)

        known = {project.id for project in records}
        for project_id in list(self._workspaces):
            if project_id not in known:
                self._workspaces.pop(project_id).discard()
        return True

    async def ensure_loaded(self) -> None:
        if not self.loaded:
            await self.load_projects()

    async def create_project(self, project_name: str, domain: str) -> int:
        """Create a project and refetch the project list. Returns the new id."""
        name, host = normalize_new_project(project_name, domain)
        project_id = await self.client.create_project(self.token, name, host)
        logger.info("Created project %s (%s)", project_id, host)
        await self.load_projects()
        return project_id

    def find_project(self, project_id: int) -> ProjectRecord:
        for project in self.projects.records:
            if project.id == project_id:
                return project
        raise NotFoundError("Project not found")

    async def workspace(self, project_id: int) -> ProjectWorkspace:
        """Workspace for an opened project; links are fetched on first open and after a failed load."""
        workspace = self._workspaces.get(project_id)
        if workspace is not None:
            if not workspace.loaded:
                await workspace.load()
            return workspace
        await self.ensure_loaded()
        if not self.loaded:
            raise TransportError(self.error or "Failed to fetch projects")
        project = self.find_project(project_id)
        workspace = ProjectWorkspace(self.client, self.token, project, refresh_delay=self.refresh_delay)
        self._workspaces[project_id] = workspace
        await workspace.load()
        return workspace

    def recent_projects(self) -> list[ProjectRecord]:
        return self.projects.records[:RECENT_PROJECTS_LIMIT]

    def summary(self) -> DashboardSummaryResponse:
        # Analyzed-URL total and average SEO score have no source yet.
        loaded_links = [link for ws in self._workspaces.values() for link in ws.links.records]
        return DashboardSummaryResponse(
            total_projects=len(self.projects.records),
            total_analyzed_urls=None,
            average_seo_score=None,
            links_with_issues=count_links_with_issues(loaded_links),
            recent_projects=self.recent_projects(),
            error=self.error,
        )

    def discard(self) -> None:
        for workspace in self._workspaces.values():
            workspace.discard()
        self._workspaces.clear()
