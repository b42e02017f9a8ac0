"""Shared fixtures: record factories and an in-memory backend client."""

import asyncio

import pytest

from errors import TransportError
from models import ReportKind
from schemas import LinkRecord, ProjectRecord

GOOD_TITLE = "Pressure Washing Services in Austin TX"
GOOD_META = "We clean driveways, decks and siding across Austin. Book a free quote online today and see results in one visit."


def build_link(link_id: int = 1, **overrides) -> LinkRecord:
    """A link with no issues unless fields are overridden."""
    data = {
        "id": link_id,
        "url": f"https://example.com/page-{link_id}",
        "title": GOOD_TITLE,
        "title_length": len(GOOD_TITLE),
        "status_code": 200,
        "total_h1_tags": 1,
        "h1_tags": ["Pressure Washing"],
        "meta_description": GOOD_META,
        "meta_description_length": len(GOOD_META),
        "total_images_on_page": 3,
        "total_images_without_alt": 0,
        "images_without_alt": [],
        "created_at": "2024-05-01T10:00:00",
        "project_id": 1,
    }
    data.update(overrides)
    return LinkRecord.model_validate(data)


def build_project(project_id: int = 1, name: str | None = None, domain: str | None = None) -> ProjectRecord:
    return ProjectRecord(
        id=project_id,
        project_name=name or f"Project {project_id}",
        domain=domain or f"site{project_id}.example.com",
        created_at="2024-04-01T09:00:00",
    )


class FakeBackendClient:
    """In-memory data-access capability with call recording and optional gates."""

    def __init__(self, projects=None, links=None):
        self.projects: list[ProjectRecord] = list(projects or [])
        self.links: dict[int, list[LinkRecord]] = dict(links or {})
        self.calls: list[tuple] = []
        self.project_error: Exception | None = None
        self.links_error: Exception | None = None
        self.crawl_count = 0
        self.crawl_error: Exception | None = None
        self.links_after_crawl: list[LinkRecord] | None = None
        self.crawl_gate: asyncio.Event | None = None
        self.report_payloads: dict[ReportKind, object] = {
            ReportKind.PERFORMANCE_AUDIT: {
                "scores": {"performance": 91, "accessibility": 78, "best-practices": 100, "seo": 45}
            },
            ReportKind.AI_RECOMMENDATION: {"ai_response": "Shorten the title.\n\nAdd alt text to images."},
        }
        self.report_gate: asyncio.Event | None = None

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    async def list_projects(self, token):
        self.calls.append(("list_projects", token))
        if self.project_error is not None:
            raise self.project_error
        return list(self.projects)

    async def create_project(self, token, project_name, domain):
        self.calls.append(("create_project", token, project_name, domain))
        project_id = max((p.id for p in self.projects), default=0) + 1
        self.projects.append(ProjectRecord(id=project_id, project_name=project_name, domain=domain))
        return project_id

    async def list_links(self, token, project_id):
        self.calls.append(("list_links", token, project_id))
        if self.links_error is not None:
            raise self.links_error
        return list(self.links.get(project_id, []))

    async def start_crawl(self, token, project_id, url):
        self.calls.append(("start_crawl", token, project_id, url))
        if self.crawl_gate is not None:
            await self.crawl_gate.wait()
        if self.crawl_error is not None:
            raise self.crawl_error
        if self.links_after_crawl is not None:
            self.links[project_id] = list(self.links_after_crawl)
        return self.crawl_count

    async def generate_report(self, token, link_id, kind):
        self.calls.append(("generate_report", token, link_id, kind))
        if self.report_gate is not None:
            await self.report_gate.wait()
        payload = self.report_payloads[kind]
        if isinstance(payload, Exception):
            raise payload
        return payload


async def no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def fake_client():
    return FakeBackendClient(
        projects=[build_project(1, "Acme Cleaning", "acme-clean.com"), build_project(2, "Blue Bakery", "bluebakery.de")],
        links={1: [build_link(1), build_link(2, status_code=404, total_h1_tags=0, h1_tags=[])]},
    )


@pytest.fixture
def transport_error():
    return TransportError("Failed to fetch links", status_code=500)
