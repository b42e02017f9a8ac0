"""HTTP client for the crawl backend.

Backend base URL and timeouts may be defined in a .env file in the backend root:

BACKEND_API_URL=http://localhost:5000
BACKEND_TIMEOUT_SECONDS=30
BACKEND_CRAWL_TIMEOUT_SECONDS=600

Every call takes the caller's bearer token explicitly; nothing is read from
ambient session state. Blocking `requests` calls run in a worker thread so the
dashboard state machines can await them.
"""

import asyncio
import logging
import os
from pathlib import Path

import requests
from dotenv import load_dotenv
from pydantic import ValidationError as PydanticValidationError

from errors import DecodeError, TransportError, ValidationError
from models import ReportKind
from schemas import LinkRecord, ProjectRecord

load_dotenv(dotenv_path=Path(__file__).resolve().parent / ".env")

logger = logging.getLogger(__name__)

BACKEND_API_URL = os.getenv("BACKEND_API_URL", "http://localhost:5000").rstrip("/")
TIMEOUT_SECONDS = float(os.getenv("BACKEND_TIMEOUT_SECONDS", "30"))
CRAWL_TIMEOUT_SECONDS = float(os.getenv("BACKEND_CRAWL_TIMEOUT_SECONDS", "600"))

REPORT_ENDPOINTS = {
    ReportKind.PERFORMANCE_AUDIT: ("/generate-lighthouse/{link_id}", "Failed to generate Lighthouse report"),
    ReportKind.AI_RECOMMENDATION: ("/generate-ai-report/{link_id}", "Failed to generate AI report"),
}

_VALIDATION_STATUSES = {400, 409, 422}


def _error_message(payload: object, default: str) -> str:
    if isinstance(payload, dict):
        for key in ("message", "error", "detail"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return default


class BackendClient:
    """Data-access capability over the crawl backend's REST API."""

    def __init__(
        self,
        base_url: str = BACKEND_API_URL,
        session: requests.Session | None = None,
        timeout: float = TIMEOUT_SECONDS,
        crawl_timeout: float = CRAWL_TIMEOUT_SECONDS,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.crawl_timeout = crawl_timeout

    def _request(
        self,
        method: str,
        path: str,
        token: str,
        *,
        failure_message: str,
        json_body: dict | None = None,
        timeout: float | None = None,
    ) -> object:
        url = f"{self.base_url}{path}"
        headers = {"Authorization": f"Bearer {token}"}
        if json_body is not None:
            headers["Content-Type"] = "application/json"
        logger.debug("%s %s", method, url)

        try:
            response = self.session.request(
                method,
                url,
                headers=headers,
                json=json_body,
                timeout=timeout or self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise TransportError(f"{failure_message}: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not response.ok:
            message = _error_message(payload, failure_message)
            logger.warning("%s %s returned %s: %s", method, url, response.status_code, message)
            raise TransportError(message, status_code=response.status_code)

        if payload is None:
            raise TransportError(f"{failure_message}: response was not JSON", status_code=response.status_code)
        return payload

    # --- blocking operations ---

    def list_projects_sync(self, token: str) -> list[ProjectRecord]:
        payload = self._request("GET", "/get-projects", token, failure_message="Failed to fetch projects")
        if not isinstance(payload, list):
            raise DecodeError("Project list response is not a list")
        try:
            return [ProjectRecord.model_validate(item) for item in payload]
        except PydanticValidationError as e:
            raise DecodeError(f"Malformed project record: {e.errors()[0]['msg']}") from e

    def create_project_sync(self, token: str, project_name: str, domain: str) -> int:
        try:
            payload = self._request(
                "POST",
                "/create-project",
                token,
                failure_message="Failed to create project",
                json_body={"project_name": project_name, "domain": domain},
            )
        except TransportError as e:
            if e.status_code in _VALIDATION_STATUSES:
                raise ValidationError(e.message) from e
            raise
        try:
            return int(payload["project_id"])
        except (KeyError, TypeError, ValueError) as e:
            raise DecodeError("Create project response has no project_id") from e

    def list_links_sync(self, token: str, project_id: int) -> list[LinkRecord]:
        payload = self._request("GET", f"/get-links/{project_id}", token, failure_message="Failed to fetch links")
        if not isinstance(payload, list):
            raise DecodeError("Link list response is not a list")
        try:
            return [LinkRecord.model_validate(item) for item in payload]
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ()))
            raise DecodeError(f"Malformed link record ({field}): {first['msg']}") from e

    def start_crawl_sync(self, token: str, project_id: int, url: str) -> int:
        payload = self._request(
            "POST",
            "/start-crawl",
            token,
            failure_message="Failed to start crawl",
            json_body={"url": url, "project_id": project_id},
            timeout=self.crawl_timeout,
        )
        if not isinstance(payload, dict):
            raise DecodeError("Crawl response is not an object")
        try:
            return int(payload.get("items_count", payload.get("analyzed_count")))
        except (TypeError, ValueError) as e:
            raise DecodeError("Crawl response has no items_count") from e

    def generate_report_sync(self, token: str, link_id: int, kind: ReportKind) -> dict:
        path, failure_message = REPORT_ENDPOINTS[kind]
        payload = self._request(
            "POST",
            path.format(link_id=link_id),
            token,
            failure_message=failure_message,
            json_body={},
        )
        if not isinstance(payload, dict):
            raise DecodeError(f"{failure_message}: response is not an object")
        return payload

    # --- awaitable operations used by the dashboard state ---

    async def list_projects(self, token: str) -> list[ProjectRecord]:
        return await asyncio.to_thread(self.list_projects_sync, token)

    async def create_project(self, token: str, project_name: str, domain: str) -> int:
        return await asyncio.to_thread(self.create_project_sync, token, project_name, domain)

    async def list_links(self, token: str, project_id: int) -> list[LinkRecord]:
        return await asyncio.to_thread(self.list_links_sync, token, project_id)

    async def start_crawl(self, token: str, project_id: int, url: str) -> int:
        return await asyncio.to_thread(self.start_crawl_sync, token, project_id, url)

    async def generate_report(self, token: str, link_id: int, kind: ReportKind) -> dict:
        return await asyncio.to_thread(self.generate_report_sync, token, link_id, kind)
