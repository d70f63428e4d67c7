"""Client for the external CI pipeline that runs compatibility builds."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

import httpx

from .common.logging import log_context
from .exceptions import PipelineError
from .matrix import CompilerVersion, Platform
from .settings import Settings

__all__ = [
    "PipelineStatus",
    "TriggerResponse",
    "PipelineClient",
    "GitlabPipelineClient",
]

logger = logging.getLogger(__name__)

_ACCEPTED_STATUS_CODES = frozenset({200, 201})
_PAGE_SIZE = 100
_MAX_PAGES = 100
_MAX_CONNECTIONS = 20


class PipelineStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"


@dataclass(frozen=True, slots=True)
class TriggerResponse:
    status_code: int
    web_url: str | None = None

    @property
    def accepted(self) -> bool:
        return self.status_code in _ACCEPTED_STATUS_CODES


class PipelineClient(Protocol):
    """What the build trigger needs from the CI system."""

    async def trigger(
        self,
        *,
        build_id: UUID,
        version_id: UUID,
        platform: Platform,
        compiler_version: CompilerVersion,
    ) -> TriggerResponse: ...

    async def status_count(self, status: PipelineStatus) -> int: ...


class GitlabPipelineClient:
    """Trigger builds and read pipeline load through the GitLab v4 API."""

    def __init__(self, settings: Settings, *, client: httpx.AsyncClient) -> None:
        if settings.gitlab_project_id is None:
            raise ValueError("BM_GITLAB_PROJECT_ID is required to talk to the pipeline")
        self._settings = settings
        self._client = client
        # Submissions queue here instead of in the connection pool.
        self._slots = asyncio.Semaphore(_MAX_CONNECTIONS)
        self._project_url = (
            f"{settings.gitlab_api_url}/projects/{settings.gitlab_project_id}"
        )

    @classmethod
    def create_http_client(cls, settings: Settings) -> httpx.AsyncClient:
        headers: dict[str, str] = {}
        if settings.gitlab_api_token:
            headers["PRIVATE-TOKEN"] = settings.gitlab_api_token
        return httpx.AsyncClient(
            timeout=httpx.Timeout(settings.pipeline_timeout_seconds, pool=None),
            limits=httpx.Limits(
                max_connections=_MAX_CONNECTIONS,
                max_keepalive_connections=_MAX_CONNECTIONS // 2,
            ),
            headers=headers,
            follow_redirects=False,
        )

    def _trigger_form(
        self,
        *,
        build_id: UUID,
        version_id: UUID,
        platform: Platform,
        compiler_version: CompilerVersion,
    ) -> dict[str, str]:
        if not self._settings.gitlab_trigger_token:
            raise PipelineError("BM_GITLAB_TRIGGER_TOKEN is not configured")
        variables = {
            "API_BASEURL": self._settings.api_base_url,
            "BUILD_ID": str(build_id),
            "BUILD_PLATFORM": platform.value,
            "COMPILER_VERSION": str(compiler_version),
            "VERSION_ID": str(version_id),
        }
        form = {
            "token": self._settings.gitlab_trigger_token,
            "ref": self._settings.gitlab_ref,
        }
        form.update({f"variables[{key}]": value for key, value in variables.items()})
        return form

    async def trigger(
        self,
        *,
        build_id: UUID,
        version_id: UUID,
        platform: Platform,
        compiler_version: CompilerVersion,
    ) -> TriggerResponse:
        form = self._trigger_form(
            build_id=build_id,
            version_id=version_id,
            platform=platform,
            compiler_version=compiler_version,
        )
        try:
            async with self._slots:
                response = await self._client.post(
                    f"{self._project_url}/trigger/pipeline",
                    data=form,
                )
        except httpx.HTTPError as exc:
            raise PipelineError(f"pipeline trigger request failed: {exc}") from exc

        web_url: str | None = None
        if response.status_code in _ACCEPTED_STATUS_CODES:
            web_url = _json_field(response, "web_url")
        else:
            logger.warning(
                "pipeline.trigger.rejected",
                extra=log_context(
                    version_id=version_id,
                    build_id=build_id,
                    status_code=response.status_code,
                    body=response.text[:200],
                ),
            )
        return TriggerResponse(status_code=response.status_code, web_url=web_url)

    async def status_count(self, status: PipelineStatus) -> int:
        """Count pipelines in ``status``, following GitLab's page headers."""

        total = 0
        page: str | None = "1"
        pages = 0
        while page and pages < _MAX_PAGES:
            try:
                response = await self._client.get(
                    f"{self._project_url}/pipelines",
                    params={"status": status.value, "page": page, "per_page": _PAGE_SIZE},
                )
                response.raise_for_status()
            except httpx.HTTPError as exc:
                raise PipelineError(f"pipeline status request failed: {exc}") from exc

            try:
                payload = response.json()
            except ValueError as exc:
                raise PipelineError(f"pipeline status response is not JSON: {exc}") from exc
            if not isinstance(payload, list):
                raise PipelineError("pipeline status response is not a list")
            total += len(payload)
            pages += 1
            page = (response.headers.get("x-next-page") or "").strip() or None
        if page:
            logger.warning(
                "pipeline.status_count.truncated",
                extra=log_context(status=status.value, pages=pages, counted=total),
            )
        return total


def _json_field(response: httpx.Response, key: str) -> Any:
    try:
        payload = response.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    value = payload.get(key)
    return value if isinstance(value, str) and value else None
