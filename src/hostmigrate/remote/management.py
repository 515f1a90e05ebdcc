"""
ManagementClient - the remote platform's management API.

Authenticated with the operator's personal access token. Covers everything
the engine needs that is not plain SQL:

    - project listing and lookup
    - project API keys (service_role for storage, anon for probes)
    - edge function list / deploy / delete
    - secret list / create / delete
    - auth configuration get / patch

Example:
    >>> async with ManagementClient(token) as client:
    ...     projects = await client.list_projects()
    ...     keys = await client.get_api_keys(projects[0].id)
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from typing import Any

import httpx

from hostmigrate.observability import Tracer
from hostmigrate.remote._http import RemoteHTTPClient
from hostmigrate.remote.models import ApiKey, FunctionInfo, Project, Secret

logger = logging.getLogger(__name__)

DEFAULT_MANAGEMENT_URL = "https://api.supabase.com"

SERVICE_ROLE_KEY = "service_role"
ANON_KEY = "anon"


class ManagementClient(RemoteHTTPClient):
    """
    Client for the management API.

    Args:
        access_token: Personal access token of the operator.
        base_url: API base URL.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport, used to fake the API in tests.
        tracer: Optional custom Tracer instance.
        enable_tracing: Whether to enable OpenTelemetry tracing.
    """

    _span_prefix = "hostmigrate.management"

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str = DEFAULT_MANAGEMENT_URL,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        super().__init__(
            base_url,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=timeout,
            transport=transport,
            tracer=tracer,
            enable_tracing=enable_tracing,
        )

    async def __aenter__(self) -> ManagementClient:
        return self

    # =========================================================================
    # Projects
    # =========================================================================

    async def list_projects(self) -> list[Project]:
        """
        List the projects visible to the token.

        Also serves as the token check when connecting.
        """
        response = await self._request("GET", "/v1/projects", operation="list projects")
        return [Project.model_validate(project) for project in response.json()]

    async def get_project(self, project_ref: str) -> Project:
        response = await self._request(
            "GET", f"/v1/projects/{project_ref}", operation="get project"
        )
        return Project.model_validate(response.json())

    async def get_api_keys(self, project_ref: str) -> list[ApiKey]:
        response = await self._request(
            "GET", f"/v1/projects/{project_ref}/api-keys", operation="get api keys"
        )
        return [ApiKey.model_validate(key) for key in response.json()]

    # =========================================================================
    # Functions
    # =========================================================================

    async def list_functions(self, project_ref: str) -> list[FunctionInfo]:
        response = await self._request(
            "GET", f"/v1/projects/{project_ref}/functions", operation="list functions"
        )
        return [FunctionInfo.model_validate(function) for function in response.json()]

    async def deploy_function(
        self,
        project_ref: str,
        slug: str,
        archive: bytes,
        *,
        verify_jwt: bool = True,
    ) -> FunctionInfo | None:
        """
        Deploy a function from a tar.gz archive of its source directory.

        The archive's entries are expected under "<slug>/", with the
        entrypoint at "<slug>/index.ts".
        """
        metadata = {
            "name": slug,
            "entrypoint_path": f"{slug}/index.ts",
            "verify_jwt": verify_jwt,
        }
        response = await self._request(
            "POST",
            f"/v1/projects/{project_ref}/functions/deploy",
            operation="deploy function",
            expected=(200, 201),
            params={"slug": slug},
            data={"metadata": json.dumps(metadata)},
            files={"file": (f"{slug}.tar.gz", archive, "application/gzip")},
        )
        logger.info("Deployed function %s to project %s", slug, project_ref)
        if not response.content:
            return None
        return FunctionInfo.model_validate(response.json())

    async def delete_function(self, project_ref: str, slug: str) -> None:
        await self._request(
            "DELETE",
            f"/v1/projects/{project_ref}/functions/{slug}",
            operation="delete function",
            expected=(200, 204),
        )

    # =========================================================================
    # Secrets
    # =========================================================================

    async def list_secrets(self, project_ref: str) -> list[Secret]:
        response = await self._request(
            "GET", f"/v1/projects/{project_ref}/secrets", operation="list secrets"
        )
        return [Secret.model_validate(secret) for secret in response.json()]

    async def create_secrets(self, project_ref: str, secrets: Mapping[str, str]) -> None:
        """Create or overwrite secrets in one batch."""
        payload = [{"name": name, "value": value} for name, value in secrets.items()]
        await self._request(
            "POST",
            f"/v1/projects/{project_ref}/secrets",
            operation="create secrets",
            expected=(200, 201),
            json=payload,
        )

    async def delete_secrets(self, project_ref: str, names: Iterable[str]) -> None:
        await self._request(
            "DELETE",
            f"/v1/projects/{project_ref}/secrets",
            operation="delete secrets",
            expected=(200, 204),
            json=list(names),
        )

    # =========================================================================
    # Auth configuration
    # =========================================================================

    async def get_auth_config(self, project_ref: str) -> dict[str, Any]:
        response = await self._request(
            "GET", f"/v1/projects/{project_ref}/config/auth", operation="get auth config"
        )
        return dict(response.json())

    async def update_auth_config(
        self,
        project_ref: str,
        changes: Mapping[str, Any],
    ) -> dict[str, Any]:
        """PATCH the given auth settings; other settings are left as they are."""
        response = await self._request(
            "PATCH",
            f"/v1/projects/{project_ref}/config/auth",
            operation="update auth config",
            json=dict(changes),
        )
        return dict(response.json()) if response.content else {}


__all__ = [
    "ANON_KEY",
    "DEFAULT_MANAGEMENT_URL",
    "SERVICE_ROLE_KEY",
    "ManagementClient",
]
