"""
ProjectGateway - the HTTP APIs of one hosted project.

Storage, function invocation and admin-auth calls go to the project's own
base URL rather than the management API, authenticated with the project's
API keys:

    - service_role key: storage objects and the admin users API
    - anon key: function invocation and password sign-in
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from hostmigrate.exceptions import RemoteError
from hostmigrate.observability import Tracer
from hostmigrate.remote._http import RemoteHTTPClient

logger = logging.getLogger(__name__)


def _object_path(bucket_id: str, name: str) -> str:
    return f"/storage/v1/object/{quote(bucket_id, safe='')}/{quote(name, safe='/')}"


class ProjectGateway(RemoteHTTPClient):
    """
    Client for one project's storage, functions and auth APIs.

    Args:
        base_url: The project's API base URL (e.g. "https://<ref>.supabase.co").
        service_key: The project's service_role key.
        anon_key: The project's anon key; the service key is used when omitted.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport, used to fake the API in tests.
        tracer: Optional custom Tracer instance.
        enable_tracing: Whether to enable OpenTelemetry tracing.
    """

    _span_prefix = "hostmigrate.gateway"

    def __init__(
        self,
        base_url: str,
        *,
        service_key: str,
        anon_key: str | None = None,
        timeout: float | None = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        super().__init__(
            base_url,
            headers={"Authorization": f"Bearer {service_key}", "apikey": service_key},
            timeout=timeout,
            transport=transport,
            tracer=tracer,
            enable_tracing=enable_tracing,
        )
        self._anon_key = anon_key or service_key

    async def __aenter__(self) -> ProjectGateway:
        return self

    def _anon_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._anon_key}", "apikey": self._anon_key}

    # =========================================================================
    # Storage
    # =========================================================================

    async def upload_object(
        self,
        bucket_id: str,
        name: str,
        data: bytes,
        content_type: str | None = None,
    ) -> None:
        await self._request(
            "POST",
            _object_path(bucket_id, name),
            operation="upload object",
            expected=(200, 201),
            content=data,
            headers={"Content-Type": content_type or "application/octet-stream"},
        )

    async def download_object(self, bucket_id: str, name: str) -> bytes:
        response = await self._request(
            "GET", _object_path(bucket_id, name), operation="download object"
        )
        return response.content

    async def delete_object(
        self,
        bucket_id: str,
        name: str,
        *,
        missing_ok: bool = False,
    ) -> None:
        """
        Delete one object.

        Args:
            missing_ok: Treat 404 (already gone) as success.
        """
        expected = (200, 204, 404) if missing_ok else (200, 204)
        await self._request(
            "DELETE",
            _object_path(bucket_id, name),
            operation="delete object",
            expected=expected,
        )

    # =========================================================================
    # Functions
    # =========================================================================

    async def invoke_function(self, name: str, payload: Any) -> httpx.Response:
        """
        POST a JSON payload to a deployed function.

        Any status is returned to the caller; only transport failures raise.
        """
        return await self._request(
            "POST",
            f"/functions/v1/{quote(name, safe='')}",
            operation="invoke function",
            expected=range(100, 600),
            json=payload,
            headers=self._anon_headers(),
        )

    # =========================================================================
    # Auth
    # =========================================================================

    async def create_user(self, email: str, password: str) -> str:
        """
        Create a confirmed account through the admin API.

        Returns:
            The new account's id.

        Raises:
            RemoteError: If the response carries no id.
        """
        response = await self._request(
            "POST",
            "/auth/v1/admin/users",
            operation="create user",
            expected=(200, 201),
            json={"email": email, "password": password, "email_confirm": True},
        )
        user_id = response.json().get("id")
        if not user_id:
            raise RemoteError("create user: response did not include a user id")
        return str(user_id)

    async def sign_in(self, email: str, password: str) -> str:
        """
        Sign in with the password grant.

        Returns:
            The access token.

        Raises:
            RemoteError: If the response carries no access token.
        """
        response = await self._request(
            "POST",
            "/auth/v1/token",
            operation="sign in",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
            headers=self._anon_headers(),
        )
        token = response.json().get("access_token")
        if not token:
            raise RemoteError("sign in: response did not include an access token")
        return str(token)

    async def delete_user(self, user_id: str) -> None:
        await self._request(
            "DELETE",
            f"/auth/v1/admin/users/{quote(user_id, safe='')}",
            operation="delete user",
            expected=(200, 204),
        )


__all__ = ["ProjectGateway"]
