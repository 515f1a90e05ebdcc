"""
Response models for the remote management API.

Only the fields the engine reads are declared; anything else the API returns
is ignored.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class RemoteModel(BaseModel):
    """Base class for remote API payloads."""

    model_config = ConfigDict(frozen=True, extra="ignore")


class ProjectDatabase(RemoteModel):
    host: str = ""
    port: int = 5432


class Project(RemoteModel):
    """
    One hosted project.

    Attributes:
        id: Project reference, used in every project-scoped URL.
        organization_id: Owning organization.
        name: Display name.
        region: Hosting region.
        created_at: Creation time as reported by the API.
        database: Direct database host and port, when reported.
    """

    id: str
    organization_id: str = ""
    name: str = ""
    region: str = ""
    created_at: str = ""
    database: ProjectDatabase | None = None


class ApiKey(RemoteModel):
    """A project API key such as "anon" or "service_role"."""

    name: str
    api_key: str | None = None


class FunctionInfo(RemoteModel):
    """A deployed edge function."""

    slug: str
    name: str = ""
    status: str = ""
    verify_jwt: bool = True


class Secret(RemoteModel):
    """A project secret. Listing endpoints may omit or mask the value."""

    name: str
    value: str | None = None


__all__ = [
    "ApiKey",
    "FunctionInfo",
    "Project",
    "ProjectDatabase",
    "RemoteModel",
    "Secret",
]
