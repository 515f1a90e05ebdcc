"""
Clients for the hosted platform.

- ManagementClient: management API (projects, keys, functions, secrets, auth config)
- ProjectGateway: one project's storage, functions and auth APIs
- RemoteCatalog: read-side SQL against the project's database
- RemoteAccess: builds the above from a migration's stored credentials
"""

from hostmigrate.remote.access import RemoteAccess
from hostmigrate.remote.catalog import ForeignKey, RemoteCatalog
from hostmigrate.remote.database import (
    PostgresEngineFactory,
    RemoteEngineFactory,
    build_database_url,
    ping,
)
from hostmigrate.remote.gateway import ProjectGateway
from hostmigrate.remote.management import (
    ANON_KEY,
    DEFAULT_MANAGEMENT_URL,
    SERVICE_ROLE_KEY,
    ManagementClient,
)
from hostmigrate.remote.models import ApiKey, FunctionInfo, Project, ProjectDatabase, Secret

__all__ = [
    "ANON_KEY",
    "DEFAULT_MANAGEMENT_URL",
    "SERVICE_ROLE_KEY",
    "ApiKey",
    "ForeignKey",
    "FunctionInfo",
    "ManagementClient",
    "PostgresEngineFactory",
    "Project",
    "ProjectDatabase",
    "ProjectGateway",
    "RemoteAccess",
    "RemoteCatalog",
    "RemoteEngineFactory",
    "Secret",
    "build_database_url",
    "ping",
]
