"""
hgresource - A Mercurial resource for CI pipelines.

Implements the three resource operations on top of the `hg` executable:

    check   Detect new versions, filtered by path, branch and tag
    in      Materialize a version into a working directory
    out     Publish a version upstream (truncated clone, optional tag,
            rebase and retry when someone else pushed first)

Library use:
    from hgresource import HgClient, Repository, VersionResolver

    resolver = VersionResolver(HgClient())
    latest = resolver.get_latest(Repository(path="/tmp/clone"))

Domain Objects:
    Repository - Working copy plus version filters
    Commit - A changeset as reported by hg
    Version - Reference exchanged with the pipeline
    PublishRequest - What to publish and where

Services:
    VersionResolver - Latest / newer qualifying commits
    CheckService - `check`
    WorkspaceService - `in`
    PublishOrchestrator - `out`
"""

__version__ = "0.4.0"

# Domain objects
from .domain import (
    Repository,
    Commit,
    CommitProperty,
    Version,
    VersionReport,
    PublishRequest,
    PublishResult,
)

# Infrastructure
from .infra import HgClient, HgResult, VersionControlBackend, credential_session

# Services
from .services import (
    QueryBuilder,
    VersionResolver,
    CheckService,
    WorkspaceService,
    PublishOrchestrator,
)

__all__ = [
    # Version
    "__version__",
    # Domain objects
    "Repository",
    "Commit",
    "CommitProperty",
    "Version",
    "VersionReport",
    "PublishRequest",
    "PublishResult",
    # Infrastructure
    "HgClient",
    "HgResult",
    "VersionControlBackend",
    "credential_session",
    # Services
    "QueryBuilder",
    "VersionResolver",
    "CheckService",
    "WorkspaceService",
    "PublishOrchestrator",
]
