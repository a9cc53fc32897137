"""
Service layer for hgresource.

Contains the logic that composes hg primitives into resource operations:
- QueryBuilder: Revsets from path, branch and tag filters
- VersionResolver: Latest / newer qualifying commits
- CheckService: Version detection (`check`)
- WorkspaceService: Version materialization (`in`)
- PublishOrchestrator: Truncated clone, tag, rebase-retry-push (`out`)

Services are the primary API for commands to use.
"""

from .query_builder import QueryBuilder, escape_literal, SKIP_MARKER
from .conflict import PushOutcome, classify_push_failure
from .version_resolver import VersionResolver
from .check_service import CheckService
from .workspace_service import WorkspaceService
from .publish_service import PublishOrchestrator, PublishState, next_state

__all__ = [
    'QueryBuilder',
    'escape_literal',
    'SKIP_MARKER',
    'PushOutcome',
    'classify_push_failure',
    'VersionResolver',
    'CheckService',
    'WorkspaceService',
    'PublishOrchestrator',
    'PublishState',
    'next_state',
]
