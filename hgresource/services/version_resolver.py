"""
Version resolution for hgresource.

Answers the two questions `check` needs: which qualifying commit is the
newest, and which qualifying commits came after a given one.
"""

import re
from typing import List, Optional
import logging

from ..domain.commit import Version
from ..domain.repository import Repository
from ..exit_codes import ResolutionError, UnknownReference
from ..infra.hg_client import HgClient, VersionControlBackend
from .query_builder import QueryBuilder

logger = logging.getLogger(__name__)

# hg aborts with one of these when a revision isn't in the local clone
_UNKNOWN_REVISION = re.compile(
    r"unknown revision|filtered revision|hidden revision|ambiguous identifier",
    re.IGNORECASE,
)


class VersionResolver:
    """
    Resolves pipeline versions from a local clone.

    Both operations are read-only; they only run `hg log`.

    Example:
        resolver = VersionResolver()
        latest = resolver.get_latest(repo)
        newer = resolver.get_descendants_of(repo, latest.ref)
    """

    def __init__(self, client: Optional[VersionControlBackend] = None):
        self.hg = client or HgClient()

    def get_latest(self, repository: Repository) -> Optional[Version]:
        """
        Return the newest qualifying commit, or None if nothing qualifies.

        Raises:
            ResolutionError: If hg fails to evaluate the query
        """
        revset = QueryBuilder(repository).latest_expression()
        result = self.hg.log(repository.path, revset, "{node}")
        if not result.ok:
            raise ResolutionError("Error getting latest commit id", result.output)

        ref = result.output.strip()
        if not ref:
            logger.info(f"No commits on branch {repository.branch} match the configured filters")
            return None
        return Version(ref=ref)

    def get_descendants_of(self, repository: Repository, commit_id: str) -> List[Version]:
        """
        Return qualifying commits strictly newer than `commit_id`, oldest first.

        Raises:
            UnknownReference: If `commit_id` doesn't exist in this clone
            ResolutionError: If hg fails for any other reason
        """
        revset = QueryBuilder(repository).descendants_expression(commit_id)
        result = self.hg.log(repository.path, revset, "{node}\n")
        if not result.ok:
            if _UNKNOWN_REVISION.search(result.output):
                raise UnknownReference(commit_id, result.output)
            raise ResolutionError(
                f"Error getting descendant commits of {commit_id}", result.output
            )

        return [
            Version(ref=line.strip())
            for line in result.output.splitlines()
            if line.strip() and line.strip() != commit_id
        ]
