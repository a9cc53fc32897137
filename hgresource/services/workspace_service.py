"""
Version materialization (`in`) for hgresource.

Brings a working copy to exactly the requested version: clone or pull,
clean checkout, then purge anything hg doesn't track.
"""

from typing import Optional
import logging

from ..domain.commit import VersionReport
from ..domain.repository import Repository
from ..infra.hg_client import HgClient, VersionControlBackend

logger = logging.getLogger(__name__)

# Revision checked out when the pipeline passes no version
DEFAULT_REVISION = "tip"


class WorkspaceService:
    """Materializes versions into a destination directory."""

    def __init__(self, client: Optional[VersionControlBackend] = None):
        self.hg = client or HgClient()

    def materialize(
        self,
        repository: Repository,
        source_uri: str,
        ref: Optional[str] = None,
    ) -> VersionReport:
        """
        Put version `ref` (or tip) into `repository.path`.

        Returns:
            The checked out version with its metadata

        Raises:
            BackendInvocationError: If any hg step fails
        """
        revision = ref or DEFAULT_REVISION
        path = repository.path

        self.hg.clone_or_update(path, source_uri, repository.branch).check(
            f"Error cloning or updating {source_uri}"
        )
        self.hg.checkout(path, revision).check(f"Error checking out {revision}")
        self.hg.purge_untracked(path).check("Error purging repository")

        commit = self.hg.metadata(path, self.hg.current_commit_id(path))
        logger.info(f"Checked out {commit.node} into {path}")
        return VersionReport.from_commit(commit)
