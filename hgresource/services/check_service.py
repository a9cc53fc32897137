"""
Version detection (`check`) for hgresource.

Keeps a cached clone of the source repository up to date and reports
the qualifying commits that came after the last version the pipeline
has seen.
"""

import os
import tempfile
from typing import List, Optional
import logging

from ..domain.commit import Version
from ..domain.repository import Repository
from ..exit_codes import UnknownReference
from ..infra.hg_client import HgClient, VersionControlBackend
from .version_resolver import VersionResolver

logger = logging.getLogger(__name__)

CACHE_DIR_NAME = "hg-resource-repo-cache"


def default_cache_path() -> str:
    return os.path.join(tempfile.gettempdir(), CACHE_DIR_NAME)


class CheckService:
    """
    Detects new versions.

    Example:
        service = CheckService()
        versions = service.check(repo, "ssh://hg@example.com/repo", previous_ref)
    """

    def __init__(self, client: Optional[VersionControlBackend] = None):
        self.hg = client or HgClient()
        self.resolver = VersionResolver(self.hg)

    def update_cache(self, repository: Repository, source_uri: str) -> None:
        """Clone or pull `source_uri` into the repository's path."""
        self.hg.clone_or_update(repository.path, source_uri, repository.branch).check(
            f"Error cloning or updating {source_uri}"
        )

    def find_versions(self, repository: Repository, previous_ref: Optional[str]) -> List[Version]:
        """
        List versions newer than `previous_ref`, oldest first.

        Falls back to the latest qualifying commit when there is no previous
        version or this clone has never heard of it.
        """
        if previous_ref:
            try:
                return self.resolver.get_descendants_of(repository, previous_ref)
            except UnknownReference:
                logger.warning(
                    f"Version {previous_ref} not found in {repository.branch}, "
                    "reporting the latest commit instead"
                )

        latest = self.resolver.get_latest(repository)
        return [latest] if latest else []

    def check(
        self,
        repository: Repository,
        source_uri: str,
        previous_ref: Optional[str] = None,
    ) -> List[Version]:
        self.update_cache(repository, source_uri)
        return self.find_versions(repository, previous_ref)
