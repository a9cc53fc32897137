"""
Publish domain objects for hgresource.

PublishRequest describes one `out` invocation; PublishResult is what the
orchestrator hands back once the push went through.
"""

from dataclasses import dataclass
from typing import Optional

from ..exit_codes import ConfigurationError
from .commit import VersionReport
from .repository import DEFAULT_BRANCH


@dataclass(frozen=True)
class PublishRequest:
    """
    A validated request to publish the current commit of a working copy.

    Attributes:
        source_path: Working copy whose current commit gets published
        destination_uri: Repository to push to
        branch: Destination branch
        tag: Tag to apply to the pushed tip (None = no tag)
        rebase: Rebase onto the destination and retry on concurrent pushes
    """
    source_path: str
    destination_uri: str
    branch: str = DEFAULT_BRANCH
    tag: Optional[str] = None
    rebase: bool = False

    def __post_init__(self):
        if not self.source_path:
            raise ConfigurationError("Path to the repository to publish must be provided")
        if not self.destination_uri:
            raise ConfigurationError("Repository URI must be provided")
        if not self.branch:
            object.__setattr__(self, 'branch', DEFAULT_BRANCH)
        if not self.tag:
            object.__setattr__(self, 'tag', None)


@dataclass
class PublishResult(VersionReport):
    """Outcome of a successful publish."""
    attempts: int = 1
