"""
Repository domain object for hgresource.

Repository identifies one Mercurial working copy together with the
filters that decide which of its commits count as pipeline versions.
It's immutable for the duration of an operation.
"""

from dataclasses import dataclass
from typing import Tuple

DEFAULT_BRANCH = "default"


@dataclass(frozen=True)
class Repository:
    """
    A Mercurial working copy plus its version filters.

    Attributes:
        path: Local path of the working copy
        branch: Tracked named branch
        include_paths: Regex path patterns; a commit qualifies if it touches any
        exclude_paths: Regex path patterns; matching commits are dropped
        tag_filter: Regex a commit's tags must match (empty = no filter)
        skip_ssl_verification: Pass --insecure to network operations
    """
    path: str
    branch: str = DEFAULT_BRANCH
    include_paths: Tuple[str, ...] = ()
    exclude_paths: Tuple[str, ...] = ()
    tag_filter: str = ""
    skip_ssl_verification: bool = False

    def __post_init__(self):
        # Accept lists from JSON input but store tuples
        object.__setattr__(self, 'include_paths', tuple(self.include_paths or ()))
        object.__setattr__(self, 'exclude_paths', tuple(self.exclude_paths or ()))
        if not self.branch:
            object.__setattr__(self, 'branch', DEFAULT_BRANCH)
