"""
Domain layer for hgresource.

Contains pure domain objects with no I/O or side effects:
- Repository: A working copy and its version filters
- Commit: A changeset as reported by hg
- Version / CommitProperty: What gets reported to the pipeline
- PublishRequest / PublishResult: Input and output of a publish

These objects are immutable where possible and provide
serialization methods for JSON output.
"""

from .repository import Repository, DEFAULT_BRANCH
from .commit import (
    Commit,
    CommitProperty,
    Version,
    VersionReport,
    parse_hg_date,
    parse_log_json,
)
from .publish import PublishRequest, PublishResult

__all__ = [
    'Repository',
    'DEFAULT_BRANCH',
    'Commit',
    'CommitProperty',
    'Version',
    'VersionReport',
    'parse_hg_date',
    'parse_log_json',
    'PublishRequest',
    'PublishResult',
]
