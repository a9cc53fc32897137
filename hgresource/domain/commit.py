"""
Commit domain objects for hgresource.

Commit mirrors one record of `hg log --template json`. CommitProperty
is the flattened name/value view reported to the pipeline alongside a
version.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List, Tuple

# Format of author_date values, e.g. "2016-03-15 00:14:53 +0900"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S %z"


@dataclass(frozen=True)
class Version:
    """Opaque version reference exchanged with the pipeline (a commit id)."""
    ref: str

    def to_dict(self) -> Dict[str, Any]:
        return {'ref': self.ref}


@dataclass(frozen=True)
class CommitProperty:
    """A single metadata entry shown next to a version."""
    name: str
    value: str
    type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {'name': self.name, 'value': self.value}
        if self.type:
            result['type'] = self.type
        return result


def parse_hg_date(hg_date) -> datetime:
    """
    Convert an hg `[unix_seconds, offset]` pair into an aware datetime.

    hg stores the offset with the inverse sign of the usual UTC offset:
    `[1457968493, -32400]` is 2016-03-15 00:14:53 +0900.

    Raises:
        ValueError: If the value is not a two-element sequence
    """
    if not isinstance(hg_date, (list, tuple)) or len(hg_date) != 2:
        raise ValueError(f"Expected hg date as [seconds, offset], got {hg_date!r}")

    seconds, offset = hg_date
    zone = timezone(timedelta(seconds=-int(offset)))
    return datetime.fromtimestamp(int(seconds), tz=zone)


def format_hg_date(value: datetime) -> str:
    return value.strftime(DATE_FORMAT)


@dataclass(frozen=True)
class Commit:
    """
    A changeset as reported by hg.

    Attributes:
        node: Full 40-character changeset hash
        branch: Named branch
        phase: public, draft or secret
        user: Author string
        date: Commit time with the author's UTC offset
        desc: Commit message
        bookmarks: Bookmarks pointing at the changeset
        tags: Tags pointing at the changeset
        parents: Parent hashes
        rev: Local revision number
    """
    node: str
    branch: str
    phase: str
    user: str
    date: datetime
    desc: str
    bookmarks: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = ()
    parents: Tuple[str, ...] = ()
    rev: Optional[int] = None

    @classmethod
    def from_hg_json(cls, record: Dict[str, Any]) -> 'Commit':
        """Build a Commit from one element of hg's JSON log output."""
        return cls(
            node=record['node'],
            branch=record.get('branch', ''),
            phase=record.get('phase', ''),
            user=record.get('user', ''),
            date=parse_hg_date(record.get('date')),
            desc=record.get('desc', ''),
            bookmarks=tuple(record.get('bookmarks') or ()),
            tags=tuple(record.get('tags') or ()),
            parents=tuple(record.get('parents') or ()),
            rev=record.get('rev'),
        )

    @property
    def version(self) -> Version:
        return Version(ref=self.node)

    def to_properties(self) -> List[CommitProperty]:
        """
        Flatten into the five reported properties, always in this order:
        commit, author, author_date, message, tags.
        """
        return [
            CommitProperty(name='commit', value=self.node),
            CommitProperty(name='author', value=self.user),
            CommitProperty(name='author_date', value=format_hg_date(self.date), type='time'),
            CommitProperty(name='message', value=self.desc, type='message'),
            CommitProperty(name='tags', value=', '.join(self.tags)),
        ]


def parse_log_json(output: str) -> List[Commit]:
    """
    Parse the output of `hg log --template json`.

    Raises:
        ValueError: If the output is not a JSON list of changeset records
    """
    try:
        records = json.loads(output)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON from hg log: {e}") from e

    if not isinstance(records, list):
        raise ValueError("Expected a JSON list from hg log")

    return [Commit.from_hg_json(record) for record in records]


@dataclass
class VersionReport:
    """A version together with the metadata shown for it."""
    version: Version
    metadata: List[CommitProperty] = field(default_factory=list)

    @classmethod
    def from_commit(cls, commit: Commit) -> 'VersionReport':
        return cls(version=commit.version, metadata=commit.to_properties())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'metadata': [prop.to_dict() for prop in self.metadata],
            'version': self.version.to_dict(),
        }
