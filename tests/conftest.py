"""
Shared fixtures for hgresource tests.

FakeHg is an in-memory stand-in for HgClient. It keeps a linear history
of hg JSON records (oldest first) and understands just enough of the
revsets QueryBuilder produces to answer them: the branch, the skip
marker, `last(...)` and `descendants('<id>')`.
"""

import json
import re

import pytest

from hgresource.domain.commit import Commit
from hgresource.exit_codes import BackendInvocationError
from hgresource.infra.hg_client import HgResult
from hgresource.services.query_builder import SKIP_MARKER

CONFLICT_OUTPUT = (
    "pushing to push-target\n"
    "searching for changes\n"
    "abort: push creates new remote head 5a2f41c0c2a1 on branch 'default'!\n"
    "(pull and merge or see 'hg help push' for details about pushing new heads)\n"
)


def node(n: int) -> str:
    """A 40 character changeset id derived from `n`."""
    return f"{n:040x}"


def make_record(commit_id, desc="change", branch="default", tags=(), user="Jane Doe <jdoe@example.com>"):
    return {
        "rev": 0,
        "node": commit_id,
        "branch": branch,
        "phase": "public",
        "user": user,
        "date": [1457968493, -32400],
        "desc": desc,
        "bookmarks": [],
        "tags": list(tags),
        "parents": [],
    }


class FakeHg:
    """Scripted VersionControlBackend."""

    def __init__(self):
        self.calls = []
        self.records = []
        self.current = {}
        self.push_results = []
        self.failures = {}
        self._counter = 1000

    # --- scripting helpers -------------------------------------------------

    def add_commit(self, commit_id, **kwargs):
        self.records.append(make_record(commit_id, **kwargs))
        return commit_id

    def fail(self, operation, output="abort: something went wrong", returncode=255):
        self.failures[operation] = HgResult(command=['hg', operation], output=output, returncode=returncode)

    def count(self, operation):
        return sum(1 for name, _ in self.calls if name == operation)

    def _new_commit(self, desc):
        self._counter += 1
        return self.add_commit(node(self._counter), desc=desc, branch="default")

    def _record(self, operation, *args):
        self.calls.append((operation, args))
        return self.failures.get(operation)

    def _find(self, commit_id):
        for record in self.records:
            if record["node"] == commit_id:
                return record
        return None

    def _qualifying(self, revset):
        branch = re.search(r"branch\('([^']*)'\)", revset).group(1)
        return [
            r for r in self.records
            if r["branch"] == branch and SKIP_MARKER not in r["desc"]
        ]

    # --- VersionControlBackend ---------------------------------------------

    def clone_or_update(self, path, source_uri, branch):
        failure = self._record("clone_or_update", path, source_uri, branch)
        if failure:
            return failure
        on_branch = [r for r in self.records if r["branch"] == branch]
        if on_branch:
            self.current[path] = on_branch[-1]["node"]
        return HgResult(output="")

    def clone_at_revision(self, path, source_uri, commit_id):
        failure = self._record("clone_at_revision", path, source_uri, commit_id)
        if failure:
            return failure
        self.current[path] = commit_id
        return HgResult(output="")

    def checkout(self, path, commit_id):
        failure = self._record("checkout", path, commit_id)
        if failure:
            return failure
        if commit_id == "tip":
            self.current[path] = self.records[-1]["node"]
        elif self._find(commit_id):
            self.current[path] = commit_id
        else:
            return HgResult(output=f"abort: unknown revision '{commit_id}'!\n", returncode=255)
        return HgResult(output="")

    def purge_untracked(self, path):
        return self._record("purge_untracked", path) or HgResult(output="")

    def set_draft_phase(self, path):
        return self._record("set_draft_phase", path) or HgResult(output="")

    def tag(self, path, name):
        failure = self._record("tag", path, name)
        if failure:
            return failure
        self.current[path] = self._new_commit(f"Added tag {name} for changeset {self.current[path]}")
        return HgResult(output="")

    def strip(self, path, commit_id):
        failure = self._record("strip", path, commit_id)
        if failure:
            return failure
        self.records = [r for r in self.records if r["node"] != commit_id]
        return HgResult(output="")

    def pull_with_rebase(self, path, dest_uri, branch):
        failure = self._record("pull_with_rebase", path, dest_uri, branch)
        if failure:
            return failure
        # Each rebase replays the local commit onto a new upstream tip
        self.current[path] = self._new_commit("rebased")
        return HgResult(output="")

    def push(self, path, dest_uri, branch):
        failure = self._record("push", path, dest_uri, branch)
        if failure:
            return failure
        if self.push_results:
            return self.push_results.pop(0)
        return HgResult(output="pushing to push-target\n")

    def log(self, path, revset, template):
        failure = self._record("log", path, revset, template)
        if failure:
            return failure

        if template == "json":
            record = self._find(revset)
            if record is None:
                return HgResult(output=f"abort: unknown revision '{revset}'!\n", returncode=255)
            return HgResult(output=json.dumps([record]))

        if revset == ".":
            return HgResult(output=self.current.get(path, ""))

        qualifying = self._qualifying(revset)

        if revset.startswith("last("):
            return HgResult(output=qualifying[-1]["node"] if qualifying else "")

        match = re.search(r"descendants\('([^']*)'\)", revset)
        if match:
            ancestor = match.group(1)
            ids = [r["node"] for r in self.records]
            if ancestor not in ids:
                return HgResult(output=f"abort: unknown revision '{ancestor}'!\n", returncode=255)
            newer = set(ids[ids.index(ancestor) + 1:])
            return HgResult(output="".join(
                f"{r['node']}\n" for r in qualifying if r["node"] in newer
            ))

        raise AssertionError(f"FakeHg can't evaluate revset {revset!r}")

    def current_commit_id(self, path):
        result = self.log(path, ".", "{node}")
        result.check("Error getting current commit id")
        return result.output

    def metadata(self, path, commit_id):
        result = self.log(path, commit_id, "json")
        if not result.ok:
            raise BackendInvocationError(f"Error getting metadata for commit {commit_id}", result.output)
        return Commit.from_hg_json(json.loads(result.output)[0])


@pytest.fixture
def fake_hg():
    """An empty FakeHg."""
    return FakeHg()


@pytest.fixture
def conflict_result():
    return HgResult(command=['hg', 'push'], output=CONFLICT_OUTPUT, returncode=255)
