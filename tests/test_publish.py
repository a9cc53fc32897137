"""
Tests for the publish orchestrator.

Tests cover:
- Push failure classification
- The publish state machine transition function
- PublishOrchestrator with and without rebase
- Temporary clone cleanup
"""

import os

import pytest

from conftest import CONFLICT_OUTPUT, node
from hgresource.domain import PublishRequest
from hgresource.exit_codes import (
    BackendInvocationError,
    PublishError,
    ResourceError,
    RetriesExhausted,
)
from hgresource.infra.hg_client import HgResult
from hgresource.services.conflict import PushOutcome, classify_push_failure
from hgresource.services.publish_service import (
    PublishOrchestrator,
    PublishState,
    StepOutcome,
    next_state,
)

SOURCE = "/build/repo"
DEST = "ssh://hg@example.com/repo"


@pytest.fixture
def source(fake_hg):
    """Source working copy sitting at node(1)."""
    fake_hg.add_commit(node(1), desc="release candidate")
    fake_hg.current[SOURCE] = node(1)
    return fake_hg


@pytest.fixture
def orchestrator_factory(source, tmp_path):
    def factory(**kwargs):
        kwargs.setdefault('max_attempts', 10)
        kwargs.setdefault('keep_workdir', False)
        return PublishOrchestrator(source, temp_dir=str(tmp_path), **kwargs)
    return factory


def workdir_of(fake_hg):
    """Path of the temporary clone, taken from the clone call."""
    for name, args in fake_hg.calls:
        if name == "clone_at_revision":
            return args[0]
    raise AssertionError("no clone_at_revision call")


class TestClassifyPushFailure:
    """Tests for the conflict classifier."""

    def test_new_remote_head_is_conflict(self):
        assert classify_push_failure(CONFLICT_OUTPUT) is PushOutcome.CONFLICT

    def test_prefix_must_start_a_line(self):
        output = "remote: hint: abort: push creates new remote head is not ours"
        assert classify_push_failure(output) is PushOutcome.FATAL

    def test_leading_whitespace_tolerated(self):
        assert classify_push_failure("  abort: push creates new remote head abc!") is PushOutcome.CONFLICT

    @pytest.mark.parametrize("output", [
        "abort: authorization failed",
        "abort: error: Connection refused",
        "abort: push creates new remote branches: feature!",
        "",
        None,
    ])
    def test_everything_else_is_fatal(self, output):
        assert classify_push_failure(output) is PushOutcome.FATAL


class TestNextState:
    """Tests for the transition function."""

    def test_happy_path(self):
        assert next_state(PublishState.REBASING, StepOutcome.SUCCESS, 1, 10) is PublishState.TAGGING
        assert next_state(PublishState.TAGGING, StepOutcome.SUCCESS, 1, 10) is PublishState.PUSHING
        assert next_state(PublishState.PUSHING, StepOutcome.SUCCESS, 1, 10) is PublishState.DONE

    def test_conflict_retries(self):
        assert next_state(PublishState.PUSHING, StepOutcome.CONFLICT, 1, 10) is PublishState.RETRY
        assert next_state(PublishState.RETRY, StepOutcome.SUCCESS, 1, 10) is PublishState.REBASING

    def test_conflict_on_last_attempt_exhausts(self):
        assert next_state(PublishState.PUSHING, StepOutcome.CONFLICT, 10, 10) is PublishState.EXHAUSTED

    @pytest.mark.parametrize("state", [
        PublishState.REBASING,
        PublishState.TAGGING,
        PublishState.PUSHING,
        PublishState.RETRY,
    ])
    def test_failure_is_fatal_from_any_state(self, state):
        assert next_state(state, StepOutcome.FAILURE, 1, 10) is PublishState.FATAL

    def test_terminal_states_stay(self):
        for state in (PublishState.DONE, PublishState.FATAL, PublishState.EXHAUSTED):
            assert next_state(state, StepOutcome.SUCCESS, 1, 10) is state


class TestPublishWithoutRebase:
    """Publishing with rebase disabled."""

    def test_pushes_once(self, source, orchestrator_factory):
        result = orchestrator_factory().publish(PublishRequest(SOURCE, DEST))

        assert source.count("push") == 1
        assert source.count("pull_with_rebase") == 0
        assert result.version.ref == node(1)
        assert result.attempts == 1
        assert len(result.metadata) == 5

    def test_clones_truncated_at_current_commit(self, source, orchestrator_factory):
        orchestrator_factory().publish(PublishRequest(SOURCE, DEST))

        clone_calls = [args for name, args in source.calls if name == "clone_at_revision"]
        assert len(clone_calls) == 1
        workdir, uri, commit_id = clone_calls[0]
        assert uri == SOURCE
        assert commit_id == node(1)
        assert ("set_draft_phase", (workdir,)) in source.calls

    def test_tags_before_push(self, source, orchestrator_factory):
        result = orchestrator_factory().publish(PublishRequest(SOURCE, DEST, tag="v1.0"))

        names = [name for name, _ in source.calls if name in ("tag", "push")]
        assert names == ["tag", "push"]
        assert result.version.ref != node(1)

    def test_conflict_is_fatal(self, source, orchestrator_factory, conflict_result):
        source.push_results = [conflict_result]
        with pytest.raises(PublishError) as exc_info:
            orchestrator_factory().publish(PublishRequest(SOURCE, DEST))

        assert not isinstance(exc_info.value, RetriesExhausted)
        assert "new remote head" in exc_info.value.output
        assert source.count("push") == 1


class TestPublishWithRebase:
    """Publishing with the rebase-retry loop."""

    def test_first_attempt_succeeds(self, source, orchestrator_factory):
        result = orchestrator_factory().publish(PublishRequest(SOURCE, DEST, rebase=True))

        assert source.count("pull_with_rebase") == 1
        assert source.count("push") == 1
        assert result.attempts == 1

    def test_retry_after_conflict(self, source, orchestrator_factory, conflict_result):
        """First push loses the race, second one goes through."""
        source.push_results = [conflict_result, HgResult(output="pushing to push-target\n")]

        result = orchestrator_factory().publish(PublishRequest(SOURCE, DEST, rebase=True))

        assert source.count("pull_with_rebase") == 2
        assert source.count("push") == 2
        assert result.attempts == 2
        # Reported version is the tip produced by the second rebase
        rebased = [r["node"] for r in source.records if r["desc"] == "rebased"]
        assert result.version.ref == rebased[-1]

    def test_retries_exhausted(self, source, orchestrator_factory, conflict_result):
        source.push_results = [conflict_result] * 4

        with pytest.raises(RetriesExhausted) as exc_info:
            orchestrator_factory(max_attempts=4).publish(PublishRequest(SOURCE, DEST, rebase=True))

        assert exc_info.value.attempts == 4
        assert source.count("push") == 4
        assert source.count("pull_with_rebase") == 4
        assert "new remote head" in exc_info.value.output

    def test_default_ceiling_is_ten(self, source, tmp_path, conflict_result, monkeypatch):
        monkeypatch.delenv("HGRESOURCE_MAX_ATTEMPTS", raising=False)
        source.push_results = [conflict_result] * 20

        orchestrator = PublishOrchestrator(source, keep_workdir=False, temp_dir=str(tmp_path))
        with pytest.raises(RetriesExhausted):
            orchestrator.publish(PublishRequest(SOURCE, DEST, rebase=True))

        assert source.count("push") == 10

    def test_non_conflict_failure_stops_immediately(self, source, orchestrator_factory, conflict_result):
        source.push_results = [
            conflict_result,
            HgResult(output="abort: authorization failed", returncode=255),
            HgResult(output="pushing to push-target\n"),
        ]

        with pytest.raises(PublishError) as exc_info:
            orchestrator_factory().publish(PublishRequest(SOURCE, DEST, rebase=True))

        assert not isinstance(exc_info.value, RetriesExhausted)
        assert "authorization failed" in exc_info.value.output
        assert source.count("push") == 2

    def test_rebase_failure_is_fatal(self, source, orchestrator_factory):
        source.fail("pull_with_rebase", output="abort: unresolved conflicts")

        with pytest.raises(PublishError, match="rebasing"):
            orchestrator_factory().publish(PublishRequest(SOURCE, DEST, rebase=True))

        assert source.count("push") == 0

    def test_tag_applied_after_each_rebase(self, source, orchestrator_factory, conflict_result):
        source.push_results = [conflict_result, HgResult(output="")]

        orchestrator_factory().publish(PublishRequest(SOURCE, DEST, tag="v2.0", rebase=True))

        sequence = [name for name, _ in source.calls
                    if name in ("pull_with_rebase", "tag", "push", "strip")]
        assert sequence == [
            "pull_with_rebase", "tag", "push",
            "strip",
            "pull_with_rebase", "tag", "push",
        ]

    def test_stale_tag_commit_is_stripped(self, source, orchestrator_factory, conflict_result):
        source.push_results = [conflict_result, HgResult(output="")]

        result = orchestrator_factory().publish(PublishRequest(SOURCE, DEST, tag="v2.0", rebase=True))

        tag_commits = [r for r in source.records if r["desc"].startswith("Added tag v2.0")]
        assert len(tag_commits) == 1
        # The surviving tag commit tags the second rebased tip
        rebased = [r["node"] for r in source.records if r["desc"] == "rebased"]
        assert tag_commits[0]["desc"].endswith(rebased[-1])
        assert result.version.ref == tag_commits[0]["node"]


class TestWorkingCopyLifecycle:
    """The temporary clone is removed on every exit path."""

    def test_removed_on_success(self, source, orchestrator_factory, tmp_path):
        orchestrator_factory().publish(PublishRequest(SOURCE, DEST))
        assert os.listdir(tmp_path) == []

    def test_removed_on_fatal_error(self, source, orchestrator_factory, tmp_path):
        source.fail("push", output="abort: authorization failed")
        with pytest.raises(PublishError):
            orchestrator_factory().publish(PublishRequest(SOURCE, DEST))
        assert os.listdir(tmp_path) == []

    def test_removed_on_exhaustion(self, source, orchestrator_factory, tmp_path, conflict_result):
        source.push_results = [conflict_result] * 2
        with pytest.raises(RetriesExhausted):
            orchestrator_factory(max_attempts=2).publish(PublishRequest(SOURCE, DEST, rebase=True))
        assert os.listdir(tmp_path) == []

    def test_kept_with_debug_override(self, source, orchestrator_factory, tmp_path):
        orchestrator_factory(keep_workdir=True).publish(PublishRequest(SOURCE, DEST))
        kept = os.listdir(tmp_path)
        assert len(kept) == 1
        assert kept[0].startswith(f"hg-resource-out-{node(1)[:12]}-")

    def test_debug_override_from_environment(self, source, tmp_path, monkeypatch):
        monkeypatch.setenv("HGRESOURCE_KEEP_TEMP", "1")
        orchestrator = PublishOrchestrator(source, max_attempts=1, temp_dir=str(tmp_path))
        assert orchestrator.keep_workdir is True

    def test_workdir_inside_scratch_dir(self, source, orchestrator_factory, tmp_path):
        orchestrator_factory().publish(PublishRequest(SOURCE, DEST))
        workdir = workdir_of(source)
        assert os.path.dirname(os.path.dirname(workdir)) == str(tmp_path)

    def test_unreadable_source_creates_nothing(self, fake_hg, tmp_path):
        fake_hg.fail("log", output="abort: no repository found in '/build/repo'")
        orchestrator = PublishOrchestrator(fake_hg, max_attempts=1, keep_workdir=False, temp_dir=str(tmp_path))
        with pytest.raises(BackendInvocationError):
            orchestrator.publish(PublishRequest(SOURCE, DEST))
        assert os.listdir(tmp_path) == []

    def test_temp_dir_failure(self, source, tmp_path):
        missing = str(tmp_path / "does" / "not" / "exist")
        orchestrator = PublishOrchestrator(source, max_attempts=1, keep_workdir=False, temp_dir=missing)
        with pytest.raises(ResourceError):
            orchestrator.publish(PublishRequest(SOURCE, DEST))

    def test_invalid_ceiling(self, source):
        with pytest.raises(ValueError):
            PublishOrchestrator(source, max_attempts=0)
