"""
Publish orchestration for hgresource.

Publishing pushes the commit a pipeline step produced to the upstream
repository. The commit is first cloned into an isolated, truncated
working copy so nothing that happens to the source afterwards can
change what gets pushed. With rebase enabled the push is optimistic:

    REBASING -> TAGGING -> PUSHING -> DONE
                              |
                              +-> RETRY -> REBASING    (destination moved)
                              +-> FATAL / EXHAUSTED

Attempts run strictly one after another since they all share the same
temporary working copy.
"""

import shutil
import tempfile
from enum import Enum
from pathlib import Path
from typing import Optional
import logging

from ..config import get_max_attempts, keep_temp_enabled
from ..domain.publish import PublishRequest, PublishResult
from ..exit_codes import (
    PublishConflict,
    PublishError,
    ResourceError,
    RetriesExhausted,
)
from ..infra.hg_client import HgClient, HgResult, VersionControlBackend
from .conflict import PushOutcome, classify_push_failure

logger = logging.getLogger(__name__)


class PublishState(Enum):
    """States of the rebase-tag-push loop."""
    REBASING = "rebasing"
    TAGGING = "tagging"
    PUSHING = "pushing"
    RETRY = "retry"
    DONE = "done"
    FATAL = "fatal"
    EXHAUSTED = "exhausted"


class StepOutcome(Enum):
    """Result of running the step belonging to a state."""
    SUCCESS = "success"
    CONFLICT = "conflict"
    FAILURE = "failure"


TERMINAL_STATES = frozenset([PublishState.DONE, PublishState.FATAL, PublishState.EXHAUSTED])


def next_state(
    state: PublishState,
    outcome: StepOutcome,
    attempt: int,
    max_attempts: int,
) -> PublishState:
    """
    Transition function of the publish loop.

    Args:
        state: State whose step just ran
        outcome: How that step went
        attempt: Number of the attempt in progress (1-based)
        max_attempts: Retry ceiling

    Returns:
        The state to run next
    """
    if state in TERMINAL_STATES:
        return state

    if outcome is StepOutcome.FAILURE:
        return PublishState.FATAL

    if outcome is StepOutcome.CONFLICT:
        if state is not PublishState.PUSHING:
            return PublishState.FATAL
        if attempt >= max_attempts:
            return PublishState.EXHAUSTED
        return PublishState.RETRY

    return {
        PublishState.REBASING: PublishState.TAGGING,
        PublishState.TAGGING: PublishState.PUSHING,
        PublishState.PUSHING: PublishState.DONE,
        PublishState.RETRY: PublishState.REBASING,
    }[state]


class PublishOrchestrator:
    """
    Publishes the current commit of a working copy.

    Example:
        orchestrator = PublishOrchestrator(HgClient())
        request = PublishRequest(source_path="build/repo",
                                 destination_uri="ssh://hg@example.com/repo",
                                 tag="v1.2", rebase=True)
        result = orchestrator.publish(request)
        print(result.version.ref)
    """

    def __init__(
        self,
        client: Optional[VersionControlBackend] = None,
        max_attempts: Optional[int] = None,
        keep_workdir: Optional[bool] = None,
        temp_dir: Optional[str] = None,
    ):
        """
        Initialize PublishOrchestrator.

        Args:
            client: Backend to drive (creates an HgClient if None)
            max_attempts: Push attempts before giving up (default from config, 10)
            keep_workdir: Keep the temporary clone for debugging
            temp_dir: Parent directory for the temporary clone
        """
        self.hg = client or HgClient()
        self.max_attempts = max_attempts if max_attempts is not None else get_max_attempts()
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.keep_workdir = keep_temp_enabled() if keep_workdir is None else keep_workdir
        self.temp_dir = temp_dir

    def publish(self, request: PublishRequest) -> PublishResult:
        """
        Clone, optionally tag, and push the current commit of `request.source_path`.

        Raises:
            BackendInvocationError: If reading the source commit fails
            PublishError: If cloning, tagging, rebasing or pushing fails
            RetriesExhausted: If every attempt lost the race to another push
            ResourceError: If the temporary directory can't be created
        """
        commit_id = self.hg.current_commit_id(request.source_path)
        logger.info(f"Publishing {commit_id} to {request.destination_uri} ({request.branch})")

        scratch = self._make_scratch_dir(commit_id)
        workdir = str(scratch / "repo")
        try:
            self._check(
                self.hg.clone_at_revision(workdir, request.source_path, commit_id),
                f"Error cloning repository {request.source_path}@{commit_id}",
            )
            self._check(self.hg.set_draft_phase(workdir), "Error setting repo phase to draft")

            if request.rebase:
                attempts = self._push_with_rebase(workdir, request)
            else:
                attempts = self._push_once(workdir, request)

            head = self.hg.current_commit_id(workdir)
            commit = self.hg.metadata(workdir, head)
            return PublishResult(
                version=commit.version,
                metadata=commit.to_properties(),
                attempts=attempts,
            )
        finally:
            self._cleanup(scratch)

    def _make_scratch_dir(self, commit_id: str) -> Path:
        try:
            return Path(tempfile.mkdtemp(
                prefix=f"hg-resource-out-{commit_id[:12]}-",
                dir=self.temp_dir,
            ))
        except OSError as e:
            raise ResourceError(f"Error creating temporary directory: {e}")

    def _cleanup(self, scratch: Path) -> None:
        if self.keep_workdir:
            logger.info(f"Keeping temporary clone at {scratch}")
            return
        try:
            shutil.rmtree(scratch)
        except OSError as e:
            logger.error(f"Error deleting temporary clone {scratch}: {e}")

    @staticmethod
    def _check(result: HgResult, message: str) -> HgResult:
        if not result.ok:
            raise PublishError(message, result.output)
        return result

    def _tag(self, workdir: str, tag: str) -> HgResult:
        return self._check(self.hg.tag(workdir, tag), f"Error tagging current commit with {tag}")

    def _push(self, workdir: str, request: PublishRequest) -> HgResult:
        """
        Push once.

        Raises:
            PublishConflict: If the destination gained a new head meanwhile
            PublishError: On any other failure
        """
        result = self.hg.push(workdir, request.destination_uri, request.branch)
        if result.ok:
            return result
        if classify_push_failure(result.output) is PushOutcome.CONFLICT:
            raise PublishConflict(result.output)
        raise PublishError(f"Error pushing to {request.destination_uri}", result.output)

    def _push_once(self, workdir: str, request: PublishRequest) -> int:
        if request.tag:
            self._tag(workdir, request.tag)
        try:
            self._push(workdir, request)
        except PublishConflict as e:
            raise PublishError(f"Error pushing to {request.destination_uri}", str(e))
        return 1

    def _push_with_rebase(self, workdir: str, request: PublishRequest) -> int:
        """Run the rebase-tag-push loop; returns the number of attempts used."""
        state = PublishState.REBASING
        attempt = 0
        tag_commit: Optional[str] = None
        failure: Optional[PublishError] = None
        last_output = ""

        while state not in TERMINAL_STATES:
            outcome = StepOutcome.SUCCESS
            try:
                if state is PublishState.REBASING:
                    attempt += 1
                    logger.info(f"Attempt {attempt}/{self.max_attempts}: rebasing onto {request.branch}")
                    self._check(
                        self.hg.pull_with_rebase(workdir, request.destination_uri, request.branch),
                        f"Error pulling/rebasing from {request.destination_uri}",
                    )
                elif state is PublishState.TAGGING:
                    if request.tag:
                        self._tag(workdir, request.tag)
                        tag_commit = self.hg.current_commit_id(workdir)
                elif state is PublishState.PUSHING:
                    self._push(workdir, request)
                elif state is PublishState.RETRY:
                    if tag_commit:
                        # The tag must point at the next rebased tip, not this one
                        self._check(
                            self.hg.strip(workdir, tag_commit),
                            f"Error removing tag commit {tag_commit}",
                        )
                        tag_commit = None
            except PublishConflict as e:
                last_output = str(e)
                logger.warning(f"Push rejected, {request.destination_uri} moved since the rebase")
                outcome = StepOutcome.CONFLICT
            except PublishError as e:
                failure = e
                outcome = StepOutcome.FAILURE

            state = next_state(state, outcome, attempt, self.max_attempts)

        if state is PublishState.FATAL:
            raise failure
        if state is PublishState.EXHAUSTED:
            raise RetriesExhausted(attempt, last_output)

        logger.info(f"Pushed after {attempt} attempt(s)")
        return attempt
