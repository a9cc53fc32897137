"""
Mercurial client infrastructure for hgresource.

Provides a clean abstraction over hg command execution.
All hg operations go through this client, making them:
- Easy to replace with a fake for testing
- Consistent in error handling
- Isolated from the version and publish logic

Primitive operations return an HgResult holding the combined
stdout/stderr text and the exit code; they never raise on a non-zero
exit so callers can inspect the text (e.g. to spot a push conflict).
"""

import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Protocol
import logging

from ..domain.commit import Commit, parse_log_json
from ..exit_codes import BackendInvocationError

logger = logging.getLogger(__name__)

# Commands that talk to a remote (accept --insecure, use ui.ssh)
REMOTE_COMMANDS = frozenset(['clone', 'pull', 'push'])

# Alias the destination is registered under for pull/push
PUSH_TARGET = "push-target"


@dataclass
class HgResult:
    """Result of one hg invocation."""
    command: List[str] = field(default_factory=list)
    output: str = ""
    returncode: int = 0

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def check(self, message: str) -> 'HgResult':
        """Raise BackendInvocationError with `message` unless the call succeeded."""
        if not self.ok:
            raise BackendInvocationError(message, self.output)
        return self


class VersionControlBackend(Protocol):
    """Operations the version resolver and publish orchestrator rely on."""

    def clone_or_update(self, path: str, source_uri: str, branch: str) -> HgResult: ...

    def clone_at_revision(self, path: str, source_uri: str, commit_id: str) -> HgResult: ...

    def checkout(self, path: str, commit_id: str) -> HgResult: ...

    def purge_untracked(self, path: str) -> HgResult: ...

    def set_draft_phase(self, path: str) -> HgResult: ...

    def tag(self, path: str, name: str) -> HgResult: ...

    def strip(self, path: str, commit_id: str) -> HgResult: ...

    def pull_with_rebase(self, path: str, dest_uri: str, branch: str) -> HgResult: ...

    def push(self, path: str, dest_uri: str, branch: str) -> HgResult: ...

    def log(self, path: str, revset: str, template: str) -> HgResult: ...

    def current_commit_id(self, path: str) -> str: ...

    def metadata(self, path: str, commit_id: str) -> Commit: ...


class HgClient:
    """
    Runs the `hg` executable.

    Example:
        client = HgClient(skip_ssl_verification=True)
        result = client.log("/path/to/repo", "tip", "{node}")
        if result.ok:
            print(result.output)
    """

    def __init__(
        self,
        executable: str = "hg",
        skip_ssl_verification: bool = False,
        env: Optional[Mapping[str, str]] = None,
        ssh_command: Optional[str] = None,
    ):
        """
        Initialize HgClient.

        Args:
            executable: hg binary to run
            skip_ssl_verification: Add --insecure to clone/pull/push
            env: Extra environment (e.g. SSH agent socket) for child processes
            ssh_command: ui.ssh override for clone/pull/push
        """
        self.executable = executable
        self.skip_ssl_verification = skip_ssl_verification
        self.env = dict(env or {})
        self.ssh_command = ssh_command

    def _environ(self) -> Dict[str, str]:
        environ = os.environ.copy()
        environ.update(self.env)
        # Keep output stable regardless of user configuration
        environ['HGPLAIN'] = '1'
        return environ

    def _run(self, command: str, args: List[str]) -> HgResult:
        """
        Run an hg command.

        Args:
            command: hg subcommand (clone, pull, log, ...)
            args: Remaining arguments

        Returns:
            HgResult with combined output and exit code
        """
        cmd = [self.executable, command]
        if command in REMOTE_COMMANDS:
            if self.skip_ssl_verification:
                cmd.append("--insecure")
            if self.ssh_command:
                cmd.extend(["--config", f"ui.ssh={self.ssh_command}"])
        cmd.extend(args)

        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            proc = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                env=self._environ(),
            )
        except OSError as e:
            # Executable missing or not runnable
            return HgResult(command=cmd, output=str(e), returncode=-1)

        if proc.returncode != 0:
            logger.debug(f"hg {command} exited with {proc.returncode}")
        return HgResult(command=cmd, output=proc.stdout or "", returncode=proc.returncode)

    def is_hg_repo(self, path: str) -> bool:
        """Check if path holds an hg working copy."""
        return (Path(path) / ".hg").is_dir()

    def clone_or_update(self, path: str, source_uri: str, branch: str) -> HgResult:
        """Clone `source_uri` into `path`, or pull and update if it's already there."""
        if not self.is_hg_repo(path):
            return self._run("clone", ["-q", "--branch", branch, source_uri, path])

        pulled = self._run("pull", ["-q", "--cwd", path])
        if not pulled.ok:
            return pulled

        updated = self.checkout(path, branch)
        return HgResult(
            command=updated.command,
            output=pulled.output + updated.output,
            returncode=updated.returncode,
        )

    def clone_at_revision(self, path: str, source_uri: str, commit_id: str) -> HgResult:
        """Clone `source_uri` into `path` without any history after `commit_id`."""
        return self._run("clone", ["-q", "--rev", commit_id, source_uri, path])

    def checkout(self, path: str, commit_id: str) -> HgResult:
        return self._run("checkout", ["-q", "--cwd", path, "--clean", "--rev", commit_id])

    def purge_untracked(self, path: str) -> HgResult:
        return self._run("purge", ["--config", "extensions.purge=", "--cwd", path, "--all"])

    def set_draft_phase(self, path: str) -> HgResult:
        """Make every commit in the working copy rebaseable. See `hg help phases`."""
        return self._run("phase", ["--cwd", path, "--force", "--draft"])

    def tag(self, path: str, name: str) -> HgResult:
        """Tag the working copy parent. Expects to be run at tip."""
        return self._run("tag", ["--cwd", path, name])

    def strip(self, path: str, commit_id: str) -> HgResult:
        """Remove `commit_id` and its descendants from the local history."""
        return self._run("strip", [
            "--config", "extensions.strip=",
            "--cwd", path,
            "--no-backup",
            "--rev", commit_id,
        ])

    def pull_with_rebase(self, path: str, dest_uri: str, branch: str) -> HgResult:
        """Pull `branch` from `dest_uri` and replay local draft commits on top."""
        return self._run("pull", [
            "-q",
            "--cwd", path,
            "--config", "extensions.rebase=",
            "--config", f"paths.{PUSH_TARGET}={dest_uri}",
            "--rebase",
            "--branch", branch,
            PUSH_TARGET,
        ])

    def push(self, path: str, dest_uri: str, branch: str) -> HgResult:
        """
        Push `branch` to `dest_uri`.

        hg exits with 1 when there is nothing to push; that counts as success.
        """
        result = self._run("push", [
            "--cwd", path,
            "--config", f"paths.{PUSH_TARGET}={dest_uri}",
            "--branch", branch,
            PUSH_TARGET,
        ])
        if result.returncode == 1:
            logger.info("Nothing to push, destination already has these changes")
            result.returncode = 0
        return result

    def log(self, path: str, revset: str, template: str) -> HgResult:
        return self._run("log", ["--cwd", path, "--rev", revset, "--template", template])

    def current_commit_id(self, path: str) -> str:
        """Return the id of the working copy parent."""
        result = self.log(path, ".", "{node}")
        result.check("Error getting current commit id")
        return result.output.strip()

    def metadata(self, path: str, commit_id: str) -> Commit:
        """
        Load a single changeset.

        Raises:
            BackendInvocationError: If hg fails or doesn't return exactly one record
        """
        result = self.log(path, commit_id, "json")
        result.check(f"Error getting metadata for commit {commit_id}")

        try:
            commits = parse_log_json(result.output)
        except (ValueError, KeyError) as e:
            raise BackendInvocationError(
                f"Error parsing metadata for commit {commit_id}: {e}", result.output
            ) from e

        if len(commits) != 1:
            raise BackendInvocationError(
                f"Expected 1 commit for {commit_id}, found {len(commits)}", result.output
            )
        return commits[0]
