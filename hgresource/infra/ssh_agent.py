"""
SSH credential staging for hgresource.

Loads a private key into a short-lived ssh-agent so hg can reach
ssh:// repositories. Each session owns a private directory holding the
key and an ssh client config; hg is pointed at that config through
`ui.ssh`, so nothing under $HOME is touched. The agent's environment is
returned as a value and handed to HgClient rather than written into
os.environ. The agent is killed and the directory removed when the
session ends.

Example:
    with credential_session(private_key) as session:
        client = HgClient(env=session.environ, ssh_command=session.ssh_command)
        ...
"""

import os
import re
import shlex
import shutil
import signal
import subprocess
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, Optional
import logging

from ..exit_codes import ResourceError
from .file_store import atomic_save

logger = logging.getLogger(__name__)

SESSION_DIR_PREFIX = "hg-resource-ssh-"
KEY_FILE_NAME = "private-key"
SSH_CONFIG_FILE_NAME = "ssh-config"
SSH_ASKPASS_PATH = "/opt/resource/askpass.sh"
SSH_CLIENT_CONFIG = "StrictHostKeyChecking no\nLogLevel quiet\n"

# ssh-agent -s prints lines like "SSH_AGENT_PID=123; export SSH_AGENT_PID;"
_AGENT_VAR = re.compile(r'^([A-Za-z_][A-Za-z0-9_]*)=([^;]*)')


@dataclass
class CredentialSession:
    """A running ssh-agent holding the pipeline's private key."""
    key_file: Path
    config_file: Optional[Path] = None
    environ: Dict[str, str] = field(default_factory=dict)

    @property
    def ssh_command(self) -> Optional[str]:
        """Value for hg's ui.ssh that uses this session's client config."""
        if self.config_file is None:
            return None
        return f"ssh -F {shlex.quote(str(self.config_file))}"

    @property
    def agent_pid(self) -> Optional[int]:
        pid = self.environ.get('SSH_AGENT_PID')
        if not pid:
            return None
        try:
            return int(pid)
        except ValueError:
            raise ResourceError(f"SSH_AGENT_PID is not an integer, but: {pid}")


def parse_agent_output(output: str) -> Dict[str, str]:
    """
    Parse the variable assignments ssh-agent prints to stdout.

    Quoting and escaping are not supported.
    """
    variables = {}
    for line in output.splitlines():
        match = _AGENT_VAR.match(line.strip())
        if match:
            variables[match.group(1)] = match.group(2)
    return variables


def start_agent() -> Dict[str, str]:
    """Start ssh-agent and return the environment it asks clients to use."""
    try:
        proc = subprocess.run(["ssh-agent", "-s"], capture_output=True, text=True)
    except OSError as e:
        raise ResourceError(f"Error running ssh-agent: {e}")

    if proc.returncode != 0:
        raise ResourceError(f"Error running ssh-agent: {proc.stderr.strip()}")

    return parse_agent_output(proc.stdout)


def add_key(key_file: Path, agent_env: Dict[str, str]) -> None:
    """Load `key_file` into the agent described by `agent_env`."""
    env = os.environ.copy()
    env.update(agent_env)
    env.update({'DISPLAY': '', 'SSH_ASKPASS': SSH_ASKPASS_PATH})

    try:
        proc = subprocess.run(
            ["ssh-add", str(key_file)],
            capture_output=True,
            text=True,
            env=env,
            stdin=subprocess.DEVNULL,
        )
    except OSError as e:
        raise ResourceError(f"Error running ssh-add: {e}")

    if proc.returncode != 0:
        message = proc.stderr.strip() or f"exit code {proc.returncode}"
        raise ResourceError(f"Error running ssh-add: {message}")


def kill_agent(session: CredentialSession) -> None:
    pid = session.agent_pid
    if pid is None:
        return
    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        logger.debug(f"ssh-agent {pid} already gone")


@contextmanager
def credential_session(
    private_key: str,
    temp_dir: Optional[str] = None,
) -> Iterator[CredentialSession]:
    """
    Stage `private_key` for the duration of the block.

    Args:
        private_key: PEM encoded private key
        temp_dir: Parent of the session directory (defaults to $TMPDIR or /tmp)

    Raises:
        ResourceError: If the key, agent or ssh config cannot be set up
    """
    try:
        session_dir = Path(tempfile.mkdtemp(prefix=SESSION_DIR_PREFIX, dir=temp_dir))
    except OSError as e:
        raise ResourceError(f"Error creating credential directory: {e}")

    session = CredentialSession(key_file=session_dir / KEY_FILE_NAME)
    try:
        try:
            atomic_save(session.key_file, private_key, file_mode=0o600)
            session.config_file = atomic_save(
                session_dir / SSH_CONFIG_FILE_NAME, SSH_CLIENT_CONFIG, file_mode=0o600
            )
        except OSError as e:
            raise ResourceError(f"Error writing credentials to disk: {e}")

        session.environ = start_agent()
        add_key(session.key_file, session.environ)

        logger.debug(f"ssh-agent started with pid {session.agent_pid}")
        yield session
    finally:
        try:
            kill_agent(session)
        except (ResourceError, OSError) as e:
            logger.error(f"Error in cleanup: {e}")
        shutil.rmtree(session_dir, ignore_errors=True)
