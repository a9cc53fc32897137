"""
Infrastructure layer for hgresource.

Contains abstractions for external systems:
- HgClient: Mercurial command execution
- credential_session: ssh-agent backed key staging
- atomic_save: Atomic file writes

These provide clean interfaces that can be faked for testing.
"""

from .hg_client import HgClient, HgResult, VersionControlBackend
from .ssh_agent import CredentialSession, credential_session
from .file_store import atomic_save

__all__ = [
    'HgClient',
    'HgResult',
    'VersionControlBackend',
    'CredentialSession',
    'credential_session',
    'atomic_save',
]
