"""
Handles the 'check' command: detect new versions.

Prints a JSON list of {"ref": ...} records, oldest first.
"""

import click

from ..cli_utils import resource_command, add_common_options, make_client
from ..services.check_service import CheckService, default_cache_path


@click.command('check')
@add_common_options('verbose', 'pretty')
@resource_command
def check_cmd(resource, credentials):
    """Report versions newer than the one on stdin.

    Reads {"source": {...}, "version": {"ref": ...}} from stdin. Without a
    version, or when the version no longer exists upstream, only the latest
    qualifying commit is reported.
    """
    uri = resource.source.require_uri()
    repository = resource.source.to_repository(default_cache_path())

    client = make_client(repository, credentials)
    versions = CheckService(client).check(repository, uri, resource.version)
    return versions
