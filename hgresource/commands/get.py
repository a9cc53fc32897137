"""
Handles the 'in' command: materialize a version into a directory.
"""

import click

from ..cli_utils import resource_command, add_common_options, make_client
from ..services.workspace_service import WorkspaceService


@click.command('in')
@click.argument('destination', type=click.Path(file_okay=False))
@add_common_options('verbose', 'pretty')
@resource_command
def in_cmd(destination, resource, credentials):
    """Check out the version on stdin into DESTINATION.

    Clones (or pulls into) DESTINATION, updates to the requested version
    (tip if none was given) and removes untracked files.
    """
    uri = resource.source.require_uri()
    repository = resource.source.to_repository(destination)

    client = make_client(repository, credentials)
    return WorkspaceService(client).materialize(repository, uri, resource.version)
