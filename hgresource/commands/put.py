"""
Handles the 'out' command: publish a new version upstream.

The commit checked out in SOURCE/<params.repository> is pushed to
source.uri on source.branch, optionally tagged and rebased.
"""

import os

import click

from ..cli_utils import resource_command, add_common_options, make_client
from ..config import ResourceInput
from ..domain.publish import PublishRequest
from ..exit_codes import ConfigurationError
from ..services.publish_service import PublishOrchestrator


def read_tag(source_dir: str, resource: ResourceInput):
    """
    Build the tag to apply from params.tag (a file) and params.tag_prefix.

    Returns:
        The tag, or None if params.tag is unset
    """
    if not resource.params.tag:
        return None

    tag_file = os.path.join(source_dir, resource.params.tag)
    try:
        with open(tag_file, 'r', encoding='utf-8') as f:
            value = f.read().strip()
    except OSError as e:
        raise ConfigurationError(f"Error reading tag file {tag_file}: {e}")

    if not value:
        raise ConfigurationError(f"Tag file {tag_file} is empty")
    return resource.params.tag_prefix + value


def build_request(source_dir: str, resource: ResourceInput) -> PublishRequest:
    if not resource.params.repository:
        raise ConfigurationError("Path to the repository to publish must be provided (params.repository)")

    return PublishRequest(
        source_path=os.path.join(source_dir, resource.params.repository),
        destination_uri=resource.source.require_uri(),
        branch=resource.source.branch,
        tag=read_tag(source_dir, resource),
        rebase=resource.params.rebase,
    )


@click.command('out')
@click.argument('source', type=click.Path(file_okay=False))
@add_common_options('verbose', 'pretty')
@resource_command
def out_cmd(source, resource, credentials):
    """Publish the repository found under SOURCE.

    Reads {"source": {...}, "params": {"repository": ..., "tag": ...,
    "tag_prefix": ..., "rebase": ...}} from stdin.
    """
    request = build_request(source, resource)
    client = make_client(resource.source.to_repository(request.source_path), credentials)
    return PublishOrchestrator(client).publish(request)
