#!/usr/bin/env python3

import click

from hgresource.commands.check import check_cmd
from hgresource.commands.get import in_cmd
from hgresource.commands.put import out_cmd


@click.group()
@click.version_option(package_name='hgresource')
def cli():
    """hgresource - Mercurial resource for CI pipelines.

    Each subcommand reads a JSON request from stdin and writes a JSON
    response to stdout:

    \b
      check          report new versions
      in DEST        check out a version into DEST
      out SRC        publish the repository under SRC
    """
    pass


cli.add_command(check_cmd)
cli.add_command(in_cmd)
cli.add_command(out_cmd)


def main():
    cli()

if __name__ == "__main__":
    main()
