"""apiforge CLI entry point."""

import click


@click.group()
def cli():
    """apiforge: declarative entity-to-REST-API compiler."""
    pass


# Register subcommands
from apiforge.cli.app_cmd import check, routes, serve  # noqa: E402

cli.add_command(routes)
cli.add_command(check)
cli.add_command(serve)
