"""EntityForge CLI entry point."""

import click


@click.group()
def cli():
    """EntityForge: schema-driven entity engine CLI."""
    pass


# Register subcommand groups
from entityforge.cli.schema_cmd import schema  # noqa: E402

cli.add_command(schema)
