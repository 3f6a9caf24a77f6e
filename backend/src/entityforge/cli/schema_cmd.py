"""Schema CLI commands: validate, list and show."""

import json
from pathlib import Path

import click
import yaml

from entityforge.core.config import EngineConfig
from entityforge.core.errors import ConfigurationError, NotFoundError
from entityforge.schema.cache import SchemaCache
from entityforge.schema.sources import YamlFileSource
from entityforge.schema.store import SchemaStore
from entityforge.schema.validator import validate_schema_dir

path_option = click.option(
    "--path",
    "schema_path",
    default=None,
    type=click.Path(path_type=Path),
    help="Schema directory (default: ENTITYFORGE_SCHEMA_PATH or metadata/schemas).",
)


def _resolve_schema_path(schema_path: Path | None) -> Path:
    """Resolve the schema directory from the option, the environment or cwd."""
    if schema_path is not None:
        return schema_path
    cwd = Path.cwd()
    base_path = cwd.parent if cwd.name == "backend" else cwd
    return EngineConfig.from_env(base_path).schema_path


@click.group()
def schema():
    """Schema document commands."""
    pass


@schema.command()
@path_option
@click.option(
    "--strict",
    is_flag=True,
    default=False,
    help="Treat warnings as errors.",
)
def validate(schema_path: Path | None, strict: bool):
    """Validate every schema document in the schema directory."""
    schema_dir = _resolve_schema_path(schema_path)
    if not schema_dir.exists():
        click.echo(f"Error: Schema directory not found at {schema_dir}", err=True)
        raise SystemExit(1)

    issues = validate_schema_dir(schema_dir, strict=strict)
    errors = [i for i in issues if i.severity == "error"]
    warnings = [i for i in issues if i.severity == "warning"]

    for issue in issues:
        colour = "red" if issue.severity == "error" else "yellow"
        click.echo(click.style(str(issue), fg=colour))

    if errors:
        click.echo(
            click.style(
                f"\n{len(errors)} schema error(s) found"
                + (f", {len(warnings)} warning(s)" if warnings else ""),
                fg="red",
                bold=True,
            )
        )
        raise SystemExit(1)

    if warnings:
        click.echo(click.style(f"{len(warnings)} warning(s) found.", fg="yellow"))

    entities = YamlFileSource(schema_dir).list_entities()
    click.echo(f"\nChecked {len(entities)} schema document(s).")
    click.echo(click.style("All schemas are valid.", fg="green", bold=True))


@schema.command("list")
@path_option
def list_cmd(schema_path: Path | None):
    """List entities with a schema document."""
    store = SchemaStore([YamlFileSource(_resolve_schema_path(schema_path))], cache=SchemaCache())
    entities = store.list_entities()
    if not entities:
        click.echo("No schema documents found.")
        return

    for name in entities:
        try:
            document = store.get_document(name)
        except ConfigurationError as e:
            click.echo(click.style(f"  ✗ {name}: {e}", fg="red"))
            continue
        click.echo(
            f"  ✓ {name} (table: {document.table}, {len(document.fields)} fields, "
            f"{len(document.relationships)} relationships)"
        )


@schema.command()
@path_option
@click.argument("model")
@click.option(
    "--context",
    default=None,
    help="Comma-separated contexts to resolve (list, form, detail). Default: all.",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["yaml", "json"]),
    default="yaml",
    show_default=True,
)
def show(schema_path: Path | None, model: str, context: str | None, output_format: str):
    """Show the normalized schema of MODEL for the requested contexts."""
    store = SchemaStore([YamlFileSource(_resolve_schema_path(schema_path))], cache=SchemaCache())
    try:
        resolved = store.resolve(model, context)
    except NotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    except ConfigurationError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        raise SystemExit(1)

    data = resolved.to_dict()
    if output_format == "json":
        click.echo(json.dumps(data, indent=2, default=str))
    else:
        click.echo(yaml.safe_dump(data, sort_keys=False, default_flow_style=False))
