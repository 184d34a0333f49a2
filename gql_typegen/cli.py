"""Command-line interface for gql-typegen."""

import logging
import shutil
import tarfile
import tempfile
import zipfile
from pathlib import Path

import click

from .core.errors import GenerationError, SchemaError
from .core.generator import CodeGenerator
from .core.hooks import AddHeaderHook, HookRunner
from .core.registry import SchemaRegistry

ARCHIVE_SUFFIXES = (".zip", ".tar.gz", ".tgz")

schema_option = click.option(
    "--schema",
    "-s",
    required=True,
    envvar="GQL_TYPEGEN_SCHEMA",
    type=click.Path(exists=True),
    help="Path to GraphQL schema file, directory, or archive (.zip, .tar.gz, .tgz).",
)
verbose_option = click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose output.",
)


def extract_archive(archive_path: Path) -> str:
    """Extract archive to temp directory. Returns path to extracted content."""
    temp_dir = tempfile.mkdtemp()
    if archive_path.suffix == ".zip":
        with zipfile.ZipFile(archive_path, "r") as zip_ref:
            zip_ref.extractall(temp_dir)
    elif archive_path.name.endswith((".tar.gz", ".tgz")):
        with tarfile.open(archive_path, "r:gz") as tar_ref:
            tar_ref.extractall(temp_dir)
    else:
        shutil.rmtree(temp_dir)
        raise ValueError(f"Unsupported archive format: {archive_path.suffix}")
    return temp_dir


def load_registry(schema: str, verbose: bool) -> SchemaRegistry:
    """Load a registry from a schema path, extracting archives first."""
    schema_path = Path(schema).resolve()
    temp_dir = None
    try:
        actual_schema_path = schema_path
        if schema_path.is_file() and schema_path.name.lower().endswith(ARCHIVE_SUFFIXES):
            click.echo(f"Extracting archive {schema_path.name}...")
            temp_dir = extract_archive(schema_path)
            actual_schema_path = Path(temp_dir)
            if verbose:
                click.echo(f"  Extracted to: {temp_dir}")

        click.echo("Loading schema...")
        try:
            registry = SchemaRegistry.load_path(str(actual_schema_path))
        except SchemaError as e:
            for issue in e.issues:
                click.echo(f"  {issue}", err=True)
            raise click.ClickException(f"Schema is invalid: {len(e.issues)} issue(s)") from e

        if verbose:
            documents = registry.documents()
            click.echo(f"  Types: {len(registry.types)}")
            click.echo(f"  Object types: {len(registry.object_types())}")
            click.echo(f"  Operations: {len(documents)}")
            click.echo(f"  Fingerprint: {registry.fingerprint[:12]}")
        return registry
    finally:
        if temp_dir:
            shutil.rmtree(temp_dir)


@click.group()
@click.version_option(package_name="gql-typegen")
def main():
    """Schema-driven GraphQL code generator.

    Generate a typed resolver contract and typed client operations
    from a GraphQL schema and its named operations.
    """
    pass


@main.command()
@schema_option
@click.option(
    "--output",
    "-o",
    required=True,
    envvar="GQL_TYPEGEN_OUTPUT",
    type=click.Path(),
    help="Output directory for generated code.",
)
@click.option(
    "--server-module",
    default="server_contract.py",
    show_default=True,
    help="File name of the generated resolver contract.",
)
@click.option(
    "--client-module",
    default="client.py",
    show_default=True,
    help="File name of the generated client operations.",
)
@click.option(
    "--template-dir",
    type=click.Path(exists=True, file_okay=False),
    help="Directory with Jinja2 templates overriding the built-in ones.",
)
@click.option(
    "--header",
    help="Header line prepended to every generated file.",
)
@verbose_option
def generate(
    schema: str,
    output: str,
    server_module: str,
    client_module: str,
    template_dir: str | None,
    header: str | None,
    verbose: bool,
):
    """Generate the resolver contract and client code.

    Examples:

        gql-typegen generate --schema ./schema --output ./generated

        gql-typegen generate -s ./schema.graphql -o ./generated --header "# Generated"

        gql-typegen generate -s ./schema.tgz -o ./generated
    """
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    output_path = Path(output).resolve()
    registry = load_registry(schema, verbose)

    hooks = HookRunner()
    if header:
        hooks.add_post_hook(AddHeaderHook(header))

    click.echo("Generating code...")
    generator = CodeGenerator(registry, template_dir=template_dir, hooks=hooks)
    try:
        written = generator.write(str(output_path), server_module, client_module)
    except GenerationError as e:
        raise click.ClickException(f"Generation failed (this is a bug): {e}") from e

    if verbose:
        artifacts = generator.generate()
        click.echo(f"  Resolver signatures: {len(artifacts.server_contract)}")
        click.echo(f"  Client operations: {len(artifacts.client_artifacts)}")
        for path in written:
            click.echo(f"  Wrote {path}")
    click.echo(f"Done! Generated code in {output_path}")


@main.command()
@schema_option
@verbose_option
def check(schema: str, verbose: bool):
    """Validate a schema and its operations without generating code.

    Examples:

        gql-typegen check --schema ./schema
    """
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    registry = load_registry(schema, verbose)
    click.echo(
        f"Schema OK: {len(registry.object_types())} object type(s), "
        f"{len(registry.documents())} operation(s)"
    )


if __name__ == "__main__":
    main()
