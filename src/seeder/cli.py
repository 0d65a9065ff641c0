"""Seeder command-line tool.

Usage:
    seeder run                  # Run the control loop
    seeder validate seed.yaml   # Validate a seed document
    seeder reconcile keystone   # One pass for one document, status persisted
    seeder status keystone      # Show persisted status
"""

from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path

import click
import yaml

from .config import Config, ConfigurationError
from .main import build_api, main, setup_logging
from .reconciler import ReconcileResult, SeedReconciler
from .store import SeedLoadError, SeedStore, load_seed_file

VERSION = "0.1.0"

# Exit code of `reconcile` when the pass ran but some categories failed
EXIT_INCOMPLETE = 3


def _load_config() -> Config:
    try:
        return Config.from_env()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.version_option(version=VERSION, prog_name="seeder")
def cli() -> None:
    """OpenStack seed reconciler.

    \b
    Configuration comes from SEEDER_* environment variables; see
    `seeder run --help` for the common overrides.
    """
    pass


@cli.command()
@click.option("--specs-dir", type=click.Path(exists=True, file_okay=False), help="Seed documents")
@click.option("--status-dir", type=click.Path(exists=True, file_okay=False), help="Seed status")
@click.option("--api-factory", help="module:callable returning the remote API client")
def run(specs_dir: str | None, status_dir: str | None, api_factory: str | None) -> None:
    """Run the reconciliation loop until SIGTERM/SIGINT."""
    overrides = {
        "SEEDER_SPECS_DIR": specs_dir,
        "SEEDER_STATUS_DIR": status_dir,
        "SEEDER_API_FACTORY": api_factory,
    }
    for key, value in overrides.items():
        if value:
            os.environ[key] = str(Path(value).resolve()) if key.endswith("_DIR") else value

    sys.exit(asyncio.run(main()))


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def validate(path: Path) -> None:
    """Validate a seed document and list what it declares."""
    try:
        spec, resource_version = load_seed_file(path)
    except SeedLoadError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"{path}: valid (version {resource_version})")
    for category in spec.categories_present():
        click.echo(f"  {category.value}: {len(spec.resources_for(category))}")
    if spec.dependencies:
        click.echo(f"  requires: {', '.join(spec.dependencies)}")


@cli.command()
@click.argument("name")
def reconcile(name: str) -> None:
    """Run one reconciliation pass for seed NAME and persist its status."""
    config = _load_config()
    setup_logging(json_output=config.json_logging)
    try:
        api = build_api(config)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    reconciler = SeedReconciler(config, SeedStore(config.specs_dir, config.status_dir), api)

    async def once() -> ReconcileResult:
        async with reconciler.session:
            return await reconciler.reconcile_once(name)

    result = asyncio.run(once())
    if result.error is not None:
        raise click.ClickException(str(result.error))

    if result.complete:
        click.echo(f"{name}: complete ({result.created} created, {result.updated} updated)")
        return

    click.echo(f"{name}: incomplete, failed: {', '.join(result.failed_categories)}")
    sys.exit(EXIT_INCOMPLETE)


@cli.command()
@click.argument("name")
@click.option(
    "--status-dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    envvar="SEEDER_STATUS_DIR",
    default="/status",
    help="Seed status directory",
)
def status(name: str, status_dir: Path) -> None:
    """Print the persisted status of seed NAME."""
    store = SeedStore(specs_dir=status_dir, status_dir=status_dir)
    try:
        seed_status = store.get_status(name)
    except SeedLoadError as e:
        raise click.ClickException(str(e)) from e

    click.echo(yaml.safe_dump(seed_status.model_dump(), sort_keys=True), nl=False)


def entrypoint() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    entrypoint()
