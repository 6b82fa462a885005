"""Command-line interface for Darkroom.

This module defines the CLI commands using the Click framework.

Commands:
- build: Build the site into the output directory.
- prune-cache: Drop image cache entries whose source image is gone.
"""

from __future__ import annotations

import logging
from pathlib import Path

import click

from . import __version__

_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def _setup_logging(verbose: bool, quiet: bool) -> None:
    """Configure stdlib logging for a CLI run."""
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format=_LOG_FORMAT, force=True)


@click.group()
@click.version_option(version=__version__, prog_name="darkroom")
def cli():
    """Darkroom photo blog builder."""


@cli.command()
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Regenerate every image variant, ignoring the image cache",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--quiet", "-q", is_flag=True, help="Only log warnings and errors")
def build(force: bool, verbose: bool, quiet: bool):
    """Build the site into the output directory."""
    _setup_logging(verbose, quiet)
    project_root = Path.cwd()
    from .build import BuildError, build_site

    try:
        result = build_site(project_root, force=force)
    except BuildError as exc:
        # Display user-friendly error message
        try:
            rel_path = exc.source_path.relative_to(project_root)
        except ValueError:
            rel_path = exc.source_path
        click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
        click.echo(click.style(f"  File: {rel_path}", fg="yellow"), err=True)
        click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)
        raise SystemExit(1) from None

    stats = result.stats
    click.echo(
        f"Built {len(result.articles)} articles into {result.output_dir} "
        f"({stats.converted} images converted, {stats.skipped} cached, "
        f"{stats.fallbacks} copied as-is)"
    )


@cli.command("prune-cache")
@click.option("--dry-run", is_flag=True, help="List stale entries without removing them")
def prune_cache(dry_run: bool):
    """Remove image cache entries whose source image no longer exists."""
    _setup_logging(False, True)
    project_root = Path.cwd()
    from .cache import ImageCache
    from .config import CONFIG_FILENAME, ConfigError, load_config

    try:
        config = load_config(project_root)
    except ConfigError as exc:
        raise click.ClickException(f"{CONFIG_FILENAME}: {exc}") from exc

    source_dir = project_root / config["source_dir"]
    cache = ImageCache.load(project_root / config["cache_file"])

    def source_exists(key: str) -> bool:
        # keys look like articles/<slug>/<filename>
        parts = key.split("/", 2)
        if len(parts) != 3:
            return False
        return (source_dir / parts[1] / parts[2]).is_file()

    if dry_run:
        stale = [key for key in cache.keys() if not source_exists(key)]
        for key in stale:
            click.echo(f"stale: {key}")
        click.echo(f"{len(stale)} stale entries")
        return

    removed = cache.prune(source_exists)
    for key in removed:
        click.echo(f"removed: {key}")
    click.echo(f"Removed {len(removed)} entries from {cache.path.name}")


def main():
    """Entry point for the CLI application."""
    cli()
