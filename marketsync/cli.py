"""Command-line interface for manual synchronization operations."""

import asyncio
import json
import sys
from pathlib import Path

import click

from .bootstrap import build_context
from .models.sync_result import ImportReport, SyncResult
from .services.sync_service import SyncService
from .utils.config import get_config
from .utils.exceptions import BaseAppException, ConfigurationError


def _print_report(report: ImportReport):
    click.echo(f"Total records:  {report.total}")
    click.echo(click.style(f"Valid:          {report.valid}", fg="green"))
    click.echo(click.style(f"Invalid:        {report.invalid}", fg="red" if report.invalid else None))
    click.echo(click.style(f"Failed writes:  {report.failed}", fg="red" if report.failed else None))
    click.echo(f"Products:       {len(report.written_products)}")
    click.echo(f"Variants:       {len(report.written_variants)}")

    if report.errors:
        click.echo()
        click.echo(click.style(f"Errors ({len(report.errors)}):", fg="red", bold=True))
        for i, error in enumerate(report.errors[:10], 1):
            click.echo(f"  {i}. {error.reference}: {error.message}")
        if len(report.errors) > 10:
            click.echo(f"  ... and {len(report.errors) - 10} more errors")


def _print_sync_result(result: SyncResult):
    if result.success:
        click.echo(click.style(f"✓ {result.shop_id}: sync completed successfully", fg="green", bold=True))
    elif result.error:
        click.echo(click.style(f"✗ {result.shop_id}: {result.error_type}: {result.error}", fg="red", bold=True))
    else:
        click.echo(click.style(f"✗ {result.shop_id}: sync completed with errors", fg="red", bold=True))

    click.echo()
    click.echo(f"Platform:       {result.platform or 'unknown'}")
    click.echo(f"Fetched:        {result.fetched_count}")
    _print_report(result.report)
    click.echo(f"Duration:       {result.duration:.2f}s")


async def _sync(shop_id: str, dry_run: bool, trace: bool) -> SyncResult:
    context = build_context()
    try:
        result = await SyncService(context).sync_shop(shop_id, dry_run=dry_run)
        if trace:
            click.echo("Integration log:")
            for entry in context.log_sink.for_shop(shop_id):
                click.echo(f"  [{entry.level.value:5}] {entry.adapter}: {entry.message}")
            click.echo()
        return result
    finally:
        await context.close()


@click.group()
@click.version_option(version="1.0.0")
def cli():
    """
    Marketplace product synchronization CLI.

    Pull catalogs from connected shops and reconcile them into the
    internal product store.
    """
    pass


@cli.command()
@click.argument("shop_id")
@click.option("--dry-run", is_flag=True, help="Preview changes without applying them")
@click.option("--trace", is_flag=True, help="Print the integration log for this sync")
def sync(shop_id: str, dry_run: bool, trace: bool):
    """
    Fetch SHOP_ID's catalog and reconcile it.
    """
    if dry_run:
        click.echo(click.style("🔍 DRY RUN MODE - No changes will be made", fg="yellow", bold=True))
        click.echo()

    try:
        result = asyncio.run(_sync(shop_id, dry_run, trace))
    except ConfigurationError as e:
        click.echo(click.style(f"✗ Configuration error: {e.message}", fg="red"), err=True)
        sys.exit(1)

    click.echo("─" * 60)
    _print_sync_result(result)
    click.echo("─" * 60)
    sys.exit(0 if result.success else 1)


@cli.command("sync-all")
@click.option("--dry-run", is_flag=True, help="Preview changes without applying them")
def sync_all(dry_run: bool):
    """Sync every configured shop concurrently."""

    async def _run():
        context = build_context()
        try:
            return await SyncService(context).sync_all(dry_run=dry_run)
        finally:
            await context.close()

    try:
        results = asyncio.run(_run())
    except ConfigurationError as e:
        click.echo(click.style(f"✗ Configuration error: {e.message}", fg="red"), err=True)
        sys.exit(1)

    if not results:
        click.echo(click.style("⚠ No shops configured", fg="yellow"))
        sys.exit(0)

    for result in results:
        click.echo("─" * 60)
        _print_sync_result(result)
    click.echo("─" * 60)
    sys.exit(0 if all(r.success for r in results) else 1)


@cli.command("import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--dry-run", is_flag=True, help="Validate and preview without writing")
def import_file(file: Path, dry_run: bool):
    """
    Reconcile external products from a JSON FILE (a list or a single object).
    """
    try:
        data = json.loads(file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        click.echo(click.style(f"✗ Failed to parse {file}: {str(e)}", fg="red"), err=True)
        sys.exit(1)

    records = data if isinstance(data, list) else [data]
    context = build_context()
    report = SyncService(context).import_products(records, dry_run=dry_run)

    if dry_run:
        click.echo(click.style("🔍 DRY RUN MODE - nothing was written", fg="yellow", bold=True))
        click.echo(json.dumps([r.to_dict() for r in report.results], indent=2, ensure_ascii=False))

    _print_report(report)
    sys.exit(0 if not report.errors else 1)


@cli.command()
@click.argument("shop_id")
def products(shop_id: str):
    """Fetch and print SHOP_ID's normalized catalog without reconciling it."""

    async def _run():
        context = build_context()
        try:
            return await SyncService(context).fetch_catalog(shop_id)
        finally:
            await context.close()

    try:
        catalog = asyncio.run(_run())
    except BaseAppException as e:
        click.echo(click.style(f"✗ {type(e).__name__}: {e.message}", fg="red"), err=True)
        sys.exit(1)

    click.echo(json.dumps([p.to_dict() for p in catalog], indent=2, ensure_ascii=False))


@cli.command()
def platforms():
    """List platforms with a registered adapter."""
    context = build_context()
    for name in context.registry.platforms():
        click.echo(name)


@cli.command()
def config_info():
    """Display current configuration settings."""
    try:
        config = get_config()

        click.echo("Configuration Settings:")
        click.echo("=" * 60)
        click.echo()

        click.echo("Environment:")
        click.echo(f"  Environment:     {config.env.environment}")
        click.echo(f"  Log level:       {config.logging.level}")
        click.echo(f"  Dev catalog:     {config.dev_catalog_enabled}")
        click.echo(f"  Shops file:      {config.env.shops_file}")
        click.echo()

        click.echo("Fetch:")
        click.echo(f"  Max attempts:    {config.fetch.max_attempts}")
        click.echo(f"  Backoff:         {config.fetch.backoff_base}s base, {config.fetch.backoff_ceiling}s cap")
        click.echo(f"  Token refresh:   {config.refresh.mode}")
        click.echo()

        click.echo("Cafe24:")
        click.echo(f"  API base URL:    {config.cafe24.api_base_url}")
        click.echo(f"  API version:     {config.cafe24.api_version}")
        client_id = config.env.cafe24_client_id
        click.echo(f"  Client ID:       {client_id[:6] + '...' if client_id else '(not set)'}")
        click.echo()

        click.echo("Sync Settings:")
        click.echo(f"  Interval:        {config.env.sync_interval_minutes} minutes")
        click.echo()

    except Exception as e:
        click.echo(click.style(f"✗ Error loading config: {str(e)}", fg="red"), err=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
